"""Index maintenance: keyword and IndieWeb reducers over one commit's operations.

Both reducers read the same ``OpsByType`` and produce a ``PostBatch`` for
their own table. Deletes from the commit are staged for both tables since a
deleted post may have been inserted by either branch, and a create whose uri
the same commit deletes is dropped. The store applies deletes before inserts,
and inserts ignore existing uris, so replaying an event leaves the tables
unchanged.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional

from .classifier import PostClassifier
from .identity import HandleResolver
from .links import extract_links
from .logging_setup import get_logger
from .metrics import classifier_decisions_total, posts_deleted_total, posts_indexed_total
from .store import IndexStore
from .types import ClassifiedPostRow, CreateOp, FilteredPostRow, OpsByType, PostBatch

log = get_logger(__name__)


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def live_creates(ops: OpsByType) -> List[CreateOp]:
    """Creates whose uri is not also deleted by the same commit."""
    deleted = {d["uri"] for d in ops.deletes}
    return [c for c in ops.creates if c["uri"] not in deleted]


def keyword_batch(ops: OpsByType, marker: str, now: str) -> PostBatch:
    """Posts whose text contains ``marker`` (case-insensitive)."""
    marker = marker.lower()
    batch = PostBatch(deletes=[d["uri"] for d in ops.deletes])
    for create in live_creates(ops):
        text = create["record"].get("text") or ""
        if marker not in text.lower():
            continue
        row: FilteredPostRow = {"uri": create["uri"], "cid": create["cid"], "indexed_at": now}
        batch.creates.append(row)
    return batch


async def classify_batch(
    ops: OpsByType,
    resolver: HandleResolver,
    classifier: PostClassifier,
    now: str,
) -> PostBatch:
    """Posts linking to their author's own domain."""
    batch = PostBatch(deletes=[d["uri"] for d in ops.deletes])
    for create in live_creates(ops):
        links = extract_links(create["record"])
        if not links:
            # no resolver round-trip for posts without links
            continue

        handle = await resolver.resolve_handle(create["author"])
        if not handle:
            continue

        if not classifier.classify(handle, links):
            classifier_decisions_total.labels(decision="reject").inc()
            continue

        classifier_decisions_total.labels(decision="admit").inc()
        log.debug("indieweb_post_admitted", uri=create["uri"], handle=handle)
        row: ClassifiedPostRow = {
            "uri": create["uri"],
            "cid": create["cid"],
            "author_did": create["author"],
            "author_handle": handle,
            "indexed_at": now,
        }
        batch.creates.append(row)
    return batch


@dataclass
class IndexResult:
    posts_created: int = 0
    posts_deleted: int = 0
    indieweb_created: int = 0
    indieweb_deleted: int = 0


class IndexMaintainer:
    """Applies one commit's operations to the post and indieweb_post tables."""

    def __init__(
        self,
        store: IndexStore,
        resolver: HandleResolver,
        classifier: PostClassifier,
        keyword_marker: str = "alf",
    ):
        self.store = store
        self.resolver = resolver
        self.classifier = classifier
        self.keyword_marker = keyword_marker

    async def handle_ops(self, ops: OpsByType, now: Optional[str] = None) -> IndexResult:
        if not ops.creates and not ops.deletes:
            return IndexResult()

        now = now or utc_now()
        filtered = keyword_batch(ops, self.keyword_marker, now)
        classified = await classify_batch(ops, self.resolver, self.classifier, now)

        # Store errors propagate: the supervisor restarts us from the last cursor
        await self.store.apply(filtered, classified)

        posts_indexed_total.labels(table="post").inc(len(filtered.creates))
        posts_indexed_total.labels(table="indieweb_post").inc(len(classified.creates))
        posts_deleted_total.labels(table="post").inc(len(filtered.deletes))
        posts_deleted_total.labels(table="indieweb_post").inc(len(classified.deletes))

        return IndexResult(
            posts_created=len(filtered.creates),
            posts_deleted=len(filtered.deletes),
            indieweb_created=len(classified.creates),
            indieweb_deleted=len(classified.deletes),
        )
