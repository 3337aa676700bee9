"""Split a commit into post create/delete operations."""

from typing import Any

from .logging_setup import get_logger
from .types import POST_COLLECTION, Commit, OpsByType

log = get_logger(__name__)


def is_valid_post(record: Any) -> bool:
    """Structural check for an app.bsky.feed.post record."""
    return (
        isinstance(record, dict)
        and record.get("$type") == POST_COLLECTION
        and isinstance(record.get("text"), str)
        and isinstance(record.get("createdAt"), str)
    )


def get_ops_by_type(commit: Commit) -> OpsByType:
    """Extract post creates and deletes; updates and other collections are ignored."""
    ops = OpsByType()

    for op in commit.ops:
        action = op.get("action")
        path = op.get("path") or ""
        collection, _, rkey = path.partition("/")
        if collection != POST_COLLECTION or not rkey:
            continue

        uri = f"at://{commit.repo}/{path}"

        if action == "delete":
            ops.deletes.append({"uri": uri})
            continue
        if action != "create":
            continue

        cid = op.get("cid")
        if not cid:
            continue
        record = commit.blocks.get(cid)
        if record is None:
            log.warning("record_block_missing", uri=uri, cid=cid)
            continue
        if not is_valid_post(record):
            log.warning("record_invalid", uri=uri)
            continue

        ops.creates.append({"uri": uri, "cid": cid, "author": commit.repo, "record": record})

    return ops
