"""Type definitions for the indexer."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, TypedDict


POST_COLLECTION = "app.bsky.feed.post"


class RepoOp(TypedDict):
    """One operation of a repository commit."""
    action: str  # create | update | delete
    path: str  # <collection>/<rkey>
    cid: Optional[str]


@dataclass
class Commit:
    """A decoded `#commit` frame from the firehose."""
    seq: int
    repo: str  # DID of the repository owner
    ops: List[RepoOp]
    blocks: Dict[str, Any]  # CID string -> decoded record
    time: Optional[str] = None


@dataclass
class FirehoseEvent:
    """Any sequenced frame; only `#commit` frames carry a commit."""
    seq: int
    kind: str  # "#commit", "#identity", "#account", ...
    commit: Optional[Commit] = None


class CreateOp(TypedDict):
    uri: str
    cid: str
    author: str  # DID of the author
    record: Dict[str, Any]


class DeleteOp(TypedDict):
    uri: str


@dataclass
class OpsByType:
    """Post creates and deletes extracted from one commit."""
    creates: List[CreateOp] = field(default_factory=list)
    deletes: List[DeleteOp] = field(default_factory=list)


class FilteredPostRow(TypedDict):
    uri: str
    cid: str
    indexed_at: str  # ISO 8601 timestamp


class ClassifiedPostRow(TypedDict):
    uri: str
    cid: str
    author_did: str
    author_handle: str
    indexed_at: str  # ISO 8601 timestamp


@dataclass
class PostBatch:
    """Mutations staged for one table by one event."""
    deletes: List[str] = field(default_factory=list)
    creates: List[Dict[str, Any]] = field(default_factory=list)

    def __bool__(self) -> bool:
        return bool(self.deletes or self.creates)
