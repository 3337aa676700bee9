"""Builders for post records, operations and fakes."""

from __future__ import annotations

from typing import Any

from indieweb_indexer.types import POST_COLLECTION, CreateOp, OpsByType


def post_record(text: str = "hello", links: list[str] | None = None, card: str | None = None) -> dict[str, Any]:
    record: dict[str, Any] = {
        "$type": POST_COLLECTION,
        "text": text,
        "createdAt": "2026-10-18T12:00:00.000Z",
    }
    if links:
        record["facets"] = [
            {
                "index": {"byteStart": 0, "byteEnd": 1},
                "features": [{"$type": "app.bsky.richtext.facet#link", "uri": link}],
            }
            for link in links
        ]
    if card:
        record["embed"] = {
            "$type": "app.bsky.embed.external",
            "external": {"uri": card, "title": "", "description": ""},
        }
    return record


def create_op(rkey: str, author: str = "did:plc:author", **record_kwargs: Any) -> CreateOp:
    return {
        "uri": f"at://{author}/{POST_COLLECTION}/{rkey}",
        "cid": f"bafy{rkey}",
        "author": author,
        "record": post_record(**record_kwargs),
    }


def post_uri(rkey: str, author: str = "did:plc:author") -> str:
    return f"at://{author}/{POST_COLLECTION}/{rkey}"


def ops(creates: list[CreateOp] | None = None, deletes: list[str] | None = None) -> OpsByType:
    return OpsByType(creates=creates or [], deletes=[{"uri": uri} for uri in deletes or []])


class FakeHandleResolver:
    """Returns handles from a dict and records every lookup."""

    def __init__(self, handles: dict[str, str] | None = None) -> None:
        self.handles = handles or {}
        self.calls: list[str] = []

    async def resolve_handle(self, did: str) -> str | None:
        self.calls.append(did)
        return self.handles.get(did)


