from indieweb_indexer.operations import get_ops_by_type, is_valid_post
from indieweb_indexer.types import Commit

from factories import post_record

REPO = "did:plc:author"


def test_get_ops_by_type_splits_creates_and_deletes() -> None:
    commit = Commit(
        seq=1,
        repo=REPO,
        ops=[
            {"action": "create", "path": "app.bsky.feed.post/3k1", "cid": "bafy1"},
            {"action": "delete", "path": "app.bsky.feed.post/3k0", "cid": None},
        ],
        blocks={"bafy1": post_record("hi")},
    )
    ops = get_ops_by_type(commit)
    assert ops.creates == [
        {"uri": f"at://{REPO}/app.bsky.feed.post/3k1", "cid": "bafy1", "author": REPO, "record": post_record("hi")}
    ]
    assert ops.deletes == [{"uri": f"at://{REPO}/app.bsky.feed.post/3k0"}]


def test_get_ops_by_type_ignores_updates_and_other_collections() -> None:
    commit = Commit(
        seq=1,
        repo=REPO,
        ops=[
            {"action": "update", "path": "app.bsky.feed.post/3k1", "cid": "bafy1"},
            {"action": "create", "path": "app.bsky.feed.like/3k2", "cid": "bafy2"},
            {"action": "delete", "path": "app.bsky.graph.follow/3k3", "cid": None},
            {"action": "create", "path": "app.bsky.feed.post", "cid": "bafy1"},
        ],
        blocks={"bafy1": post_record("hi"), "bafy2": {"$type": "app.bsky.feed.like"}},
    )
    ops = get_ops_by_type(commit)
    assert ops.creates == []
    assert ops.deletes == []


def test_get_ops_by_type_skips_missing_and_invalid_records() -> None:
    commit = Commit(
        seq=1,
        repo=REPO,
        ops=[
            {"action": "create", "path": "app.bsky.feed.post/missing", "cid": "bafymissing"},
            {"action": "create", "path": "app.bsky.feed.post/bad", "cid": "bafybad"},
            {"action": "create", "path": "app.bsky.feed.post/nocid", "cid": None},
            {"action": "create", "path": "app.bsky.feed.post/good", "cid": "bafygood"},
        ],
        blocks={"bafybad": {"$type": "app.bsky.feed.post", "text": 5}, "bafygood": post_record("ok")},
    )
    ops = get_ops_by_type(commit)
    assert [c["uri"] for c in ops.creates] == [f"at://{REPO}/app.bsky.feed.post/good"]


def test_is_valid_post() -> None:
    assert is_valid_post(post_record())
    assert not is_valid_post(None)
    assert not is_valid_post({"$type": "app.bsky.feed.post", "text": "no date"})
    assert not is_valid_post({"$type": "app.bsky.feed.repost", "text": "x", "createdAt": "now"})
