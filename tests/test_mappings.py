from __future__ import annotations

import asyncio
from pathlib import Path

from indieweb_indexer.mappings import MappingRegistry, parse_mappings


def test_parse_mappings_header_comments_and_blank_lines() -> None:
    content = (
        "handle,domain\n"
        "# custom handle with a separate blog\n"
        "\n"
        "Dominik.Social, DominikHofer.me\n"
        "alice.bsky.social,blog.example.com,extra-column\n"
        "alice.bsky.social,notes.example.com\n"
        "alice.bsky.social,BLOG.example.com\n"
    )
    assert parse_mappings(content) == {
        "dominik.social": ("dominikhofer.me",),
        "alice.bsky.social": ("blog.example.com", "notes.example.com"),
    }


def test_parse_mappings_without_header() -> None:
    assert parse_mappings("dominik.social,dominikhofer.me\n") == {"dominik.social": ("dominikhofer.me",)}


def test_parse_mappings_skips_invalid_rows() -> None:
    content = "handle,domain\nonly-one-field\ncarol.example,\n,orphan.example\nbob.example,bob.blog\n"
    assert parse_mappings(content) == {"bob.example": ("bob.blog",)}


def test_load_and_case_insensitive_lookup(mappings_file: Path) -> None:
    registry = MappingRegistry(str(mappings_file))
    assert asyncio.run(registry.load()) is True
    assert registry.lookup("Alice.BSKY.social") == ("blog.example.com",)
    assert registry.lookup("unknown.example") == ()
    assert registry.has_mapping("alice.bsky.social")
    assert len(registry) == 1


def test_missing_file_leaves_empty_table(tmp_path: Path) -> None:
    registry = MappingRegistry(str(tmp_path / "missing.csv"))
    assert asyncio.run(registry.load()) is False
    assert registry.all_mappings() == {}


def test_failed_reload_keeps_previous_table(mappings_file: Path) -> None:
    registry = MappingRegistry(str(mappings_file))

    async def run() -> None:
        assert await registry.load()
        mappings_file.write_bytes(b"handle,domain\n\xff\xfe broken utf-8\n")
        assert await registry.load() is False
        assert registry.lookup("alice.bsky.social") == ("blog.example.com",)
        mappings_file.unlink()
        assert await registry.load() is False
        assert registry.lookup("alice.bsky.social") == ("blog.example.com",)

    asyncio.run(run())


def test_reload_replaces_table(mappings_file: Path) -> None:
    registry = MappingRegistry(str(mappings_file))

    async def run() -> None:
        await registry.load()
        mappings_file.write_text("bob.example,bob.blog\n", encoding="utf-8")
        await registry.load()

    asyncio.run(run())
    assert registry.lookup("alice.bsky.social") == ()
    assert registry.lookup("bob.example") == ("bob.blog",)


def test_periodic_reload_picks_up_changes(mappings_file: Path) -> None:
    registry = MappingRegistry(str(mappings_file), reload_interval=0.01)

    async def run() -> tuple[str, ...]:
        await registry.start()
        mappings_file.write_text("alice.bsky.social,new.example.com\n", encoding="utf-8")
        for _ in range(200):
            await asyncio.sleep(0.01)
            if registry.lookup("alice.bsky.social") == ("new.example.com",):
                break
        registry.stop()
        return registry.lookup("alice.bsky.social")

    assert asyncio.run(run()) == ("new.example.com",)


def test_periodic_reload_survives_failing_cycle(mappings_file: Path, monkeypatch) -> None:
    registry = MappingRegistry(str(mappings_file))
    calls: list[int] = []

    async def flaky_load() -> bool:
        calls.append(1)
        if len(calls) == 1:
            raise RuntimeError("boom")
        return True

    monkeypatch.setattr(registry, "load", flaky_load)

    async def run() -> None:
        registry.start_periodic_reload(0.01)
        for _ in range(200):
            await asyncio.sleep(0.01)
            if len(calls) >= 3:
                break
        registry.stop()

    asyncio.run(run())
    assert len(calls) >= 3


def test_stop_without_start_is_safe(mappings_file: Path) -> None:
    registry = MappingRegistry(str(mappings_file))
    registry.stop()
    registry.stop()


def test_lookups_during_reload_see_whole_tables(tmp_path: Path) -> None:
    old = {f"user{i}.example": (f"old{i}.example",) for i in range(50)}
    new = {f"user{i}.example": (f"new{i}.example",) for i in range(50)}
    old_csv = "".join(f"{h},{d[0]}\n" for h, d in old.items())
    new_csv = "".join(f"{h},{d[0]}\n" for h, d in new.items())
    path = tmp_path / "mappings.csv"
    path.write_text(old_csv, encoding="utf-8")
    registry = MappingRegistry(str(path))
    observed: list[dict[str, tuple[str, ...]]] = []

    async def reloader() -> None:
        for i in range(20):
            path.write_text(new_csv if i % 2 == 0 else old_csv, encoding="utf-8")
            await registry.load()

    async def reader() -> None:
        for _ in range(200):
            observed.append(registry.all_mappings())
            await asyncio.sleep(0)

    async def run() -> None:
        await registry.load()
        await asyncio.gather(reloader(), reader())

    asyncio.run(run())
    assert observed
    for table in observed:
        assert table in (old, new)
