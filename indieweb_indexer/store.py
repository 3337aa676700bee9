"""SQLite index store (SQLAlchemy asyncio + aiosqlite)."""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional

from sqlalchemy import delete, event, func, select
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine
from sqlalchemy.pool import StaticPool

from .logging_setup import get_logger
from .models import Base, IndiewebPost, Post, SubState
from .types import PostBatch

log = get_logger(__name__)

MEMORY = ":memory:"


def create_engine_for(location: str) -> AsyncEngine:
    if location == MEMORY:
        # each :memory: connection is its own database
        return create_async_engine(
            "sqlite+aiosqlite://",
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )

    Path(location).parent.mkdir(parents=True, exist_ok=True)
    engine = create_async_engine(f"sqlite+aiosqlite:///{location}", connect_args={"timeout": 30})

    @event.listens_for(engine.sync_engine, "connect")
    def _set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA synchronous=NORMAL")
        cursor.close()

    return engine


class IndexStore:
    """Read/write access to the post, indieweb_post and sub_state tables."""

    def __init__(self, location: str):
        self.location = location
        self.engine = create_engine_for(location)

    async def create_all(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        log.info("store_ready", location=self.location)

    async def close(self) -> None:
        await self.engine.dispose()

    async def apply(self, filtered: PostBatch, classified: PostBatch) -> None:
        """Persist one event: deletes first, then conflict-ignoring inserts."""
        if not filtered and not classified:
            return
        async with self.engine.begin() as conn:
            await _delete_uris(conn, Post, filtered.deletes)
            await _delete_uris(conn, IndiewebPost, classified.deletes)
            await _insert_ignore(conn, Post, filtered.creates)
            await _insert_ignore(conn, IndiewebPost, classified.creates)

    async def get_cursor(self, service: str) -> Optional[int]:
        async with self.engine.connect() as conn:
            result = await conn.execute(select(SubState.cursor).where(SubState.service == service))
            return result.scalar_one_or_none()

    async def save_cursor(self, service: str, cursor: int) -> None:
        """Upsert the cursor row; an older position never overwrites a newer one."""
        stmt = sqlite_insert(SubState).values(service=service, cursor=cursor)
        stmt = stmt.on_conflict_do_update(
            index_elements=[SubState.service],
            set_={"cursor": stmt.excluded.cursor},
            where=SubState.cursor <= stmt.excluded.cursor,
        )
        async with self.engine.begin() as conn:
            await conn.execute(stmt)

    async def purge_older_than(self, cutoff: str) -> int:
        """Delete rows indexed before ``cutoff`` (ISO 8601) from both tables."""
        async with self.engine.begin() as conn:
            removed = 0
            for model in (Post, IndiewebPost):
                result = await conn.execute(delete(model).where(model.indexed_at < cutoff))
                removed += result.rowcount or 0
        log.info("posts_purged", cutoff=cutoff, removed=removed)
        return removed

    async def count_posts(self) -> int:
        return await self._count(Post)

    async def count_classified(self) -> int:
        return await self._count(IndiewebPost)

    async def post_uris(self) -> List[str]:
        return await self._uris(Post)

    async def classified_uris(self) -> List[str]:
        return await self._uris(IndiewebPost)

    async def _count(self, model) -> int:
        async with self.engine.connect() as conn:
            result = await conn.execute(select(func.count()).select_from(model))
            return int(result.scalar_one())

    async def _uris(self, model) -> List[str]:
        async with self.engine.connect() as conn:
            result = await conn.execute(select(model.uri).order_by(model.indexed_at, model.uri))
            return list(result.scalars())


async def _delete_uris(conn: AsyncConnection, model, uris: List[str]) -> None:
    if uris:
        await conn.execute(delete(model).where(model.uri.in_(uris)))


async def _insert_ignore(conn: AsyncConnection, model, rows: List[dict]) -> None:
    if rows:
        await conn.execute(sqlite_insert(model).on_conflict_do_nothing(), rows)
