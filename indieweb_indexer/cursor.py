"""Firehose cursor checkpointing."""

import asyncio
from typing import Optional

from .logging_setup import get_logger
from .metrics import cursor_save_errors_total, cursor_saves_total, firehose_cursor
from .store import IndexStore

log = get_logger(__name__)


class CursorCheckpointer:
    """Cursor state manager with periodic persistence to the sub_state table.

    The cursor is saved every ``save_interval`` processed events from a
    background task. Saves are best-effort: on crash we replay at most the
    events since the last save, which the idempotent index tolerates.
    """

    def __init__(self, store: IndexStore, service: str, save_interval: int = 20):
        self.store = store
        self.service = service
        self.save_interval = max(1, save_interval)
        self.cursor: Optional[int] = None
        self.saved_cursor: Optional[int] = None
        self.events_since_save = 0
        self._save_task: Optional[asyncio.Task] = None

    async def load(self) -> Optional[int]:
        """Load the persisted cursor; None means start from the live tip."""
        try:
            saved = await self.store.get_cursor(self.service)
        except Exception as e:
            log.error("cursor_load_failed", service=self.service, error=str(e))
            return None

        if saved is None:
            log.info("no_saved_cursor", service=self.service)
            return None

        self.cursor = saved
        self.saved_cursor = saved
        firehose_cursor.set(saved)
        log.info("cursor_restored", service=self.service, cursor=saved)
        return saved

    def advance(self, seq: int) -> None:
        """Record a processed event and schedule a save every N events."""
        # Guard against cursor regression due to replayed frames
        if self.cursor is None or seq > self.cursor:
            self.cursor = seq
            firehose_cursor.set(seq)

        self.events_since_save += 1
        if self.events_since_save < self.save_interval:
            return
        if self._save_task is not None and not self._save_task.done():
            # a save is in flight; the next interval picks up the newer position
            return

        self.events_since_save = 0
        self._save_task = asyncio.create_task(self._save(self.cursor))

    async def _save(self, cursor: Optional[int]) -> bool:
        if cursor is None:
            return False
        try:
            await self.store.save_cursor(self.service, cursor)
        except Exception as e:
            cursor_save_errors_total.inc()
            log.error("cursor_save_failed", service=self.service, cursor=cursor, error=str(e))
            return False
        cursor_saves_total.inc()
        self.saved_cursor = cursor
        log.debug("cursor_saved", service=self.service, cursor=cursor)
        return True

    async def wait_idle(self) -> None:
        """Wait for an in-flight save, if any."""
        task = self._save_task
        if task is not None:
            await asyncio.shield(task)

    async def flush(self) -> bool:
        """Force save the current cursor (graceful shutdown)."""
        await self.wait_idle()
        if self.cursor is None or self.cursor == self.saved_cursor:
            return self.cursor is not None
        self.events_since_save = 0
        return await self._save(self.cursor)

    def get_cursor(self) -> Optional[int]:
        return self.cursor
