"""Firehose subscription: atproto message frames -> ordered FirehoseEvents."""

import asyncio
import time
from typing import Any, Awaitable, Callable, Dict, Optional

from atproto import (
    CAR,
    AsyncFirehoseSubscribeReposClient,
    firehose_models,
    models,
    parse_subscribe_repos_message,
)
from atproto.exceptions import FirehoseError

from .logging_setup import get_logger
from .types import Commit, FirehoseEvent, RepoOp

log = get_logger(__name__)


def commit_from_message(commit: models.ComAtprotoSyncSubscribeRepos.Commit) -> Commit:
    """Build a Commit, keeping only the blocks its create ops reference.

    An undecodable CAR archive leaves ``blocks`` empty: the creates are then
    skipped downstream while the deletes still apply.
    """
    ops: list[RepoOp] = [
        {"action": op.action, "path": op.path, "cid": str(op.cid) if op.cid else None}
        for op in commit.ops
    ]
    wanted = {op["cid"] for op in ops if op["action"] == "create" and op["cid"]}

    blocks: Dict[str, Any] = {}
    if wanted and commit.blocks:
        try:
            car = CAR.from_bytes(commit.blocks)
        except Exception as e:
            log.warning("car_decode_failed", repo=commit.repo, seq=commit.seq, error=str(e))
        else:
            for cid, block in car.blocks.items():
                cid_str = str(cid)
                if cid_str in wanted:
                    blocks[cid_str] = block
            del car

    return Commit(seq=commit.seq, repo=commit.repo, ops=ops, blocks=blocks, time=commit.time)


def event_from_message(message: firehose_models.MessageFrame) -> Optional[FirehoseEvent]:
    """Decode one message frame; None for frames without a sequence number."""
    parsed = parse_subscribe_repos_message(message)
    if isinstance(parsed, models.ComAtprotoSyncSubscribeRepos.Info):
        log.info("firehose_info", name=parsed.name, message=parsed.message)
        return None
    if isinstance(parsed, models.ComAtprotoSyncSubscribeRepos.Commit):
        return FirehoseEvent(seq=parsed.seq, kind=message.type, commit=commit_from_message(parsed))
    return FirehoseEvent(seq=parsed.seq, kind=message.type)


EventHandler = Callable[[FirehoseEvent], Awaitable[None]]


class FirehoseTransport:
    """Repo subscription delivering events one at a time, in order.

    The atproto client reconnects on network errors by itself and resumes
    from the cursor kept in its params. Relay error frames and unexpected
    client failures end ``start()``; they are retried here with a fresh
    client. A failing event handler is fatal: the client is stopped and
    ``run`` re-raises the handler's exception.
    """

    def __init__(self, endpoint: str, on_event: EventHandler):
        self.endpoint = endpoint.rstrip("/")
        self.base_uri = f"{self.endpoint}/xrpc"
        self.on_event = on_event
        self.cursor: Optional[int] = None
        self.running = False
        self.client: Optional[AsyncFirehoseSubscribeReposClient] = None
        self._stop = asyncio.Event()
        self._fatal: Optional[BaseException] = None

        # Statistics
        self.messages_processed = 0
        self.errors_count = 0
        self.start_time = time.time()

    def _new_client(self, cursor: Optional[int]) -> AsyncFirehoseSubscribeReposClient:
        params = None
        if cursor is not None:
            params = models.ComAtprotoSyncSubscribeRepos.Params(cursor=cursor)
        return AsyncFirehoseSubscribeReposClient(params, base_uri=self.base_uri)

    async def run(self, resume_cursor: Optional[int], reconnect_delay: float = 3.0) -> None:
        """Consume until stopped, reconnecting from the last delivered seq."""
        self.cursor = resume_cursor
        self._fatal = None
        while not self._stop.is_set():
            delay = reconnect_delay
            self.client = self._new_client(self.cursor)
            self.running = True
            try:
                log.info("firehose_connecting", base_uri=self.base_uri, cursor=self.cursor)
                await self.client.start(self._on_message, self._on_callback_error)
            except FirehoseError as e:
                self.errors_count += 1
                log.error("firehose_error_retrying", error=str(e), cursor=self.cursor)
            except Exception as e:
                self.errors_count += 1
                log.error("firehose_unexpected_error", error=str(e), cursor=self.cursor)
                delay = reconnect_delay * 2
            finally:
                self.running = False
                self.client = None

            if self._fatal is not None:
                raise self._fatal
            if self._stop.is_set():
                break
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=delay)
            except asyncio.TimeoutError:
                pass
        log.info("firehose_stopped", cursor=self.cursor)

    async def _on_message(self, message: firehose_models.MessageFrame) -> None:
        self.messages_processed += 1
        try:
            event = event_from_message(message)
        except Exception as e:
            self.errors_count += 1
            log.error("parse_message_failed", error=str(e))
            return
        if event is None:
            return

        await self.on_event(event)
        # Guard against cursor regression due to replayed frames
        if self.cursor is None or event.seq > self.cursor:
            self.cursor = event.seq
            if self.client is not None:
                self.client.update_params({"cursor": self.cursor})

    async def _on_callback_error(self, error: BaseException) -> None:
        log.error("event_handler_failed", error=str(error), cursor=self.cursor)
        self._fatal = error
        await self.stop()

    async def stop(self) -> None:
        """Stop after the in-flight event has been handled."""
        self._stop.set()
        client = self.client
        if client is not None:
            await client.stop()

    def get_stats(self) -> Dict[str, Any]:
        uptime = time.time() - self.start_time
        return {
            "running": self.running,
            "uptime_seconds": uptime,
            "messages_processed": self.messages_processed,
            "errors_count": self.errors_count,
            "current_cursor": self.cursor,
        }
