import asyncio
import signal
import time
from typing import Any, Dict, Optional

import uvicorn

from .classifier import PostClassifier
from .config import Settings, settings
from .cursor import CursorCheckpointer
from .firehose import FirehoseTransport
from .health import create_health_api
from .identity import HandleResolver, create_id_resolver
from .indexer import IndexMaintainer
from .logging_setup import configure_logging, get_logger
from .mappings import MappingRegistry
from .metrics import events_per_second, events_processed_total
from .operations import get_ops_by_type
from .store import IndexStore
from .types import FirehoseEvent


log = get_logger(__name__)


class Service:
    """Encapsulates the indexer lifecycle and background loops.

    Events are handled one at a time inside the firehose transport, so index
    mutations happen in stream order. Mapping reloads, cursor saves, stats
    and the health server run as separate tasks.
    """

    def __init__(self, config: Optional[Settings] = None, serve_health: bool = True) -> None:
        self.config = config or settings
        log.info("service_start", service=self.config.service_name)

        self.store = IndexStore(self.config.sqlite_location)
        self.registry = MappingRegistry(self.config.mappings_path, self.config.mappings_reload_interval)
        self.id_resolver = create_id_resolver(
            self.config.plc_url,
            timeout=self.config.resolver_timeout,
            cache_ttl=self.config.did_cache_ttl,
            cache_size=self.config.did_cache_size,
        )
        self.maintainer = IndexMaintainer(
            self.store,
            HandleResolver(self.id_resolver.did),
            PostClassifier(self.registry),
            keyword_marker=self.config.keyword_marker,
        )
        # the subscription endpoint identifies the stream
        self.checkpointer = CursorCheckpointer(
            self.store,
            self.config.subscription_endpoint,
            save_interval=self.config.cursor_save_interval,
        )
        self.firehose = FirehoseTransport(self.config.subscription_endpoint, self.handle_event)

        self.server: Optional[uvicorn.Server] = None
        if serve_health:
            app = create_health_api(self)
            server_config = uvicorn.Config(
                app,
                host="0.0.0.0",
                port=self.config.health_check_port,
                log_level=self.config.log_level.lower(),
                access_log=False,
            )
            self.server = uvicorn.Server(server_config)

        # Lifecycle primitives
        self.stop_event = asyncio.Event()
        self.started_at = time.time()

        # Stats since the last log line
        self.last_events_count = 0
        self.last_indexed_count = 0
        self._last_stats_time = time.monotonic()

        self._firehose_task: Optional[asyncio.Task] = None
        self._tasks: list[asyncio.Task] = []

    async def handle_event(self, event: FirehoseEvent) -> None:
        """Process one firehose event to completion, then advance the cursor."""
        if event.commit is not None:
            ops = get_ops_by_type(event.commit)
            result = await self.maintainer.handle_ops(ops)
            self.last_indexed_count += result.posts_created + result.indieweb_created

        events_processed_total.inc()
        self.last_events_count += 1
        self.checkpointer.advance(event.seq)

    async def start(self) -> None:
        """Prepare storage and mappings, then start the firehose and background loops."""
        await self.store.create_all()
        await self.registry.start()
        cursor = await self.checkpointer.load()

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, self.stop_event.set)

        self._firehose_task = asyncio.create_task(
            self.firehose.run(cursor, self.config.subscription_reconnect_delay)
        )
        self._firehose_task.add_done_callback(self._on_firehose_done)

        self._tasks = [asyncio.create_task(self._periodic_stats_logger())]
        if self.server is not None:
            server_task = asyncio.create_task(self.server.serve())
            # uvicorn captures SIGINT/SIGTERM while serving
            server_task.add_done_callback(lambda _: self.stop_event.set())
            self._tasks.append(server_task)

    def _on_firehose_done(self, task: asyncio.Task) -> None:
        if not task.cancelled() and task.exception() is not None:
            log.error("firehose_failed", error=str(task.exception()))
        self.stop_event.set()

    async def _periodic_stats_logger(self) -> None:
        while not self.stop_event.is_set():
            await asyncio.sleep(self.config.stats_interval)
            try:
                self._log_stats()
            except Exception as e:
                log.warning("stats_log_failed", error=str(e))

    def _log_stats(self) -> None:
        now = time.monotonic()
        elapsed = max(now - self._last_stats_time, 1e-6)
        eps_rate = round(self.last_events_count / elapsed, 2)
        events_per_second.set(eps_rate)

        log.info(
            "indexer stats",
            cursor=self.checkpointer.get_cursor(),
            events_per_second=eps_rate,
            indexed=self.last_indexed_count,
            mapped_handles=len(self.registry),
        )
        self.last_events_count = 0
        self.last_indexed_count = 0
        self._last_stats_time = now

    def get_health_status(self) -> Dict[str, Any]:
        firehose_stats = self.firehose.get_stats()
        healthy = not self.stop_event.is_set() and (
            self._firehose_task is not None and not self._firehose_task.done()
        )
        return {
            "status": "healthy" if healthy else "unhealthy",
            "service": self.config.service_name,
            "uptime_seconds": time.time() - self.started_at,
            "components": {
                "firehose": firehose_stats,
                "cursor": {
                    "current": self.checkpointer.get_cursor(),
                    "saved": self.checkpointer.saved_cursor,
                },
                "mappings": {"handles": len(self.registry), "loaded": self.registry.loaded_once},
            },
        }

    async def shutdown(self) -> None:
        """Let the in-flight event finish, then stop timers and flush the cursor."""
        await self.firehose.stop()
        error: Optional[BaseException] = None
        if self._firehose_task is not None:
            try:
                await self._firehose_task
            except Exception as e:
                error = e

        self.registry.stop()
        await self.checkpointer.flush()

        if self.server is not None:
            self.server.should_exit = True
        for t in self._tasks:
            t.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)

        await self.store.close()
        log.info("service_stop", cursor=self.checkpointer.get_cursor())
        if error is not None:
            raise error

    async def run(self) -> None:
        """Start the service and wait until stop signal; then perform a graceful shutdown."""
        await self.start()
        await self.stop_event.wait()
        await self.shutdown()


def main() -> None:
    configure_logging(settings.log_level, settings.log_format)
    asyncio.run(_run())


async def _run() -> None:
    # Service creates asyncio primitives; build it inside the running loop
    service = Service()
    await service.run()
