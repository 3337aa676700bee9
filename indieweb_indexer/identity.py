"""DID -> handle resolution on top of atproto's identity resolver."""

from __future__ import annotations

from collections import OrderedDict
from datetime import datetime, timezone
from typing import Any, Optional, Protocol

from atproto import AsyncIdResolver, DidDocument
from atproto_identity.cache.base_cache import AsyncDidBaseCache
from atproto_identity.cache.models import CachedDid, CachedDidResult

from .logging_setup import get_logger
from .metrics import handle_resolution_failures_total

log = get_logger(__name__)

AT_URI_PREFIX = "at://"


class DidResolver(Protocol):
    async def resolve(self, did: str) -> Optional[DidDocument]:
        ...


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class BoundedDidCache(AsyncDidBaseCache):
    """In-memory DID document cache holding at most ``max_size`` entries.

    Entries are kept in write order, so expired ones are swept from the front
    on every write and the oldest entry is evicted once the cache is full.
    """

    def __init__(self, ttl: float = 3600.0, max_size: int = 10_000):
        super().__init__(stale_ttl=ttl, max_ttl=ttl)
        self.max_size = max_size
        self._entries: "OrderedDict[str, CachedDid]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def _age(self, entry: CachedDid, now: datetime) -> float:
        return now.timestamp() - entry.updated_at.timestamp()

    async def get(self, did: str) -> Optional[CachedDidResult]:
        entry = self._entries.get(did)
        if entry is None:
            return None
        age = self._age(entry, _utc_now())
        if age > self.max_ttl:
            del self._entries[did]
            return None
        return CachedDidResult(did, entry.document, entry.updated_at, age > self.stale_ttl, False)

    async def set(self, did: str, document: DidDocument) -> None:
        now = _utc_now()
        self._entries.pop(did, None)
        self._entries[did] = CachedDid(document, now)
        self._sweep(now)

    def _sweep(self, now: datetime) -> None:
        while self._entries:
            oldest = next(iter(self._entries.values()))
            if self._age(oldest, now) <= self.max_ttl:
                break
            self._entries.popitem(last=False)
        while len(self._entries) > self.max_size:
            self._entries.popitem(last=False)

    async def refresh(self, did: str, get_doc_callback) -> None:
        document = await get_doc_callback()
        if document:
            await self.set(did, document)

    async def delete(self, did: str) -> None:
        # the resolver deletes on "not found", whether or not the DID was cached
        self._entries.pop(did, None)

    async def clear(self) -> None:
        self._entries.clear()


def create_id_resolver(
    plc_url: str = "https://plc.directory",
    *,
    timeout: float = 10.0,
    cache_ttl: float = 3600.0,
    cache_size: int = 10_000,
) -> AsyncIdResolver:
    """did:plc through the PLC directory, did:web through .well-known, cached."""
    return AsyncIdResolver(
        plc_url=plc_url.rstrip("/"),
        timeout=timeout,
        cache=BoundedDidCache(cache_ttl, cache_size),
    )


class HandleResolver:
    """Failure-tolerant DID -> handle lookup."""

    def __init__(self, did_resolver: DidResolver):
        self.did_resolver = did_resolver

    async def resolve_handle(self, did: str) -> Optional[str]:
        """Return the author's handle, or None when it cannot be resolved."""
        try:
            document = await self.did_resolver.resolve(did)
        except Exception as e:
            log.warning("did_resolve_failed", did=did, error=str(e))
            handle_resolution_failures_total.inc()
            return None

        handle = handle_from_document(document)
        if handle is None:
            log.debug("did_without_handle", did=did)
            handle_resolution_failures_total.inc()
        return handle


def handle_from_document(document: Any) -> Optional[str]:
    """First ``alsoKnownAs`` entry with the at:// prefix removed."""
    if not isinstance(document, DidDocument):
        return None
    aliases = document.also_known_as
    if not aliases:
        return None
    alias = aliases[0]
    if alias.startswith(AT_URI_PREFIX):
        alias = alias[len(AT_URI_PREFIX):]
    alias = alias.strip().lower()
    return alias or None
