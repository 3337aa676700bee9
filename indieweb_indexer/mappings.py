"""CSV-based handle-to-domain mappings for the IndieWeb feed.

Mappings cover handles whose blog lives on a different domain
(dominik.social -> dominikhofer.me) and bsky.social accounts that opt in
explicitly. The table is an immutable snapshot: a reload builds a new one
and swaps the reference, so readers see either the old or the new table.
"""

import asyncio
import csv
from pathlib import Path
from types import MappingProxyType
from typing import Dict, Mapping, Optional, Tuple

from .logging_setup import get_logger
from .metrics import mapped_handles, mapping_reloads_total

log = get_logger(__name__)

_EMPTY: Mapping[str, Tuple[str, ...]] = MappingProxyType({})


def parse_mappings(content: str, source: str = "<memory>") -> Dict[str, Tuple[str, ...]]:
    """Parse CSV text into handle -> ordered, de-duplicated domains."""
    collected: Dict[str, Dict[str, None]] = {}
    first_data_line = True

    for line_number, row in enumerate(csv.reader(content.splitlines()), start=1):
        if not row or not "".join(row).strip():
            continue
        if row[0].strip().startswith("#"):
            continue

        fields = [f.strip() for f in row]

        # Optional header
        if first_data_line:
            first_data_line = False
            if fields[0].lower() == "handle":
                continue

        if len(fields) < 2 or not fields[0] or not fields[1]:
            log.warning("mapping_row_invalid", source=source, line=line_number, row=",".join(row))
            continue

        handle = fields[0].lower()
        domain = fields[1].lower()
        # dict keeps insertion order and drops duplicates
        collected.setdefault(handle, {})[domain] = None

    return {handle: tuple(domains) for handle, domains in collected.items()}


class MappingRegistry:
    """Hot-reloadable handle -> domains table."""

    def __init__(self, csv_path: str, reload_interval: float = 300.0):
        self.csv_path = Path(csv_path)
        self.reload_interval = reload_interval
        self._mappings: Mapping[str, Tuple[str, ...]] = _EMPTY
        self._reload_task: Optional[asyncio.Task] = None
        self.loaded_once = False

    async def start(self) -> None:
        """Initial load, then periodic reloading."""
        await self.load()
        self.start_periodic_reload(self.reload_interval)

    def start_periodic_reload(self, interval: float) -> None:
        if self._reload_task is not None and not self._reload_task.done():
            return
        self._reload_task = asyncio.create_task(self._reload_loop(interval))

    async def _reload_loop(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            try:
                await self.load()
            except Exception as e:
                log.error("mapping_reload_cycle_failed", error=str(e))

    def stop(self) -> None:
        """Stop periodic reloading."""
        if self._reload_task is not None:
            self._reload_task.cancel()
            self._reload_task = None

    async def load(self) -> bool:
        """Load mappings from the CSV file; keep the last good table on failure."""
        try:
            content = await asyncio.to_thread(self.csv_path.read_text, encoding="utf-8")
        except FileNotFoundError:
            mapping_reloads_total.labels(outcome="error").inc()
            if not self.loaded_once:
                log.info("mappings_file_not_found", path=str(self.csv_path), handles=len(self._mappings))
            else:
                log.warning("mappings_file_missing_keeping_previous", path=str(self.csv_path))
            return False
        except (OSError, UnicodeDecodeError) as e:
            mapping_reloads_total.labels(outcome="error").inc()
            log.error("mappings_load_failed", path=str(self.csv_path), error=str(e))
            return False

        try:
            parsed = parse_mappings(content, source=str(self.csv_path))
        except csv.Error as e:
            mapping_reloads_total.labels(outcome="error").inc()
            log.error("mappings_parse_failed", path=str(self.csv_path), error=str(e))
            return False

        self._mappings = MappingProxyType(parsed)
        self.loaded_once = True
        mapping_reloads_total.labels(outcome="ok").inc()
        mapped_handles.set(len(parsed))
        log.info("mappings_loaded", path=str(self.csv_path), handles=len(parsed))
        return True

    def lookup(self, handle: str) -> Tuple[str, ...]:
        """Domains mapped to ``handle``, or an empty tuple."""
        return self._mappings.get(handle.lower(), ())

    def has_mapping(self, handle: str) -> bool:
        return handle.lower() in self._mappings

    def all_mappings(self) -> Dict[str, Tuple[str, ...]]:
        """Copy of the current table (for debugging)."""
        return dict(self._mappings)

    def __len__(self) -> int:
        return len(self._mappings)
