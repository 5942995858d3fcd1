"""
Request coordinator: the public entry point for batch requests.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set, TYPE_CHECKING

from shared.logging import get_logger

from service_gallery.app.caching import Artwork, CacheRecord, CacheRecordStore, FailureMemo
from service_gallery.app.catalog import KeyTable
from service_gallery.app.refill import DiscoveryStep, NoCandidatesError, RefillEngine

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


class BatchStatus(str, Enum):
    """Outcomes of a batch request."""
    OK = "ok"
    ACCEPTED = "accepted"
    NOT_FOUND = "not_found"
    EXHAUSTED = "exhausted"
    INVALID_KEY = "invalid_key"


@dataclass
class BatchResult:
    """A batch outcome plus the items it carries (only for ``OK``)."""

    status: BatchStatus
    items: List[Artwork] = field(default_factory=list)
    message: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status is BatchStatus.OK


class BatchCoordinator:
    """
    Serves batches per key from the ready queue and keeps the queue warm.

    The fast path (items already queued) never waits on upstream I/O. Every
    served batch schedules a background refill; refills for one key never
    overlap, refills for different keys run independently.
    """

    def __init__(
        self,
        key_table: KeyTable,
        discovery: DiscoveryStep,
        engine: RefillEngine,
        store: CacheRecordStore,
        failure_memo: FailureMemo,
        *,
        batch_size: int = 5,
        rediscover_on_exhaustion: bool = False,
        metrics: Optional["MetricsCollector"] = None,
    ):
        self.key_table = key_table
        self.discovery = discovery
        self.engine = engine
        self.store = store
        self.failure_memo = failure_memo
        self.batch_size = max(1, batch_size)
        self.rediscover_on_exhaustion = rediscover_on_exhaustion
        self.metrics = metrics
        self.logger = get_logger("gallery.coordinator")
        self._discovery_locks: Dict[str, asyncio.Lock] = {}
        self._background: Set[asyncio.Task] = set()

    async def get_batch(self, key: str) -> BatchResult:
        """Return up to ``batch_size`` items for ``key`` or the reason there are none."""
        result = await self._get_batch(key)
        if self.metrics:
            self.metrics.increment_counter("batch_requests_total", outcome=result.status.value)
            self.metrics.set_gauge("tracked_keys", len(self.store))
        return result

    async def _get_batch(self, key: str) -> BatchResult:
        entry = self.key_table.get(key)
        if entry is None:
            self.logger.warning("Rejected unknown key", key=key)
            return BatchResult(BatchStatus.INVALID_KEY, message="Invalid emoji provided.")

        record = self.store.get(key)
        if record is None:
            created = False
            try:
                async with self._discovery_lock(key):
                    record = self.store.get(key)
                    if record is None:
                        record = await self._create_record(key, entry.queries)
                        created = True
            except NoCandidatesError as exc:
                return BatchResult(BatchStatus.NOT_FOUND, message=exc.message)

            if created:
                # Nothing awaits between releasing the discovery lock and taking
                # the refill lock, so a waiter finds the record already refilling.
                return await self._first_request(record)

        return await self._serve_existing(record)

    async def _create_record(self, key: str, queries: Sequence[str]) -> CacheRecord:
        """Run discovery and store the new record. Call with the key's discovery lock held."""
        identifiers = await self.discovery.discover(key, queries)
        record = self.store.add(key, identifiers)
        self.logger.info("Created cache record", key=key, identifiers=len(identifiers))
        return record

    async def _first_request(self, record: CacheRecord) -> BatchResult:
        await self.engine.refill_record(record)
        if record.ready:
            return self._serve(record)

        if not record.exhausted:
            self.schedule_refill(record)
        return BatchResult(
            BatchStatus.ACCEPTED,
            message="Fetching paintings in the background. Please try again shortly.",
        )

    async def _serve_existing(self, record: CacheRecord) -> BatchResult:
        if record.ready:
            return self._serve(record)

        if record.refilling:
            return BatchResult(
                BatchStatus.ACCEPTED,
                message="Fetching more paintings in the background. Please try again shortly.",
            )

        self.logger.info("Ready queue empty, refilling in line", key=record.key)
        await self.engine.refill_record(record)
        if record.ready:
            return self._serve(record)

        if record.exhausted:
            if self.rediscover_on_exhaustion and self.store.peek(record.key) is record:
                self.store.pop(record.key)
                self.logger.info("Dropped exhausted record for rediscovery", key=record.key)
            return BatchResult(
                BatchStatus.EXHAUSTED,
                message="All available paintings for this emoji have been shown.",
            )

        self.schedule_refill(record)
        return BatchResult(
            BatchStatus.ACCEPTED,
            message="Fetching more paintings in the background. Please try again shortly.",
        )

    def _serve(self, record: CacheRecord) -> BatchResult:
        batch = record.pop_batch(self.batch_size)
        self.schedule_refill(record)
        return BatchResult(BatchStatus.OK, items=batch)

    def schedule_refill(self, record: CacheRecord) -> Optional[asyncio.Task]:
        """Start a background refill unless one is already running for the key."""
        if record.refilling or record.exhausted:
            return None
        task = asyncio.create_task(self.engine.refill_record(record), name=f"refill:{record.key}")
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def warm(self, keys: Optional[Iterable[str]] = None) -> Dict[str, Any]:
        """
        Discover keys that have no record yet and start filling them.

        Refills are scheduled in the background; the summary only reflects
        discovery.
        """
        requested = list(keys) if keys else self.key_table.keys()
        summary: Dict[str, Any] = {
            "planned": len(requested),
            "discovered": [],
            "already_tracked": [],
            "not_found": [],
            "invalid": [],
        }

        for key in requested:
            entry = self.key_table.get(key)
            if entry is None:
                summary["invalid"].append(key)
                continue

            async with self._discovery_lock(key):
                record = self.store.get(key)
                if record is not None:
                    summary["already_tracked"].append(key)
                    self.schedule_refill(record)
                    continue
                try:
                    record = await self._create_record(key, entry.queries)
                except NoCandidatesError:
                    summary["not_found"].append(key)
                    continue

            summary["discovered"].append(key)
            self.schedule_refill(record)

        self.logger.info(
            "Cache warm scheduled",
            planned=summary["planned"],
            discovered=len(summary["discovered"]),
            not_found=len(summary["not_found"]),
        )
        return summary

    def stats(self) -> Dict[str, Any]:
        return {
            "tracked_keys": len(self.store),
            "failure_memo_entries": len(self.failure_memo),
            "background_refills": len(self._background),
            "records": [record.snapshot() for record in self.store.records()],
        }

    async def drain(self) -> None:
        """Wait for every background refill scheduled so far."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def close(self) -> None:
        """Cancel outstanding background refills."""
        tasks = list(self._background)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._background.clear()

    def _discovery_lock(self, key: str) -> asyncio.Lock:
        lock = self._discovery_locks.get(key)
        if lock is None:
            lock = self._discovery_locks[key] = asyncio.Lock()
        return lock
