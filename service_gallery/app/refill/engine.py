"""
Refill engine: turns unresolved identifiers into ready artworks.
"""

from __future__ import annotations

import functools
import random
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Hashable, List, Optional, TYPE_CHECKING

from shared.errors import ExternalServiceError, UpstreamPermanentError
from shared.logging import get_logger
from shared.retry import FailureClass, RetryConfig, RetryError, retry_call

from service_gallery.app.caching import Artwork, CacheRecord, CacheRecordStore, FailureMemo

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from service_gallery.app.adapters import MuseumClient
    from shared.metrics import MetricsCollector


@dataclass
class RefillReport:
    """Outcome of one refill call."""

    key: str
    skipped: bool = False
    scanned: int = 0
    resolved: int = 0
    memoized: int = 0
    already_failed: int = 0
    failed: int = 0
    cursor: int = 0
    error: Optional[str] = None
    duration_seconds: float = 0.0
    memoized_ids: List[Hashable] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "skipped": self.skipped,
            "scanned": self.scanned,
            "resolved": self.resolved,
            "memoized": self.memoized,
            "already_failed": self.already_failed,
            "failed": self.failed,
            "cursor": self.cursor,
            "error": self.error,
            "duration_seconds": round(self.duration_seconds, 3),
        }


class RefillEngine:
    """
    Resolves identifiers for a key and appends the results to its ready queue.

    At most one refill runs per key. A refill requested while another is in
    flight for the same key returns immediately without waiting. A single
    bad identifier never aborts the batch: it is memoized or skipped and the
    loop moves on.
    """

    def __init__(
        self,
        client: "MuseumClient",
        store: CacheRecordStore,
        failure_memo: FailureMemo,
        retry_config: Optional[RetryConfig] = None,
        *,
        target_count: int = 25,
        memoize_transient_failures: bool = False,
        rng: Optional[random.Random] = None,
        metrics: Optional["MetricsCollector"] = None,
    ):
        self.client = client
        self.store = store
        self.failure_memo = failure_memo
        self.retry_config = retry_config or RetryConfig(max_attempts=5, base_delay=1.0)
        self.target_count = max(1, target_count)
        self.memoize_transient_failures = memoize_transient_failures
        self.metrics = metrics
        self._rng = rng or random.Random()
        self.logger = get_logger("gallery.refill")

    async def refill(self, key: str) -> RefillReport:
        """Refill the record stored under ``key``; a missing record is a no-op."""
        record = self.store.peek(key)
        if record is None:
            self.logger.debug("Refill requested for untracked key", key=key)
            return RefillReport(key=key, skipped=True)
        return await self.refill_record(record)

    async def refill_record(self, record: CacheRecord) -> RefillReport:
        report = RefillReport(key=record.key, cursor=record.cursor)

        # Acquiring an unlocked asyncio.Lock does not yield, so the check
        # and the acquire below cannot interleave with another trigger.
        if record.refilling:
            report.skipped = True
            self.logger.debug("Refill already in flight", key=record.key)
            self._count_run("skipped")
            return report

        async with record.refill_lock:
            started = time.monotonic()
            fresh: List[Artwork] = []
            try:
                while len(fresh) < self.target_count and not record.exhausted:
                    identifier = record.next_identifier()
                    report.scanned += 1
                    if identifier is None:
                        continue
                    if self.failure_memo.has(identifier):
                        report.already_failed += 1
                        continue

                    artwork = await self._resolve(identifier, report)
                    if artwork is not None:
                        fresh.append(artwork)
            except Exception as exc:
                report.error = str(exc)
                self.logger.error(
                    "Refill aborted by unexpected error",
                    key=record.key,
                    cursor=record.cursor,
                    error=str(exc),
                    exc_info=exc,
                )
            finally:
                # Whatever resolved before an error or cancellation is kept.
                if fresh:
                    self._rng.shuffle(fresh)
                    record.enqueue(fresh)
                report.resolved = len(fresh)
                report.cursor = record.cursor
                report.duration_seconds = time.monotonic() - started

        self._count_run("error" if report.error else "completed")
        if self.metrics:
            self.metrics.increment_counter("items_resolved_total", report.resolved)
            self.metrics.observe_histogram("refill_duration_seconds", report.duration_seconds)
            self.metrics.set_gauge("failure_memo_entries", len(self.failure_memo))

        self.logger.info(
            "Refill finished",
            key=record.key,
            resolved=report.resolved,
            scanned=report.scanned,
            memoized=report.memoized,
            cursor=record.cursor,
            total=len(record.identifiers),
            ready=len(record.ready),
        )
        return report

    async def _resolve(self, identifier: Hashable, report: RefillReport) -> Optional[Artwork]:
        """Fetch one identifier's detail record; memoize it when it can never resolve."""
        try:
            payload = await retry_call(
                functools.partial(self.client.get_object, identifier),
                self.retry_config,
                retry_exceptions=(ExternalServiceError,),
                permanent_exceptions=(UpstreamPermanentError,),
                name="object_detail",
                on_retry=self._on_retry,
            )
        except RetryError as exc:
            report.failed += 1
            if exc.failure_class is FailureClass.PERMANENT or self.memoize_transient_failures:
                self._memoize(identifier, exc.failure_class.value, report)
            else:
                self.logger.warning(
                    "Skipping identifier after transient failures",
                    identifier=identifier,
                    attempts=exc.attempts,
                    error=str(exc.last_exception),
                )
            return None

        artwork = Artwork.from_payload(identifier, payload)
        if artwork is None:
            self._memoize(identifier, "no_content", report)
        return artwork

    def _memoize(self, identifier: Hashable, reason: str, report: RefillReport) -> None:
        if self.failure_memo.add(identifier, reason):
            report.memoized += 1
            report.memoized_ids.append(identifier)
            if self.metrics:
                self.metrics.increment_counter("identifiers_memoized_total", reason=reason)

    def _on_retry(self, attempt: int, error: BaseException) -> None:
        if self.metrics:
            self.metrics.increment_counter("upstream_retries_total", operation="object_detail")

    def _count_run(self, result: str) -> None:
        if self.metrics:
            self.metrics.increment_counter("refill_runs_total", result=result)
