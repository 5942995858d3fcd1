"""
Process-wide memo of identifiers that will never resolve.
"""

from __future__ import annotations

import time
from collections import OrderedDict
from typing import Callable, Dict, Hashable, Optional

from shared.logging import get_logger


class FailureMemo:
    """
    Set of known-unusable identifiers shared by every key.

    Failure is a property of the identifier, not the key, so an identifier
    rejected while refilling one key is skipped for all of them. Inserts are
    idempotent and never await, so concurrent refills need no extra locking.

    The memo is bounded by ``max_entries`` (oldest insert evicted first, 0 =
    unbounded). With ``ttl_seconds`` set, entries age out and the identifier
    becomes eligible again; without it entries are permanent.
    """

    def __init__(
        self,
        max_entries: int = 0,
        ttl_seconds: Optional[float] = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_entries = max_entries
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: "OrderedDict[Hashable, float]" = OrderedDict()
        self._reasons: Dict[Hashable, str] = {}
        self.logger = get_logger("gallery.failure_memo")

    def has(self, identifier: Hashable) -> bool:
        added_at = self._entries.get(identifier)
        if added_at is None:
            return False
        if self.ttl_seconds is not None and self._clock() - added_at >= self.ttl_seconds:
            self._discard(identifier)
            return False
        return True

    def add(self, identifier: Hashable, reason: str = "permanent") -> bool:
        """Record ``identifier`` as unusable. Returns False if already present."""
        if self.has(identifier):
            return False

        self._entries[identifier] = self._clock()
        self._reasons[identifier] = reason
        self.logger.info("Memoized failed identifier", identifier=identifier, reason=reason)

        while self.max_entries and len(self._entries) > self.max_entries:
            oldest, _ = self._entries.popitem(last=False)
            self._reasons.pop(oldest, None)
        return True

    def reason(self, identifier: Hashable) -> Optional[str]:
        return self._reasons.get(identifier) if self.has(identifier) else None

    def _discard(self, identifier: Hashable) -> None:
        self._entries.pop(identifier, None)
        self._reasons.pop(identifier, None)

    def __contains__(self, identifier: object) -> bool:
        return self.has(identifier)  # type: ignore[arg-type]

    def __len__(self) -> int:
        return len(self._entries)
