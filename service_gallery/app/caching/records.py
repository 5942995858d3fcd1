"""
Per-key cache records for the gallery service.
"""

from __future__ import annotations

import asyncio
import time
from collections import OrderedDict, deque
from dataclasses import dataclass, field
from typing import Any, Deque, Dict, Hashable, Iterable, List, Optional, Sequence, Tuple

from shared.logging import get_logger


Identifier = Hashable

DEFAULT_TITLE = "Untitled"
DEFAULT_ARTIST = "Unknown artist"
DEFAULT_OBJECT_URL = "#"


@dataclass(frozen=True)
class Artwork:
    """Structured representation of a resolved artwork."""

    object_id: Identifier
    image_small: str
    image_large: str
    title: str = DEFAULT_TITLE
    artist: str = DEFAULT_ARTIST
    object_url: str = DEFAULT_OBJECT_URL

    def to_dict(self) -> Dict[str, Any]:
        """Serialize the artwork to the JSON shape served to clients."""
        return {
            "img_lq": self.image_small,
            "img_hq": self.image_large,
            "title": self.title,
            "artist": self.artist,
            "objectURL": self.object_url,
        }

    @classmethod
    def from_payload(cls, object_id: Identifier, payload: Optional[Dict[str, Any]]) -> Optional["Artwork"]:
        """
        Build an artwork from an upstream detail payload.

        Returns None when the payload carries no usable image; such objects
        will never become valid on retry.
        """
        if not isinstance(payload, dict):
            return None

        small = payload.get("primaryImageSmall") or ""
        large = payload.get("primaryImage") or ""
        if not small and not large:
            return None

        return cls(
            object_id=object_id,
            image_small=small or large,
            image_large=large or small,
            title=payload.get("title") or DEFAULT_TITLE,
            artist=payload.get("artistDisplayName") or DEFAULT_ARTIST,
            object_url=payload.get("objectURL") or DEFAULT_OBJECT_URL,
        )


@dataclass
class CacheRecord:
    """
    Full state for one key.

    ``identifiers`` is fixed at creation. ``cursor`` only moves forward and
    never passes ``len(identifiers)``. ``ready`` is FIFO: producers append to
    the back, consumers pop from the front. ``refill_lock`` is the
    single-flight guard; it is held for the whole of a refill.
    """

    key: str
    identifiers: Tuple[Identifier, ...]
    cursor: int = 0
    ready: Deque[Artwork] = field(default_factory=deque)
    refill_lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)
    created_at: float = field(default_factory=time.time)

    @property
    def refilling(self) -> bool:
        return self.refill_lock.locked()

    @property
    def exhausted(self) -> bool:
        """True once every identifier has been taken by a refill."""
        return self.cursor >= len(self.identifiers)

    @property
    def remaining(self) -> int:
        return len(self.identifiers) - self.cursor

    def next_identifier(self) -> Identifier:
        """Take the identifier under the cursor and advance past it."""
        if self.exhausted:
            raise IndexError(f"no identifiers left for key {self.key!r}")
        identifier = self.identifiers[self.cursor]
        self.cursor += 1
        return identifier

    def pop_batch(self, size: int) -> List[Artwork]:
        """Remove up to ``size`` items from the head of the ready queue."""
        batch: List[Artwork] = []
        while self.ready and len(batch) < size:
            batch.append(self.ready.popleft())
        return batch

    def enqueue(self, items: Iterable[Artwork]) -> None:
        self.ready.extend(items)

    def snapshot(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "identifiers": len(self.identifiers),
            "cursor": self.cursor,
            "ready": len(self.ready),
            "refilling": self.refilling,
            "exhausted": self.exhausted,
        }


class CacheRecordStore:
    """Bounded mapping of key -> CacheRecord with LRU eviction.

    ``max_keys`` of 0 disables eviction. The least recently used idle
    record (no queued items, no refill running) is evicted first, so
    undelivered items are kept. Only when every other record is busy is the
    oldest one dropped regardless. Its refill finishes against its own
    reference. The next request for that key starts from discovery
    again and may serve artworks that record had already delivered.
    """

    def __init__(self, max_keys: int = 0):
        self.max_keys = max_keys
        self.logger = get_logger("gallery.records")
        self._records: "OrderedDict[str, CacheRecord]" = OrderedDict()

    def get(self, key: str) -> Optional[CacheRecord]:
        """Return the record for ``key`` and mark it most recently used."""
        record = self._records.get(key)
        if record is not None:
            self._records.move_to_end(key)
        return record

    def peek(self, key: str) -> Optional[CacheRecord]:
        """Return the record without touching recency."""
        return self._records.get(key)

    def add(self, key: str, identifiers: Sequence[Identifier]) -> CacheRecord:
        """Create and store a fresh record for ``key``."""
        record = CacheRecord(key=key, identifiers=tuple(identifiers))
        self._records[key] = record
        self._records.move_to_end(key)

        while self.max_keys and len(self._records) > self.max_keys:
            self._evict(protect=key)
        return record

    def _evict(self, protect: str) -> None:
        victim = None
        for candidate_key, candidate in self._records.items():
            if candidate_key == protect:
                continue
            if victim is None:
                victim = candidate_key
            if not candidate.ready and not candidate.refilling:
                victim = candidate_key
                break

        evicted = self._records.pop(victim)
        self.logger.info(
            "Evicted cache record",
            key=victim,
            cursor=evicted.cursor,
            ready=len(evicted.ready),
            refilling=evicted.refilling,
        )

    def pop(self, key: str) -> Optional[CacheRecord]:
        return self._records.pop(key, None)

    def records(self) -> List[CacheRecord]:
        return list(self._records.values())

    def __contains__(self, key: object) -> bool:
        return key in self._records

    def __len__(self) -> int:
        return len(self._records)
