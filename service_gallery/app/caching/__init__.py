"""
Gallery caching package.

Holds the per-key cache records and the process-wide failure memo. Both
stores are bounded (LRU) and live for the lifetime of the process; there
is no persistence across restarts.
"""

from .failure_memo import FailureMemo
from .records import Artwork, CacheRecord, CacheRecordStore

__all__ = ["Artwork", "CacheRecord", "CacheRecordStore", "FailureMemo"]
