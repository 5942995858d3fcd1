"""
Shared fixtures for gallery service tests.
"""

import asyncio
import random
from typing import Any, Dict, Hashable, List, Optional

import pytest

from shared.errors import UpstreamPermanentError, UpstreamTransientError
from shared.retry import RetryConfig

from service_gallery.app.caching import CacheRecordStore, FailureMemo
from service_gallery.app.catalog import KeyTable
from service_gallery.app.coordinator import BatchCoordinator
from service_gallery.app.refill import DiscoveryStep, RefillEngine


def artwork_payload(object_id: Hashable) -> Dict[str, Any]:
    return {
        "objectID": object_id,
        "primaryImage": f"https://images.example/{object_id}.jpg",
        "primaryImageSmall": f"https://images.example/{object_id}-small.jpg",
        "title": f"Work {object_id}",
        "artistDisplayName": f"Artist {object_id}",
        "objectURL": f"https://collection.example/{object_id}",
    }


class FakeMuseumClient:
    """
    Scripted stand-in for MuseumClient.

    ``searches`` maps query -> list of IDs (or an exception to raise).
    ``objects`` maps ID -> payload, exception, or list of outcomes consumed
    one per call. IDs missing from ``objects`` resolve to a valid artwork.
    """

    def __init__(self, searches=None, objects=None):
        self.searches: Dict[str, Any] = dict(searches or {})
        self.objects: Dict[Hashable, Any] = dict(objects or {})
        self.search_calls: List[str] = []
        self.object_calls: List[Hashable] = []
        self.gate: Optional[asyncio.Event] = None
        self.search_gate: Optional[asyncio.Event] = None

    async def search(self, query: str) -> List[Hashable]:
        self.search_calls.append(query)
        if self.search_gate is not None:
            await self.search_gate.wait()
        outcome = self.searches.get(query, [])
        if isinstance(outcome, BaseException):
            raise outcome
        return list(outcome)

    async def get_object(self, object_id: Hashable) -> Dict[str, Any]:
        self.object_calls.append(object_id)
        if self.gate is not None:
            await self.gate.wait()
        outcome = self.objects.get(object_id, "ok")
        if isinstance(outcome, list):
            outcome = outcome.pop(0) if outcome else "ok"
        if isinstance(outcome, BaseException):
            raise outcome
        if outcome == "ok":
            return artwork_payload(object_id)
        return outcome

    async def close(self) -> None:
        return None


def permanent(status: int = 404) -> UpstreamPermanentError:
    return UpstreamPermanentError("collection_api", f"Status {status}", details={"status_code": status})


def transient(message: str = "Unexpected status 503") -> UpstreamTransientError:
    return UpstreamTransientError("collection_api", message)


@pytest.fixture
def fast_retry():
    """Retry config that never sleeps for long."""
    return RetryConfig(max_attempts=3, base_delay=0.0)


@pytest.fixture
def failure_memo():
    return FailureMemo()


@pytest.fixture
def record_store():
    return CacheRecordStore()


@pytest.fixture
def key_table():
    return KeyTable.from_mapping({
        "keys": {
            "😴": {"title": "The Starry Night", "keyword_groups": [["night", "moon"]]},
            "🤔": {"title": "The Thinker", "keyword_groups": ["sculpture", "philosophy"]},
            "🫥": {"title": "Nothing", "keyword_groups": ["void"]},
        }
    })


@pytest.fixture
def fake_client():
    return FakeMuseumClient(
        searches={
            "night,moon": [1, 2, 3],
            "sculpture": [10, 11],
            "philosophy": [11, 12],
            "void": [],
        }
    )


@pytest.fixture
def build_coordinator(key_table, failure_memo, record_store, fast_retry):
    """Factory wiring a coordinator around a given fake client."""

    def _build(client, *, batch_size=5, target_count=25, rediscover_on_exhaustion=False, metrics=None):
        discovery = DiscoveryStep(client, failure_memo, fast_retry, rng=random.Random(7))
        engine = RefillEngine(
            client,
            record_store,
            failure_memo,
            fast_retry,
            target_count=target_count,
            rng=random.Random(7),
            metrics=metrics,
        )
        return BatchCoordinator(
            key_table,
            discovery,
            engine,
            record_store,
            failure_memo,
            batch_size=batch_size,
            rediscover_on_exhaustion=rediscover_on_exhaustion,
            metrics=metrics,
        )

    return _build
