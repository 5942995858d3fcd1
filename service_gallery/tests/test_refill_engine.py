"""
Unit tests for the refill engine.
"""

import asyncio
import random

import pytest

from shared.metrics import MetricsCollector

from service_gallery.app.refill import RefillEngine

from conftest import FakeMuseumClient, permanent, transient


def _engine(client, store, memo, retry, **kwargs):
    return RefillEngine(client, store, memo, retry, rng=random.Random(1), **kwargs)


class TestRefillEngine:
    """Test cases for RefillEngine."""

    @pytest.mark.asyncio
    async def test_permanent_failure_is_memoized_and_skipped(self, record_store, failure_memo, fast_retry):
        client = FakeMuseumClient(objects={2: permanent(404)})
        record = record_store.add("k", [1, 2, 3])
        engine = _engine(client, record_store, failure_memo, fast_retry)

        report = await engine.refill("k")

        assert sorted(a.object_id for a in record.ready) == [1, 3]
        assert failure_memo.has(2)
        assert failure_memo.reason(2) == "permanent"
        assert record.cursor == 3
        assert record.exhausted
        assert report.resolved == 2
        assert report.memoized == 1
        assert report.memoized_ids == [2]
        # permanent failures are not retried
        assert client.object_calls.count(2) == 1

    @pytest.mark.asyncio
    async def test_memoized_identifiers_are_never_fetched(self, record_store, failure_memo, fast_retry):
        failure_memo.add(2)
        client = FakeMuseumClient()
        record = record_store.add("k", [1, 2, 3])

        report = await _engine(client, record_store, failure_memo, fast_retry).refill_record(record)

        assert client.object_calls == [1, 3]
        assert report.already_failed == 1

    @pytest.mark.asyncio
    async def test_transient_failures_are_retried(self, record_store, failure_memo, fast_retry):
        client = FakeMuseumClient(objects={5: [transient(), transient(), "ok"]})
        record = record_store.add("k", [5])

        report = await _engine(client, record_store, failure_memo, fast_retry).refill_record(record)

        assert client.object_calls == [5, 5, 5]
        assert [a.object_id for a in record.ready] == [5]
        assert not failure_memo.has(5)
        assert report.failed == 0

    @pytest.mark.asyncio
    async def test_exhausted_transient_failure_is_skipped_not_memoized(self, record_store, failure_memo, fast_retry):
        client = FakeMuseumClient(objects={5: transient()})
        record = record_store.add("k", [5, 6])

        report = await _engine(client, record_store, failure_memo, fast_retry).refill_record(record)

        assert client.object_calls == [5, 5, 5, 6]
        assert [a.object_id for a in record.ready] == [6]
        assert not failure_memo.has(5)
        assert report.failed == 1
        assert record.cursor == 2

    @pytest.mark.asyncio
    async def test_transient_failure_memoized_when_enabled(self, record_store, failure_memo, fast_retry):
        client = FakeMuseumClient(objects={5: transient()})
        record = record_store.add("k", [5])
        engine = _engine(client, record_store, failure_memo, fast_retry, memoize_transient_failures=True)

        await engine.refill_record(record)

        assert failure_memo.reason(5) == "transient"

    @pytest.mark.asyncio
    async def test_payload_without_image_is_memoized(self, record_store, failure_memo, fast_retry):
        client = FakeMuseumClient(objects={4: {"objectID": 4, "primaryImage": "", "primaryImageSmall": ""}})
        record = record_store.add("k", [4])

        await _engine(client, record_store, failure_memo, fast_retry).refill_record(record)

        assert len(record.ready) == 0
        assert failure_memo.reason(4) == "no_content"

    @pytest.mark.asyncio
    async def test_target_count_bounds_one_refill(self, record_store, failure_memo, fast_retry):
        client = FakeMuseumClient()
        record = record_store.add("k", list(range(10)))
        engine = _engine(client, record_store, failure_memo, fast_retry, target_count=4)

        await engine.refill_record(record)
        assert len(record.ready) == 4
        assert record.cursor == 4

        await engine.refill_record(record)
        await engine.refill_record(record)
        await engine.refill_record(record)
        assert len(record.ready) == 10
        assert record.cursor == 10
        assert len(client.object_calls) == 10

    @pytest.mark.asyncio
    async def test_overlapping_refill_is_skipped(self, record_store, failure_memo, fast_retry):
        client = FakeMuseumClient()
        client.gate = asyncio.Event()
        record = record_store.add("k", [1, 2])
        engine = _engine(client, record_store, failure_memo, fast_retry)

        first = asyncio.create_task(engine.refill_record(record))
        await asyncio.sleep(0)
        assert record.refilling

        second = await engine.refill_record(record)
        assert second.skipped is True

        client.gate.set()
        report = await first

        assert report.resolved == 2
        assert client.object_calls == [1, 2]
        assert not record.refilling

    @pytest.mark.asyncio
    async def test_unexpected_error_keeps_resolved_items_and_releases_lock(
        self, record_store, failure_memo, fast_retry
    ):
        client = FakeMuseumClient(objects={2: RuntimeError("boom")})
        record = record_store.add("k", [1, 2, 3])
        engine = _engine(client, record_store, failure_memo, fast_retry)

        report = await engine.refill_record(record)

        assert report.error == "boom"
        assert [a.object_id for a in record.ready] == [1]
        assert record.cursor == 2
        assert not record.refilling
        assert not failure_memo.has(2)

        report = await engine.refill_record(record)
        assert report.error is None
        assert [a.object_id for a in record.ready] == [1, 3]

    @pytest.mark.asyncio
    async def test_none_identifiers_are_passed_over(self, record_store, failure_memo, fast_retry):
        client = FakeMuseumClient()
        record = record_store.add("k", [None, 8])

        report = await _engine(client, record_store, failure_memo, fast_retry).refill_record(record)

        assert client.object_calls == [8]
        assert report.scanned == 2

    @pytest.mark.asyncio
    async def test_exhausted_record_does_nothing(self, record_store, failure_memo, fast_retry):
        client = FakeMuseumClient()
        record = record_store.add("k", [1])
        engine = _engine(client, record_store, failure_memo, fast_retry)
        await engine.refill_record(record)

        report = await engine.refill_record(record)

        assert report.scanned == 0
        assert record.cursor == 1
        assert client.object_calls == [1]

    @pytest.mark.asyncio
    async def test_untracked_key_is_skipped(self, record_store, failure_memo, fast_retry):
        client = FakeMuseumClient()

        report = await _engine(client, record_store, failure_memo, fast_retry).refill("missing")

        assert report.skipped is True
        assert client.object_calls == []

    @pytest.mark.asyncio
    async def test_refill_records_metrics(self, record_store, failure_memo, fast_retry):
        metrics = MetricsCollector("gallery")
        client = FakeMuseumClient(objects={2: permanent(404), 3: [transient(), "ok"]})
        record = record_store.add("k", [1, 2, 3])
        engine = _engine(client, record_store, failure_memo, fast_retry, metrics=metrics)

        await engine.refill_record(record)
        await engine.refill_record(record)

        registry = metrics.registry
        assert registry.get_sample_value("refill_runs_total", {"result": "completed"}) == 2.0
        assert registry.get_sample_value("items_resolved_total") == 2.0
        assert registry.get_sample_value("identifiers_memoized_total", {"reason": "permanent"}) == 1.0
        assert registry.get_sample_value("upstream_retries_total", {"operation": "object_detail"}) == 1.0
        assert registry.get_sample_value("failure_memo_entries") == 1.0
        assert registry.get_sample_value("refill_duration_seconds_count") == 2.0
