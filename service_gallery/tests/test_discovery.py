"""
Unit tests for the discovery step.
"""

import random

import pytest

from shared.retry import RetryConfig

from service_gallery.app.caching import FailureMemo
from service_gallery.app.refill import DiscoveryStep, NoCandidatesError

from conftest import FakeMuseumClient, permanent, transient


def _discovery(client, memo=None, **kwargs):
    return DiscoveryStep(
        client,
        memo or FailureMemo(),
        RetryConfig(max_attempts=2, base_delay=0.0),
        rng=random.Random(3),
        **kwargs,
    )


class TestDiscoveryStep:
    """Test cases for DiscoveryStep."""

    @pytest.mark.asyncio
    async def test_merges_and_deduplicates_groups(self):
        client = FakeMuseumClient(searches={"a": [1, 2, 3], "b": [3, 4, 2]})

        result = await _discovery(client).discover("k", ["a", "b"])

        assert sorted(result) == [1, 2, 3, 4]
        assert len(result) == 4
        assert client.search_calls == ["a", "b"]

    @pytest.mark.asyncio
    async def test_shuffles_candidates(self):
        ids = list(range(100))
        client = FakeMuseumClient(searches={"a": ids})

        result = await _discovery(client).discover("k", ["a"])

        assert sorted(result) == ids
        assert result != ids

    @pytest.mark.asyncio
    async def test_removes_memoized_identifiers(self):
        memo = FailureMemo()
        memo.add(2)
        client = FakeMuseumClient(searches={"a": [1, 2, 3]})

        result = await _discovery(client, memo).discover("k", ["a"])

        assert sorted(result) == [1, 3]

    @pytest.mark.asyncio
    async def test_failed_group_does_not_abort_others(self):
        client = FakeMuseumClient(searches={"a": transient(), "b": permanent(403), "c": [9]})

        result = await _discovery(client).discover("k", ["a", "b", "c"])

        assert result == [9]
        # transient group retried up to max_attempts, permanent group tried once
        assert client.search_calls == ["a", "a", "b", "c"]

    @pytest.mark.asyncio
    async def test_stop_at_first_success(self):
        client = FakeMuseumClient(searches={"a": [], "b": [5, 6], "c": [7]})

        result = await _discovery(client, stop_at_first_success=True).discover("k", ["a", "b", "c"])

        assert sorted(result) == [5, 6]
        assert client.search_calls == ["a", "b"]

    @pytest.mark.asyncio
    async def test_no_hits_raises_no_candidates(self):
        client = FakeMuseumClient(searches={"a": []})

        with pytest.raises(NoCandidatesError) as excinfo:
            await _discovery(client).discover("k", ["a"])

        assert excinfo.value.key == "k"
        assert excinfo.value.code == "NO_CANDIDATES"

    @pytest.mark.asyncio
    async def test_only_memoized_hits_raises_no_candidates(self):
        memo = FailureMemo()
        memo.add(1)
        client = FakeMuseumClient(searches={"a": [1, 1, None]})

        with pytest.raises(NoCandidatesError):
            await _discovery(client, memo).discover("k", ["a"])

    @pytest.mark.asyncio
    async def test_all_groups_failing_raises_no_candidates(self):
        client = FakeMuseumClient(searches={"a": transient(), "b": transient()})

        with pytest.raises(NoCandidatesError):
            await _discovery(client).discover("k", ["a", "b"])
