"""
One-time discovery of candidate identifiers for a key.
"""

from __future__ import annotations

import functools
import random
from typing import Hashable, List, Optional, Sequence, TYPE_CHECKING

from shared.errors import ExternalServiceError, GalleryError, UpstreamPermanentError
from shared.logging import get_logger
from shared.retry import RetryConfig, RetryError, retry_call

from service_gallery.app.caching import FailureMemo

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from service_gallery.app.adapters import MuseumClient
    from shared.metrics import MetricsCollector


class NoCandidatesError(GalleryError):
    """Discovery produced no usable identifiers for a key."""

    status_code = 404

    def __init__(self, key: str, queries: Sequence[str] = ()):
        self.key = key
        super().__init__(
            "NO_CANDIDATES",
            f"No objects found for key {key}",
            details={"key": key, "queries": list(queries)},
        )


class DiscoveryStep:
    """Turns a key's keyword groups into a shuffled list of candidate IDs."""

    def __init__(
        self,
        client: "MuseumClient",
        failure_memo: FailureMemo,
        retry_config: Optional[RetryConfig] = None,
        *,
        stop_at_first_success: bool = False,
        rng: Optional[random.Random] = None,
        metrics: Optional["MetricsCollector"] = None,
    ):
        self.client = client
        self.failure_memo = failure_memo
        self.retry_config = retry_config or RetryConfig(max_attempts=3, base_delay=1.0)
        self.stop_at_first_success = stop_at_first_success
        self.metrics = metrics
        self._rng = rng or random.Random()
        self.logger = get_logger("gallery.discovery")

    async def discover(self, key: str, queries: Sequence[str]) -> List[Hashable]:
        """
        Query every keyword group and merge the results.

        A failing group is logged and skipped; it never aborts the others.
        Raises NoCandidatesError when nothing usable is left after
        de-duplication and failure-memo filtering.
        """
        collected: List[Hashable] = []
        for query in queries:
            try:
                object_ids = await retry_call(
                    functools.partial(self.client.search, query),
                    self.retry_config,
                    retry_exceptions=(ExternalServiceError,),
                    permanent_exceptions=(UpstreamPermanentError,),
                    name="search",
                    on_retry=self._on_retry,
                )
            except RetryError as exc:
                self.logger.warning(
                    "Discovery query failed",
                    key=key,
                    query=query,
                    attempts=exc.attempts,
                    failure_class=exc.failure_class.value,
                    error=str(exc.last_exception),
                )
                continue

            self.logger.info("Discovery query succeeded", key=key, query=query, hits=len(object_ids))
            collected.extend(object_ids)
            if object_ids and self.stop_at_first_success:
                break

        unique = dict.fromkeys(i for i in collected if i is not None)
        candidates = [i for i in unique if not self.failure_memo.has(i)]
        if not candidates:
            self.logger.warning("Discovery produced no candidates", key=key, raw_hits=len(collected))
            raise NoCandidatesError(key, queries)

        self._rng.shuffle(candidates)
        self.logger.info(
            "Discovery completed",
            key=key,
            raw_hits=len(collected),
            unique=len(unique),
            candidates=len(candidates),
        )
        return candidates

    def _on_retry(self, attempt: int, error: BaseException) -> None:
        if self.metrics:
            self.metrics.increment_counter("upstream_retries_total", operation="search")
