"""
Gallery service: serves artwork batches for emoji keys.
"""

from typing import Any, Dict, Optional

from fastapi import Body, Query
from fastapi.responses import JSONResponse

from shared.base_service import BaseService
from shared.errors import ValidationError
from shared.logging import set_gallery_key
from shared.retry import RetryConfig

from service_gallery.app.adapters import MuseumClient
from service_gallery.app.caching import CacheRecordStore, FailureMemo
from service_gallery.app.catalog import KeyTable
from service_gallery.app.coordinator import BatchCoordinator, BatchResult, BatchStatus
from service_gallery.app.ratelimit import TokenBucket
from service_gallery.app.refill import DiscoveryStep, RefillEngine


STATUS_CODES = {
    BatchStatus.OK: 200,
    BatchStatus.ACCEPTED: 202,
    BatchStatus.NOT_FOUND: 404,
    BatchStatus.EXHAUSTED: 404,
    BatchStatus.INVALID_KEY: 400,
}


class GalleryService(BaseService):
    """Gallery service implementation."""

    def __init__(self):
        super().__init__("gallery", 8080)
        config = self.config

        self.key_table = KeyTable(config.key_table_file)
        self.failure_memo = FailureMemo(
            max_entries=config.failure_memo_max_entries,
            ttl_seconds=config.failure_memo_ttl_seconds,
        )
        self.record_store = CacheRecordStore(max_keys=config.max_tracked_keys)

        self.museum_client = MuseumClient(
            config.upstream_base_url,
            search_timeout=config.search_timeout_seconds,
            detail_timeout=config.detail_timeout_seconds,
            has_images=config.search_has_images,
            search_pacer=TokenBucket.from_interval(
                config.request_interval_seconds, config.request_burst, name="search"
            ),
            detail_pacer=TokenBucket.from_interval(
                config.request_interval_seconds, config.request_burst, name="objects"
            ),
        )

        self.discovery = DiscoveryStep(
            self.museum_client,
            self.failure_memo,
            RetryConfig(
                max_attempts=config.search_max_retries,
                base_delay=config.retry_base_delay_seconds,
            ),
            stop_at_first_success=config.discovery_stop_at_first_success,
            metrics=self.metrics,
        )
        self.refill_engine = RefillEngine(
            self.museum_client,
            self.record_store,
            self.failure_memo,
            RetryConfig(
                max_attempts=config.detail_max_retries,
                base_delay=config.retry_base_delay_seconds,
            ),
            target_count=config.refill_target_count,
            memoize_transient_failures=config.memoize_transient_failures,
            metrics=self.metrics,
        )
        self.coordinator = BatchCoordinator(
            self.key_table,
            self.discovery,
            self.refill_engine,
            self.record_store,
            self.failure_memo,
            batch_size=config.batch_size,
            rediscover_on_exhaustion=config.rediscover_on_exhaustion,
            metrics=self.metrics,
        )

        self._setup_gallery_routes()

        # Expose service instance via app state for introspection/testing
        self.app.state.gallery_service = self

    async def on_shutdown(self) -> None:
        await self.coordinator.close()
        await self.museum_client.close()

    def _setup_gallery_routes(self):
        """Set up gallery routes."""

        @self.app.get("/")
        async def root():
            return {
                "service": "gallery",
                "message": "Emoji Gallery",
                "keys": len(self.key_table),
            }

        @self.app.get("/api/painting")
        async def get_painting(emoji: Optional[str] = Query(default=None)):
            """Serve the next batch of paintings for an emoji."""
            if not emoji:
                return JSONResponse(status_code=400, content={"error": "Emoji is required"})

            set_gallery_key(emoji)
            result = await self.coordinator.get_batch(emoji)
            return self._batch_response(result)

        @self.app.get("/api/emojis")
        async def list_emojis():
            """List supported emoji keys."""
            return [{"emoji": entry.key, "title": entry.title} for entry in self.key_table]

        @self.app.get("/api/cache/stats")
        async def cache_stats():
            """Per-key cache state and failure memo size."""
            return self.coordinator.stats()

        @self.app.post("/api/cache/warm")
        async def warm_cache(payload: Optional[Dict[str, Any]] = Body(default=None)):
            """Discover the given keys (all keys when empty) and start refilling them."""
            keys = (payload or {}).get("keys") or []
            if not isinstance(keys, list) or not all(isinstance(key, str) for key in keys):
                raise ValidationError("keys must be a list of emoji", details={"keys": keys})
            return await self.coordinator.warm(keys)

    def _batch_response(self, result: BatchResult) -> JSONResponse:
        """Map a batch outcome onto its wire status."""
        status_code = STATUS_CODES[result.status]
        if result.status is BatchStatus.OK:
            return JSONResponse(status_code=status_code, content=[item.to_dict() for item in result.items])
        if result.status is BatchStatus.ACCEPTED:
            return JSONResponse(status_code=status_code, content={"message": result.message})
        return JSONResponse(
            status_code=status_code,
            content={"error": result.message, "status": result.status.value},
        )

    async def _check_dependencies(self) -> Dict[str, str]:
        return {
            "key_table": "ok" if len(self.key_table) else "empty",
            "upstream": self.museum_client.base_url,
        }


def create_app():
    """Create FastAPI application."""
    service = GalleryService()
    return service.app


if __name__ == "__main__":
    service = GalleryService()
    service.run()
