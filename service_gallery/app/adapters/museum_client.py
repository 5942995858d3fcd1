"""
Async client for the museum collection API.
"""

from __future__ import annotations

from typing import Any, Dict, Hashable, List, Optional

import httpx

from shared.errors import UpstreamPermanentError, UpstreamTransientError
from shared.logging import get_logger

from service_gallery.app.ratelimit import TokenBucket


SERVICE_NAME = "collection_api"
PERMANENT_STATUSES = frozenset({403, 404})


class MuseumClient:
    """Discovery (search) and detail (object) lookups against the collection API."""

    def __init__(
        self,
        base_url: str,
        *,
        search_timeout: float = 15.0,
        detail_timeout: float = 7.0,
        has_images: bool = True,
        search_pacer: Optional[TokenBucket] = None,
        detail_pacer: Optional[TokenBucket] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.search_timeout = search_timeout
        self.detail_timeout = detail_timeout
        self.has_images = has_images
        self.search_pacer = search_pacer
        self.detail_pacer = detail_pacer
        self.logger = get_logger("gallery.museum_client")
        self._client = httpx.AsyncClient(base_url=self.base_url, transport=transport)

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    async def search(self, query: str) -> List[Hashable]:
        """
        Run a discovery query and return the matching object IDs in upstream order.

        A successful search with no hits comes back as ``objectIDs: null`` and
        is returned as an empty list.
        """
        params: Dict[str, Any] = {"q": query}
        if self.has_images:
            params["hasImages"] = "true"

        data = await self._get_json("/search", params=params, timeout=self.search_timeout,
                                    pacer=self.search_pacer, context={"query": query})
        object_ids = data.get("objectIDs") if isinstance(data, dict) else None
        if object_ids is None:
            return []
        if not isinstance(object_ids, list):
            raise UpstreamTransientError(
                SERVICE_NAME,
                "Malformed search response",
                details={"query": query},
            )
        return object_ids

    async def get_object(self, object_id: Hashable) -> Dict[str, Any]:
        """Fetch the detail record for one object."""
        data = await self._get_json(f"/objects/{object_id}", timeout=self.detail_timeout,
                                    pacer=self.detail_pacer, context={"object_id": object_id})
        if not isinstance(data, dict):
            raise UpstreamTransientError(
                SERVICE_NAME,
                "Malformed object response",
                details={"object_id": object_id},
            )
        return data

    async def _get_json(
        self,
        path: str,
        *,
        timeout: float,
        pacer: Optional[TokenBucket],
        params: Optional[Dict[str, Any]] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """Paced GET that maps every failure onto a classified upstream error."""
        context = context or {}
        if pacer is not None:
            await pacer.acquire()

        try:
            response = await self._client.get(path, params=params, timeout=timeout)
        except httpx.TimeoutException as exc:
            self.logger.warning("Upstream request timed out", path=path, timeout=timeout, **context)
            raise UpstreamTransientError(SERVICE_NAME, f"Timeout after {timeout}s",
                                         details={"path": path, **context}) from exc
        except httpx.HTTPError as exc:
            self.logger.warning("Upstream transport error", path=path, error=str(exc), **context)
            raise UpstreamTransientError(SERVICE_NAME, str(exc) or type(exc).__name__,
                                         details={"path": path, **context}) from exc

        if response.status_code in PERMANENT_STATUSES:
            self.logger.warning("Upstream rejected request", path=path,
                                status_code=response.status_code, **context)
            raise UpstreamPermanentError(
                SERVICE_NAME,
                f"Status {response.status_code}",
                details={"path": path, "status_code": response.status_code, **context},
            )

        if response.status_code != 200:
            self.logger.warning("Upstream request failed", path=path,
                                status_code=response.status_code, **context)
            raise UpstreamTransientError(
                SERVICE_NAME,
                f"Unexpected status {response.status_code}",
                details={"path": path, "status_code": response.status_code, **context},
            )

        try:
            return response.json()
        except ValueError as exc:
            raise UpstreamTransientError(SERVICE_NAME, "Response body is not JSON",
                                         details={"path": path, **context}) from exc
