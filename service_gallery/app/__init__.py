"""
Gallery Service package.

Serves small batches of artworks for an emoji key while hiding a slow,
rate-limited upstream collection API from callers:

- Discovery: one-time search per key producing candidate object IDs
- Refill: resolves IDs into artworks in the background, single-flight per key
- Failure memo: process-wide record of IDs that will never resolve

Structure:
- app.main: FastAPI app, routes, and status mapping.
- app.coordinator: request coordinator (getBatch) and cache warming.
- app.refill: discovery step and refill engine.
- app.caching: cache records, record store, failure memo.
- app.adapters: HTTP client for the upstream collection API.
- app.ratelimit: in-process token bucket pacing upstream requests.
- app.catalog: emoji -> keyword group table.
"""
