"""
Shared utilities for the emoji gallery service.

This package aggregates common building blocks consumed by the service:

- config: Service configuration via pydantic-settings
- logging: Structured logging with request correlation
- metrics: Prometheus metrics helpers
- errors: Canonical error types and responses
- retry: Linear backoff retrier with failure classification
- base_service: FastAPI service skeleton (health, metrics, error handlers)

Any cross-cutting logic should live here to avoid import cycles. Do not
import from service_* packages into shared/.
"""
