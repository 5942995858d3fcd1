"""
Shared metrics configuration for the emoji gallery service.
"""

from typing import Any, Dict, Optional, Sequence

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, Info

# name -> (type, help text, label names)
COMMON_METRICS = {
    "http_requests_total": (Counter, "Total HTTP requests", ("method", "endpoint", "status_code")),
    "http_request_duration_seconds": (Histogram, "HTTP request duration in seconds", ("method", "endpoint")),
    "health_check_total": (Counter, "Total health check requests", ("status",)),
    "errors_total": (Counter, "Total errors", ("error_type", "service")),
}

GALLERY_METRICS = {
    "batch_requests_total": (Counter, "Batch requests by outcome", ("outcome",)),
    "refill_runs_total": (Counter, "Refill executions by result", ("result",)),
    "items_resolved_total": (Counter, "Identifiers resolved into ready items", ()),
    "identifiers_memoized_total": (Counter, "Identifiers added to the failure memo", ("reason",)),
    "upstream_retries_total": (Counter, "Upstream retry attempts", ("operation",)),
    "refill_duration_seconds": (Histogram, "Refill duration in seconds", ()),
    "failure_memo_entries": (Gauge, "Identifiers currently held in the failure memo", ()),
    "tracked_keys": (Gauge, "Keys with a live cache record", ()),
}


class MetricsCollector:
    """Centralized metrics collector for services.

    Every collector owns its registry so several service instances (tests,
    embedded apps) can coexist in one process without duplicate series.
    """

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        self.registry = registry if registry is not None else CollectorRegistry()
        self._metrics: Dict[str, Any] = {}
        self._setup_metrics()

    def _setup_metrics(self):
        info = Info("service_info", "Service information", registry=self.registry)
        info.info({"service": self.service_name, "version": "1.0.0"})
        self._metrics["service_info"] = info

        self._register_all(COMMON_METRICS)
        if self.service_name == "gallery":
            self._register_all(GALLERY_METRICS)

    def _register_all(self, definitions: Dict[str, tuple]):
        for name, (metric_type, documentation, labels) in definitions.items():
            self._metrics[name] = self._register(metric_type, name, documentation, labels)

    def _register(self, metric_type, name: str, documentation: str, labels: Sequence[str]):
        return metric_type(name, documentation, list(labels), registry=self.registry)

    def record_http_request(self, method: str, endpoint: str, status_code: int, duration: float):
        """Record HTTP request metrics."""
        self.increment_counter("http_requests_total", method=method, endpoint=endpoint, status_code=str(status_code))
        self.observe_histogram("http_request_duration_seconds", duration, method=method, endpoint=endpoint)

    def record_health_check(self, status: str):
        self.increment_counter("health_check_total", status=status)

    def record_error(self, error_type: str, service: Optional[str] = None):
        self.increment_counter("errors_total", error_type=error_type, service=service or self.service_name)

    def increment_counter(self, metric_name: str, amount: float = 1, **labels):
        metric = self._child(metric_name, labels)
        if metric is not None:
            metric.inc(amount)

    def set_gauge(self, metric_name: str, value: float, **labels):
        metric = self._child(metric_name, labels)
        if metric is not None:
            metric.set(value)

    def observe_histogram(self, metric_name: str, value: float, **labels):
        metric = self._child(metric_name, labels)
        if metric is not None:
            metric.observe(value)

    def _child(self, metric_name: str, labels: Dict[str, Any]):
        """Resolve the labelled child of a metric; unknown names are ignored."""
        metric = self._metrics.get(metric_name)
        if metric is None:
            return None
        return metric.labels(**labels) if labels else metric


def get_metrics_collector(service_name: str, registry: Optional[CollectorRegistry] = None) -> MetricsCollector:
    """Get a metrics collector for a service."""
    return MetricsCollector(service_name, registry)
