"""Metrics collection for platform services.

Provides a thin convenience wrapper around ``prometheus_client`` so the
serving service records HTTP, inference, preprocessing and registry metrics
with consistent label sets.

Design notes
- Metrics and labels are predeclared to avoid cardinality explosions
- A single registry is kept per collector (can be injected for tests)
"""

import time
from functools import wraps
from typing import Any, Callable, Optional

import structlog
from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, generate_latest

logger = structlog.get_logger("metrics")


class MetricsCollector:
    """Centralized metrics collection for the serving service.

    Parameters
    - service_name: Logical name used for scoping
    - registry: Optional custom ``CollectorRegistry`` (e.g. for testing)
    """

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        self.registry = registry or CollectorRegistry()

        self.request_count = Counter(
            'http_requests_total',
            'Total HTTP requests',
            ['method', 'endpoint', 'status'],
            registry=self.registry
        )

        self.request_duration = Histogram(
            'http_request_duration_seconds',
            'HTTP request duration',
            ['method', 'endpoint'],
            registry=self.registry
        )

        self.inference_requests = Counter(
            'ml_inference_requests_total',
            'Total graph inference requests',
            ['model_name', 'input_kind', 'status'],
            registry=self.registry
        )

        self.inference_duration = Histogram(
            'ml_inference_duration_seconds',
            'Graph execution duration',
            ['model_name', 'input_kind'],
            registry=self.registry
        )

        self.preprocess_duration = Histogram(
            'ml_image_preprocess_duration_seconds',
            'Image decoding graph duration',
            ['image_format'],
            registry=self.registry
        )

        self.model_loads = Counter(
            'ml_model_loads_total',
            'Model load attempts partitioned by outcome',
            ['model_name', 'status'],
            registry=self.registry
        )

        self.models_loaded = Gauge(
            'ml_models_loaded',
            'Number of models held by the registry',
            registry=self.registry
        )

        self.cache_hits = Counter(
            'ml_cache_hits_total',
            'Total cache hits',
            ['cache_type'],
            registry=self.registry
        )

        self.cache_misses = Counter(
            'ml_cache_misses_total',
            'Total cache misses',
            ['cache_type'],
            registry=self.registry
        )

    def record_http_request(
        self,
        method: str,
        endpoint: str,
        status: int,
        duration: float
    ) -> None:
        """Record HTTP request metrics.

        duration is expected in seconds to match Prometheus histogram units.
        """
        self.request_count.labels(method=method, endpoint=endpoint, status=status).inc()
        self.request_duration.labels(method=method, endpoint=endpoint).observe(duration)

    def record_inference(
        self,
        model_name: str,
        input_kind: str,
        duration: float,
        status: str = "success"
    ) -> None:
        """Record graph inference metrics."""
        self.inference_requests.labels(model_name=model_name, input_kind=input_kind, status=status).inc()
        if status == "success":
            self.inference_duration.labels(model_name=model_name, input_kind=input_kind).observe(duration)

    def record_preprocess(self, image_format: str, duration: float) -> None:
        """Record image preprocessing duration."""
        self.preprocess_duration.labels(image_format=image_format).observe(duration)

    def record_model_load(self, model_name: str, status: str) -> None:
        """Record a model load attempt (``success`` or ``failure``)."""
        self.model_loads.labels(model_name=model_name, status=status).inc()

    def set_models_loaded(self, count: int) -> None:
        """Set the number of cached models."""
        self.models_loaded.set(count)

    def record_cache_hit(self, cache_type: str) -> None:
        """Record cache hit."""
        self.cache_hits.labels(cache_type=cache_type).inc()

    def record_cache_miss(self, cache_type: str) -> None:
        """Record cache miss."""
        self.cache_misses.labels(cache_type=cache_type).inc()

    def get_metrics(self) -> str:
        """Get metrics in Prometheus exposition format for scraping."""
        return generate_latest(self.registry).decode('utf-8')


# Global metrics collector instance
_metrics_collector: Optional[MetricsCollector] = None


def get_metrics_collector(service_name: str) -> MetricsCollector:
    """Get or create metrics collector for a service.

    Returns a process‑wide singleton to avoid duplicate collectors/labels.
    """
    global _metrics_collector
    if _metrics_collector is None:
        _metrics_collector = MetricsCollector(service_name)
    return _metrics_collector


def measure_time(operation: str, **labels: Any) -> Callable:
    """Decorator to measure function execution time.

    Example
    >>> @measure_time("graph.import", component="loader")
    ... def import_graph(data):
    ...     ...
    """
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            start_time = time.time()
            try:
                result = func(*args, **kwargs)
                duration = time.time() - start_time
                logger.debug(
                    f"Operation {operation} completed",
                    operation=operation,
                    duration_ms=duration * 1000,
                    **labels
                )
                return result
            except Exception as e:
                duration = time.time() - start_time
                logger.error(
                    f"Operation {operation} failed",
                    operation=operation,
                    duration_ms=duration * 1000,
                    error=str(e),
                    **labels
                )
                raise
        return wrapper
    return decorator
