"""Metrics collection for rank fusion.

Thin convenience wrapper around ``prometheus_client`` so callers can record
fusion volume, latency, degenerate sources and failures with consistent
label sets.

Design notes
- Metrics and labels are predeclared to avoid cardinality explosions
- Each collector owns its registry; inject one per pipeline or per test
- ``measure_time`` logs duration for ad-hoc timing without a collector
"""

import time
from functools import wraps
from typing import Any, Callable, Optional

import structlog
from prometheus_client import CollectorRegistry, Counter, Histogram, generate_latest

logger = structlog.get_logger("metrics")


class MetricsCollector:
    """Prometheus metrics for fusion requests.

    Parameters
    - service_name: Logical name of the process embedding the pipeline
    - registry: Optional custom ``CollectorRegistry`` (e.g. for testing)
    """

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        self.registry = registry or CollectorRegistry()

        self.fusion_requests = Counter(
            'rankfusion_requests_total',
            'Total fusion requests',
            ['conflation', 'status'],
            registry=self.registry
        )

        self.fusion_duration = Histogram(
            'rankfusion_duration_seconds',
            'Fusion request duration',
            ['conflation'],
            registry=self.registry
        )

        self.input_items = Counter(
            'rankfusion_input_items_total',
            'Items received per source list',
            ['source'],
            registry=self.registry
        )

        self.degenerate_lists = Counter(
            'rankfusion_degenerate_lists_total',
            'Source lists with identical weights',
            ['policy'],
            registry=self.registry
        )

        self.errors = Counter(
            'rankfusion_errors_total',
            'Fusion failures by error type',
            ['error_type'],
            registry=self.registry
        )

    def record_fusion(self, conflation: str, status: str, duration: float) -> None:
        """Record one fusion request; ``duration`` is in seconds."""
        self.fusion_requests.labels(conflation=conflation, status=status).inc()
        self.fusion_duration.labels(conflation=conflation).observe(duration)

    def record_input(self, source: str, item_count: int) -> None:
        self.input_items.labels(source=source).inc(item_count)

    def record_degenerate(self, policy: str) -> None:
        self.degenerate_lists.labels(policy=policy).inc()

    def record_error(self, error_type: str) -> None:
        self.errors.labels(error_type=error_type).inc()

    def get_metrics(self) -> str:
        """Get metrics in Prometheus exposition format for scraping."""
        return generate_latest(self.registry).decode('utf-8')


def measure_time(operation: str, **labels: Any) -> Callable:
    """Decorator to log function execution time.

    Example
    >>> @measure_time("fusion", stage="rank")
    ... def run(lists):
    ...     ...
    """
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            start_time = time.perf_counter()
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                logger.error(
                    f"Operation {operation} failed",
                    operation=operation,
                    duration_ms=(time.perf_counter() - start_time) * 1000,
                    error_type=type(e).__name__,
                    error=str(e),
                    **labels
                )
                raise
            logger.debug(
                f"Operation {operation} completed",
                operation=operation,
                duration_ms=(time.perf_counter() - start_time) * 1000,
                **labels
            )
            return result
        return wrapper
    return decorator
