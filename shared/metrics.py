"""
Shared metrics configuration for the rules engine.
"""

from prometheus_client import Counter, Histogram, Gauge, Info, CollectorRegistry, generate_latest
from typing import Dict, Any, Optional
import time
import threading
from contextlib import contextmanager


class MetricsCollector:
    """Centralized Prometheus metrics collector for almanac and engine."""

    def __init__(self, service_name: str = "rules_engine", registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        # Each collector owns its registry unless one is passed in
        self.registry = registry if registry is not None else CollectorRegistry()
        self._metrics: Dict[str, Any] = {}
        self._lock = threading.Lock()
        self._setup_metrics()

    def _setup_metrics(self):
        """Set up almanac and engine metrics."""

        self._metrics["service_info"] = Info(
            "service_info",
            "Service information",
            registry=self.registry
        )
        self._metrics["service_info"].info({
            "service": self.service_name,
            "version": "1.0.0"
        })

        # Almanac metrics
        self._metrics["fact_resolutions_total"] = Counter(
            "fact_resolutions_total",
            "Total fact resolutions by source",
            ["source"],
            registry=self.registry
        )

        self._metrics["fact_compute_duration_seconds"] = Histogram(
            "fact_compute_duration_seconds",
            "Fact compute duration in seconds",
            ["fact_id"],
            registry=self.registry
        )

        self._metrics["fact_cache_evictions_total"] = Counter(
            "fact_cache_evictions_total",
            "Total fact cache entries evicted for capacity",
            registry=self.registry
        )

        self._metrics["fact_cache_entries"] = Gauge(
            "fact_cache_entries",
            "Number of entries in the fact cache",
            registry=self.registry
        )

        # Engine metrics
        self._metrics["rule_evaluations_total"] = Counter(
            "rule_evaluations_total",
            "Total rule evaluations",
            ["outcome"],
            registry=self.registry
        )

        self._metrics["engine_run_duration_seconds"] = Histogram(
            "engine_run_duration_seconds",
            "Engine run duration in seconds",
            registry=self.registry
        )

    def get_metric(self, name: str):
        """Get a metric by name."""
        return self._metrics.get(name)

    def get_sample_value(self, name: str, labels: Optional[Dict[str, str]] = None) -> Optional[float]:
        """Read the current value of a sample from this collector's registry."""
        return self.registry.get_sample_value(name, labels or {})

    def export(self) -> bytes:
        """Render the registry in Prometheus text exposition format."""
        return generate_latest(self.registry)

    @contextmanager
    def time_operation(self, operation_name: str, **labels):
        """Context manager to time an operation."""
        start_time = time.perf_counter()
        try:
            yield
        finally:
            duration = time.perf_counter() - start_time
            self.observe_histogram(operation_name, duration, **labels)

    def increment_counter(self, metric_name: str, **labels):
        """Increment a counter metric."""
        metric = self._metrics.get(metric_name)
        if metric is None:
            return
        with self._lock:
            (metric.labels(**labels) if labels else metric).inc()

    def set_gauge(self, metric_name: str, value: float, **labels):
        """Set a gauge metric value."""
        metric = self._metrics.get(metric_name)
        if metric is None:
            return
        with self._lock:
            (metric.labels(**labels) if labels else metric).set(value)

    def observe_histogram(self, metric_name: str, value: float, **labels):
        """Observe a histogram metric."""
        metric = self._metrics.get(metric_name)
        if metric is None:
            return
        with self._lock:
            (metric.labels(**labels) if labels else metric).observe(value)


def get_metrics_collector(service_name: str = "rules_engine", registry: Optional[CollectorRegistry] = None) -> MetricsCollector:
    """Get a metrics collector."""
    return MetricsCollector(service_name, registry)
