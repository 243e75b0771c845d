"""
Metrics module for SlotQuorum with a private Prometheus registry.

A pass runs once and exits, so nothing is served over HTTP: the registry is
written to a node-exporter textfile when ``METRICS_FILE`` is configured.
"""
import logging
import threading
from typing import Optional

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, write_to_textfile

logger = logging.getLogger(__name__)


class MetricsManager:
    """Singleton metrics manager that owns its own Prometheus registry."""

    _instance = None
    _lock = threading.Lock()

    def __new__(cls):
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super().__new__(cls)
                    cls._instance._initialized = False
        return cls._instance

    def __init__(self):
        if getattr(self, "_initialized", False):
            return

        self._initialized = True
        self._registry = None
        self._metrics = {}
        self._setup_metrics()

    def _setup_metrics(self):
        """Setup metrics on a fresh registry."""
        self._registry = CollectorRegistry()

        self._metrics = {
            "endpoint_queries_total": Counter(
                "slotquorum_endpoint_queries_total",
                "Queries sent to endpoints",
                ["method", "status"],
                registry=self._registry,
            ),
            "endpoint_query_duration_seconds": Histogram(
                "slotquorum_endpoint_query_duration_seconds",
                "Duration of a single endpoint query in seconds",
                ["method"],
                registry=self._registry,
            ),
            "rounds_total": Counter(
                "slotquorum_rounds_total",
                "Quorum rounds run",
                ["round"],
                registry=self._registry,
            ),
            "round_classes": Gauge(
                "slotquorum_round_equality_classes",
                "Distinct equality classes seen in the last round",
                ["round"],
                registry=self._registry,
            ),
            "round_agreement_ratio": Gauge(
                "slotquorum_round_agreement_ratio",
                "N/T of the winning class in the last round",
                ["round"],
                registry=self._registry,
            ),
            "chosen_slot": Gauge(
                "slotquorum_chosen_slot",
                "Slot selected for the block round",
                registry=self._registry,
            ),
            "content_mismatches": Gauge(
                "slotquorum_content_mismatches",
                "Endpoints whose block did not match their class reference",
                registry=self._registry,
            ),
        }

    def get_metric(self, name: str):
        """Get a metric by name."""
        return self._metrics.get(name)

    def get_registry(self) -> CollectorRegistry:
        """Get the metrics registry."""
        return self._registry

    def reset_metrics(self):
        """Reset all metrics - useful for testing."""
        with self._lock:
            self._setup_metrics()

    def record_query(self, method: str, success: bool, duration: float):
        """Record one endpoint query."""
        status = "success" if success else "failure"
        self._metrics["endpoint_queries_total"].labels(method=method, status=status).inc()
        self._metrics["endpoint_query_duration_seconds"].labels(method=method).observe(duration)

    def record_round(self, round_name: str, classes: int, agreement: float):
        """Record the result of one round."""
        self._metrics["rounds_total"].labels(round=round_name).inc()
        self._metrics["round_classes"].labels(round=round_name).set(classes)
        self._metrics["round_agreement_ratio"].labels(round=round_name).set(agreement)

    def update_chosen_slot(self, slot: int):
        self._metrics["chosen_slot"].set(slot)

    def update_content_mismatches(self, count: int):
        self._metrics["content_mismatches"].set(count)

    def write_textfile(self, path: str):
        """Write the registry in Prometheus text format."""
        write_to_textfile(path, self._registry)
        logger.info(f"Metrics written to {path}")


# Global instance
metrics_manager = MetricsManager()


def get_metrics_manager() -> MetricsManager:
    """Get the global metrics manager instance."""
    return metrics_manager


def reset_metrics():
    """Reset all metrics - useful for testing."""
    metrics_manager.reset_metrics()


def write_metrics(path: Optional[str]):
    """Write metrics to ``path`` if one is configured."""
    if not path:
        return
    try:
        metrics_manager.write_textfile(path)
    except OSError as e:
        logger.error(f"Could not write metrics to {path}: {e}")
