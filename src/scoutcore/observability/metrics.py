"""
Defines and manages Prometheus metrics for the extraction pipeline.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, Optional

from prometheus_client import REGISTRY as _PROM_REGISTRY
from prometheus_client import Counter as _OrigCounter
from prometheus_client import Histogram as _OrigHistogram
from prometheus_client import start_http_server

if TYPE_CHECKING:
    from scoutcore.config.config import MonitoringConfig

# ---------------------------------------------------------------------------
# Duplicate-safe Prometheus metric wrappers
# ---------------------------------------------------------------------------
# Importing this module more than once (test reloads, embedded use) must not
# fail with duplicate registration errors.


def _duplicate_safe_factory(metric_cls):
    """Return a factory that reuses an existing collector if already present."""

    def _factory(name: str, documentation: str, *args, **kwargs):  # type: ignore[no-untyped-def]
        existing = _PROM_REGISTRY._names_to_collectors.get(name)
        if existing is not None:
            return existing

        try:
            return metric_cls(name, documentation, *args, **kwargs)
        except ValueError:
            # Registration lost the race, fall back to the now-existing collector.
            return _PROM_REGISTRY._names_to_collectors[name]

    return _factory


Counter = _duplicate_safe_factory(_OrigCounter)
Histogram = _duplicate_safe_factory(_OrigHistogram)


def _create_metrics() -> Dict[str, Any]:
    return {
        "strategy_attempts": Counter(
            "scoutcore_strategy_attempts_total",
            "Extraction strategy attempts by outcome",
            ["strategy", "outcome"],
        ),
        "strategy_duration_seconds": Histogram(
            "scoutcore_strategy_duration_seconds",
            "Time spent in one extraction strategy attempt",
            ["strategy"],
        ),
        "pipeline_runs": Counter(
            "scoutcore_pipeline_runs_total",
            "Pipeline runs by final status",
            ["status"],
        ),
        "pipeline_duration_seconds": Histogram(
            "scoutcore_pipeline_duration_seconds",
            "Wall time of one extract_data call",
        ),
        "classifications": Counter(
            "scoutcore_classifications_total",
            "Query classifications by the branch that produced them",
            ["origin"],
        ),
    }


METRICS: Dict[str, Any] = _create_metrics()


def increment(name: str, value: float = 1.0, labels: Optional[Dict[str, Any]] = None) -> None:
    """Increment a counter metric."""
    metric = METRICS.get(name)
    if metric is None:
        return
    if labels is not None:
        metric.labels(**labels).inc(value)
    else:
        metric.inc(value)


def observe(name: str, value: float, labels: Optional[Dict[str, Any]] = None) -> None:
    """Observe a histogram metric."""
    metric = METRICS.get(name)
    if metric is None:
        return
    if labels is not None:
        metric.labels(**labels).observe(value)
    else:
        metric.observe(value)


def start_metrics_server(config: MonitoringConfig) -> bool:
    """Start the Prometheus exporter if a port is configured."""
    if not config.enabled or not config.prometheus_port:
        return False
    start_http_server(config.prometheus_port)
    return True
