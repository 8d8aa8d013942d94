"""In-process metrics counters and histograms."""

from collections import defaultdict
from typing import Any

from backend.core.config import settings

_metrics = defaultdict(lambda: {"count": 0, "sum": 0.0, "values": []})


def _key(name: str, labels: dict[str, str] | None) -> str:
    if not labels:
        return name
    return name + "{" + ",".join(f"{k}={v}" for k, v in sorted(labels.items())) + "}"


def increment_counter(name: str, labels: dict[str, str] | None = None, value: float = 1.0) -> None:
    """Increment a counter metric."""
    if not settings.enable_metrics:
        return
    _metrics[_key(name, labels)]["count"] += value


def record_histogram(name: str, value: float, labels: dict[str, str] | None = None) -> None:
    """Record a histogram measurement."""
    if not settings.enable_metrics:
        return
    metrics = _metrics[_key(name, labels)]
    metrics["count"] += 1
    metrics["sum"] += value
    metrics["values"].append(value)


def get_metrics() -> dict[str, Any]:
    """Get current metrics snapshot."""
    if not settings.enable_metrics:
        return {"note": "metrics disabled"}

    result = {}
    for key, data in _metrics.items():
        metric_result = {"count": data["count"], "sum": data["sum"]}
        if data["values"]:
            values = data["values"]
            metric_result.update(
                {
                    "min": min(values),
                    "max": max(values),
                    "avg": data["sum"] / len(values),
                }
            )
        result[key] = metric_result
    return result


def get_counter(name: str, labels: dict[str, str] | None = None) -> float:
    return _metrics[_key(name, labels)]["count"] if _key(name, labels) in _metrics else 0


def reset_metrics() -> None:
    """Reset all metrics (useful for testing)."""
    _metrics.clear()


# Sync metrics
def increment_sync_outcome(operation: str, status: str) -> None:
    increment_counter("vine_sync_total", labels={"operation": operation, "status": status})


def record_remote_duration(operation: str, duration_ms: float) -> None:
    record_histogram("vine_remote_duration_ms", duration_ms, labels={"operation": operation})


# Finalization metrics
def increment_finalizations(kind: str, status: str) -> None:
    increment_counter("vine_finalizations_total", labels={"kind": kind, "status": status})


def increment_date_fallbacks(field_name: str) -> None:
    increment_counter("vine_date_fallbacks_total", labels={"field": field_name})
