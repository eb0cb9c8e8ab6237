"""In-process metrics counters and histograms."""

from collections import defaultdict
from typing import Any

from ticketops.core.config import settings

# Global metrics storage
_metrics = defaultdict(lambda: {"count": 0, "sum": 0.0, "values": [], "buckets": defaultdict(int)})


def init_metrics() -> None:
    """Initialize metrics if enabled."""
    if not settings.enable_metrics:
        return


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

    if value < 1:
        metrics["buckets"]["<1"] += 1
    elif value < 10:
        metrics["buckets"]["1-10"] += 1
    elif value < 100:
        metrics["buckets"]["10-100"] += 1
    elif value < 1000:
        metrics["buckets"]["100-1000"] += 1
    else:
        metrics["buckets"][">=1000"] += 1


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
                    "buckets": dict(data["buckets"]),
                }
            )
        result[key] = metric_result
    return result


def reset_metrics() -> None:
    """Reset all metrics (useful for testing)."""
    _metrics.clear()


# Accept pipeline
def increment_accept_total(import_type: str) -> None:
    increment_counter("imports_accepted_total", labels={"type": import_type})


def increment_accept_errors(error: str) -> None:
    increment_counter("imports_accept_errors_total", labels={"error": error})


def add_rows_inserted(n: int) -> None:
    increment_counter("import_rows_inserted_total", value=float(n))


def add_rows_failed(n: int) -> None:
    increment_counter("import_rows_failed_total", value=float(n))


def increment_status_update_failures() -> None:
    increment_counter("import_status_update_failures_total")


def record_accept_duration(duration_ms: float) -> None:
    record_histogram("accept_duration_ms", duration_ms)


def record_introspection_duration(duration_ms: float, path: str) -> None:
    record_histogram("schema_introspection_duration_ms", duration_ms, labels={"path": path})


# Review queue and ops
def increment_drafts_saved() -> None:
    increment_counter("import_drafts_saved_total")


def increment_rejected() -> None:
    increment_counter("imports_rejected_total")


def increment_reclassified(n: float = 1.0) -> None:
    increment_counter("imports_reclassified_total", value=n)


def record_ops_duration(duration_ms: float) -> None:
    record_histogram("ops_duration_ms", duration_ms)
