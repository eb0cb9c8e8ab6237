"""Minimal observability for logging, health checks and metrics.

Provides JSON logging, health/readiness endpoints, and in-process metrics
without external dependencies.
"""
import uuid
from typing import Optional

from . import health
from . import logging as logging_module
from . import metrics


def generate_trace_id() -> str:
    """Generate a new trace ID for request/CLI context."""
    return str(uuid.uuid4())


def bind_trace_id(trace_id: Optional[str] = None) -> str:
    """Set or generate the trace ID for the current thread and return it."""
    if not trace_id:
        trace_id = generate_trace_id()
    logging_module.set_trace_id(trace_id)
    return trace_id


def init_observability(enable_metrics: bool = True) -> None:
    """Initialize all observability components."""
    logging_module.init_logging()
    if enable_metrics:
        metrics.init_metrics()


__all__ = [
    "logging_module",
    "health",
    "metrics",
    "generate_trace_id",
    "bind_trace_id",
    "init_observability",
]
