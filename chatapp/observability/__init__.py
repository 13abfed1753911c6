"""
Observability module - Logging, Metrics, and Tracing.
"""

from chatapp.observability.logging import get_logger, log_context, setup_logging
from chatapp.observability.metrics import metrics
from chatapp.observability.tracing import setup_tracing, trace_operation

__all__ = [
    "get_logger",
    "log_context",
    "setup_logging",
    "metrics",
    "setup_tracing",
    "trace_operation",
]
