"""
Observability module - Logging, Metrics, and Tracing.
"""

from speedformat.observability.logging import get_logger, setup_logging
from speedformat.observability.metrics import metrics
from speedformat.observability.tracing import setup_tracing

__all__ = [
    "get_logger",
    "setup_logging",
    "metrics",
    "setup_tracing",
]
