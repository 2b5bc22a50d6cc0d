"""
Observability module - Logging, Metrics, and Tracing.
"""

from tutorpay.observability.logging import get_logger, log_context, setup_logging
from tutorpay.observability.metrics import metrics
from tutorpay.observability.tracing import setup_tracing

__all__ = [
    "get_logger",
    "log_context",
    "setup_logging",
    "metrics",
    "setup_tracing",
]
