"""
Observability module - Logging and Metrics.
"""

from rbx5.observability.logging import get_logger, setup_logging
from rbx5.observability.metrics import metrics

__all__ = [
    "get_logger",
    "setup_logging",
    "metrics",
]
