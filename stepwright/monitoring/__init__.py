"""
Monitoring module exports.
"""

from stepwright.monitoring.logger import (
    get_logger,
    log_execution_event,
    log_performance_metric,
    setup_logging,
)

__all__ = [
    "get_logger",
    "log_execution_event",
    "log_performance_metric",
    "setup_logging",
]
