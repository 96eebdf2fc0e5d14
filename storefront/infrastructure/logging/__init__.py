"""
Logging Infrastructure

Structured logging setup and outbound request performance tracking.
"""

from .logging_config import (
    LoggingConfigOptions,
    PerformanceLog,
    get_performance_metrics,
    get_structured_logger,
    log_performance,
    setup_logging,
)

__all__ = [
    "LoggingConfigOptions",
    "PerformanceLog",
    "get_performance_metrics",
    "get_structured_logger",
    "log_performance",
    "setup_logging",
]
