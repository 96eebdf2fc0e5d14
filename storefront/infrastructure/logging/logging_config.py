"""
Enhanced Logging Configuration

Provides structured logging with multiple handlers and tracking of
outbound commerce API calls.
"""

import logging
import logging.handlers
import os
import sys
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

import structlog
from pythonjsonlogger.json import JsonFormatter

from storefront.infrastructure.utilities.constants import HttpSettings


class ColoredFormatter(logging.Formatter):
    """Colored log formatter for console output"""

    colors = {
        'DEBUG': '\033[36m',      # Cyan
        'INFO': '\033[32m',       # Green
        'WARNING': '\033[33m',    # Yellow
        'ERROR': '\033[31m',      # Red
        'CRITICAL': '\033[35m',   # Magenta
        'RESET': '\033[0m'        # Reset
    }

    def format(self, record: logging.LogRecord) -> str:
        log_color = self.colors.get(record.levelname, self.colors['RESET'])
        record = logging.makeLogRecord(record.__dict__)
        record.levelname = f"{log_color}{record.levelname}{self.colors['RESET']}"
        return super().format(record)


class StorefrontJsonFormatter(JsonFormatter):
    """JSON formatter with process and request context fields"""

    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["logger"] = record.name
        log_record["process_id"] = os.getpid()

        if hasattr(record, "elapsed"):
            log_record["elapsed_ms"] = round(record.elapsed * 1000, 2)


@dataclass
class PerformanceLog:
    """One outbound API call"""
    method: str
    endpoint: str
    response_time: float
    status: str = "success"
    status_code: Optional[int] = None
    extra_data: Optional[Dict[str, Any]] = field(default_factory=dict)


class PerformanceLogger:
    """Request performance tracking"""

    def __init__(self, name: str = "storefront.performance"):
        self.logger = logging.getLogger(name)
        self.reset()

    def reset(self) -> None:
        self.metrics = {
            'total_requests': 0,
            'slow_requests': 0,
            'error_requests': 0,
            'avg_response_time': 0.0
        }

    def log_request(self, log: PerformanceLog):
        """Log a request with performance metrics"""

        # Update metrics
        self.metrics['total_requests'] += 1

        if log.response_time > HttpSettings.SLOW_REQUEST_SECONDS:
            self.metrics['slow_requests'] += 1

        if log.status != "success":
            self.metrics['error_requests'] += 1

        # Calculate running average
        current_avg = self.metrics['avg_response_time']
        total_requests = self.metrics['total_requests']
        self.metrics['avg_response_time'] = (
            (current_avg * (total_requests - 1) + log.response_time) / total_requests
        )

        log_data = {
            'method': log.method,
            'endpoint': log.endpoint,
            'elapsed': log.response_time,
            'status': log.status,
            'status_code': log.status_code,
            **(log.extra_data or {})
        }

        if log.response_time > HttpSettings.SLOW_REQUEST_SECONDS:
            self.logger.warning(
                "Slow request: %s %s took %.2fs",
                log.method,
                log.endpoint,
                log.response_time,
                extra=log_data
            )
        else:
            self.logger.debug(
                "Request: %s %s -> %s (%.3fs)",
                log.method,
                log.endpoint,
                log.status_code,
                log.response_time,
                extra=log_data
            )

    def get_metrics(self) -> Dict[str, Any]:
        """Get current performance metrics"""
        return {
            **self.metrics,
            'slow_request_ratio': (
                self.metrics['slow_requests'] / max(1, self.metrics['total_requests'])
            ),
            'error_rate': (
                self.metrics['error_requests'] / max(1, self.metrics['total_requests'])
            )
        }


@dataclass
class LoggingConfigOptions:
    """Dataclass for logging configuration options"""
    log_level: str = "INFO"
    log_dir: str = "logs"
    enable_console: bool = True
    enable_file: bool = True
    enable_json: bool = True
    max_file_size: int = 10 * 1024 * 1024  # 10MB
    backup_count: int = 5


class LoggingConfig:
    """Enhanced logging configuration"""

    def __init__(self, options: LoggingConfigOptions):
        self.options = options

        if self.options.enable_file or self.options.enable_json:
            Path(self.options.log_dir).mkdir(parents=True, exist_ok=True)

        self._configure_structlog()

    def __repr__(self):
        return f"LoggingConfig(options={self.options})"

    def _configure_structlog(self):
        """Configure structlog for structured logging"""
        structlog.configure(
            processors=[
                structlog.stdlib.filter_by_level,
                structlog.stdlib.add_logger_name,
                structlog.stdlib.add_log_level,
                structlog.stdlib.PositionalArgumentsFormatter(),
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.processors.StackInfoRenderer(),
                structlog.processors.format_exc_info,
                structlog.processors.UnicodeDecoder(),
                structlog.processors.JSONRenderer()
            ],
            context_class=dict,
            logger_factory=structlog.stdlib.LoggerFactory(),
            wrapper_class=structlog.stdlib.BoundLogger,
            cache_logger_on_first_use=True,
        )

    def setup_logging(self):
        """Setup comprehensive logging configuration"""
        level = getattr(logging, self.options.log_level.upper())

        root_logger = logging.getLogger()
        root_logger.setLevel(level)

        # Clear existing handlers
        root_logger.handlers.clear()

        if self.options.enable_console:
            console_handler = logging.StreamHandler(sys.stdout)
            console_handler.setLevel(level)
            console_handler.setFormatter(ColoredFormatter(
                fmt='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            ))
            root_logger.addHandler(console_handler)

        if self.options.enable_file:
            app_formatter = logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
            )

            app_handler = logging.handlers.RotatingFileHandler(
                Path(self.options.log_dir) / 'storefront.log',
                maxBytes=self.options.max_file_size,
                backupCount=self.options.backup_count,
                encoding="utf-8",
            )
            app_handler.setLevel(logging.INFO)
            app_handler.setFormatter(app_formatter)
            root_logger.addHandler(app_handler)

            error_handler = logging.handlers.RotatingFileHandler(
                Path(self.options.log_dir) / 'errors.log',
                maxBytes=self.options.max_file_size,
                backupCount=self.options.backup_count,
                encoding="utf-8",
            )
            error_handler.setLevel(logging.ERROR)
            error_handler.setFormatter(app_formatter)
            root_logger.addHandler(error_handler)

        if self.options.enable_json:
            json_handler = logging.handlers.RotatingFileHandler(
                Path(self.options.log_dir) / 'storefront.json.log',
                maxBytes=self.options.max_file_size,
                backupCount=self.options.backup_count,
                encoding="utf-8",
            )
            json_handler.setLevel(level)
            json_handler.setFormatter(StorefrontJsonFormatter())
            root_logger.addHandler(json_handler)

        self._configure_external_loggers()

        logger = logging.getLogger(__name__)
        logger.info(
            "✅ Logging configured successfully - Level: %s, Console: %s, File: %s, JSON: %s",
            self.options.log_level,
            self.options.enable_console,
            self.options.enable_file,
            self.options.enable_json
        )

    def _configure_external_loggers(self):
        """Quieten chatty third-party loggers"""
        logging.getLogger('httpx').setLevel(logging.WARNING)
        logging.getLogger('httpcore').setLevel(logging.WARNING)
        logging.getLogger('sqlalchemy').setLevel(logging.WARNING)


# Singleton instance for performance logger
performance_logger = PerformanceLogger()


def setup_logging(options: LoggingConfigOptions):
    """Setup logging using the LoggingConfig class"""
    config = LoggingConfig(options)
    config.setup_logging()


def get_performance_metrics() -> Dict[str, Any]:
    """Get performance metrics from the performance logger"""
    return performance_logger.get_metrics()


def log_performance(log: PerformanceLog):
    """Log performance of a request"""
    performance_logger.log_request(log)


def get_structured_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance"""
    return structlog.get_logger(name)
