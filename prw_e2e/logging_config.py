"""
Structured logging configuration for the remote-write end-to-end test pipeline.

This module provides centralized logging configuration with:
- Log sanitization to keep AWS credentials and signatures out of logs
- Contextual loggers carrying stage and metric information
- Context managers for timing pipeline stages
"""

import logging
import logging.config
import re
import sys
import time
from typing import Dict, Any, Optional, Union
from contextlib import contextmanager

from prw_e2e.config import LoggingConfig


class SanitizingFormatter(logging.Formatter):
    """
    Custom formatter that sanitizes sensitive information from log messages.

    SigV4-signed query requests carry credentials in headers; they are masked
    before any record is emitted.
    """

    SENSITIVE_PATTERNS = [
        # AWS credentials
        (re.compile(r'(aws_access_key_id["\s]*[:=]["\s]*)([^"\s,}]+)', re.IGNORECASE), r'\1***REDACTED***'),
        (re.compile(r'(aws_secret_access_key["\s]*[:=]["\s]*)([^"\s,}]+)', re.IGNORECASE), r'\1***REDACTED***'),
        (re.compile(r'(X-Amz-Security-Token["\s]*[:=]["\s]*)([^"\s,}]+)', re.IGNORECASE), r'\1***REDACTED***'),
        (re.compile(r'(Credential=)([^,\s]+)', re.IGNORECASE), r'\1***REDACTED***'),
        (re.compile(r'(Signature=)([0-9a-f]+)', re.IGNORECASE), r'\1***REDACTED***'),

        # Authorization headers
        (re.compile(r'(Authorization["\s]*[:=]["\s]*)([^"\s,}]+)', re.IGNORECASE), r'\1***REDACTED***'),
        (re.compile(r'(Bearer\s+)([^\s,}]+)', re.IGNORECASE), r'\1***REDACTED***'),

        # URLs with credentials
        (re.compile(r'(https?://[^:/\s]+:)([^@/\s]+)(@)', re.IGNORECASE), r'\1***REDACTED***\3'),
    ]

    def format(self, record: logging.LogRecord) -> str:
        formatted = super().format(record)
        return sanitize_text(formatted)


def sanitize_text(text: str) -> str:
    """Apply every sensitive pattern to a string."""
    for pattern, replacement in SanitizingFormatter.SENSITIVE_PATTERNS:
        text = pattern.sub(replacement, text)
    return text


class ContextualLogger:
    """
    Logger wrapper that adds contextual information to log messages.

    Provides methods to add context like stage, metric name and series to
    log messages for better traceability when diffing a failed run.
    """

    def __init__(self, logger: logging.Logger):
        """
        Initialize contextual logger.

        Args:
            logger: Base logger instance
        """
        self.logger = logger
        self.context: Dict[str, Any] = {}

    def set_context(self, **kwargs) -> None:
        """
        Set context information for subsequent log messages.

        Args:
            **kwargs: Context key-value pairs
        """
        self.context.update(kwargs)

    def clear_context(self) -> None:
        """Clear all context information."""
        self.context.clear()

    def _format_message(self, message: str) -> str:
        if not self.context:
            return message

        context_str = " ".join(f"{key}={value}" for key, value in self.context.items())
        return f"[{context_str}] {message}"

    def debug(self, message: str, *args, **kwargs) -> None:
        """Log debug message with context."""
        self.logger.debug(self._format_message(message), *args, **kwargs)

    def info(self, message: str, *args, **kwargs) -> None:
        """Log info message with context."""
        self.logger.info(self._format_message(message), *args, **kwargs)

    def warning(self, message: str, *args, **kwargs) -> None:
        """Log warning message with context."""
        self.logger.warning(self._format_message(message), *args, **kwargs)

    def error(self, message: str, *args, **kwargs) -> None:
        """Log error message with context."""
        self.logger.error(self._format_message(message), *args, **kwargs)


def setup_logging(logging_config: LoggingConfig) -> None:
    """
    Set up logging configuration for the application.

    Args:
        logging_config: Logging configuration object
    """
    level = logging_config.level.upper()
    config_dict = {
        'version': 1,
        'disable_existing_loggers': False,
        'formatters': {
            'main': {
                '()': SanitizingFormatter,
                'format': logging_config.format,
                'datefmt': '%Y-%m-%d %H:%M:%S'
            },
            'detailed': {
                '()': SanitizingFormatter,
                'format': '%(asctime)s - %(name)s - %(levelname)s - %(filename)s:%(lineno)d - %(funcName)s - %(message)s',
                'datefmt': '%Y-%m-%d %H:%M:%S'
            }
        },
        'handlers': {
            'console': {
                'class': 'logging.StreamHandler',
                'level': level,
                'formatter': 'main',
                'stream': sys.stdout
            },
            'error_console': {
                'class': 'logging.StreamHandler',
                'level': 'ERROR',
                'formatter': 'detailed',
                'stream': sys.stderr
            }
        },
        'loggers': {
            'prw_e2e': {
                'level': level,
                'handlers': ['console', 'error_console'],
                'propagate': False
            },
            'urllib3': {
                'level': 'WARNING',
                'handlers': ['console'],
                'propagate': False
            },
            'botocore': {
                'level': 'WARNING',
                'handlers': ['console'],
                'propagate': False
            },
            'grpc': {
                'level': 'WARNING',
                'handlers': ['console'],
                'propagate': False
            }
        },
        'root': {
            'level': level,
            'handlers': ['console', 'error_console']
        }
    }

    logging.config.dictConfig(config_dict)


def get_logger(name: str) -> ContextualLogger:
    """
    Get a contextual logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        ContextualLogger instance
    """
    return ContextualLogger(logging.getLogger(name))


@contextmanager
def log_operation(logger: Union[logging.Logger, ContextualLogger],
                  operation: str,
                  level: str = 'INFO',
                  **context):
    """
    Context manager for logging operation start/end with timing.

    Args:
        logger: Logger instance
        operation: Operation description
        level: Log level for operation messages
        **context: Additional context for the operation
    """
    if isinstance(logger, ContextualLogger):
        original_context = logger.context.copy()
        logger.set_context(**context)
    log_func = getattr(logger, level.lower())

    start_time = time.time()
    log_func(f"Starting {operation}")

    try:
        yield
        duration = time.time() - start_time
        log_func(f"Completed {operation} in {duration:.3f}s")

    except Exception as e:
        duration = time.time() - start_time
        logger.error(f"Failed {operation} after {duration:.3f}s: {e}")
        raise

    finally:
        if isinstance(logger, ContextualLogger):
            logger.context = original_context


def log_api_request(logger: Union[logging.Logger, ContextualLogger],
                    method: str,
                    url: str,
                    status_code: Optional[int] = None,
                    duration: Optional[float] = None,
                    error: Optional[str] = None) -> None:
    """
    Log API request details in a standardized format.

    Args:
        logger: Logger instance
        method: HTTP method
        url: Request URL (will be sanitized)
        status_code: HTTP status code
        duration: Request duration in seconds
        error: Error message if request failed
    """
    sanitized_url = sanitize_text(url)

    if error:
        logger.warning(f"API request failed: {method} {sanitized_url} - {error}")
    elif status_code:
        level = 'debug' if 200 <= status_code < 400 else 'warning'
        duration_str = f" ({duration:.3f}s)" if duration else ""
        getattr(logger, level)(f"API request: {method} {sanitized_url} - {status_code}{duration_str}")
    else:
        logger.debug(f"API request: {method} {sanitized_url}")
