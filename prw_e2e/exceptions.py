"""
Custom exception classes for the remote-write end-to-end test pipeline.

This module provides a hierarchy of exceptions for the different failure
scenarios of the pipeline, with error categorization and a fatal flag that
decides whether a failure aborts the run or is recorded as a partial result.
"""

from typing import Optional, Dict, Any
from enum import Enum


class ErrorSeverity(Enum):
    """Error severity levels for categorizing exceptions."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCategory(Enum):
    """Error categories for different types of failures."""
    DECODE = "decode"
    BUILD = "build"
    TRANSPORT = "transport"
    QUERY = "query"
    CONFIGURATION = "configuration"
    IO = "io"


class PipelineError(Exception):
    """
    Base exception for the test pipeline with error context.

    Provides common functionality for all pipeline exceptions including
    error categorization, severity levels, and the fatal flag.
    """

    def __init__(self,
                 message: str,
                 category: ErrorCategory = ErrorCategory.DECODE,
                 severity: ErrorSeverity = ErrorSeverity.MEDIUM,
                 fatal: bool = True,
                 context: Optional[Dict[str, Any]] = None,
                 original_error: Optional[Exception] = None):
        """
        Initialize pipeline error.

        Args:
            message: Error message
            category: Error category for classification
            severity: Error severity level
            fatal: Whether this error aborts the run
            context: Additional error context
            original_error: Original exception that caused this error
        """
        super().__init__(message)
        self.category = category
        self.severity = severity
        self.fatal = fatal
        self.context = context or {}
        self.original_error = original_error

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert exception to dictionary for logging/serialization.

        Returns:
            Dictionary representation of the exception
        """
        return {
            'error_type': self.__class__.__name__,
            'message': str(self),
            'category': self.category.value,
            'severity': self.severity.value,
            'fatal': self.fatal,
            'context': self.context,
            'original_error': str(self.original_error) if self.original_error else None
        }


class DecodeError(PipelineError):
    """Errors raised while parsing a line of the flat text format."""

    def __init__(self, message: str, line: Optional[str] = None, **kwargs):
        kwargs.setdefault('category', ErrorCategory.DECODE)
        kwargs.setdefault('severity', ErrorSeverity.HIGH)

        if 'context' not in kwargs:
            kwargs['context'] = {}
        kwargs['context']['line'] = line

        super().__init__(message, **kwargs)


class MalformedLineError(DecodeError):
    """Line does not have the expected fields or value tokens."""
    pass


class MalformedLabelsError(DecodeError):
    """Label block does not hold an even number of key/value tokens."""
    pass


class NumericParseError(DecodeError):
    """A value token could not be parsed as a number."""

    def __init__(self, message: str, token: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.context['token'] = token


class UnknownMetricTypeError(DecodeError):
    """Metric type is not one of the supported kinds."""

    def __init__(self, message: str, metric_type: Optional[str] = None, **kwargs):
        kwargs.setdefault('severity', ErrorSeverity.LOW)
        kwargs.setdefault('fatal', False)  # skipped with a warning
        super().__init__(message, **kwargs)
        self.context['metric_type'] = metric_type


class InvalidRecordShapeError(PipelineError):
    """Record values do not match the shape required by its kind."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault('category', ErrorCategory.BUILD)
        kwargs.setdefault('severity', ErrorSeverity.CRITICAL)
        super().__init__(message, **kwargs)


class TransportError(PipelineError):
    """Errors exporting metrics to the Collector."""

    def __init__(self, message: str, status_code: Optional[str] = None, **kwargs):
        kwargs.setdefault('category', ErrorCategory.TRANSPORT)
        kwargs.setdefault('severity', ErrorSeverity.CRITICAL)
        kwargs['fatal'] = True  # a lost send invalidates the comparison

        if 'context' not in kwargs:
            kwargs['context'] = {}
        kwargs['context']['status_code'] = status_code

        super().__init__(message, **kwargs)


class QueryError(PipelineError):
    """Errors querying the time-series backend."""

    def __init__(self, message: str, status_code: Optional[int] = None, **kwargs):
        kwargs.setdefault('category', ErrorCategory.QUERY)
        kwargs.setdefault('severity', ErrorSeverity.MEDIUM)
        kwargs.setdefault('fatal', False)

        if 'context' not in kwargs:
            kwargs['context'] = {}
        kwargs['context']['status_code'] = status_code

        super().__init__(message, **kwargs)


class OutputFileError(PipelineError):
    """Input or output data file could not be opened or written."""

    def __init__(self, message: str, path: Optional[str] = None, **kwargs):
        kwargs.setdefault('category', ErrorCategory.IO)
        kwargs.setdefault('severity', ErrorSeverity.CRITICAL)
        kwargs['fatal'] = True

        if 'context' not in kwargs:
            kwargs['context'] = {}
        kwargs['context']['path'] = path

        super().__init__(message, **kwargs)


class ConfigurationError(PipelineError):
    """Configuration related errors."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault('category', ErrorCategory.CONFIGURATION)
        kwargs.setdefault('severity', ErrorSeverity.CRITICAL)
        kwargs['fatal'] = True  # config errors need manual intervention
        super().__init__(message, **kwargs)


# Convenience functions for creating common errors

def create_transport_error(original_error: Exception, endpoint: str,
                           status_code: Optional[str] = None) -> TransportError:
    """Create a transport error from a failed export call."""
    return TransportError(
        message=f"Export to {endpoint} failed: {str(original_error)[:200]}",
        status_code=status_code,
        original_error=original_error,
        context={'endpoint': endpoint}
    )


def create_query_error(series: str, details: str, status_code: Optional[int] = None,
                       original_error: Optional[Exception] = None) -> QueryError:
    """Create a query error for a single series query."""
    return QueryError(
        message=f"Query for {series} failed: {details[:200]}",
        status_code=status_code,
        original_error=original_error,
        context={'series': series}
    )
