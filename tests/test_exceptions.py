"""
Unit tests for the pipeline exception hierarchy.
"""

import grpc

from prw_e2e.exceptions import (
    ConfigurationError, DecodeError, ErrorCategory, ErrorSeverity, MalformedLineError,
    OutputFileError, PipelineError, QueryError, TransportError, UnknownMetricTypeError,
    create_query_error, create_transport_error
)


class TestPipelineErrors:
    """Test cases for error categorization and the fatal flag."""

    def test_to_dict(self):
        cause = ValueError("bad token")
        error = MalformedLineError("Expected 4 fields, found 2", line="m,gauge",
                                   original_error=cause)

        data = error.to_dict()

        assert data == {
            'error_type': 'MalformedLineError',
            'message': "Expected 4 fields, found 2",
            'category': 'decode',
            'severity': 'high',
            'fatal': True,
            'context': {'line': "m,gauge"},
            'original_error': "bad token",
        }

    def test_unknown_type_is_not_fatal(self):
        error = UnknownMetricTypeError("Unknown metric type 'untyped'", metric_type="untyped")

        assert isinstance(error, DecodeError)
        assert error.fatal is False
        assert error.severity is ErrorSeverity.LOW

    def test_transport_error_always_fatal(self):
        error = TransportError("export failed", fatal=False)
        assert error.fatal is True
        assert error.category is ErrorCategory.TRANSPORT

    def test_query_error_not_fatal(self):
        error = QueryError("query failed", status_code=500)
        assert error.fatal is False
        assert error.context['status_code'] == 500

    def test_file_and_config_errors_fatal(self):
        assert OutputFileError("cannot open", path="/tmp/x").fatal is True
        assert ConfigurationError("bad config").fatal is True
        assert isinstance(ConfigurationError("bad config"), PipelineError)


class TestErrorHelpers:
    """Test cases for the helper constructors."""

    def test_create_transport_error(self):
        cause = grpc.RpcError("unavailable")

        error = create_transport_error(cause, "localhost:55680", status_code="UNAVAILABLE")

        assert isinstance(error, TransportError)
        assert error.original_error is cause
        assert error.context == {'endpoint': "localhost:55680", 'status_code': "UNAVAILABLE"}
        assert "localhost:55680" in str(error)

    def test_create_query_error_truncates_details(self):
        error = create_query_error("m0", "x" * 500, status_code=502)

        assert str(error) == "Query for m0 failed: " + "x" * 200
        assert error.context == {'series': "m0", 'status_code': 502}
