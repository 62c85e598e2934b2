"""
Unit tests for decoding the flat text format.
"""

import pytest

from prw_e2e.data_models import HistogramValues, MetricFormat, MetricKind, SummaryValues
from prw_e2e.exceptions import (
    DecodeError, MalformedLabelsError, MalformedLineError, NumericParseError,
    UnknownMetricTypeError
)
from prw_e2e.metric_decoder import decode_line, decode_lines, parse_float, parse_labels


class TestDecodeLine:
    """Test cases for decode_line."""

    def setup_method(self):
        self.fmt = MetricFormat()

    def test_decode_gauge(self):
        record = decode_line("metricName0,gauge,label1 value1,42", self.fmt)

        assert record.name == "metricName0"
        assert record.kind is MetricKind.GAUGE
        assert record.labels == (('label1', 'value1'),)
        assert record.values == 42.0

    def test_decode_counter(self):
        record = decode_line("metricName3,counter,label1 value1 label2 value2,7", self.fmt)

        assert record.kind is MetricKind.COUNTER
        assert record.labels == (('label1', 'value1'), ('label2', 'value2'))
        assert record.values == 7.0

    def test_decode_histogram(self):
        record = decode_line("metricName1,histogram,label1 value1 label2 value2,10 100 30 40 30", self.fmt)

        assert record.kind is MetricKind.HISTOGRAM
        assert record.labels == (('label1', 'value1'), ('label2', 'value2'))
        assert record.values == HistogramValues(sum=10, count=100, bucket_counts=(30, 40, 30))

    def test_decode_summary(self):
        record = decode_line("metricName2,summary,label1 value1,5 3 0.100000 0.250000 0.900000", self.fmt)

        assert record.kind is MetricKind.SUMMARY
        assert record.values == SummaryValues(sum=5.0, count=3.0, quantile_values=(0.1, 0.25, 0.9))

    def test_trailing_whitespace_and_newline_ignored(self):
        record = decode_line("metricName0,gauge,label1 value1 ,42 \n", self.fmt)

        assert record.labels == (('label1', 'value1'),)
        assert record.values == 42.0

    def test_trailing_space_in_histogram_values(self):
        record = decode_line("m,histogram,label1 value1 ,1 2 3 4 5 ", self.fmt)
        assert record.values.bucket_counts == (3, 4, 5)

    def test_bracketed_scalar_value(self):
        record = decode_line("m,gauge,label1 value1,[42]", self.fmt)
        assert record.values == 42.0

    def test_label_set_ignores_order(self):
        first = decode_line("m,gauge,label1 value1 label2 value2,1", self.fmt)
        second = decode_line("m,gauge,label2 value2 label1 value1,1", self.fmt)

        assert first.labels != second.labels
        assert first.label_set() == second.label_set()

    def test_empty_label_block(self):
        with pytest.raises(MalformedLabelsError):
            decode_line("m,gauge,,1", self.fmt)

    def test_more_labels_than_catalog(self):
        line = "m,gauge,label1 value1 label2 value2 label3 value3 label4 value4 label5 value5,1"
        with pytest.raises(MalformedLabelsError) as exc_info:
            decode_line(line, self.fmt)
        assert "found 5" in str(exc_info.value)

    def test_missing_fields(self):
        with pytest.raises(MalformedLineError) as exc_info:
            decode_line("m,gauge,label1 value1", self.fmt)
        assert exc_info.value.context['line'] == "m,gauge,label1 value1"

    def test_odd_label_tokens(self):
        with pytest.raises(MalformedLabelsError):
            decode_line("m,gauge,label1 value1 label2,1", self.fmt)

    def test_non_numeric_scalar(self):
        with pytest.raises(NumericParseError) as exc_info:
            decode_line("m,gauge,label1 value1,abc", self.fmt)
        assert exc_info.value.context['token'] == "abc"

    def test_non_numeric_histogram_token(self):
        with pytest.raises(NumericParseError):
            decode_line("m,histogram,label1 value1,1 2 x 4 5", self.fmt)

    def test_negative_bucket_count(self):
        with pytest.raises(NumericParseError):
            decode_line("m,histogram,label1 value1,1 2 3 -4 5", self.fmt)

    def test_non_numeric_quantile(self):
        with pytest.raises(NumericParseError):
            decode_line("m,summary,label1 value1,1 2 0.1 oops 0.3", self.fmt)

    @pytest.mark.parametrize("token", ["inf", "-inf", "nan", "1e30", "-1e19"])
    def test_scalar_outside_int64(self, token):
        with pytest.raises(NumericParseError) as exc_info:
            decode_line(f"m,gauge,label1 value1,{token}", self.fmt)
        assert exc_info.value.context['token'] == token

    def test_scalar_at_int64_limits(self):
        assert decode_line("m,counter,label1 value1,-9223372036854775808", self.fmt).values == -2.0 ** 63
        assert decode_line("m,counter,label1 value1,9223372036854774784", self.fmt).values == 9223372036854774784

    def test_histogram_count_outside_uint64(self):
        with pytest.raises(NumericParseError):
            decode_line("m,histogram,label1 value1,1 1 99999999999999999999 0 0", self.fmt)

    def test_summary_non_finite_values(self):
        with pytest.raises(NumericParseError):
            decode_line("m,summary,label1 value1,5 3 0.1 nan 0.9", self.fmt)
        with pytest.raises(NumericParseError):
            decode_line("m,summary,label1 value1,inf 3 0.1 0.2 0.9", self.fmt)

    def test_summary_negative_count(self):
        with pytest.raises(NumericParseError):
            decode_line("m,summary,label1 value1,5 -1 0.1 0.2 0.9", self.fmt)

    def test_wrong_histogram_token_count(self):
        with pytest.raises(MalformedLineError):
            decode_line("m,histogram,label1 value1,1 2 3", self.fmt)

    def test_unknown_type(self):
        with pytest.raises(UnknownMetricTypeError) as exc_info:
            decode_line("m,untyped,label1 value1,1", self.fmt)

        error = exc_info.value
        assert error.fatal is False
        assert error.context['metric_type'] == "untyped"

    def test_decode_errors_are_fatal(self):
        with pytest.raises(DecodeError) as exc_info:
            decode_line("m,gauge,label1 value1,abc", self.fmt)
        assert exc_info.value.fatal is True

    def test_custom_bounds_change_value_count(self):
        fmt = MetricFormat(bounds=(0.5,))
        record = decode_line("m,histogram,label1 value1,9 4 4", fmt)
        assert record.values.bucket_counts == (4,)


class TestDecodeLines:
    """Test cases for decode_lines."""

    def setup_method(self):
        self.fmt = MetricFormat()

    def test_skips_blank_and_unknown_lines(self):
        lines = [
            "a,gauge,label1 value1,1\n",
            "\n",
            "b,untyped,label1 value1,2\n",
            "c,counter,label1 value1,3\n",
        ]

        records = list(decode_lines(lines, self.fmt))

        assert [record.name for record in records] == ["a", "c"]

    def test_bad_label_count_propagates(self):
        with pytest.raises(MalformedLabelsError):
            list(decode_lines(["a,gauge,,1"], self.fmt))

    def test_other_errors_propagate(self):
        lines = ["a,gauge,label1 value1,1", "b,gauge,label1 value1,nope"]
        decoded = decode_lines(lines, self.fmt)

        assert next(decoded).name == "a"
        with pytest.raises(NumericParseError):
            next(decoded)


class TestHelpers:
    """Test cases for the parsing helpers."""

    def test_parse_labels_pairs_in_order(self):
        labels = parse_labels("b 2 a 1", MetricFormat())
        assert labels == (('b', '2'), ('a', '1'))

    def test_parse_float_strips_brackets(self):
        assert parse_float("[1.5") == 1.5
        assert parse_float("2]") == 2.0
