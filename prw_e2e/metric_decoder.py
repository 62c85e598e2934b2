"""
Decoding of the flat text format back into metric records.

Numeric parse failures raise NumericParseError for every metric kind rather
than being coerced to zero, so a corrupted data file cannot silently send
zeros to the Collector.
"""

import math
from typing import Iterable, Iterator, List, Optional, Tuple

from prw_e2e.data_models import (
    HistogramValues, Label, MetricFormat, MetricKind, MetricRecord, SummaryValues
)
from prw_e2e.exceptions import (
    DecodeError, MalformedLabelsError, MalformedLineError, NumericParseError,
    UnknownMetricTypeError
)
from prw_e2e.logging_config import get_logger


logger = get_logger(__name__)

FIELD_COUNT = 4

# Ranges of the OTLP fields values end up in
INT64_MIN = -2 ** 63
INT64_MAX = 2 ** 63 - 1
UINT64_MAX = 2 ** 64 - 1


def split_fields(line: str, metric_format: MetricFormat) -> List[str]:
    """
    Split a line into its name, type, labels and values fields.

    Raises:
        MalformedLineError: If fewer than four fields are present
    """
    fields = line.strip().split(metric_format.field_delimiter)
    if len(fields) < FIELD_COUNT:
        raise MalformedLineError(
            f"Expected {FIELD_COUNT} fields, found {len(fields)}", line=line
        )
    return [field.strip() for field in fields]


def parse_labels(block: str, metric_format: MetricFormat, line: Optional[str] = None) -> Tuple[Label, ...]:
    """
    Parse a label block of alternating key and value tokens.

    Raises:
        MalformedLabelsError: If the number of tokens is odd, or the block
            holds no pairs or more pairs than the label catalog
    """
    tokens = [token for token in block.split(metric_format.subfield_delimiter) if token]
    if len(tokens) % 2:
        raise MalformedLabelsError(
            f"Label block has an odd number of tokens ({len(tokens)})", line=line
        )

    pairs = tuple(zip(tokens[0::2], tokens[1::2]))
    limit = len(metric_format.label_catalog)
    if not 1 <= len(pairs) <= limit:
        raise MalformedLabelsError(
            f"Expected 1 to {limit} labels, found {len(pairs)}", line=line
        )
    return pairs


def parse_float(token: str, line: Optional[str] = None) -> float:
    """Parse a finite float, tolerating surrounding bracket characters."""
    cleaned = token.replace('[', ' ').replace(']', ' ').strip()
    try:
        value = float(cleaned)
    except ValueError:
        raise NumericParseError(f"Not a number: {token!r}", token=token, line=line)
    if not math.isfinite(value):
        raise NumericParseError(f"Not a finite number: {token!r}", token=token, line=line)
    return value


def parse_scalar(token: str, line: Optional[str] = None) -> float:
    """Parse a gauge or counter value, which is exported as a signed 64-bit integer."""
    value = parse_float(token, line)
    if not INT64_MIN <= int(value) <= INT64_MAX:
        raise NumericParseError(f"Out of int64 range: {token!r}", token=token, line=line)
    return value


def parse_count(token: str, line: Optional[str] = None) -> float:
    value = parse_float(token, line)
    if not 0 <= int(value) <= UINT64_MAX:
        raise NumericParseError(f"Count out of uint64 range: {token!r}", token=token, line=line)
    return value


def parse_unsigned(token: str, line: Optional[str] = None) -> int:
    try:
        value = int(token)
    except ValueError:
        raise NumericParseError(f"Not an integer: {token!r}", token=token, line=line)
    if value < 0:
        raise NumericParseError(f"Negative count: {token!r}", token=token, line=line)
    if value > UINT64_MAX:
        raise NumericParseError(f"Out of uint64 range: {token!r}", token=token, line=line)
    return value


def _value_tokens(block: str, expected: int, metric_format: MetricFormat, line: str) -> List[str]:
    tokens = [token for token in block.split(metric_format.subfield_delimiter) if token]
    if len(tokens) != expected:
        raise MalformedLineError(
            f"Expected {expected} value tokens, found {len(tokens)}", line=line
        )
    return tokens


def decode_line(line: str, metric_format: MetricFormat) -> MetricRecord:
    """
    Decode one line of the flat text format.

    Args:
        line: Encoded line, surrounding whitespace is ignored
        metric_format: Delimiters and constant tables

    Returns:
        Decoded MetricRecord

    Raises:
        MalformedLineError: Missing fields or wrong number of value tokens
        MalformedLabelsError: Odd number of label tokens or a bad label count
        NumericParseError: Non-numeric, non-finite or out-of-range value token
        UnknownMetricTypeError: Type is not one of the supported kinds
    """
    name, metric_type, label_block, value_block = split_fields(line, metric_format)[:FIELD_COUNT]

    try:
        kind = MetricKind(metric_type)
    except ValueError:
        raise UnknownMetricTypeError(
            f"Unknown metric type {metric_type!r}", metric_type=metric_type, line=line
        )

    labels = parse_labels(label_block, metric_format, line)
    value_count = 2 + len(metric_format.bounds)

    if kind.is_scalar:
        values = parse_scalar(value_block, line)
    elif kind is MetricKind.HISTOGRAM:
        numbers = [parse_unsigned(token, line)
                   for token in _value_tokens(value_block, value_count, metric_format, line)]
        values = HistogramValues(sum=numbers[0], count=numbers[1], bucket_counts=tuple(numbers[2:]))
    else:
        tokens = _value_tokens(value_block, value_count, metric_format, line)
        values = SummaryValues(
            sum=parse_float(tokens[0], line),
            count=parse_count(tokens[1], line),
            quantile_values=tuple(parse_float(token, line) for token in tokens[2:])
        )

    return MetricRecord(name=name, kind=kind, labels=labels, values=values)


def decode_lines(lines: Iterable[str], metric_format: MetricFormat) -> Iterator[MetricRecord]:
    """
    Decode every non-blank line, skipping lines whose decode error is not
    fatal (an unknown metric type).

    Fatal decode errors propagate to the caller.
    """
    for line_number, line in enumerate(lines, 1):
        if not line.strip():
            continue
        try:
            yield decode_line(line, metric_format)
        except DecodeError as e:
            if e.fatal:
                raise
            logger.warning(f"Skipping line {line_number}: {e}")
