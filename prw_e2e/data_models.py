"""
Data models for the remote-write end-to-end test pipeline.

This module contains the dataclasses for synthetic metric records, their
kind-dependent value shapes, and the immutable format description shared
by the encoder, decoder, payload builder and response normalizer.
"""

from dataclasses import dataclass
from enum import Enum
from typing import FrozenSet, Tuple, Union

from prw_e2e.exceptions import InvalidRecordShapeError


Label = Tuple[str, str]

DEFAULT_LABEL_CATALOG: Tuple[Label, ...] = (
    ('label1', 'value1'),
    ('label2', 'value2'),
    ('label3', 'value3'),
    ('label4', 'value4'),
)

# Used both as histogram bucket bounds and summary quantile levels
DEFAULT_BOUNDS: Tuple[float, ...] = (0.01, 0.5, 0.99)


class MetricKind(Enum):
    """Supported metric kinds, valued by their name in the flat text format."""
    GAUGE = "gauge"
    COUNTER = "counter"
    HISTOGRAM = "histogram"
    SUMMARY = "summary"

    @property
    def is_scalar(self) -> bool:
        return self in (MetricKind.GAUGE, MetricKind.COUNTER)


@dataclass(frozen=True)
class HistogramValues:
    """
    Values of a histogram record.

    Attributes:
        sum: Sum of all observations
        count: Number of observations
        bucket_counts: Count for each fixed bucket bound, not cumulative
    """
    sum: int
    count: int
    bucket_counts: Tuple[int, ...]


@dataclass(frozen=True)
class SummaryValues:
    """
    Values of a summary record.

    Attributes:
        sum: Sum of all observations
        count: Number of observations
        quantile_values: Value at each fixed quantile level
    """
    sum: float
    count: float
    quantile_values: Tuple[float, ...]


MetricValues = Union[int, float, HistogramValues, SummaryValues]


@dataclass(frozen=True)
class MetricRecord:
    """
    Represents a single synthetic metric flowing through the pipeline.

    Attributes:
        name: Metric name, unique per test run
        kind: Metric kind, determines the shape of values
        labels: Label pairs in declaration order
        values: Number for gauge/counter, HistogramValues or SummaryValues
    """
    name: str
    kind: MetricKind
    labels: Tuple[Label, ...]
    values: MetricValues

    def __post_init__(self):
        if self.kind.is_scalar:
            valid = isinstance(self.values, (int, float)) and not isinstance(self.values, bool)
        elif self.kind is MetricKind.HISTOGRAM:
            valid = isinstance(self.values, HistogramValues)
        else:
            valid = isinstance(self.values, SummaryValues)

        if not valid:
            raise InvalidRecordShapeError(
                f"{self.kind.value} record {self.name} cannot carry "
                f"{type(self.values).__name__} values",
                context={'name': self.name, 'kind': self.kind.value}
            )

    def label_set(self) -> FrozenSet[Label]:
        """Labels as an unordered set of pairs."""
        return frozenset(self.labels)


@dataclass(frozen=True)
class MetricFormat:
    """
    Immutable description of the flat text format and its constant tables.

    Attributes:
        label_catalog: Label pairs records draw a prefix from
        bounds: Histogram bucket bounds, reused as summary quantile levels
        field_delimiter: Separates name, type, labels and values
        subfield_delimiter: Separates tokens inside the labels and values fields
        infinite_bound: Bucket boundary label the backend adds for +Inf
    """
    label_catalog: Tuple[Label, ...] = DEFAULT_LABEL_CATALOG
    bounds: Tuple[float, ...] = DEFAULT_BOUNDS
    field_delimiter: str = ","
    subfield_delimiter: str = " "
    infinite_bound: str = "+Inf"

    @property
    def quantiles(self) -> Tuple[float, ...]:
        return self.bounds
