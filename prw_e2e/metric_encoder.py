"""
Synthetic metric generation and flat text encoding.

Each generated record is written as one line of the form::

    name,type,k1 v1 k2 v2,<values>

where ``<values>`` is a single integer for gauges and counters,
``sum count b0 b1 b2`` for histograms and ``sum count q0 q1 q2`` for
summaries, quantile values printed with six decimal places.
"""

from typing import Iterable, Iterator, List, Protocol, Tuple

from prw_e2e.data_models import (
    HistogramValues, Label, MetricFormat, MetricKind, MetricRecord, SummaryValues
)


# Upper bound of the per-run random name suffix
NAME_SUFFIX_BOUND = 5000

KIND_ORDER: Tuple[MetricKind, ...] = (
    MetricKind.COUNTER,
    MetricKind.GAUGE,
    MetricKind.HISTOGRAM,
    MetricKind.SUMMARY,
)


class RandomSource(Protocol):
    """Uniform randomness used by the generator. ``random.Random`` satisfies it."""

    def randrange(self, n: int) -> int:
        ...

    def random(self) -> float:
        ...


def format_number(value) -> str:
    """Print integral values without a fractional part."""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def format_quantile(value: float) -> str:
    return f"{value:f}"


def format_labels(labels: Iterable[Label], metric_format: MetricFormat) -> str:
    """Print label pairs sorted by key; labels form an unordered set."""
    sep = metric_format.subfield_delimiter
    return sep.join(f"{key}{sep}{value}" for key, value in sorted(labels, key=lambda pair: pair[0]))


def join_fields(name: str, kind: str, labels: str, values: str, metric_format: MetricFormat) -> str:
    return metric_format.field_delimiter.join((name, kind, labels, values))


def format_values(record: MetricRecord, metric_format: MetricFormat) -> str:
    """Render the values field of a record."""
    sep = metric_format.subfield_delimiter
    values = record.values

    if record.kind.is_scalar:
        return format_number(values)

    if record.kind is MetricKind.HISTOGRAM:
        tokens: List[str] = [format_number(values.sum), format_number(values.count)]
        tokens.extend(format_number(count) for count in values.bucket_counts)
        return sep.join(tokens)

    tokens = [format_number(values.sum), format_number(values.count)]
    tokens.extend(format_quantile(value) for value in values.quantile_values)
    return sep.join(tokens)


def encode_line(record: MetricRecord, metric_format: MetricFormat) -> str:
    """
    Encode a record as one line of the flat text format.

    Args:
        record: Record to encode
        metric_format: Delimiters and constant tables

    Returns:
        Encoded line without trailing newline
    """
    return join_fields(
        record.name,
        record.kind.value,
        format_labels(record.labels, metric_format),
        format_values(record, metric_format),
        metric_format
    )


class MetricGenerator:
    """
    Generates random metric records for a single test run.

    The name suffix is drawn once per generator so that metric names do not
    collide with series left in the backend by earlier runs.
    """

    def __init__(self, metric_format: MetricFormat, base_name: str, value_bound: int,
                 rng: RandomSource):
        """
        Initialize the generator.

        Args:
            metric_format: Label catalog and bounds to draw from
            base_name: Base metric name, followed by the index and suffix
            value_bound: Exclusive upper bound for integer values
            rng: Source of randomness
        """
        self.metric_format = metric_format
        self.base_name = base_name
        self.value_bound = value_bound
        self.rng = rng
        self.suffix = str(rng.randrange(NAME_SUFFIX_BOUND))

    def generate(self, index: int) -> MetricRecord:
        """
        Generate the record for the given index.

        Args:
            index: Position of the record in the run

        Returns:
            New MetricRecord
        """
        rng = self.rng
        catalog = self.metric_format.label_catalog

        kind = KIND_ORDER[rng.randrange(len(KIND_ORDER))]
        label_count = rng.randrange(len(catalog)) + 1
        labels = tuple(catalog[:label_count])

        if kind.is_scalar:
            values = rng.randrange(self.value_bound)
        elif kind is MetricKind.HISTOGRAM:
            buckets = tuple(rng.randrange(self.value_bound) for _ in self.metric_format.bounds)
            values = HistogramValues(
                sum=rng.randrange(self.value_bound),
                count=sum(buckets),
                bucket_counts=buckets
            )
        else:
            values = SummaryValues(
                sum=rng.randrange(self.value_bound),
                count=rng.randrange(self.value_bound),
                # Rounded so the six-decimal text form decodes to the same float
                quantile_values=tuple(round(rng.random(), 6) for _ in self.metric_format.quantiles)
            )

        return MetricRecord(
            name=f"{self.base_name}{index}{self.suffix}",
            kind=kind,
            labels=labels,
            values=values
        )

    def generate_records(self, count: int) -> List[MetricRecord]:
        return [self.generate(i) for i in range(count)]


def generate_lines(generator: MetricGenerator, count: int) -> Iterator[str]:
    """Yield ``count`` encoded lines from the generator."""
    for i in range(count):
        yield encode_line(generator.generate(i), generator.metric_format)
