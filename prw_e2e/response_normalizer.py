"""
Response normalizer for turning backend query results into flat text lines.

The normalized line uses the same format as the generated input so the two
files can be diffed line by line. Labels are printed sorted by key, histogram
buckets exclude the +Inf boundary, and summary quantile values are printed
with six decimal places regardless of the backend's precision.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from prw_e2e.data_models import Label, MetricFormat, MetricKind
from prw_e2e.exceptions import UnknownMetricTypeError
from prw_e2e.logging_config import get_logger
from prw_e2e.metric_decoder import parse_labels, split_fields
from prw_e2e.metric_encoder import format_labels, format_quantile, join_fields
from prw_e2e.query_client import QueryResult


NAME_LABEL = "__name__"
BUCKET_LABEL = "le"
QUANTILE_LABEL = "quantile"


@dataclass(frozen=True)
class QueryKey:
    """
    Identifies the series to query for one input line.

    Attributes:
        name: Metric name
        kind: Metric kind
        labels: Label pairs of the input line
    """
    name: str
    kind: MetricKind
    labels: Tuple[Label, ...] = ()

    @classmethod
    def from_line(cls, line: str, metric_format: MetricFormat) -> 'QueryKey':
        """
        Read the name, type and labels fields of an input line.

        Raises:
            MalformedLineError: If the line lacks fields
            UnknownMetricTypeError: If the type is not a supported kind
        """
        name, metric_type, label_block = split_fields(line, metric_format)[:3]
        try:
            kind = MetricKind(metric_type)
        except ValueError:
            raise UnknownMetricTypeError(
                f"Unknown metric type {metric_type!r}", metric_type=metric_type, line=line
            )
        return cls(name=name, kind=kind, labels=parse_labels(label_block, metric_format, line))


@dataclass
class NormalizedLine:
    """
    Normalized answer line for one query key.

    Attributes:
        key: Key the line was produced for
        text: Line text without trailing newline, partial when incomplete
        complete: False when any sub-query failed
        warnings: Descriptions of the failed sub-queries
    """
    key: QueryKey
    text: str = ""
    complete: bool = True
    warnings: List[str] = field(default_factory=list)


class _SubQueryFailed(Exception):
    pass


def first_result(payload: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    results = result_list(payload)
    return results[0] if results else None


def result_list(payload: Dict[str, Any]) -> List[Dict[str, Any]]:
    data = payload.get('data') or {}
    results = data.get('result') or []
    return results if isinstance(results, list) else []


def sample_value(result: Dict[str, Any]) -> str:
    """Return the sample value string of a vector result (``value[1]``)."""
    value = result.get('value') or []
    return str(value[1]) if len(value) > 1 else ""


def series_labels(result: Dict[str, Any], exclude: Tuple[str, ...] = (NAME_LABEL,)) -> List[Label]:
    """Return the labels of a result sorted by key."""
    metric = result.get('metric') or {}
    return sorted((key, value) for key, value in metric.items() if key not in exclude)


def _boundary(result: Dict[str, Any], label: str) -> float:
    raw = (result.get('metric') or {}).get(label, "")
    try:
        return float(raw)
    except ValueError:
        return float('inf')


class ResponseNormalizer:
    """
    Reconstructs flat text lines from backend query responses.

    A failed sub-query is recorded as a warning and leaves the rest of the
    line empty; normalization itself never raises for it.
    """

    def __init__(self, metric_format: MetricFormat, query_fn: Callable[[str], QueryResult]):
        """
        Initialize the normalizer.

        Args:
            metric_format: Delimiters used to print the line
            query_fn: Callable returning a QueryResult for a series name
        """
        self.metric_format = metric_format
        self.query_fn = query_fn
        self.logger = get_logger(__name__)

    def normalize(self, key: QueryKey) -> NormalizedLine:
        """
        Query the series for a key and normalize the responses.

        Args:
            key: Metric to look up

        Returns:
            NormalizedLine, marked incomplete if a sub-query failed
        """
        line = NormalizedLine(key=key)
        self.logger.set_context(metric=key.name, kind=key.kind.value)
        try:
            if key.kind.is_scalar:
                self._normalize_scalar(key, line)
            elif key.kind is MetricKind.HISTOGRAM:
                self._normalize_histogram(key, line)
            else:
                self._normalize_summary(key, line)
        except _SubQueryFailed:
            line.complete = False
        finally:
            self.logger.clear_context()
        return line

    def _fetch(self, series: str, line: NormalizedLine) -> Dict[str, Any]:
        result = self.query_fn(series)

        if not result.success:
            reason = str(result.error) if result.error else "query failed"
        elif result.payload.get('status', 'success') != 'success':
            reason = f"backend status {result.payload.get('status')!r}: {result.payload.get('error', '')}"
        elif not result_list(result.payload):
            reason = "empty result set"
        else:
            return result.payload

        message = f"Sub-query {series} failed: {reason}"
        self.logger.warning(message)
        line.warnings.append(message)
        raise _SubQueryFailed(series)

    def _prefix(self, name: str, key: QueryKey, labels: List[Label]) -> Tuple[str, str, str]:
        return name, key.kind.value, format_labels(labels, self.metric_format)

    def _render(self, prefix: Tuple[str, str, str], tokens: List[str]) -> str:
        values = self.metric_format.subfield_delimiter.join(tokens)
        return join_fields(*prefix, values, self.metric_format)

    def _normalize_scalar(self, key: QueryKey, line: NormalizedLine) -> None:
        result = first_result(self._fetch(key.name, line))
        name = (result.get('metric') or {}).get(NAME_LABEL, key.name)
        line.text = self._render(self._prefix(name, key, series_labels(result)), [sample_value(result)])

    def _normalize_histogram(self, key: QueryKey, line: NormalizedLine) -> None:
        sum_result = first_result(self._fetch(f"{key.name}_sum", line))
        prefix = self._prefix(key.name, key, series_labels(sum_result))
        tokens = [sample_value(sum_result)]

        try:
            tokens.append(sample_value(first_result(self._fetch(f"{key.name}_count", line))))

            buckets = result_list(self._fetch(f"{key.name}_bucket", line))
            finite = [result for result in buckets
                      if (result.get('metric') or {}).get(BUCKET_LABEL) != self.metric_format.infinite_bound]
            finite.sort(key=lambda result: _boundary(result, BUCKET_LABEL))
            tokens.extend(sample_value(result) for result in finite)
        finally:
            line.text = self._render(prefix, tokens)

    def _normalize_summary(self, key: QueryKey, line: NormalizedLine) -> None:
        sum_result = first_result(self._fetch(f"{key.name}_sum", line))
        prefix = self._prefix(key.name, key, series_labels(sum_result))
        tokens = [sample_value(sum_result)]

        try:
            tokens.append(sample_value(first_result(self._fetch(f"{key.name}_count", line))))

            quantiles = result_list(self._fetch(key.name, line))
            quantiles.sort(key=lambda result: _boundary(result, QUANTILE_LABEL))
            for result in quantiles:
                tokens.append(self._format_quantile_value(sample_value(result)))
        finally:
            line.text = self._render(prefix, tokens)

    def _format_quantile_value(self, raw: str) -> str:
        try:
            return format_quantile(float(raw))
        except ValueError:
            self.logger.warning(f"Quantile value {raw!r} is not numeric, printed as-is")
            return raw
