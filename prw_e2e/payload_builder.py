"""
Payload builder for converting decoded records into OTLP metrics.

This module maps every metric kind onto an OTLP data type and aggregation
temporality and builds the protobuf messages exported to the Collector.

Histogram bucket counts are carried as independent per-bucket counts
against the configured bounds, mirroring the flat text format. This is a
known simplification: it is not a protocol-correct cumulative histogram and
omits the implicit +Inf bucket.
"""

import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List

from opentelemetry.proto.collector.metrics.v1 import metrics_service_pb2
from opentelemetry.proto.common.v1 import common_pb2
from opentelemetry.proto.metrics.v1 import metrics_pb2
from opentelemetry.proto.resource.v1 import resource_pb2

from prw_e2e.data_models import (
    HistogramValues, MetricFormat, MetricKind, MetricRecord, SummaryValues
)
from prw_e2e.exceptions import InvalidRecordShapeError


SERVICE_NAME = "prw-e2e"
SCOPE_NAME = "prw_e2e.payload_builder"


class ExportType(Enum):
    """OTLP data types a record can be exported as."""
    GAUGE = "gauge"
    SUM = "sum"
    HISTOGRAM = "histogram"
    SUMMARY = "summary"


@dataclass(frozen=True)
class ExportDescriptor:
    """
    OTLP type information for one metric kind.

    Attributes:
        export_type: OTLP data type
        temporality: OTLP AggregationTemporality value
        monotonic: Whether a SUM is monotonic
    """
    export_type: ExportType
    temporality: int
    monotonic: bool = False


EXPORT_DESCRIPTORS: Dict[MetricKind, ExportDescriptor] = {
    MetricKind.GAUGE: ExportDescriptor(
        ExportType.GAUGE, metrics_pb2.AGGREGATION_TEMPORALITY_UNSPECIFIED),
    MetricKind.COUNTER: ExportDescriptor(
        ExportType.SUM, metrics_pb2.AGGREGATION_TEMPORALITY_CUMULATIVE, monotonic=True),
    MetricKind.HISTOGRAM: ExportDescriptor(
        ExportType.HISTOGRAM, metrics_pb2.AGGREGATION_TEMPORALITY_CUMULATIVE),
    MetricKind.SUMMARY: ExportDescriptor(
        ExportType.SUMMARY, metrics_pb2.AGGREGATION_TEMPORALITY_UNSPECIFIED),
}


def export_descriptor(kind: MetricKind) -> ExportDescriptor:
    """Return the OTLP type and temporality a metric kind is exported with."""
    return EXPORT_DESCRIPTORS[kind]


def build_attributes(labels) -> List[common_pb2.KeyValue]:
    return [
        common_pb2.KeyValue(key=key, value=common_pb2.AnyValue(string_value=value))
        for key, value in labels
    ]


def build_export_request(metric: metrics_pb2.Metric) -> metrics_service_pb2.ExportMetricsServiceRequest:
    """
    Wrap a single metric in an export request.

    Args:
        metric: Metric to export

    Returns:
        ExportMetricsServiceRequest with one resource, scope and metric
    """
    resource = resource_pb2.Resource(attributes=build_attributes([('service.name', SERVICE_NAME)]))
    return metrics_service_pb2.ExportMetricsServiceRequest(
        resource_metrics=[
            metrics_pb2.ResourceMetrics(
                resource=resource,
                scope_metrics=[
                    metrics_pb2.ScopeMetrics(
                        scope=common_pb2.InstrumentationScope(name=SCOPE_NAME),
                        metrics=[metric]
                    )
                ]
            )
        ]
    )


class PayloadBuilder:
    """
    Builds OTLP metrics from decoded metric records.

    Building is total for every well-formed record; a values shape that does
    not fit the configured bounds is a contract violation and fails fast.
    """

    def __init__(self, metric_format: MetricFormat, clock: Callable[[], int] = time.time_ns):
        """
        Initialize the payload builder.

        Args:
            metric_format: Bounds attached to histogram and summary points
            clock: Wall-clock source in nanoseconds since the epoch
        """
        self.metric_format = metric_format
        self.clock = clock

    def build(self, record: MetricRecord) -> metrics_pb2.Metric:
        """
        Build the OTLP metric for a record.

        Args:
            record: Decoded metric record

        Returns:
            OTLP Metric with a single data point

        Raises:
            InvalidRecordShapeError: If the values do not match the kind and bounds
        """
        descriptor = export_descriptor(record.kind)
        attributes = build_attributes(record.labels)
        timestamp = self.clock()

        if descriptor.export_type is ExportType.GAUGE:
            point = self._number_point(record, attributes, timestamp)
            return metrics_pb2.Metric(name=record.name, gauge=metrics_pb2.Gauge(data_points=[point]))

        if descriptor.export_type is ExportType.SUM:
            point = self._number_point(record, attributes, timestamp)
            return metrics_pb2.Metric(
                name=record.name,
                sum=metrics_pb2.Sum(
                    data_points=[point],
                    aggregation_temporality=descriptor.temporality,
                    is_monotonic=descriptor.monotonic
                )
            )

        if descriptor.export_type is ExportType.HISTOGRAM:
            point = self._histogram_point(record, attributes, timestamp)
            return metrics_pb2.Metric(
                name=record.name,
                histogram=metrics_pb2.Histogram(
                    data_points=[point],
                    aggregation_temporality=descriptor.temporality
                )
            )

        point = self._summary_point(record, attributes, timestamp)
        return metrics_pb2.Metric(name=record.name, summary=metrics_pb2.Summary(data_points=[point]))

    def _number_point(self, record: MetricRecord, attributes, timestamp: int) -> metrics_pb2.NumberDataPoint:
        value = record.values
        if not isinstance(value, (int, float)):
            raise self._shape_error(record, "expected a single number")
        return metrics_pb2.NumberDataPoint(
            attributes=attributes,
            time_unix_nano=timestamp,
            as_int=int(value)
        )

    def _histogram_point(self, record: MetricRecord, attributes, timestamp: int) -> metrics_pb2.HistogramDataPoint:
        values = record.values
        bounds = self.metric_format.bounds
        if not isinstance(values, HistogramValues):
            raise self._shape_error(record, "expected histogram values")
        if len(values.bucket_counts) != len(bounds):
            raise self._shape_error(
                record, f"expected {len(bounds)} bucket counts, got {len(values.bucket_counts)}")

        return metrics_pb2.HistogramDataPoint(
            attributes=attributes,
            time_unix_nano=timestamp,
            count=int(values.count),
            sum=float(values.sum),
            bucket_counts=[int(count) for count in values.bucket_counts],
            explicit_bounds=list(bounds)
        )

    def _summary_point(self, record: MetricRecord, attributes, timestamp: int) -> metrics_pb2.SummaryDataPoint:
        values = record.values
        quantiles = self.metric_format.quantiles
        if not isinstance(values, SummaryValues):
            raise self._shape_error(record, "expected summary values")
        if len(values.quantile_values) != len(quantiles):
            raise self._shape_error(
                record, f"expected {len(quantiles)} quantile values, got {len(values.quantile_values)}")

        return metrics_pb2.SummaryDataPoint(
            attributes=attributes,
            time_unix_nano=timestamp,
            count=int(values.count),
            sum=float(values.sum),
            quantile_values=[
                metrics_pb2.SummaryDataPoint.ValueAtQuantile(quantile=level, value=value)
                for level, value in zip(quantiles, values.quantile_values)
            ]
        )

    @staticmethod
    def _shape_error(record: MetricRecord, details: str) -> InvalidRecordShapeError:
        return InvalidRecordShapeError(
            f"Cannot build {record.kind.value} metric {record.name}: {details}",
            context={'name': record.name, 'kind': record.kind.value}
        )
