"""
OTLP gRPC sender exporting one metric per request to the Collector.
"""

import time
from dataclasses import dataclass
from typing import Callable, Optional

import grpc
from opentelemetry.proto.collector.metrics.v1 import metrics_service_pb2_grpc
from opentelemetry.proto.metrics.v1 import metrics_pb2

from prw_e2e.exceptions import TransportError, create_transport_error
from prw_e2e.logging_config import get_logger
from prw_e2e.payload_builder import build_export_request


@dataclass
class SendResult:
    """Outcome of exporting a single metric."""
    metric_name: str
    success: bool
    error: Optional[TransportError] = None
    duration: float = 0.0


class OTLPSender:
    """
    Sends metrics to an OpenTelemetry Collector over an insecure gRPC channel.

    One channel is opened per sender and reused for every export. After each
    export the sender sleeps for the configured delay so the Collector can
    flush to the backend before the next metric arrives.
    """

    def __init__(self, endpoint: str, request_timeout: float = 30.0,
                 inter_send_delay: float = 1.0,
                 channel: Optional[grpc.Channel] = None,
                 sleep: Callable[[float], None] = time.sleep):
        """
        Initialize the sender.

        Args:
            endpoint: Collector address in host:port form
            request_timeout: Deadline for each export call in seconds
            inter_send_delay: Pause after each export in seconds
            channel: Optional pre-built channel, an insecure one is opened otherwise
            sleep: Sleep function, replaceable in tests
        """
        self.endpoint = endpoint
        self.request_timeout = request_timeout
        self.inter_send_delay = inter_send_delay
        self.sleep = sleep
        self.channel = channel or grpc.insecure_channel(endpoint)
        self.stub = metrics_service_pb2_grpc.MetricsServiceStub(self.channel)
        self.logger = get_logger(__name__)

    def send(self, metric: metrics_pb2.Metric) -> SendResult:
        """
        Export a single metric.

        Args:
            metric: Metric to export

        Returns:
            SendResult, failed with a TransportError if the call raised
        """
        request = build_export_request(metric)
        start_time = time.time()

        try:
            self.stub.Export(request, timeout=self.request_timeout)
        except grpc.RpcError as e:
            code = e.code() if hasattr(e, 'code') else None
            status = code.name if code is not None else None
            self.logger.error(f"Export of {metric.name} failed with status {status}")
            result = SendResult(
                metric_name=metric.name,
                success=False,
                error=create_transport_error(e, self.endpoint, status_code=status),
                duration=time.time() - start_time
            )
        else:
            result = SendResult(metric_name=metric.name, success=True,
                                duration=time.time() - start_time)
            self.logger.debug(f"Exported {metric.name} in {result.duration:.3f}s")
        finally:
            if self.inter_send_delay > 0:
                self.sleep(self.inter_send_delay)

        return result

    def close(self) -> None:
        self.channel.close()

    def __enter__(self) -> 'OTLPSender':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
