"""
OpenTelemetry Metrics Collection

Counters and latency histograms for calls on both sides. Until setup_metrics()
installs a MeterProvider, the OpenTelemetry API hands out no-op instruments.
"""

import logging
import threading
from typing import Any, Dict

from opentelemetry import metrics
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import (
    ConsoleMetricExporter,
    PeriodicExportingMetricReader
)
from opentelemetry.sdk.resources import Resource
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter

logger = logging.getLogger(__name__)

# Instrument caches
_counters = {}
_histograms = {}
_lock = threading.Lock()


def setup_metrics(service_name: str,
                  otlp_endpoint: str = "localhost:4317",
                  export_interval_ms: int = 5000,
                  console: bool = False):
    """Configure OpenTelemetry metrics collection

    Args:
        service_name: Service name
        otlp_endpoint: OTLP receiver address
        export_interval_ms: Metrics export interval in milliseconds
        console: Also print metrics to stdout (for development debugging)

    Returns:
        Meter: Meter for the service
    """
    readers = [
        PeriodicExportingMetricReader(
            OTLPMetricExporter(endpoint=otlp_endpoint, insecure=True),
            export_interval_millis=export_interval_ms
        )
    ]
    if console:
        readers.append(PeriodicExportingMetricReader(
            ConsoleMetricExporter(),
            export_interval_millis=export_interval_ms
        ))

    provider = MeterProvider(
        resource=Resource.create({"service.name": service_name}),
        metric_readers=readers
    )
    metrics.set_meter_provider(provider)

    logger.info(f"OpenTelemetry metrics configured, service name: {service_name}, OTLP endpoint: {otlp_endpoint}")

    return metrics.get_meter(service_name)


# Descriptions of the instruments the call runtime records
DESCRIPTIONS = {
    "rpc.client.calls": "Calls opened by client drivers",
    "rpc.client.errors": "Client calls that ended with a CallError",
    "rpc.client.latency": "Client call duration, open to terminal state",
    "rpc.server.started": "Server adapter starts",
    "rpc.server.calls": "Calls dispatched to a handler",
    "rpc.server.errors": "Handler runs that aborted their call",
    "rpc.server.call.latency": "Handler run duration",
    "rpc.stream.messages": "Replies emitted on server streams",
}


def get_counter(name: str, unit: str = "1"):
    """Get or create the counter called ``name``"""
    with _lock:
        if name not in _counters:
            _counters[name] = metrics.get_meter(__name__).create_counter(
                name=name,
                description=DESCRIPTIONS.get(name, name),
                unit=unit
            )
        return _counters[name]


def get_histogram(name: str, unit: str = "ms"):
    """Get or create the histogram called ``name`` (milliseconds by default)"""
    with _lock:
        if name not in _histograms:
            _histograms[name] = metrics.get_meter(__name__).create_histogram(
                name=name,
                description=DESCRIPTIONS.get(name, name),
                unit=unit
            )
        return _histograms[name]


def increment_counter(name: str, amount: int = 1, attributes: Dict[str, Any] = None):
    get_counter(name).add(amount, attributes or {})


def record_latency(name: str, value_ms: float, attributes: Dict[str, Any] = None):
    """Record a duration in milliseconds, e.g. ``{"method": "SayHello"}`` attributes"""
    get_histogram(name).record(value_ms, attributes or {})
