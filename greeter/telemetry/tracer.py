"""
OpenTelemetry Trace Context Management

Trace context travels with every call as string metadata (W3C traceparent),
so a span opened by a client driver parents the server handler's span across
the in-process and gRPC frameworks alike.
"""

import logging
from contextlib import contextmanager
from typing import Dict, Mapping, Optional

from opentelemetry import context as otel_context
from opentelemetry import propagate, trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.sdk.trace.sampling import ALWAYS_ON
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter

logger = logging.getLogger(__name__)


def setup_tracer(service_name: str, otlp_endpoint: str = "localhost:4317"):
    """Configure OpenTelemetry tracer

    Args:
        service_name: Service name
        otlp_endpoint: OTLP receiver address
    """
    provider = TracerProvider(
        sampler=ALWAYS_ON,
        resource=Resource.create({"service.name": service_name})
    )
    provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=otlp_endpoint, insecure=True)))
    trace.set_tracer_provider(provider)

    logger.info(f"OpenTelemetry trace configured, service name: {service_name}, OTLP endpoint: {otlp_endpoint}")

    return trace.get_tracer(service_name)


def inject_trace_context() -> Dict[str, str]:
    """Serialize the current trace context into a metadata carrier

    Returns:
        Dict[str, str]: Propagation headers; empty when no span is active
    """
    carrier: Dict[str, str] = {}
    propagate.inject(carrier)
    return carrier


def extract_trace_context(carrier: Optional[Mapping[str, str]]) -> otel_context.Context:
    """Rebuild an OpenTelemetry Context from a metadata carrier"""
    return propagate.extract(dict(carrier or {}))


@contextmanager
def with_trace_context(carrier: Optional[Mapping[str, str]]):
    """Make the trace context found in ``carrier`` current for the block"""
    if not carrier:
        yield
        return

    token = otel_context.attach(extract_trace_context(carrier))
    try:
        yield
    finally:
        otel_context.detach(token)


def create_span(name: str, attributes: Dict[str, str] = None, kind: trace.SpanKind = trace.SpanKind.INTERNAL):
    """Start a span and make it current (use as a context manager)

    Args:
        name: Span name
        attributes: Span attributes
        kind: Span kind
    """
    tracer = trace.get_tracer(__name__)
    return tracer.start_as_current_span(name, attributes=attributes or {}, kind=kind)
