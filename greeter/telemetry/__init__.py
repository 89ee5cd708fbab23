"""
OpenTelemetry Integration Module

Provides distributed tracing and metrics collection capabilities:
- tracer: Trace context propagation through call metadata, spans
- metrics: Call counters and latency histograms
"""

from .tracer import (
    setup_tracer,
    inject_trace_context,
    extract_trace_context,
    with_trace_context,
    create_span
)
from .metrics import setup_metrics, increment_counter, record_latency

__all__ = [
    "setup_tracer",
    "setup_metrics",
    "inject_trace_context",
    "extract_trace_context",
    "with_trace_context",
    "create_span",
    "increment_counter",
    "record_latency"
]
