"""
OTel helpers for deployment runs.

Conventions run inside spans created by the pipeline; these helpers attach
span events for journal writes and idempotent skips to whatever span is
current. Without an SDK configured the OpenTelemetry API is a no-op.

Usage::

    from deploycore.otel import add_span_event, get_tracer

    tracer = get_tracer()
    with tracer.start_as_current_span("deploycore.deployment"):
        add_span_event("deploycore.already_installed", {"journal.target": target.key})
"""

from __future__ import annotations

from typing import Mapping, Optional, Union

from opentelemetry import trace as otel_trace


AttributeValue = Union[str, int, float, bool]

TRACER_NAME = "deploycore.pipeline"


def get_tracer(provider: Optional[otel_trace.TracerProvider] = None) -> otel_trace.Tracer:
    """Tracer from ``provider``, or from the global provider."""
    if provider is not None:
        return provider.get_tracer(TRACER_NAME)
    return otel_trace.get_tracer(TRACER_NAME)


def add_span_event(name: str, attributes: Mapping[str, AttributeValue]) -> None:
    """Add an event to the current OTel span if it is recording."""
    span = otel_trace.get_current_span()
    if span and span.is_recording():
        span.add_event(name=name, attributes=dict(attributes))


def mark_span_failed(span: otel_trace.Span, exc: BaseException) -> None:
    """Record ``exc`` on ``span`` and set an ERROR status."""
    span.record_exception(exc)
    span.set_status(otel_trace.Status(otel_trace.StatusCode.ERROR, f"{type(exc).__name__}: {exc}"))
