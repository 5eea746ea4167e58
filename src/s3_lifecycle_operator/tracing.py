"""OpenTelemetry tracing helpers."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Iterator

from opentelemetry import trace

_tracer = trace.get_tracer("s3_lifecycle_operator")


@contextmanager
def trace_span(name: str, kind: str | None = None, attributes: dict[str, Any] | None = None) -> Iterator[Any]:
    """Run the enclosed block inside a span.

    Exceptions raised inside the block are recorded on the span and re-raised.
    """
    span_attributes: dict[str, Any] = {}
    if kind:
        span_attributes["k8s.kind"] = kind
    for key, value in (attributes or {}).items():
        if value is not None:
            span_attributes[key] = value

    with _tracer.start_as_current_span(name, attributes=span_attributes) as span:
        yield span
