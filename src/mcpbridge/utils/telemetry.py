"""OpenTelemetry tracing for tool calls, downstream requests and bindings.

Only the OpenTelemetry API is a hard dependency; until
:func:`configure_telemetry` installs an SDK provider every span is a no-op.

Usage::

    from mcpbridge.utils.telemetry import ATTR_TOOL_NAME, get_tracer, mark_failed

    _tracer = get_tracer(__name__)

    with _tracer.start_as_current_span("mcpbridge.tool.call") as span:
        span.set_attribute(ATTR_TOOL_NAME, "search_documents")
        ...
        if invocation.error is not None:
            mark_failed(span, invocation.error)

Exporting needs the ``otel`` extra (``pip install mcpbridge[otel]``).
"""

from __future__ import annotations

from typing import Any

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

# ---------------------------------------------------------------------------
# Span attribute keys
# ---------------------------------------------------------------------------

ATTR_SERVICE = "mcpbridge.service"
ATTR_TOOL_NAME = "mcpbridge.tool.name"
ATTR_INVOCATION_STATE = "mcpbridge.invocation.state"
ATTR_ERROR_KIND = "mcpbridge.error.kind"
ATTR_DOWNSTREAM_URL = "mcpbridge.downstream.url"
ATTR_DOWNSTREAM_METHOD = "mcpbridge.downstream.method"
ATTR_DOWNSTREAM_STATUS = "mcpbridge.downstream.status"
ATTR_TRANSPORT = "mcpbridge.transport"

_INSTRUMENTATION_NAME = "mcpbridge"

_SDK_HINT = "Install it with: pip install mcpbridge[otel]"


def get_tracer(name: str | None = None) -> trace.Tracer:
    """Return the tracer for *name* (a no-op tracer until the SDK is configured)."""
    return trace.get_tracer(name or _INSTRUMENTATION_NAME)


def mark_failed(span: trace.Span, error: Exception) -> None:
    """Tag *span* with the error's kind and set its status to ``ERROR``.

    Bridge errors carry a ``kind`` (``ToolNotFound``, ``DownstreamUnreachable``
    and so on); any other exception is tagged with its class name.
    """
    kind = getattr(error, "kind", None) or type(error).__name__
    span.set_attribute(ATTR_ERROR_KIND, kind)
    span.set_status(Status(StatusCode.ERROR, str(error)))


def configure_telemetry(
    *,
    service_name: str = "mcpbridge",
    export_to_console: bool = False,
    otlp_endpoint: str | None = None,
) -> None:
    """Install an SDK tracer provider for *service_name*.

    ``export_to_console`` prints finished spans to stdout, so it must stay off
    for a server on the stdio binding.  ``otlp_endpoint`` batches spans to an
    OTLP/gRPC collector.

    Raises:
        ImportError: When ``opentelemetry-sdk`` (or, for OTLP export,
            ``opentelemetry-exporter-otlp``) is missing.
    """
    try:
        from opentelemetry.sdk.resources import Resource  # pyright: ignore[reportMissingImports]
        from opentelemetry.sdk.trace import TracerProvider  # pyright: ignore[reportMissingImports]
    except ImportError as exc:
        msg = f"opentelemetry-sdk is required for configure_telemetry(). {_SDK_HINT}"
        raise ImportError(msg) from exc

    provider = TracerProvider(resource=Resource.create({"service.name": service_name}))
    for processor in _span_processors(export_to_console, otlp_endpoint):
        provider.add_span_processor(processor)
    trace.set_tracer_provider(provider)


def _span_processors(export_to_console: bool, otlp_endpoint: str | None) -> list[Any]:
    from opentelemetry.sdk.trace.export import (  # pyright: ignore[reportMissingImports]
        BatchSpanProcessor,
        ConsoleSpanExporter,
        SimpleSpanProcessor,
    )

    processors: list[Any] = []
    if export_to_console:
        processors.append(SimpleSpanProcessor(ConsoleSpanExporter()))
    if otlp_endpoint:
        try:
            from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import (  # pyright: ignore[reportMissingImports]
                OTLPSpanExporter,
            )
        except ImportError as exc:
            msg = f"opentelemetry-exporter-otlp is required for OTLP export. {_SDK_HINT}"
            raise ImportError(msg) from exc
        processors.append(BatchSpanProcessor(OTLPSpanExporter(endpoint=otlp_endpoint)))
    return processors
