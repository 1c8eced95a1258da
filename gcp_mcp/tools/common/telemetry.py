"""Telemetry setup for the MCP server using OpenTelemetry."""

import json
import logging
import sys
from typing import Any

from opentelemetry import metrics, trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.logging import LoggingInstrumentor
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.semconv.resource import ResourceAttributes

from ...config import Settings

SERVICE_NAME = "gcp-mcp"


def get_tracer(name: str) -> trace.Tracer:
    """Returns a tracer for the given module name."""
    return trace.get_tracer(name)


def get_meter(name: str) -> metrics.Meter:
    """Returns a meter for the given module name."""
    return metrics.get_meter(name)


def truncate(value: Any, limit: int = 200) -> str:
    """String form of value, cut to `limit` characters."""
    val_str = str(value)
    if len(val_str) > limit:
        return val_str[:limit] + "... (truncated)"
    return val_str


class JsonFormatter(logging.Formatter):
    """JSON log formatter with OTel and Cloud Logging trace correlation."""

    def __init__(self, project_id: str | None = None) -> None:
        super().__init__()
        self.project_id = project_id

    def format(self, record: logging.LogRecord) -> str:
        log_obj: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "severity": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "func": record.funcName,
        }

        span_context = trace.get_current_span().get_span_context()
        if span_context.is_valid:
            trace_id = format(span_context.trace_id, "032x")
            span_id = format(span_context.span_id, "016x")
            log_obj["trace_id"] = trace_id
            log_obj["span_id"] = span_id

            if self.project_id:
                log_obj["logging.googleapis.com/trace"] = (
                    f"projects/{self.project_id}/traces/{trace_id}"
                )
                log_obj["logging.googleapis.com/spanId"] = span_id

        if record.exc_info:
            log_obj["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_obj)


def setup_telemetry(settings: Settings) -> None:
    """Configures traces, metrics and logging for the server.

    Configures:
    - Traces: OTLP gRPC to OTEL_EXPORTER_OTLP_ENDPOINT when set, otherwise
      an SDK provider with no exporter (spans still correlate logs)
    - Metrics: SDK MeterProvider
    - Logs: text or JSON on stderr. stdout is reserved for the stdio transport.
    """
    resource = Resource.create(
        {
            ResourceAttributes.SERVICE_NAME: SERVICE_NAME,
            "deployment.environment": settings.environment,
            **({"gcp.project_id": settings.project_id} if settings.project_id else {}),
        }
    )

    if not isinstance(trace.get_tracer_provider(), TracerProvider):
        tracer_provider = TracerProvider(resource=resource)
        if settings.otlp_endpoint:
            tracer_provider.add_span_processor(
                BatchSpanProcessor(
                    OTLPSpanExporter(endpoint=settings.otlp_endpoint, insecure=True)
                )
            )
        trace.set_tracer_provider(tracer_provider)

    if not isinstance(metrics.get_meter_provider(), MeterProvider):
        metrics.set_meter_provider(MeterProvider(resource=resource))

    # Adds otelTraceID/otelSpanID to every LogRecord
    LoggingInstrumentor().instrument(set_logging_format=False)

    _configure_logging_handlers(
        getattr(logging, settings.log_level), settings.log_format, settings.project_id
    )


def _configure_logging_handlers(
    level: int, log_format: str, project_id: str | None
) -> None:
    """Internal helper to configure logging handlers."""
    handler = logging.StreamHandler(sys.stderr)
    if log_format == "JSON":
        handler.setFormatter(JsonFormatter(project_id))
    else:
        handler.setFormatter(
            logging.Formatter(
                "%(asctime)s [%(levelname)s] %(name)s [trace_id=%(otelTraceID)s span_id=%(otelSpanID)s]: %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(level)
