"""Logging and tracing for Governor.

Usage:
    from governor.telemetry import init_telemetry, flow_span

    # Initialize once at startup
    init_telemetry()

    with flow_span("advance", item_id=42, target_status="ready") as span:
        ...

Environment Variables:
    LOG_LEVEL: Logging level (DEBUG, INFO, WARNING, ERROR) - default: INFO
    OTEL_TRACES_EXPORTER: Exporter type (otlp, console, none) - default: none
    OTEL_EXPORTER_OTLP_ENDPOINT: OTLP collector endpoint - default: http://localhost:4317
    OTEL_SERVICE_NAME: Service name for traces - default: governor
    OTEL_SDK_DISABLED: Disable all tracing - default: false
"""

from .config import (
    ExporterType,
    TelemetryConfig,
    init_telemetry,
    is_telemetry_enabled,
    shutdown_telemetry,
)
from .spans import (
    flow_span,
    get_tracer,
    record_flow_outcome,
    record_step_event,
    step_span,
)

__all__ = [
    # Configuration
    "ExporterType",
    "TelemetryConfig",
    "init_telemetry",
    "shutdown_telemetry",
    "is_telemetry_enabled",
    # Spans
    "get_tracer",
    "flow_span",
    "step_span",
    "record_flow_outcome",
    "record_step_event",
]
