"""Telemetry configuration and initialization.

This module handles:
- Reading telemetry configuration from environment variables
- Setting up Python logging with appropriate levels
- Initializing an OpenTelemetry tracer provider and exporter
"""

import logging
import os
import sys
from dataclasses import dataclass
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)

# Global state
_telemetry_initialized = False
_tracer_provider = None


class ExporterType(Enum):
    """Supported trace exporters."""

    OTLP = "otlp"
    CONSOLE = "console"
    NONE = "none"


@dataclass
class TelemetryConfig:
    """Configuration for logging and tracing.

    All values are read from environment variables with sensible defaults.
    """

    # Logging
    log_level: str = "INFO"

    # OpenTelemetry
    service_name: str = "governor"
    otlp_endpoint: str = "http://localhost:4317"
    traces_exporter: ExporterType = ExporterType.NONE
    otel_disabled: bool = False

    @classmethod
    def from_env(cls) -> "TelemetryConfig":
        """Create config from environment variables."""
        exporter_str = os.getenv("OTEL_TRACES_EXPORTER", "none").lower()
        try:
            exporter = ExporterType(exporter_str)
        except ValueError:
            logger.warning(f"Unknown exporter type '{exporter_str}', defaulting to none")
            exporter = ExporterType.NONE

        otel_disabled = os.getenv("OTEL_SDK_DISABLED", "false").lower() in ("true", "1", "yes")

        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            service_name=os.getenv("OTEL_SERVICE_NAME", "governor"),
            otlp_endpoint=os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT", "http://localhost:4317"),
            traces_exporter=exporter,
            otel_disabled=otel_disabled,
        )


def _setup_logging(config: TelemetryConfig) -> None:
    """Configure Python logging based on config.

    Logs go to stderr so stdout stays free for command output.
    """
    level = logging.getLevelName(config.log_level)
    if not isinstance(level, int):
        level = logging.INFO

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Remove existing handlers to avoid duplicates
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(level)
    formatter = logging.Formatter(
        fmt="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    logging.getLogger("governor").setLevel(level)

    if level > logging.DEBUG:
        logging.getLogger("urllib3").setLevel(logging.WARNING)
        logging.getLogger("botocore").setLevel(logging.WARNING)

    logger.debug(f"Logging configured: level={config.log_level}")


def _setup_tracing(config: TelemetryConfig) -> Any:
    """Install a TracerProvider with the configured exporter.

    Returns the provider, or None when tracing is disabled or unavailable.
    """
    if config.otel_disabled or config.traces_exporter == ExporterType.NONE:
        logger.debug("OpenTelemetry exporter disabled")
        return None

    try:
        from opentelemetry import trace
        from opentelemetry.sdk.resources import SERVICE_NAME, Resource
        from opentelemetry.sdk.trace import TracerProvider
        from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
    except ImportError:
        logger.warning("opentelemetry-sdk not available, tracing disabled")
        return None

    resource = Resource.create({SERVICE_NAME: config.service_name})
    tracer_provider = TracerProvider(resource=resource)

    if config.traces_exporter == ExporterType.OTLP:
        try:
            from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
        except ImportError:
            logger.warning(
                "OTLP exporter not installed. Install with: pip install 'governor[otlp]'"
            )
            return None
        exporter = OTLPSpanExporter(endpoint=config.otlp_endpoint)
        logger.info(f"OTLP exporter configured: endpoint={config.otlp_endpoint}")
    else:
        exporter = ConsoleSpanExporter(out=sys.stderr)
        logger.info("Console exporter configured")

    tracer_provider.add_span_processor(BatchSpanProcessor(exporter))
    trace.set_tracer_provider(tracer_provider)
    return tracer_provider


def init_telemetry(config: TelemetryConfig | None = None) -> None:
    """Initialize logging and tracing.

    Call once at process start, before running any flow.

    Args:
        config: Optional configuration. If not provided, reads from environment.
    """
    global _telemetry_initialized, _tracer_provider

    if _telemetry_initialized:
        logger.debug("Telemetry already initialized, skipping")
        return

    if config is None:
        config = TelemetryConfig.from_env()

    _setup_logging(config)
    _tracer_provider = _setup_tracing(config)

    _telemetry_initialized = True
    logger.debug(
        f"Telemetry initialized: service={config.service_name}, "
        f"exporter={config.traces_exporter.value}, "
        f"otel_disabled={config.otel_disabled}"
    )


def shutdown_telemetry() -> None:
    """Flush pending spans and reset telemetry state."""
    global _telemetry_initialized, _tracer_provider

    if not _telemetry_initialized:
        return

    if _tracer_provider is not None:
        _tracer_provider.shutdown()

    _telemetry_initialized = False
    _tracer_provider = None


def is_telemetry_enabled() -> bool:
    """Check if telemetry is initialized with an active exporter."""
    return _telemetry_initialized and _tracer_provider is not None
