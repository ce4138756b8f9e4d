"""Custom span creation for flow and step-level tracing.

Span Hierarchy:
    flow_span (root, one per advance call)
    └── step_span (per persona invocation / per delivered process)
"""

import logging
from collections.abc import Generator
from contextlib import contextmanager
from typing import Any

logger = logging.getLogger(__name__)

# Tracer instance - lazily initialized
_tracer = None


def get_tracer():
    """Get the OpenTelemetry tracer for custom spans.

    If OpenTelemetry is not available, returns a no-op tracer.
    """
    global _tracer

    if _tracer is not None:
        return _tracer

    try:
        from opentelemetry import trace

        _tracer = trace.get_tracer("governor.workflow")
        logger.debug("OpenTelemetry tracer initialized")
    except ImportError:
        logger.debug("OpenTelemetry not available, using no-op tracer")
        _tracer = _NoOpTracer()

    return _tracer


class _NoOpSpan:
    """No-op span for when OpenTelemetry is not available."""

    def set_attribute(self, key: str, value: Any) -> None:
        pass

    def set_status(self, status: Any, description: str | None = None) -> None:
        pass

    def record_exception(self, exception: Exception) -> None:
        pass

    def add_event(self, name: str, attributes: dict | None = None) -> None:
        pass

    def __enter__(self):
        return self

    def __exit__(self, *args):
        pass


class _NoOpTracer:
    """No-op tracer for when OpenTelemetry is not available."""

    @contextmanager
    def start_as_current_span(self, name: str, **kwargs) -> Generator[_NoOpSpan, None, None]:
        yield _NoOpSpan()

    def start_span(self, name: str, **kwargs) -> _NoOpSpan:
        return _NoOpSpan()


def _set_status(span, ok: bool, description: str | None = None) -> None:
    try:
        from opentelemetry.trace import StatusCode

        if ok:
            span.set_status(StatusCode.OK)
        else:
            span.set_status(StatusCode.ERROR, description)
    except ImportError:
        pass


@contextmanager
def _traced(name: str, span_attributes: dict[str, Any]) -> Generator[Any, None, None]:
    tracer = get_tracer()
    with tracer.start_as_current_span(name=name, attributes=span_attributes) as span:
        try:
            yield span
            _set_status(span, ok=True)
        except Exception as e:
            span.record_exception(e)
            _set_status(span, ok=False, description=str(e))
            raise


@contextmanager
def flow_span(
    flow_name: str,
    item_id: int,
    target_status: str,
    **attributes: Any,
) -> Generator[Any, None, None]:
    """Create the root span for one flow invocation.

    Args:
        flow_name: Name of the flow (e.g., "advance")
        item_id: Backlog item being moved
        target_status: Requested status
        **attributes: Additional span attributes

    Yields:
        The OpenTelemetry span (or no-op span if OTel unavailable)
    """
    span_attributes = {
        "flow.name": flow_name,
        "flow.item_id": item_id,
        "flow.target_status": target_status,
    }
    span_attributes.update(attributes)

    with _traced(f"flow:{flow_name}", span_attributes) as span:
        yield span


@contextmanager
def step_span(step_name: str, **attributes: Any) -> Generator[Any, None, None]:
    """Create a span for one step inside a flow.

    Example:
        with step_span("persona:PO", item_id=42, stage="business") as span:
            verdict = reviewer.invoke(request)
    """
    span_attributes = {"step.name": step_name}
    span_attributes.update({f"step.{key}": value for key, value in attributes.items()})

    with _traced(f"step:{step_name}", span_attributes) as span:
        yield span


def record_step_event(span, event_name: str, **attributes) -> None:
    """Record an event within a span."""
    span.add_event(event_name, attributes=attributes)


def record_flow_outcome(span, exit_code: int, exit_name: str) -> None:
    """Attach the flow's exit code to its span."""
    span.set_attribute("flow.exit_code", exit_code)
    span.set_attribute("flow.exit_name", exit_name)
