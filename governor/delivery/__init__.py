"""Deliver stage: process allowlist, executors and the deliver engine."""

from .allowlist import (
    FORBIDDEN_CHARACTERS,
    CanonicalCommand,
    ProcessRequest,
    authorize,
    parse_command_line,
)
from .deliver_engine import DeliveredCommand, DeliverEngine, DeliverResult, default_requests
from .process_runner import ProcessExecutor, ProcessRunResult, SubprocessExecutor

__all__ = [
    "FORBIDDEN_CHARACTERS",
    "CanonicalCommand",
    "DeliverEngine",
    "DeliverResult",
    "DeliveredCommand",
    "ProcessExecutor",
    "ProcessRequest",
    "ProcessRunResult",
    "SubprocessExecutor",
    "authorize",
    "default_requests",
    "parse_command_line",
]
