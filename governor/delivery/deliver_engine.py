"""Deliver engine: builds and runs an item's project.

Every request is authorized against the allowlist before the first one
executes, so a single forbidden request means nothing runs at all.
Authorized commands then run in order; the first non-zero exit stops the
sequence.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path

from governor.config import DEFAULT_DOTNET_EXECUTABLE, AllowedProcess, FlowExitCode
from governor.state.models import BacklogItem
from governor.telemetry import record_step_event, step_span

from .allowlist import CanonicalCommand, ProcessRequest, authorize
from .process_runner import ProcessExecutor, ProcessRunResult, SubprocessExecutor

logger = logging.getLogger(__name__)


@dataclass
class DeliveredCommand:
    command: CanonicalCommand
    result: ProcessRunResult


@dataclass
class DeliverResult:
    """Result of running a delivery sequence.

    Attributes:
        commands: Commands that were executed, in order
        failed: The command that exited non-zero, if any
    """

    commands: list[DeliveredCommand] = field(default_factory=list)
    failed: DeliveredCommand | None = None

    @property
    def succeeded(self) -> bool:
        return self.failed is None

    @property
    def exit_code(self) -> FlowExitCode:
        return FlowExitCode.SUCCESS if self.succeeded else FlowExitCode.APPLY_FAILED

    @property
    def reasons(self) -> list[str]:
        if self.failed is None:
            return []
        return [
            f"{self.failed.command.process.value} exited with {self.failed.result.exit_code}: "
            f"{self.failed.command.command_line}"
        ]


def default_requests(item: BacklogItem) -> list[ProcessRequest]:
    """Build the item's default delivery sequence from its ``delivery`` block.

    Always a build; a run follows when an executable path is declared.
    """
    if item.delivery is None or not item.delivery.project_path:
        return []

    requests = [
        ProcessRequest(
            process=AllowedProcess.DOTNET_BUILD,
            project_path=item.delivery.project_path,
        )
    ]
    if item.delivery.executable_path:
        requests.append(
            ProcessRequest(
                process=AllowedProcess.DOTNET_RUN,
                project_path=item.delivery.project_path,
                executable_path=item.delivery.executable_path,
            )
        )
    return requests


class DeliverEngine:
    """Authorizes and executes delivery commands."""

    def __init__(
        self,
        executor: ProcessExecutor | None = None,
        dotnet_executable: str = DEFAULT_DOTNET_EXECUTABLE,
    ):
        self.executor = executor if executor is not None else SubprocessExecutor()
        self.dotnet_executable = dotnet_executable

    def authorize_all(self, requests: list[ProcessRequest | str]) -> list[CanonicalCommand]:
        """Authorize every request, raising on the first forbidden one.

        Raises:
            ForbiddenProcessError: If any request is not allowlisted
        """
        return [authorize(request, self.dotnet_executable) for request in requests]

    def deliver(self, requests: list[ProcessRequest | str], workdir: Path | str) -> DeliverResult:
        """Authorize all requests, then run them in order.

        Args:
            requests: Structured requests or raw command lines
            workdir: Repository root used as the working directory

        Returns:
            DeliverResult

        Raises:
            ForbiddenProcessError: If any request is not allowlisted
        """
        commands = self.authorize_all(requests)
        workdir = Path(workdir)
        result = DeliverResult()

        for command in commands:
            with step_span(
                f"process:{command.process.value}", command=command.command_line
            ) as span:
                run_result = self.executor.run(command, workdir)
                record_step_event(span, "process_exit", exit_code=run_result.exit_code)

            delivered = DeliveredCommand(command=command, result=run_result)
            result.commands.append(delivered)

            if run_result.exit_code != 0:
                result.failed = delivered
                logger.warning(f"Delivery stopped: {result.reasons[0]}")
                break

        return result
