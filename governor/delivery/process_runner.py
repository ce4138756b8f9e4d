"""Executors for authorized delivery commands."""

import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from .allowlist import CanonicalCommand

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProcessRunResult:
    """Outcome of one executed process."""

    exit_code: int
    stdout: str = ""
    stderr: str = ""

    @property
    def succeeded(self) -> bool:
        return self.exit_code == 0


class ProcessExecutor(Protocol):
    """Runs an already authorized command."""

    def run(self, command: CanonicalCommand, workdir: Path) -> ProcessRunResult: ...


class SubprocessExecutor:
    """Runs commands as child processes.

    The argv list is passed straight to the OS with ``shell=False``, so no
    shell ever interprets it. There is no timeout; the call blocks until the
    process exits.
    """

    def run(self, command: CanonicalCommand, workdir: Path) -> ProcessRunResult:
        logger.info(f"Running {command.process.value}: {command.command_line}")
        try:
            completed = subprocess.run(
                list(command.argv),
                cwd=workdir,
                capture_output=True,
                text=True,
                shell=False,
            )
        except FileNotFoundError:
            # Executable missing from PATH; report like a failed process
            message = f"Executable not found: {command.argv[0]}"
            logger.error(message)
            return ProcessRunResult(exit_code=127, stderr=message)

        if completed.returncode != 0:
            logger.warning(
                f"{command.process.value} exited with {completed.returncode}: "
                f"{completed.stderr.strip()[:500]}"
            )
        return ProcessRunResult(
            exit_code=completed.returncode,
            stdout=completed.stdout,
            stderr=completed.stderr,
        )
