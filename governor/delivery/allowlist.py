"""Process allowlist for the Deliver stage.

Only two command shapes may ever be executed:

    DotnetBuild:  dotnet build <project_path> --configuration Release --nologo
    DotnetRun:    dotnet <project_path>/bin/.../<name>.dll

A request either matches one of these shapes exactly or is rejected with
ForbiddenProcessError. There is no partial match and no pass-through of
extra arguments. Paths are relative to the repository root; absolute,
drive-qualified and home-relative paths are rejected.
"""

import logging
import re
import shlex
from dataclasses import dataclass
from pathlib import PurePosixPath

from governor.config import (
    DEFAULT_DOTNET_EXECUTABLE,
    DOTNET_BUILD_FLAGS,
    DOTNET_OUTPUT_DIR,
    AllowedProcess,
)
from governor.errors import ForbiddenProcessError

logger = logging.getLogger(__name__)

FORBIDDEN_CHARACTERS = frozenset("&|;$`(){}<>\"'*?\\\n\r")

# C0 control characters (NUL, tab, vertical tab, ...) and DEL
_CONTROL_CHARACTER_LIMIT = 0x20
_DELETE_CHARACTER = "\x7f"

_WINDOWS_DRIVE_RE = re.compile(r"^[A-Za-z]:")


@dataclass(frozen=True)
class ProcessRequest:
    """A structured request to run an allowlisted process.

    Attributes:
        process: Which allowlisted process to run
        project_path: Project to build, relative to the repository root
        executable_path: Built .dll to run (DotnetRun only)
        extra_args: Additional arguments; always rejected
    """

    process: AllowedProcess | str
    project_path: str
    executable_path: str | None = None
    extra_args: tuple[str, ...] = ()


@dataclass(frozen=True)
class CanonicalCommand:
    """An authorized command, ready to hand to an executor."""

    process: AllowedProcess
    argv: tuple[str, ...]

    @property
    def command_line(self) -> str:
        return shlex.join(self.argv)


def authorize(
    requested: ProcessRequest | str,
    dotnet_executable: str = DEFAULT_DOTNET_EXECUTABLE,
) -> CanonicalCommand:
    """Check a request against the allowlist.

    Args:
        requested: Structured request or raw command line
        dotnet_executable: Program placed in argv[0] of the canonical command

    Returns:
        The canonical command to execute

    Raises:
        ForbiddenProcessError: If the request is not exactly an allowed shape
    """
    request = parse_command_line(requested) if isinstance(requested, str) else requested

    try:
        process = AllowedProcess(request.process)
    except ValueError:
        raise ForbiddenProcessError(
            f"Process not allowed: {request.process}. Only DotnetBuild and DotnetRun are permitted.",
            requested,
        ) from None

    if request.extra_args:
        raise ForbiddenProcessError(
            f"Extra arguments are not allowed for {process.value}: {list(request.extra_args)}",
            requested,
        )

    project_path = _require_path("project_path", request.project_path, requested)

    if process == AllowedProcess.DOTNET_BUILD:
        if request.executable_path:
            raise ForbiddenProcessError(
                "DotnetBuild does not take an executable path", requested
            )
        argv = (dotnet_executable, "build", project_path, *DOTNET_BUILD_FLAGS)
    else:
        executable = _require_path("executable_path", request.executable_path, requested)
        _require_build_output(project_path, executable, requested)
        argv = (dotnet_executable, executable)

    logger.debug(f"Authorized {process.value}: {shlex.join(argv)}")
    return CanonicalCommand(process=process, argv=argv)


def parse_command_line(command: str) -> ProcessRequest:
    """Turn a raw command line into a ProcessRequest.

    The line must tokenize to exactly one of the canonical shapes. A
    DotnetRun line carries no project path, so the project is taken as
    the directory holding the ``bin`` folder of the executable.

    Raises:
        ForbiddenProcessError: If the line is not a canonical shape
    """
    _check_characters(command, command)
    tokens = command.split()

    if len(tokens) < 2 or tokens[0] != DEFAULT_DOTNET_EXECUTABLE:
        raise ForbiddenProcessError(f"Not an allowlisted command: {command!r}", command)

    if tokens[1] == "build":
        if len(tokens) != 3 + len(DOTNET_BUILD_FLAGS) or tuple(tokens[3:]) != DOTNET_BUILD_FLAGS:
            raise ForbiddenProcessError(
                f"dotnet build must be exactly 'dotnet build <project> "
                f"{' '.join(DOTNET_BUILD_FLAGS)}': {command!r}",
                command,
            )
        return ProcessRequest(process=AllowedProcess.DOTNET_BUILD, project_path=tokens[2])

    if len(tokens) != 2:
        raise ForbiddenProcessError(
            f"dotnet run must be exactly 'dotnet <executable.dll>': {command!r}", command
        )

    _require_relative("executable_path", tokens[1], command)
    executable = PurePosixPath(tokens[1])
    parts = executable.parts
    if DOTNET_OUTPUT_DIR not in parts[:-1]:
        raise ForbiddenProcessError(
            f"Executable must be inside a project's {DOTNET_OUTPUT_DIR}/ directory: {tokens[1]!r}",
            command,
        )
    bin_index = parts.index(DOTNET_OUTPUT_DIR)
    project_path = str(PurePosixPath(*parts[:bin_index])) if bin_index else "."
    return ProcessRequest(
        process=AllowedProcess.DOTNET_RUN,
        project_path=project_path,
        executable_path=tokens[1],
    )


def _check_characters(value: str, requested: object) -> None:
    for char in value:
        if (
            char in FORBIDDEN_CHARACTERS
            or ord(char) < _CONTROL_CHARACTER_LIMIT
            or char == _DELETE_CHARACTER
        ):
            raise ForbiddenProcessError(
                f"Forbidden character {char!r} in argument: {value!r}", requested
            )


def _require_relative(name: str, value: str, requested: object) -> None:
    """Paths must stay inside the repository the flow runs against."""
    if (
        PurePosixPath(value).is_absolute()
        or _WINDOWS_DRIVE_RE.match(value)
        or value.startswith("~")
    ):
        raise ForbiddenProcessError(
            f"{name} must be relative to the repository root: {value!r}", requested
        )


def _require_path(name: str, value: str | None, requested: object) -> str:
    if value is None or not value.strip():
        raise ForbiddenProcessError(f"Missing required parameter: {name}", requested)
    _check_characters(value, requested)
    if value != value.strip() or any(c.isspace() for c in value):
        raise ForbiddenProcessError(f"Whitespace is not allowed in {name}: {value!r}", requested)
    if value.startswith("-"):
        raise ForbiddenProcessError(f"{name} must not look like an option: {value!r}", requested)
    _require_relative(name, value, requested)
    if ".." in PurePosixPath(value).parts:
        raise ForbiddenProcessError(f"{name} must not contain '..': {value!r}", requested)
    return value


def _require_build_output(project_path: str, executable: str, requested: object) -> None:
    exe = PurePosixPath(executable)
    output_dir = PurePosixPath(project_path) / DOTNET_OUTPUT_DIR

    if exe.suffix.lower() != ".dll":
        raise ForbiddenProcessError(f"Executable must be a .dll file: {executable!r}", requested)
    if exe.parent != output_dir and output_dir not in exe.parents:
        raise ForbiddenProcessError(
            f"Executable {executable!r} is not inside {output_dir}/", requested
        )
