"""Typed failures raised by Governor components.

The orchestrator catches each of these at its boundary and maps it to a
FlowExitCode. Components never raise a bare Exception for a known fault.
"""

from pathlib import Path


class GovernorError(Exception):
    """Base class for all Governor failures."""


class InvalidRepoLayoutError(GovernorError):
    """The working directory does not have the required layout."""

    def __init__(self, problems: list[str]):
        super().__init__("Invalid repository layout: " + "; ".join(problems))
        self.problems = list(problems)


class ItemNotFoundError(GovernorError):
    """No backlog item carries the requested id."""

    def __init__(self, item_id: int):
        super().__init__(f"Backlog item not found: {item_id}")
        self.item_id = item_id


class BacklogParseError(GovernorError):
    """The backlog file is missing or cannot be parsed."""

    def __init__(self, message: str, path: Path | str | None = None):
        super().__init__(message)
        self.path = Path(path) if path is not None else None


class PromptLoadError(GovernorError):
    """A persona or flow prompt file cannot be loaded."""

    def __init__(self, message: str, path: Path | str):
        super().__init__(message)
        self.path = Path(path)


class ForbiddenProcessError(GovernorError):
    """A requested process does not match an allowlisted command shape.

    Raised before anything is executed; never retried.
    """

    def __init__(self, reason: str, requested: object = None):
        super().__init__(reason)
        self.reason = reason
        self.requested = requested
