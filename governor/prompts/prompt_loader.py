"""
Prompt resolver for Governor personas and flows.

This module resolves a persona or flow prompt file name to its text under
``<workdir>/prompts/``. Resolution is read-only and uncached: every call
re-reads the file so edited prompts take effect on the next run.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from governor.config import FLOW_PROMPTS_DIR, PERSONA_PROMPTS_DIR, PROMPTS_DIR
from governor.errors import PromptLoadError

# Configure module logger
logger = logging.getLogger(__name__)


class PromptKind(Enum):
    """Kind of prompt, each with its own subdirectory under prompts/."""

    PERSONA = PERSONA_PROMPTS_DIR
    FLOW = FLOW_PROMPTS_DIR


@dataclass(frozen=True)
class PromptResult:
    """Outcome of resolving a prompt.

    Attributes:
        path: The attempted path (always set, for diagnostics)
        text: Prompt content when resolution succeeded
        error: Failure description when resolution failed
    """

    path: Path
    text: str | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> str:
        """Return the text or raise PromptLoadError with the attempted path."""
        if self.error is not None:
            raise PromptLoadError(self.error, self.path)
        return self.text or ""


def get_prompt_path(kind: PromptKind, workdir: Path | str, file_name: str) -> Path:
    """
    Get the path of a prompt file.

    Args:
        kind: Persona or flow prompt
        workdir: Repository root
        file_name: Prompt file name (e.g., 'product-owner.md')

    Returns:
        Path to the prompt file
    """
    return Path(workdir) / PROMPTS_DIR / kind.value / file_name


def resolve_prompt(kind: PromptKind, workdir: Path | str, file_name: str) -> PromptResult:
    """
    Resolve a prompt file to its text.

    Args:
        kind: Persona or flow prompt
        workdir: Repository root
        file_name: Bare prompt file name; separators and '..' are refused

    Returns:
        PromptResult carrying either the exact file text or an error
    """
    prompt_file = get_prompt_path(kind, workdir, file_name)

    if not file_name or Path(file_name).name != file_name or file_name in (".", ".."):
        error_msg = f"Invalid {kind.name.lower()} prompt file name '{file_name}'"
        logger.error(error_msg)
        return PromptResult(path=prompt_file, error=error_msg)

    try:
        # newline="" keeps the content byte-for-byte (no newline translation)
        with open(prompt_file, encoding="utf-8", newline="") as f:
            prompt_text = f.read()
        logger.debug(f"Loaded {kind.name.lower()} prompt from {prompt_file}")
        return PromptResult(path=prompt_file, text=prompt_text)

    except FileNotFoundError:
        error_msg = f"{kind.name.title()} prompt file missing: {prompt_file}"
    except IsADirectoryError:
        error_msg = f"{kind.name.title()} prompt path is a directory: {prompt_file}"
    except PermissionError:
        error_msg = f"Permission denied reading prompt file: {prompt_file}"
    except (OSError, UnicodeDecodeError) as e:
        error_msg = f"Unexpected error loading prompt file {prompt_file}: {e}"

    logger.error(error_msg)
    return PromptResult(path=prompt_file, error=error_msg)


def load_prompt(kind: PromptKind, workdir: Path | str, file_name: str) -> str:
    """
    Load a prompt, raising on failure.

    Raises:
        PromptLoadError: If the prompt file cannot be found or read
    """
    return resolve_prompt(kind, workdir, file_name).unwrap()


def load_persona_prompt(workdir: Path | str, file_name: str) -> str:
    """Load a persona prompt from prompts/personas/."""
    return load_prompt(PromptKind.PERSONA, workdir, file_name)


def load_flow_prompt(workdir: Path | str, file_name: str) -> str:
    """Load a flow prompt from prompts/flows/."""
    return load_prompt(PromptKind.FLOW, workdir, file_name)
