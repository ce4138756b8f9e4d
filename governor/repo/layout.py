"""Repository layout checks.

A governed repository keeps its backlog under state/ and its persona and flow
prompts under prompts/. Every flow validates the layout before touching state.
"""

import logging
from pathlib import Path

from governor.config import (
    BACKLOG_FILE,
    FLOW_PROMPTS_DIR,
    PERSONA_PROMPTS_DIR,
    PROMPTS_DIR,
    STAGE_FLOW_PROMPTS,
    STATE_DIR,
)
from governor.errors import InvalidRepoLayoutError
from governor.personas import REFINEMENT_ORDER

logger = logging.getLogger(__name__)

REQUIRED_DIRS: tuple[str, ...] = (
    "src",
    STATE_DIR,
    PROMPTS_DIR,
    f"{PROMPTS_DIR}/{PERSONA_PROMPTS_DIR}",
    f"{PROMPTS_DIR}/{FLOW_PROMPTS_DIR}",
    "apps",
)

REQUIRED_FILES: tuple[str, ...] = (
    f"{STATE_DIR}/{BACKLOG_FILE}",
    *(f"{PROMPTS_DIR}/{PERSONA_PROMPTS_DIR}/{p.prompt_file_name}" for p in REFINEMENT_ORDER),
    *(f"{PROMPTS_DIR}/{FLOW_PROMPTS_DIR}/{name}" for name in STAGE_FLOW_PROMPTS.values()),
)


def validate_layout(workdir: Path | str) -> list[str]:
    """Return layout problems; an empty list means the layout is valid."""
    root = Path(workdir)
    problems = [f"Missing directory: {rel}" for rel in REQUIRED_DIRS if not (root / rel).is_dir()]
    problems.extend(
        f"Missing file: {rel}" for rel in REQUIRED_FILES if not (root / rel).is_file()
    )
    if problems:
        logger.debug(f"Layout problems in {root}: {problems}")
    return problems


def require_valid_layout(workdir: Path | str) -> None:
    """Raise InvalidRepoLayoutError when the layout has problems."""
    problems = validate_layout(workdir)
    if problems:
        raise InvalidRepoLayoutError(problems)


def ensure_directories(workdir: Path | str) -> list[str]:
    """Create missing required directories.

    Returns:
        Relative paths of the directories that were created
    """
    root = Path(workdir)
    created = []
    for rel in REQUIRED_DIRS:
        path = root / rel
        if not path.is_dir():
            path.mkdir(parents=True, exist_ok=True)
            created.append(rel)
    return created
