"""Centralized configuration for Governor.

This module provides a single source of truth for the closed enumerations
and configuration constants used across the flow engine.

Design Principles:
- Enums for every closed set (status, persona, process, exit code)
- Environment-driven settings read in one place
- No mutable module state
"""

import logging
import os
from dataclasses import dataclass
from enum import Enum, IntEnum

logger = logging.getLogger(__name__)

# =============================================================================
# Enums for Type Safety
# =============================================================================


class ItemStatus(Enum):
    """Lifecycle status of a backlog item.

    Follows the SDLC phases: Intake -> Refine -> Refine-Tech -> Deliver -> Done.
    Declaration order is the only legal direction of travel.
    """

    CANDIDATE = "candidate"  # After intake, awaiting business refinement
    READY = "ready"  # Business-refined, awaiting technical readiness review
    READY_FOR_DEV = "ready_for_dev"  # Technically ready, awaiting sprint assignment
    IN_SPRINT = "in_sprint"  # Assigned to the active sprint
    DONE = "done"  # Delivered and accepted

    @classmethod
    def values(cls) -> list[str]:
        """Return all valid status values as strings."""
        return [status.value for status in cls]

    @classmethod
    def parse(cls, raw: "str | ItemStatus") -> "ItemStatus":
        """Parse a status leniently.

        Accepts the serialized value ("ready_for_dev"), the member name
        ("READY_FOR_DEV") and the CamelCase form ("ReadyForDev").

        Raises:
            ValueError: If the value does not name a status
        """
        if isinstance(raw, cls):
            return raw
        key = str(raw).strip().replace("-", "_").replace("_", "").lower()
        for status in cls:
            if status.value.replace("_", "") == key:
                return status
        raise ValueError(f"Unknown item status '{raw}'. Valid: {', '.join(cls.values())}")

    @property
    def position(self) -> int:
        return list(type(self)).index(self)

    def successor(self) -> "ItemStatus | None":
        """Return the immediate successor, or None for the terminal status."""
        members = list(type(self))
        index = members.index(self)
        return members[index + 1] if index + 1 < len(members) else None


class PersonaId(Enum):
    """Identifiers of the personas taking part in refinement."""

    PO = "PO"
    MIBS = "MIBS"
    SAD = "SAD"
    SASD = "SASD"
    QA = "QA"

    @classmethod
    def values(cls) -> list[str]:
        return [persona.value for persona in cls]


class RefinementStage(Enum):
    """Which lifecycle step a persona is responsible for."""

    BUSINESS = "business"  # Candidate -> Ready
    TECHNICAL = "technical"  # Ready -> ReadyForDev
    ACCEPTANCE = "acceptance"  # InSprint -> Done, after delivery


class AllowedProcess(Enum):
    """Allowlisted processes the Deliver engine may execute."""

    DOTNET_BUILD = "DotnetBuild"
    DOTNET_RUN = "DotnetRun"


class ConfidenceLevel(Enum):
    """Certainty of an estimate."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class RiskLevel(Enum):
    """Risk attached to an estimate or backlog item."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class EstimateScale(Enum):
    """Scale used for story point estimates."""

    FIBONACCI = "fibonacci"
    LINEAR = "linear"
    TSHIRT_SIZE = "tshirt_size"
    PLANNING_POKER = "planning_poker"


class FlowExitCode(IntEnum):
    """Standardized exit codes for every flow outcome.

    Used as the CLI return code and the process exit status.
    """

    SUCCESS = 0
    INVALID_REPO_LAYOUT = 2
    ITEM_NOT_FOUND = 3
    BACKLOG_PARSE_ERROR = 4
    PRECONDITION_FAILED = 5
    PROMPT_LOAD_ERROR = 6
    CONTRACT_VALIDATION_FAILED = 7
    APPLY_FAILED = 8
    VALIDATION_FAILED = 9
    UNEXPECTED_ERROR = 10


# =============================================================================
# Repository Layout
# =============================================================================

PROMPTS_DIR = "prompts"
PERSONA_PROMPTS_DIR = "personas"
FLOW_PROMPTS_DIR = "flows"
STATE_DIR = "state"
BACKLOG_FILE = "backlog.yaml"

# Flow prompt per refinement stage
STAGE_FLOW_PROMPTS: dict[RefinementStage, str] = {
    RefinementStage.BUSINESS: "refine.md",
    RefinementStage.TECHNICAL: "refine-tech.md",
    RefinementStage.ACCEPTANCE: "deliver.md",
}

# =============================================================================
# Definition of Ready
# =============================================================================

ALLOWED_SIZES = ("S", "M", "L")

# Story points allowed into a single sprint
DEFAULT_SPRINT_CAPACITY = 13

# =============================================================================
# Estimation Consensus
# =============================================================================

# Personas voting on story points during technical refinement, SAD first
ESTIMATION_TEAM = (PersonaId.SAD, PersonaId.SASD, PersonaId.QA)

MAX_ESTIMATION_ROUNDS = 3

# Votes agree when the highest and lowest differ by at most this much
CONVERGENCE_SPREAD = 1

FIBONACCI_POINTS = (1, 2, 3, 5, 8, 13)

# Vote recorded for a persona whose answer could not be parsed
FALLBACK_STORY_POINTS = 3

# =============================================================================
# Deliver Engine
# =============================================================================

DEFAULT_DOTNET_EXECUTABLE = "dotnet"

# Fixed build flags; nothing else may be passed through
DOTNET_BUILD_FLAGS = ("--configuration", "Release", "--nologo")

# Built executables must live under this directory of the project
DOTNET_OUTPUT_DIR = "bin"

# =============================================================================
# Language Model
# =============================================================================

DEFAULT_LLM_PROVIDER = "stub"


@dataclass(frozen=True)
class GovernorSettings:
    """Runtime settings read from the environment.

    All values have defaults so the CLI runs without any configuration.
    """

    llm_provider: str = DEFAULT_LLM_PROVIDER
    model_id: str | None = None
    sprint_capacity: int = DEFAULT_SPRINT_CAPACITY
    dotnet_executable: str = DEFAULT_DOTNET_EXECUTABLE

    @classmethod
    def from_env(cls) -> "GovernorSettings":
        """Create settings from environment variables."""
        capacity_str = os.getenv("GOVERNOR_SPRINT_CAPACITY", str(DEFAULT_SPRINT_CAPACITY))
        try:
            capacity = int(capacity_str)
        except ValueError:
            logger.warning(
                f"Invalid GOVERNOR_SPRINT_CAPACITY '{capacity_str}', "
                f"defaulting to {DEFAULT_SPRINT_CAPACITY}"
            )
            capacity = DEFAULT_SPRINT_CAPACITY

        return cls(
            llm_provider=os.getenv("GOVERNOR_LLM_PROVIDER", DEFAULT_LLM_PROVIDER).lower(),
            model_id=os.getenv("GOVERNOR_MODEL_ID") or None,
            sprint_capacity=capacity,
            dotnet_executable=os.getenv("GOVERNOR_DOTNET", DEFAULT_DOTNET_EXECUTABLE),
        )
