"""Shared test fixtures and helpers.

The ``workdir`` fixture builds a complete governed repository under tmp_path:
directories, persona and flow prompts, and a backlog with one item in each
of the first four statuses.
"""

import json
from pathlib import Path

import pytest
import yaml

from governor.config import FLOW_PROMPTS_DIR, PERSONA_PROMPTS_DIR, PROMPTS_DIR, STAGE_FLOW_PROMPTS
from governor.delivery import CanonicalCommand, ProcessRunResult
from governor.personas import REFINEMENT_ORDER
from governor.repo import ensure_directories
from governor.review import EstimationVoteRequest
from governor.state.models import BacklogItem
from governor.workflow import PersonaReviewRequest, PersonaVerdict

# ---------------------------------------------------------------------------
# Backlog data
# ---------------------------------------------------------------------------

CANDIDATE_ITEM = {
    "id": 42,
    "title": "Loudness meter",
    "status": "candidate",
    "priority": 1,
    "size": "S",
    "owner": "PO",
    "story": "As a producer I want integrated LUFS so my mix meets streaming targets.",
}

READY_ITEM = {
    "id": 7,
    "title": "Spectrum analyzer",
    "status": "ready",
    "priority": 2,
    "size": "M",
    "owner": "PO",
    "story": "As a producer I want a spectrum view of my mix.",
    "acceptance_criteria": ["FFT view updates at 30 fps"],
    "estimate": {
        "id": "EST-7",
        "story_points": 5,
        "scale": "fibonacci",
        "confidence": "medium",
        "risk_level": "low",
    },
}

READY_FOR_DEV_ITEM = {
    "id": 8,
    "title": "Crest factor readout",
    "status": "ready_for_dev",
    "priority": 3,
    "size": "S",
    "owner": "SAD",
    "story": "As a producer I want to see crest factor per track.",
    "acceptance_criteria": ["Crest factor shown in dB"],
    "estimate": {"story_points": 3, "risk_level": "medium"},
}

IN_SPRINT_ITEM = {
    "id": 9,
    "title": "Offline analysis CLI",
    "status": "in_sprint",
    "priority": 1,
    "size": "L",
    "owner": "SASD",
    "story": "As a producer I want to analyze a file from the command line.",
    "acceptance_criteria": ["Prints integrated LUFS"],
    "estimate": {"story_points": 8, "risk_level": "high"},
    "delivery": {
        "project_path": "src/Analyzer",
        "executable_path": "src/Analyzer/bin/Release/net8.0/Analyzer.dll",
    },
}


def write_backlog(workdir: Path, items: list[dict]) -> Path:
    """Write items to state/backlog.yaml and return its path."""
    path = workdir / "state" / "backlog.yaml"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml.dump({"backlog": items}, sort_keys=False), encoding="utf-8")
    return path


def read_backlog(workdir: Path) -> dict[int, dict]:
    """Read state/backlog.yaml back as raw dicts keyed by id."""
    data = yaml.safe_load((workdir / "state" / "backlog.yaml").read_text(encoding="utf-8"))
    return {item["id"]: item for item in data["backlog"]}


def make_item(**overrides) -> BacklogItem:
    return BacklogItem.model_validate({**CANDIDATE_ITEM, **overrides})


# ---------------------------------------------------------------------------
# Collaborator doubles
# ---------------------------------------------------------------------------


class ScriptedReviewer:
    """Reviewer returning preset verdicts per persona id (accept by default)."""

    def __init__(self, verdicts: dict[str, PersonaVerdict] | None = None):
        self.verdicts = verdicts or {}
        self.requests: list[PersonaReviewRequest] = []

    @property
    def invoked(self) -> list[str]:
        return [request.persona.id.value for request in self.requests]

    def invoke(self, request: PersonaReviewRequest) -> PersonaVerdict:
        self.requests.append(request)
        persona_id = request.persona.id.value
        return self.verdicts.get(persona_id, PersonaVerdict.accept({"persona": persona_id}))


class ScriptedVoter:
    """Estimation voter answering from per-persona scripts, one answer per round.

    An int answer becomes a JSON vote, a str answer is returned verbatim.
    A persona keeps its last scripted answer once its script runs out;
    personas without a script vote ``default``.
    """

    def __init__(self, answers: dict[str, list[int | str]] | None = None, default: int = 3):
        self.answers = answers or {}
        self.default = default
        self.requests: list[EstimationVoteRequest] = []

    @property
    def voted(self) -> list[str]:
        return [request.persona_id.value for request in self.requests]

    def vote(self, request: EstimationVoteRequest) -> str:
        self.requests.append(request)
        script = self.answers.get(request.persona_id.value) or [self.default]
        answer = script[min(request.round_number, len(script)) - 1]
        if isinstance(answer, str):
            return answer
        return json.dumps(
            {
                "storyPoints": answer,
                "confidence": "high",
                "riskLevel": "low",
                "complexityDrivers": [f"{request.persona_id.value} driver"],
                "rationale": f"{request.persona_id.value} votes {answer}",
            }
        )


class RecordingExecutor:
    """Executor that records commands instead of spawning processes."""

    def __init__(self, exit_codes: list[int] | None = None):
        self.exit_codes = list(exit_codes or [])
        self.commands: list[CanonicalCommand] = []

    def run(self, command: CanonicalCommand, workdir: Path) -> ProcessRunResult:
        self.commands.append(command)
        exit_code = self.exit_codes.pop(0) if self.exit_codes else 0
        return ProcessRunResult(exit_code=exit_code)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def workdir(tmp_path: Path) -> Path:
    """A valid governed repository with a four-item backlog."""
    ensure_directories(tmp_path)

    personas_dir = tmp_path / PROMPTS_DIR / PERSONA_PROMPTS_DIR
    for persona in REFINEMENT_ORDER:
        (personas_dir / persona.prompt_file_name).write_text(
            f"# {persona.display_name}\n\nReview the item as {persona.id.value}.\n",
            encoding="utf-8",
        )

    flows_dir = tmp_path / PROMPTS_DIR / FLOW_PROMPTS_DIR
    for stage, file_name in STAGE_FLOW_PROMPTS.items():
        (flows_dir / file_name).write_text(
            f"# {stage.value} flow\n\nReturn JSON only.\n", encoding="utf-8"
        )

    write_backlog(tmp_path, [CANDIDATE_ITEM, READY_ITEM, READY_FOR_DEV_ITEM, IN_SPRINT_ITEM])
    return tmp_path


@pytest.fixture
def reviewer() -> ScriptedReviewer:
    return ScriptedReviewer()


@pytest.fixture
def executor() -> RecordingExecutor:
    return RecordingExecutor()
