"""Estimation consensus for technical refinement.

After the architects accept an item, the estimation team (SAD, SASD, QA)
votes on story points. From the second round on every persona sees the
previous round's votes and may revise its own. Voting stops once the votes
converge (spread of at most CONVERGENCE_SPREAD points) or after
MAX_ESTIMATION_ROUNDS rounds; convergence is only checked from the second
round on, so every persona gets to see the others at least once.

The final story points are the most common vote of the last round, ties
going to the larger value. Confidence, risk and complexity drivers come from
the SAD vote. An answer that cannot be parsed counts as a fallback vote of
FALLBACK_STORY_POINTS so one bad response never blocks the item.
"""

import json
import logging
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol

from governor.config import (
    CONVERGENCE_SPREAD,
    ESTIMATION_TEAM,
    FALLBACK_STORY_POINTS,
    FIBONACCI_POINTS,
    MAX_ESTIMATION_ROUNDS,
    STAGE_FLOW_PROMPTS,
    ConfidenceLevel,
    EstimateScale,
    PersonaId,
    RefinementStage,
    RiskLevel,
)
from governor.personas import get_persona
from governor.prompts import load_flow_prompt, load_persona_prompt
from governor.review.contract_reviewer import extract_json_object
from governor.review.providers import LanguageModelProvider, LanguageModelRequest
from governor.state.models import BacklogEstimate, BacklogItem
from governor.telemetry import record_step_event, step_span

logger = logging.getLogger(__name__)

FALLBACK_NOTE = "Parse error - using fallback"

ESTIMATION_INSTRUCTION = f"""\
ESTIMATION RULES:
- Output a SINGLE JSON object, no prose before or after it.
- storyPoints: integer, one of {", ".join(str(p) for p in FIBONACCI_POINTS)}
- confidence: "low", "medium" or "high"
- riskLevel: "low", "medium" or "high"
- complexityDrivers, assumptions, dependencies: arrays of strings
- rationale: string explaining the estimate to the rest of the team
"""

REVISION_INSTRUCTION = (
    "- You have seen the other team members' estimates. If you adjust your "
    "estimate because of theirs, say why in the rationale."
)


# =============================================================================
# Votes and rounds
# =============================================================================


@dataclass(frozen=True)
class EstimateVote:
    """One persona's estimate in one round."""

    persona_id: PersonaId
    story_points: int
    confidence: ConfidenceLevel = ConfidenceLevel.MEDIUM
    risk_level: RiskLevel = RiskLevel.MEDIUM
    rationale: str = ""
    complexity_drivers: tuple[str, ...] = ()
    assumptions: tuple[str, ...] = ()
    dependencies: tuple[str, ...] = ()
    fallback: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "storyPoints": self.story_points,
            "confidence": self.confidence.value,
            "riskLevel": self.risk_level.value,
            "rationale": self.rationale,
        }


@dataclass
class EstimationRound:
    number: int
    votes: dict[PersonaId, EstimateVote] = field(default_factory=dict)

    @property
    def points(self) -> list[int]:
        return [vote.story_points for vote in self.votes.values()]

    @property
    def converged(self) -> bool:
        return is_converged(self.points)


@dataclass
class EstimationResult:
    """Every round of a consensus run and the estimate it produced."""

    rounds: list[EstimationRound]
    estimate: BacklogEstimate

    @property
    def converged(self) -> bool:
        return self.rounds[-1].converged


def is_converged(points: list[int]) -> bool:
    """Votes agree when their spread is at most CONVERGENCE_SPREAD."""
    if not points:
        return False
    return max(points) - min(points) <= CONVERGENCE_SPREAD


def compute_final_points(points: list[int]) -> int:
    """Most common vote; a tie goes to the larger value."""
    counts = Counter(points)
    return max(counts, key=lambda value: (counts[value], value))


def parse_estimate_vote(persona_id: PersonaId, text: str) -> EstimateVote:
    """Parse a persona's estimation answer.

    Missing or invalid fields fall back to their defaults. An answer that
    is not a JSON object, or whose storyPoints is not on the scale, becomes
    a fallback vote.
    """
    output = extract_json_object(text)
    points = output.get("storyPoints") if output is not None else None

    # bool is an int subclass; reject it explicitly
    if isinstance(points, bool) or not isinstance(points, int) or points not in FIBONACCI_POINTS:
        logger.warning(
            f"Estimation answer from {persona_id.value} has no usable storyPoints; "
            f"using fallback of {FALLBACK_STORY_POINTS}"
        )
        return EstimateVote(
            persona_id=persona_id,
            story_points=FALLBACK_STORY_POINTS,
            rationale=f"{FALLBACK_NOTE} estimate",
            complexity_drivers=(FALLBACK_NOTE,),
            assumptions=(FALLBACK_NOTE,),
            fallback=True,
        )

    return EstimateVote(
        persona_id=persona_id,
        story_points=points,
        confidence=_parse_level(ConfidenceLevel, output.get("confidence"), ConfidenceLevel.MEDIUM),
        risk_level=_parse_level(RiskLevel, output.get("riskLevel"), RiskLevel.MEDIUM),
        rationale=output.get("rationale") if isinstance(output.get("rationale"), str) else "",
        complexity_drivers=_string_tuple(output.get("complexityDrivers")),
        assumptions=_string_tuple(output.get("assumptions")),
        dependencies=_string_tuple(output.get("dependencies")),
    )


def _parse_level(enum_type, value: Any, default):
    if isinstance(value, str):
        try:
            return enum_type(value.strip().lower())
        except ValueError:
            pass
    return default


def _string_tuple(value: Any) -> tuple[str, ...]:
    if not isinstance(value, list):
        return ()
    return tuple(entry for entry in value if isinstance(entry, str))


# =============================================================================
# Voters
# =============================================================================


@dataclass(frozen=True)
class EstimationVoteRequest:
    """Everything a voter gets for one persona in one round."""

    persona_id: PersonaId
    round_number: int
    persona_prompt: str
    flow_prompt: str
    input_context: str


class EstimationVoter(Protocol):
    """Returns a persona's raw estimation answer."""

    def vote(self, request: EstimationVoteRequest) -> str: ...


class ProviderEstimationVoter:
    """EstimationVoter backed by a LanguageModelProvider."""

    def __init__(self, provider: LanguageModelProvider):
        self.provider = provider

    def vote(self, request: EstimationVoteRequest) -> str:
        response = self.provider.generate(
            LanguageModelRequest(
                persona_id=request.persona_id,
                persona_prompt=request.persona_prompt,
                flow_prompt=request.flow_prompt,
                input_context=request.input_context,
            )
        )
        return response.output_text


def build_estimation_context(
    item: BacklogItem,
    persona_id: PersonaId,
    technical_outputs: dict[str, dict[str, Any]] | None = None,
    previous_round: EstimationRound | None = None,
) -> str:
    """Render the item, the architects' outputs and earlier votes as JSON."""
    context: dict[str, Any] = {
        "stage": RefinementStage.TECHNICAL.value,
        "task": "estimation",
        "persona": persona_id.value,
        "item": item.snapshot(),
    }
    if technical_outputs:
        context["priorOutputs"] = technical_outputs
    if previous_round is not None:
        context["teamEstimates"] = {
            voter.value: vote.to_dict() for voter, vote in previous_round.votes.items()
        }
    return json.dumps(context, indent=2, sort_keys=True, default=str)


# =============================================================================
# Consensus
# =============================================================================


class EstimationConsensus:
    """Runs voting rounds until the estimation team agrees."""

    def __init__(
        self,
        voter: EstimationVoter,
        team: tuple[PersonaId, ...] = ESTIMATION_TEAM,
        max_rounds: int = MAX_ESTIMATION_ROUNDS,
    ):
        """Initialize the consensus runner.

        Args:
            voter: Produces each persona's raw answer
            team: Voting personas; the first one supplies confidence and risk
            max_rounds: Upper bound on voting rounds
        """
        if not team:
            raise ValueError("Estimation team must not be empty")
        if max_rounds < 1:
            raise ValueError("max_rounds must be at least 1")
        self.voter = voter
        self.team = team
        self.max_rounds = max_rounds

    def run(
        self,
        item: BacklogItem,
        workdir: Path | str,
        technical_outputs: dict[str, dict[str, Any]] | None = None,
    ) -> EstimationResult:
        """Estimate an item.

        Args:
            item: Item under technical refinement; not mutated
            workdir: Repository root holding prompts/
            technical_outputs: Accepted outputs of the technical personas

        Returns:
            EstimationResult with every round and the final estimate

        Raises:
            PromptLoadError: If a voter's persona prompt or the flow prompt is missing
        """
        flow_prompt = load_flow_prompt(workdir, STAGE_FLOW_PROMPTS[RefinementStage.TECHNICAL])
        persona_prompts = {
            persona_id: load_persona_prompt(workdir, get_persona(persona_id).prompt_file_name)
            for persona_id in self.team
        }

        rounds: list[EstimationRound] = []
        previous: EstimationRound | None = None
        for number in range(1, self.max_rounds + 1):
            current = self._run_round(
                item, number, flow_prompt, persona_prompts, technical_outputs, previous
            )
            rounds.append(current)
            logger.info(f"Item {item.id} estimation round {number}: {current.points}")

            if number > 1 and current.converged:
                break
            previous = current

        estimate = self._final_estimate(item, rounds)
        logger.info(
            f"Item {item.id} estimated at {estimate.story_points} points "
            f"after {len(rounds)} round(s)"
        )
        return EstimationResult(rounds=rounds, estimate=estimate)

    def _run_round(
        self,
        item: BacklogItem,
        number: int,
        flow_prompt: str,
        persona_prompts: dict[PersonaId, str],
        technical_outputs: dict[str, dict[str, Any]] | None,
        previous: EstimationRound | None,
    ) -> EstimationRound:
        instruction = ESTIMATION_INSTRUCTION
        if previous is not None:
            instruction += REVISION_INSTRUCTION + "\n"

        current = EstimationRound(number=number)
        for persona_id in self.team:
            request = EstimationVoteRequest(
                persona_id=persona_id,
                round_number=number,
                persona_prompt=persona_prompts[persona_id],
                flow_prompt=f"{flow_prompt}\n\n{instruction}",
                input_context=build_estimation_context(
                    item, persona_id, technical_outputs, previous
                ),
            )
            with step_span(
                f"estimate:{persona_id.value}", item_id=item.id, round=number
            ) as span:
                vote = parse_estimate_vote(persona_id, self.voter.vote(request))
                record_step_event(
                    span, "estimate_vote", story_points=vote.story_points, fallback=vote.fallback
                )
            current.votes[persona_id] = vote
        return current

    def _final_estimate(self, item: BacklogItem, rounds: list[EstimationRound]) -> BacklogEstimate:
        last = rounds[-1]
        lead = last.votes.get(self.team[0]) or next(iter(last.votes.values()))
        drivers = list(lead.complexity_drivers)
        if not drivers and lead.rationale:
            drivers = [lead.rationale]

        return BacklogEstimate(
            id=f"EST-{item.id}-CONSENSUS",
            story_points=compute_final_points(last.points),
            scale=EstimateScale.FIBONACCI,
            confidence=lead.confidence,
            risk_level=lead.risk_level,
            complexity_drivers=drivers,
            assumptions=list(lead.assumptions),
            dependencies=list(lead.dependencies),
            notes=(
                f"Consensus from {len(rounds)} round(s). "
                f"Converged: {'yes' if last.converged else 'no'}"
            ),
        )
