"""Persona Pipeline: ordered refinement of a backlog item.

For a refinement stage, the pipeline walks REFINEMENT_ORDER top to bottom and
asks a reviewer for a verdict from every persona responsible for that stage.
Personas run strictly one after the other; a rejection stops the pipeline and
no later persona is invoked.

Each accepted persona's output is handed to the following personas, so order
matters (e.g. QA reads the architecture decisions).
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Protocol

from governor.config import STAGE_FLOW_PROMPTS, FlowExitCode, PersonaId, RefinementStage
from governor.personas import REFINEMENT_ORDER, Persona
from governor.prompts import PromptKind, resolve_prompt
from governor.state.models import BacklogItem
from governor.telemetry import record_step_event, step_span

logger = logging.getLogger(__name__)


# =============================================================================
# Verdicts
# =============================================================================


class VerdictKind(Enum):
    """What a persona decided about the item."""

    ACCEPT = "accept"
    REJECT = "reject"
    NOT_APPLICABLE = "not_applicable"


@dataclass(frozen=True)
class PersonaVerdict:
    """A single persona's decision.

    Attributes:
        kind: accept, reject or not-applicable
        reasons: Rejection reasons (or a note for not-applicable)
        output: Structured output produced by the persona, if any
    """

    kind: VerdictKind
    reasons: tuple[str, ...] = ()
    output: dict[str, Any] | None = None

    @classmethod
    def accept(cls, output: dict[str, Any] | None = None) -> "PersonaVerdict":
        return cls(VerdictKind.ACCEPT, output=output)

    @classmethod
    def reject(cls, reasons: list[str] | tuple[str, ...]) -> "PersonaVerdict":
        return cls(VerdictKind.REJECT, reasons=tuple(reasons))

    @classmethod
    def not_applicable(cls, note: str | None = None) -> "PersonaVerdict":
        return cls(VerdictKind.NOT_APPLICABLE, reasons=(note,) if note else ())


@dataclass(frozen=True)
class PersonaReviewRequest:
    """Everything a reviewer gets for one persona step."""

    persona: Persona
    stage: RefinementStage
    persona_prompt: str
    flow_prompt: str
    item: dict[str, Any]
    prior_outputs: dict[str, dict[str, Any]] = field(default_factory=dict)


class PersonaReviewer(Protocol):
    """External reviewer/transform invoked once per persona."""

    def invoke(self, request: PersonaReviewRequest) -> PersonaVerdict: ...


# =============================================================================
# Results
# =============================================================================


class RefinementStatus(Enum):
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    PROMPT_LOAD_FAILED = "prompt_load_failed"


@dataclass
class PersonaStepRecord:
    """One persona invocation."""

    persona_id: PersonaId
    verdict: PersonaVerdict


@dataclass
class RefinementResult:
    """Result of running the pipeline for one stage."""

    stage: RefinementStage
    status: RefinementStatus
    steps: list[PersonaStepRecord] = field(default_factory=list)
    reasons: list[str] = field(default_factory=list)
    failed_persona: PersonaId | None = None
    prompt_path: Path | None = None

    @property
    def accepted(self) -> bool:
        return self.status == RefinementStatus.ACCEPTED

    @property
    def invoked(self) -> list[PersonaId]:
        """Persona ids in invocation order."""
        return [step.persona_id for step in self.steps]

    @property
    def outputs(self) -> dict[str, dict[str, Any]]:
        """Outputs of accepted personas keyed by persona id."""
        return {
            step.persona_id.value: step.verdict.output
            for step in self.steps
            if step.verdict.kind == VerdictKind.ACCEPT and step.verdict.output is not None
        }

    @property
    def exit_code(self) -> FlowExitCode:
        if self.status == RefinementStatus.REJECTED:
            return FlowExitCode.CONTRACT_VALIDATION_FAILED
        if self.status == RefinementStatus.PROMPT_LOAD_FAILED:
            return FlowExitCode.PROMPT_LOAD_ERROR
        return FlowExitCode.SUCCESS


# =============================================================================
# Pipeline
# =============================================================================


class PersonaPipeline:
    """Runs the personas of a stage in refinement order."""

    def __init__(
        self,
        reviewer: PersonaReviewer,
        order: tuple[Persona, ...] = REFINEMENT_ORDER,
    ):
        """Initialize the pipeline.

        Args:
            reviewer: Collaborator that produces a verdict per persona
            order: Refinement order (the catalog order unless testing)
        """
        self.reviewer = reviewer
        self.order = order

    def personas_for(self, stage: RefinementStage) -> list[Persona]:
        return [persona for persona in self.order if persona.stage == stage]

    def run_refinement(
        self, item: BacklogItem, stage: RefinementStage, workdir: Path | str
    ) -> RefinementResult:
        """Run every persona responsible for ``stage`` against the item.

        Args:
            item: Item under refinement; not mutated
            stage: Refinement stage
            workdir: Repository root holding prompts/

        Returns:
            RefinementResult; accepted only if every applicable persona accepted
        """
        flow = resolve_prompt(PromptKind.FLOW, workdir, STAGE_FLOW_PROMPTS[stage])
        if not flow.ok:
            return RefinementResult(
                stage=stage,
                status=RefinementStatus.PROMPT_LOAD_FAILED,
                reasons=[flow.error],
                prompt_path=flow.path,
            )

        snapshot = item.snapshot()
        result = RefinementResult(stage=stage, status=RefinementStatus.ACCEPTED)
        prior_outputs: dict[str, dict[str, Any]] = {}

        for persona in self.personas_for(stage):
            prompt = resolve_prompt(PromptKind.PERSONA, workdir, persona.prompt_file_name)
            if not prompt.ok:
                result.status = RefinementStatus.PROMPT_LOAD_FAILED
                result.reasons = [prompt.error]
                result.failed_persona = persona.id
                result.prompt_path = prompt.path
                return result

            request = PersonaReviewRequest(
                persona=persona,
                stage=stage,
                persona_prompt=prompt.text,
                flow_prompt=flow.text,
                item=snapshot,
                prior_outputs=dict(prior_outputs),
            )

            with step_span(
                f"persona:{persona.id.value}",
                item_id=item.id,
                stage=stage.value,
            ) as span:
                verdict = self.reviewer.invoke(request)
                record_step_event(span, "persona_verdict", verdict=verdict.kind.value)

            result.steps.append(PersonaStepRecord(persona_id=persona.id, verdict=verdict))
            logger.info(
                f"Item {item.id} [{stage.value}] {persona.display_name}: {verdict.kind.value}"
            )

            if verdict.kind == VerdictKind.REJECT:
                result.status = RefinementStatus.REJECTED
                result.failed_persona = persona.id
                result.reasons = [
                    f"{persona.id.value}: {reason}"
                    for reason in verdict.reasons or ("rejected without reasons",)
                ]
                return result

            if verdict.kind == VerdictKind.ACCEPT and verdict.output is not None:
                prior_outputs[persona.id.value] = verdict.output

        return result
