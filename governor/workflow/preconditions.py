"""Precondition gates for lifecycle transitions.

Each gate evaluates one backlog item and reports every failing reason, not
just the first. Gates never mutate the item and keep no per-call state, so
one gate instance can evaluate any number of items concurrently.

Entry gates, keyed by the status being left, run before the step action:
- candidate -> ready: Definition of Ready
- ready -> ready_for_dev: Technical Readiness (acceptance criteria present)
- ready_for_dev -> in_sprint: Sprint Capacity
- in_sprint -> done: Delivery Readiness (project path known)

Completion gates, keyed by the status being entered, run on the item the
step action produced:
- ready_for_dev: Estimate Readiness (estimate and risk populated)
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field

from governor.config import ALLOWED_SIZES, DEFAULT_SPRINT_CAPACITY, ItemStatus, PersonaId
from governor.state.models import BacklogItem

logger = logging.getLogger(__name__)


@dataclass
class PreconditionResult:
    """Result of evaluating a gate.

    Attributes:
        passed: Whether the gate is satisfied
        reasons: Every failing reason (empty when passed)
    """

    passed: bool
    reasons: list[str] = field(default_factory=list)

    @classmethod
    def from_errors(cls, errors: list[str]) -> "PreconditionResult":
        return cls(passed=not errors, reasons=list(errors))


# A gate is anything that maps an item to a PreconditionResult
Gate = Callable[[BacklogItem], PreconditionResult]


class PreconditionEvaluator:
    """Base class for transition gates.

    Subclasses implement ``_check`` and append to the ``errors`` list they
    are handed; every evaluation gets a fresh list.
    """

    name: str = "precondition"

    def evaluate(self, item: BacklogItem) -> PreconditionResult:
        """Run all checks of this gate against the item."""
        errors: list[str] = []
        self._check(item, errors)
        result = PreconditionResult.from_errors(errors)
        if not result.passed:
            logger.info(f"Gate '{self.name}' failed for item {item.id}: {result.reasons}")
        return result

    def __call__(self, item: BacklogItem) -> PreconditionResult:
        return self.evaluate(item)

    def _check(self, item: BacklogItem, errors: list[str]) -> None:
        raise NotImplementedError("Subclasses must implement _check()")


class DefinitionOfReady(PreconditionEvaluator):
    """Business readiness: the item is well-formed enough to refine."""

    name = "definition-of-ready"

    def _check(self, item: BacklogItem, errors: list[str]) -> None:
        if item.id <= 0:
            errors.append("id must be a positive integer.")

        if not item.title.strip():
            errors.append("title is required.")

        if not item.story.strip():
            errors.append("story is required.")

        if item.owner.upper() not in PersonaId.values():
            errors.append(f"owner must be one of {{{','.join(PersonaId.values())}}}.")

        if item.size.upper() not in ALLOWED_SIZES:
            errors.append(f"size must be one of {{{','.join(ALLOWED_SIZES)}}}.")


class TechnicalReadiness(PreconditionEvaluator):
    """The item is specified well enough for the architects to review."""

    name = "technical-readiness"

    def _check(self, item: BacklogItem, errors: list[str]) -> None:
        if not item.acceptance_criteria:
            errors.append("acceptance_criteria must contain at least one entry.")


class EstimateReadiness(PreconditionEvaluator):
    """Technical refinement left a usable estimate on the item."""

    name = "estimate-readiness"

    def _check(self, item: BacklogItem, errors: list[str]) -> None:
        estimate = item.estimate
        if estimate is None:
            errors.append("estimate is required.")
            return

        if estimate.story_points <= 0:
            errors.append("estimate.story_points must be a positive integer.")

        if estimate.risk_level is None:
            errors.append("estimate.risk_level is required.")


class SprintCapacity(PreconditionEvaluator):
    """The item fits into a single sprint."""

    name = "sprint-capacity"

    def __init__(self, capacity: int = DEFAULT_SPRINT_CAPACITY) -> None:
        self.capacity = capacity

    def _check(self, item: BacklogItem, errors: list[str]) -> None:
        if item.estimate is None:
            errors.append("estimate is required to plan the item into a sprint.")
            return

        if item.estimate.story_points > self.capacity:
            errors.append(
                f"estimate.story_points ({item.estimate.story_points}) exceeds "
                f"sprint capacity ({self.capacity})."
            )


class DeliveryReadiness(PreconditionEvaluator):
    """The item names the project the Deliver stage builds and runs."""

    name = "delivery-readiness"

    def _check(self, item: BacklogItem, errors: list[str]) -> None:
        if item.delivery is None or not item.delivery.project_path:
            errors.append("delivery.project_path is required to deliver.")


def get_default_gates(
    sprint_capacity: int = DEFAULT_SPRINT_CAPACITY,
) -> dict[ItemStatus, list[Gate]]:
    """Build the default entry gates keyed by the status being left.

    Args:
        sprint_capacity: Story points allowed into one sprint

    Returns:
        Mapping of source status to its gates
    """
    return {
        ItemStatus.CANDIDATE: [DefinitionOfReady()],
        ItemStatus.READY: [TechnicalReadiness()],
        ItemStatus.READY_FOR_DEV: [SprintCapacity(sprint_capacity)],
        ItemStatus.IN_SPRINT: [DeliveryReadiness()],
    }


def get_completion_gates() -> dict[ItemStatus, list[Gate]]:
    """Build the default completion gates keyed by the status being entered."""
    return {
        ItemStatus.READY_FOR_DEV: [EstimateReadiness()],
    }
