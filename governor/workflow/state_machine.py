"""Item Lifecycle State Machine.

States follow ItemStatus declaration order:

    candidate -> ready -> ready_for_dev -> in_sprint -> done (terminal)

A transition call moves an item exactly one step forward. It evaluates every
entry gate for that step, then runs the optional step action (persona
refinement, estimation, delivery). An action may hand back an updated copy of
the item; the completion gates of the target status check that copy. The
item is only moved to its new status once all of that passed; on any failure
the caller gets the original item back untouched.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum

from governor.config import DEFAULT_SPRINT_CAPACITY, FlowExitCode, ItemStatus
from governor.state.models import BacklogItem

from .preconditions import Gate, get_completion_gates, get_default_gates

logger = logging.getLogger(__name__)


class TransitionOutcome(Enum):
    """Outcome of a single transition attempt."""

    APPLIED = "applied"
    INVALID_TRANSITION = "invalid_transition"
    PRECONDITION_FAILED = "precondition_failed"
    ACTION_FAILED = "action_failed"


@dataclass
class ActionOutcome:
    """Result of the work performed as part of a transition step.

    Attributes:
        succeeded: Whether the step work passed
        exit_code: Exit code to report when it did not
        reasons: Every failing reason
        item: Updated copy of the item to commit, or None to commit the input
    """

    succeeded: bool
    exit_code: FlowExitCode = FlowExitCode.SUCCESS
    reasons: list[str] = field(default_factory=list)
    item: BacklogItem | None = None

    @classmethod
    def success(cls, item: BacklogItem | None = None) -> "ActionOutcome":
        return cls(succeeded=True, item=item)

    @classmethod
    def failure(cls, exit_code: FlowExitCode, reasons: list[str]) -> "ActionOutcome":
        return cls(succeeded=False, exit_code=exit_code, reasons=list(reasons))


# The action run once all gates of a step passed
StepAction = Callable[[BacklogItem], ActionOutcome]


@dataclass
class TransitionResult:
    """Result of ItemLifecycle.try_transition.

    Attributes:
        outcome: What happened
        item: New item copy when applied, otherwise the unchanged input item
        source: Status the item was in
        target: Status that was requested
        reasons: Every failing reason (gates or action)
        action_exit_code: Exit code reported by a failing action
    """

    outcome: TransitionOutcome
    item: BacklogItem
    source: ItemStatus
    target: ItemStatus
    reasons: list[str] = field(default_factory=list)
    action_exit_code: FlowExitCode | None = None

    @property
    def applied(self) -> bool:
        return self.outcome == TransitionOutcome.APPLIED


class ItemLifecycle:
    """Legal states, legal transitions and their gates."""

    def __init__(
        self,
        gates: dict[ItemStatus, list[Gate]] | None = None,
        completion_gates: dict[ItemStatus, list[Gate]] | None = None,
    ):
        """Initialize the state machine.

        Args:
            gates: Entry gates keyed by the status being left. Defaults to
                get_default_gates(); statuses without an entry have no gates.
            completion_gates: Gates keyed by the status being entered, run on
                the item the step action produced. Defaults to
                get_completion_gates().
        """
        self.gates = gates if gates is not None else get_default_gates(DEFAULT_SPRINT_CAPACITY)
        self.completion_gates = (
            completion_gates if completion_gates is not None else get_completion_gates()
        )

    @staticmethod
    def is_legal(source: ItemStatus, target: ItemStatus) -> bool:
        """Only the immediate successor is a legal target."""
        return source.successor() == target

    def evaluate_gates(self, item: BacklogItem) -> list[str]:
        """Evaluate every gate for leaving the item's status, collecting all reasons."""
        return _collect_reasons(self.gates.get(item.status, []), item)

    def evaluate_completion_gates(self, item: BacklogItem, target: ItemStatus) -> list[str]:
        """Evaluate every gate for entering ``target`` with the given item."""
        return _collect_reasons(self.completion_gates.get(target, []), item)

    def try_transition(
        self,
        item: BacklogItem,
        target: ItemStatus,
        action: StepAction | None = None,
    ) -> TransitionResult:
        """Attempt a single forward step.

        Args:
            item: Item to move; never mutated
            target: Requested status
            action: Optional step work, run only after all entry gates passed

        Returns:
            TransitionResult
        """
        source = item.status

        if not self.is_legal(source, target):
            expected = source.successor()
            reason = (
                f"Cannot move item {item.id} from '{source.value}' to '{target.value}'; "
                + (
                    f"the only legal next status is '{expected.value}'."
                    if expected
                    else f"'{source.value}' is terminal."
                )
            )
            logger.warning(reason)
            return TransitionResult(
                outcome=TransitionOutcome.INVALID_TRANSITION,
                item=item,
                source=source,
                target=target,
                reasons=[reason],
            )

        reasons = self.evaluate_gates(item)
        if reasons:
            return TransitionResult(
                outcome=TransitionOutcome.PRECONDITION_FAILED,
                item=item,
                source=source,
                target=target,
                reasons=reasons,
            )

        updated = item
        if action is not None:
            action_outcome = action(item)
            if not action_outcome.succeeded:
                logger.info(
                    f"Step action for item {item.id} ({source.value} -> {target.value}) "
                    f"failed with {action_outcome.exit_code.name}"
                )
                return TransitionResult(
                    outcome=TransitionOutcome.ACTION_FAILED,
                    item=item,
                    source=source,
                    target=target,
                    reasons=action_outcome.reasons,
                    action_exit_code=action_outcome.exit_code,
                )
            if action_outcome.item is not None:
                updated = action_outcome.item

        reasons = self.evaluate_completion_gates(updated, target)
        if reasons:
            return TransitionResult(
                outcome=TransitionOutcome.PRECONDITION_FAILED,
                item=item,
                source=source,
                target=target,
                reasons=reasons,
            )

        logger.info(f"Item {item.id}: {source.value} -> {target.value}")
        return TransitionResult(
            outcome=TransitionOutcome.APPLIED,
            item=updated.with_status(target),
            source=source,
            target=target,
        )


def _collect_reasons(gates: list[Gate], item: BacklogItem) -> list[str]:
    reasons: list[str] = []
    for gate in gates:
        result = gate(item)
        if not result.passed:
            reasons.extend(result.reasons)
    return reasons
