"""Flow Orchestrator: the single entry point for moving a backlog item.

One ``advance`` call moves one item one step:

    load item -> validate layout -> gates -> step action -> save

The step action depends on the step:

    candidate     -> ready          business refinement (PO, MIBS)
    ready         -> ready_for_dev  technical refinement (SAD, SASD), then
                                    estimation consensus (SAD, SASD, QA)
    ready_for_dev -> in_sprint      none
    in_sprint     -> done           deliver, then acceptance (QA)

Every failure below this module surfaces as a typed GovernorError or an
explicit result value; the orchestrator maps each of them to a
FlowExitCode. Saving the item is the only side effect, and it only happens
when every step passed. Besides the status, a save carries what the step
produced: the PO's acceptance criteria and non-goal updates after business
refinement, the consensus estimate after technical refinement.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from governor.config import (
    FlowExitCode,
    GovernorSettings,
    ItemStatus,
    PersonaId,
    RefinementStage,
)
from governor.delivery import DeliverEngine, ProcessRequest, default_requests
from governor.errors import (
    BacklogParseError,
    ForbiddenProcessError,
    GovernorError,
    InvalidRepoLayoutError,
    ItemNotFoundError,
    PromptLoadError,
)
from governor.repo import validate_layout
from governor.review import (
    ContractReviewer,
    EstimationConsensus,
    ProviderEstimationVoter,
    create_provider,
)
from governor.state import BacklogItem, BacklogStore
from governor.telemetry import flow_span, record_flow_outcome

from .persona_pipeline import PersonaPipeline
from .preconditions import get_default_gates
from .state_machine import ActionOutcome, ItemLifecycle, StepAction, TransitionOutcome

logger = logging.getLogger(__name__)

# Refinement stage run as the action of the step that ends in this status
REFINEMENT_TARGETS: dict[ItemStatus, RefinementStage] = {
    ItemStatus.READY: RefinementStage.BUSINESS,
    ItemStatus.READY_FOR_DEV: RefinementStage.TECHNICAL,
}


@dataclass
class FlowReport:
    """What an advance call did.

    Attributes:
        exit_code: Mapped exit code
        item_id: Requested item
        target: Requested status
        reasons: Every reason the flow failed (empty on success)
        item: The saved item on success
    """

    exit_code: FlowExitCode
    item_id: int
    target: ItemStatus
    reasons: list[str] = field(default_factory=list)
    item: BacklogItem | None = None

    @property
    def succeeded(self) -> bool:
        return self.exit_code == FlowExitCode.SUCCESS


class FlowOrchestrator:
    """Wires the backlog store, lifecycle, persona pipeline and deliver engine."""

    def __init__(
        self,
        pipeline: PersonaPipeline,
        deliver_engine: DeliverEngine,
        lifecycle: ItemLifecycle | None = None,
        store_factory: Callable[[Path], BacklogStore] = BacklogStore,
        layout_validator: Callable[[Path], list[str]] = validate_layout,
        estimator: EstimationConsensus | None = None,
    ):
        """Initialize the orchestrator.

        Args:
            pipeline: Persona pipeline used for refinement and acceptance
            deliver_engine: Engine that builds and runs the item's project
            lifecycle: State machine (default gates when None)
            store_factory: Builds the backlog store for a workdir
            layout_validator: Returns layout problems for a workdir
            estimator: Estimation consensus run after technical refinement.
                When None the item keeps the estimate it already carries.
        """
        self.pipeline = pipeline
        self.deliver_engine = deliver_engine
        self.lifecycle = lifecycle if lifecycle is not None else ItemLifecycle()
        self.store_factory = store_factory
        self.layout_validator = layout_validator
        self.estimator = estimator

    def advance(
        self,
        item_id: int,
        target_status: ItemStatus | str,
        workdir: Path | str,
        deliver_commands: list[ProcessRequest | str] | None = None,
    ) -> FlowExitCode:
        """Move an item one step forward and return the exit code."""
        return self.run(item_id, target_status, workdir, deliver_commands).exit_code

    def run(
        self,
        item_id: int,
        target_status: ItemStatus | str,
        workdir: Path | str,
        deliver_commands: list[ProcessRequest | str] | None = None,
    ) -> FlowReport:
        """Move an item one step forward.

        Args:
            item_id: Backlog item id
            target_status: Requested status; must be the item's immediate successor
            workdir: Repository root
            deliver_commands: Commands for the deliver step; defaults to the
                item's ``delivery`` block

        Returns:
            FlowReport carrying the exit code and every failure reason
        """
        workdir = Path(workdir)
        try:
            target = ItemStatus.parse(target_status)
        except ValueError as e:
            logger.error(str(e))
            return FlowReport(
                exit_code=FlowExitCode.VALIDATION_FAILED,
                item_id=item_id,
                target=ItemStatus.CANDIDATE,
                reasons=[str(e)],
            )

        with flow_span("advance", item_id=item_id, target_status=target.value) as span:
            report = self._run_guarded(item_id, target, workdir, deliver_commands)
            record_flow_outcome(span, int(report.exit_code), report.exit_code.name)

        if report.succeeded:
            logger.info(f"Item {item_id} advanced to '{target.value}'")
        else:
            logger.warning(
                f"Advancing item {item_id} to '{target.value}' failed with "
                f"{report.exit_code.name} ({int(report.exit_code)})"
            )
        return report

    def _run_guarded(
        self,
        item_id: int,
        target: ItemStatus,
        workdir: Path,
        deliver_commands: list[ProcessRequest | str] | None,
    ) -> FlowReport:
        def fail(code: FlowExitCode, reasons: list[str]) -> FlowReport:
            return FlowReport(exit_code=code, item_id=item_id, target=target, reasons=reasons)

        try:
            return self._run(item_id, target, workdir, deliver_commands)
        except ItemNotFoundError as e:
            return fail(FlowExitCode.ITEM_NOT_FOUND, [str(e)])
        except BacklogParseError as e:
            return fail(FlowExitCode.BACKLOG_PARSE_ERROR, [str(e)])
        except InvalidRepoLayoutError as e:
            return fail(FlowExitCode.INVALID_REPO_LAYOUT, e.problems)
        except PromptLoadError as e:
            return fail(FlowExitCode.PROMPT_LOAD_ERROR, [f"{e} ({e.path})"])
        except ForbiddenProcessError as e:
            logger.error(f"Forbidden process rejected: {e.reason}")
            return fail(FlowExitCode.VALIDATION_FAILED, [e.reason])
        except Exception as e:
            logger.exception(f"Unexpected error advancing item {item_id}")
            return fail(FlowExitCode.UNEXPECTED_ERROR, [f"{type(e).__name__}: {e}"])

    def _run(
        self,
        item_id: int,
        target: ItemStatus,
        workdir: Path,
        deliver_commands: list[ProcessRequest | str] | None,
    ) -> FlowReport:
        store = self.store_factory(workdir)
        item = store.get(item_id)

        problems = self.layout_validator(workdir)
        if problems:
            raise InvalidRepoLayoutError(problems)

        action = self._step_action(target, workdir, deliver_commands)
        result = self.lifecycle.try_transition(item, target, action)

        if result.outcome in (
            TransitionOutcome.INVALID_TRANSITION,
            TransitionOutcome.PRECONDITION_FAILED,
        ):
            code = FlowExitCode.PRECONDITION_FAILED
        elif result.outcome == TransitionOutcome.ACTION_FAILED:
            code = result.action_exit_code or FlowExitCode.UNEXPECTED_ERROR
        else:
            code = FlowExitCode.SUCCESS

        if code != FlowExitCode.SUCCESS:
            for reason in result.reasons:
                logger.info(f"Item {item_id}: {reason}")
            return FlowReport(exit_code=code, item_id=item_id, target=target, reasons=result.reasons)

        try:
            store.save(result.item)
        except (OSError, GovernorError) as e:
            logger.error(f"Failed to save item {item_id}: {e}")
            return FlowReport(
                exit_code=FlowExitCode.APPLY_FAILED,
                item_id=item_id,
                target=target,
                reasons=[f"Failed to save backlog: {e}"],
            )

        return FlowReport(
            exit_code=FlowExitCode.SUCCESS, item_id=item_id, target=target, item=result.item
        )

    def _step_action(
        self,
        target: ItemStatus,
        workdir: Path,
        deliver_commands: list[ProcessRequest | str] | None,
    ) -> StepAction | None:
        if target in REFINEMENT_TARGETS:
            stage = REFINEMENT_TARGETS[target]
            return lambda item: self._refine(item, stage, workdir)
        if target == ItemStatus.DONE:
            return lambda item: self._deliver(item, workdir, deliver_commands)
        return None

    def _refine(
        self, item: BacklogItem, stage: RefinementStage, workdir: Path
    ) -> ActionOutcome:
        refinement = self.pipeline.run_refinement(item, stage, workdir)
        if not refinement.accepted:
            return ActionOutcome.failure(refinement.exit_code, refinement.reasons)

        if stage == RefinementStage.BUSINESS:
            return ActionOutcome.success(apply_business_outputs(item, refinement.outputs))

        if stage == RefinementStage.TECHNICAL and self.estimator is not None:
            estimation = self.estimator.run(item, workdir, refinement.outputs)
            return ActionOutcome.success(
                item.model_copy(deep=True, update={"estimate": estimation.estimate})
            )

        return ActionOutcome.success()

    def _deliver(
        self,
        item: BacklogItem,
        workdir: Path,
        deliver_commands: list[ProcessRequest | str] | None,
    ) -> ActionOutcome:
        requests = list(deliver_commands) if deliver_commands else default_requests(item)
        delivery = self.deliver_engine.deliver(requests, workdir)
        if not delivery.succeeded:
            return ActionOutcome.failure(delivery.exit_code, delivery.reasons)
        return self._refine(item, RefinementStage.ACCEPTANCE, workdir)


def apply_business_outputs(item: BacklogItem, outputs: dict[str, dict]) -> BacklogItem:
    """Copy the item with the PO's acceptance criteria and non-goal updates.

    Updates are appended in order; entries the item already has are skipped.
    """
    po_output = outputs.get(PersonaId.PO.value) or {}
    return item.model_copy(
        deep=True,
        update={
            "acceptance_criteria": _merge_entries(
                item.acceptance_criteria, po_output.get("acceptanceCriteriaUpdates")
            ),
            "non_goals": _merge_entries(item.non_goals, po_output.get("nonGoalsUpdates")),
        },
    )


def _merge_entries(existing: list[str], updates) -> list[str]:
    merged = list(existing)
    if not isinstance(updates, list):
        return merged
    for entry in updates:
        if isinstance(entry, str) and entry.strip() and entry not in merged:
            merged.append(entry)
    return merged


def build_orchestrator(settings: GovernorSettings | None = None) -> FlowOrchestrator:
    """Build an orchestrator from the default collaborators.

    Args:
        settings: Runtime settings (read from the environment when None)
    """
    if settings is None:
        settings = GovernorSettings.from_env()

    provider = create_provider(settings.llm_provider, settings.model_id)
    return FlowOrchestrator(
        pipeline=PersonaPipeline(ContractReviewer(provider)),
        deliver_engine=DeliverEngine(dotnet_executable=settings.dotnet_executable),
        lifecycle=ItemLifecycle(get_default_gates(settings.sprint_capacity)),
        estimator=EstimationConsensus(ProviderEstimationVoter(provider)),
    )


def advance(
    item_id: int,
    target_status: ItemStatus | str,
    workdir: Path | str,
    deliver_commands: list[ProcessRequest | str] | None = None,
    settings: GovernorSettings | None = None,
) -> FlowExitCode:
    """Advance an item with the default collaborators."""
    return build_orchestrator(settings).advance(item_id, target_status, workdir, deliver_commands)
