"""Item lifecycle, precondition gates and the persona pipeline.

The orchestrator lives in ``governor.workflow.orchestrator`` and is imported
from there; it depends on the review and delivery packages, which in turn
depend on this package.
"""

from .persona_pipeline import (
    PersonaPipeline,
    PersonaReviewer,
    PersonaReviewRequest,
    PersonaStepRecord,
    PersonaVerdict,
    RefinementResult,
    RefinementStatus,
    VerdictKind,
)
from .preconditions import (
    DefinitionOfReady,
    DeliveryReadiness,
    EstimateReadiness,
    Gate,
    PreconditionEvaluator,
    PreconditionResult,
    SprintCapacity,
    TechnicalReadiness,
    get_completion_gates,
    get_default_gates,
)
from .state_machine import (
    ActionOutcome,
    ItemLifecycle,
    StepAction,
    TransitionOutcome,
    TransitionResult,
)

__all__ = [
    # State machine
    "ActionOutcome",
    "ItemLifecycle",
    "StepAction",
    "TransitionOutcome",
    "TransitionResult",
    # Gates
    "DefinitionOfReady",
    "DeliveryReadiness",
    "EstimateReadiness",
    "Gate",
    "PreconditionEvaluator",
    "PreconditionResult",
    "SprintCapacity",
    "TechnicalReadiness",
    "get_completion_gates",
    "get_default_gates",
    # Persona pipeline
    "PersonaPipeline",
    "PersonaReviewRequest",
    "PersonaReviewer",
    "PersonaStepRecord",
    "PersonaVerdict",
    "RefinementResult",
    "RefinementStatus",
    "VerdictKind",
]
