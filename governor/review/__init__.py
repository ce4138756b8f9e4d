"""Persona review: language model providers, output contracts and
estimation consensus."""

from .contract_reviewer import ContractReviewer, build_input_context, extract_json_object
from .contracts import PERSONA_CONTRACTS, validate_persona_output
from .estimation import (
    EstimateVote,
    EstimationConsensus,
    EstimationResult,
    EstimationRound,
    EstimationVoter,
    EstimationVoteRequest,
    ProviderEstimationVoter,
    build_estimation_context,
    compute_final_points,
    is_converged,
    parse_estimate_vote,
)
from .providers import (
    LanguageModelProvider,
    LanguageModelRequest,
    LanguageModelResponse,
    StrandsLanguageModelProvider,
    StubLanguageModelProvider,
    create_provider,
)

__all__ = [
    "ContractReviewer",
    "EstimateVote",
    "EstimationConsensus",
    "EstimationResult",
    "EstimationRound",
    "EstimationVoteRequest",
    "EstimationVoter",
    "LanguageModelProvider",
    "LanguageModelRequest",
    "LanguageModelResponse",
    "PERSONA_CONTRACTS",
    "ProviderEstimationVoter",
    "StrandsLanguageModelProvider",
    "StubLanguageModelProvider",
    "build_estimation_context",
    "build_input_context",
    "compute_final_points",
    "create_provider",
    "extract_json_object",
    "is_converged",
    "parse_estimate_vote",
    "validate_persona_output",
]
