"""Reviewer that asks a language model for each persona's output and
checks it against the persona's contract.

A persona that finds nothing to say about an item answers with
``{"notApplicable": true, "reason": "..."}``; the pipeline records it and
moves on to the next persona.
"""

import json
import logging
import re
from typing import Any

from governor.review.contracts import validate_persona_output
from governor.review.providers import LanguageModelProvider, LanguageModelRequest
from governor.workflow.persona_pipeline import PersonaReviewRequest, PersonaVerdict

logger = logging.getLogger(__name__)

_JSON_CODE_BLOCK_RE = re.compile(r"```json\s*([\s\S]*?)```")
_ANY_CODE_BLOCK_RE = re.compile(r"```\s*([\s\S]*?)```")


def extract_json_object(text: str) -> dict | None:
    """Parse a JSON object out of model output.

    Tries a direct parse first, then a fenced code block. Prose around
    the object is tolerated only inside a fence.

    Returns:
        Parsed dict, or None if no JSON object was found.
    """
    if not text or not text.strip():
        return None

    text = text.strip()
    candidates = [text]
    for pattern in (_JSON_CODE_BLOCK_RE, _ANY_CODE_BLOCK_RE):
        match = pattern.search(text)
        if match:
            candidates.append(match.group(1).strip())

    for candidate in candidates:
        try:
            parsed = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(parsed, dict):
            return parsed
    return None


def build_input_context(request: PersonaReviewRequest) -> str:
    """Render the item and earlier persona outputs as the model's input."""
    context: dict[str, Any] = {
        "stage": request.stage.value,
        "persona": request.persona.id.value,
        "item": request.item,
    }
    if request.prior_outputs:
        context["priorOutputs"] = request.prior_outputs
    return json.dumps(context, indent=2, sort_keys=True, default=str)


class ContractReviewer:
    """PersonaReviewer backed by a LanguageModelProvider."""

    def __init__(self, provider: LanguageModelProvider):
        self.provider = provider

    def invoke(self, request: PersonaReviewRequest) -> PersonaVerdict:
        persona_id = request.persona.id
        response = self.provider.generate(
            LanguageModelRequest(
                persona_id=persona_id,
                persona_prompt=request.persona_prompt,
                flow_prompt=request.flow_prompt,
                input_context=build_input_context(request),
            )
        )

        output = extract_json_object(response.output_text)
        if output is None:
            logger.warning(f"{persona_id.value} returned output that is not a JSON object")
            return PersonaVerdict.reject(["Output is not a valid JSON object."])

        if output.get("notApplicable") is True:
            reason = output.get("reason")
            return PersonaVerdict.not_applicable(reason if isinstance(reason, str) else None)

        errors = validate_persona_output(persona_id, output)
        if errors:
            logger.warning(
                f"{persona_id.value} output failed contract validation: {len(errors)} error(s)"
            )
            return PersonaVerdict.reject(errors)

        return PersonaVerdict.accept(output)
