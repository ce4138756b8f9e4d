"""Output contracts for persona reviews.

Every persona must return a JSON object. All personas share the
``risks``/``assumptions``/``recommendations`` string arrays; each persona
adds its own required fields.
"""

from typing import Any

from governor.config import PersonaId

COMMON_ARRAYS = ("risks", "assumptions", "recommendations")

# (field, kind) where kind is "array", "string" or "int"
PERSONA_CONTRACTS: dict[PersonaId, tuple[tuple[str, str], ...]] = {
    PersonaId.PO: (
        ("acceptanceCriteriaUpdates", "array"),
        ("nonGoalsUpdates", "array"),
        ("prioritySuggestion", "int"),
    ),
    PersonaId.MIBS: (
        ("icp", "string"),
        ("positioning", "string"),
        ("pricingHypothesis", "string"),
        ("scopeTraps", "array"),
    ),
    PersonaId.SAD: (
        ("architectureChanges", "array"),
        ("interfaceNotes", "array"),
        ("nfrs", "array"),
    ),
    PersonaId.SASD: (
        ("dspApproach", "string"),
        ("metrics", "array"),
        ("constraints", "array"),
    ),
    PersonaId.QA: (
        ("testOracles", "array"),
        ("edgeCases", "array"),
        ("dodChecklist", "array"),
    ),
}


def validate_persona_output(persona_id: PersonaId, output: Any) -> list[str]:
    """Validate a persona's output against its contract.

    Args:
        persona_id: Persona that produced the output
        output: Parsed JSON output

    Returns:
        List of contract errors (empty when the output is valid)
    """
    if not isinstance(output, dict):
        return ["Output must be a JSON object."]

    errors: list[str] = []
    for name in COMMON_ARRAYS:
        _require_string_array(output, name, errors)

    for name, kind in PERSONA_CONTRACTS[persona_id]:
        if kind == "array":
            _require_string_array(output, name, errors)
        elif kind == "string":
            _require_string(output, name, errors)
        else:
            _require_int(output, name, 1, errors)

    return errors


def _require_string(root: dict, name: str, errors: list[str]) -> None:
    value = root.get(name)
    if not isinstance(value, str) or not value.strip():
        errors.append(f"Missing/invalid '{name}' (required non-empty string).")


def _require_int(root: dict, name: str, minimum: int, errors: list[str]) -> None:
    value = root.get(name)
    # bool is an int subclass; reject it explicitly
    if isinstance(value, bool) or not isinstance(value, int) or value < minimum:
        errors.append(f"Missing/invalid '{name}' (required integer >= {minimum}).")


def _require_string_array(root: dict, name: str, errors: list[str]) -> None:
    value = root.get(name)
    if not isinstance(value, list):
        errors.append(f"Missing/invalid '{name}' (required array of strings).")
        return
    if any(not isinstance(entry, str) for entry in value):
        errors.append(f"Invalid '{name}' entry (all items must be strings).")
