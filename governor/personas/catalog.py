"""Persona Catalog: the fixed set of refinement personas.

The catalog is a module-level tuple built once at import and never mutated.
Its order is the mandatory refinement order: later personas may depend on
artifacts produced by earlier ones (QA depends on architecture decisions).
"""

from dataclasses import dataclass
from types import MappingProxyType

from governor.config import PersonaId, RefinementStage


@dataclass(frozen=True)
class Persona:
    """Immutable persona definition."""

    id: PersonaId
    display_name: str
    prompt_file_name: str  # Under prompts/personas/
    stage: RefinementStage


REFINEMENT_ORDER: tuple[Persona, ...] = (
    Persona(PersonaId.PO, "Product Owner", "product-owner.md", RefinementStage.BUSINESS),
    Persona(
        PersonaId.MIBS,
        "Music Industry Business Specialist",
        "music-biz-specialist.md",
        RefinementStage.BUSINESS,
    ),
    Persona(
        PersonaId.SAD,
        "Senior Architect Developer",
        "senior-architect-dev.md",
        RefinementStage.TECHNICAL,
    ),
    Persona(
        PersonaId.SASD,
        "Senior Audio Systems Developer",
        "senior-audio-dev.md",
        RefinementStage.TECHNICAL,
    ),
    Persona(PersonaId.QA, "QA Engineer", "qa-engineer.md", RefinementStage.ACCEPTANCE),
)

PERSONA_CATALOG: MappingProxyType[PersonaId, Persona] = MappingProxyType(
    {persona.id: persona for persona in REFINEMENT_ORDER}
)


def get_persona(persona_id: PersonaId | str) -> Persona:
    """Look up a persona by id.

    Raises:
        KeyError: If the id is not in the catalog
    """
    return PERSONA_CATALOG[PersonaId(persona_id)]


def personas_for_stage(stage: RefinementStage) -> list[Persona]:
    """Return the personas responsible for a stage, in refinement order."""
    return [persona for persona in REFINEMENT_ORDER if persona.stage == stage]
