"""Persona catalog and refinement order."""

from .catalog import (
    PERSONA_CATALOG,
    REFINEMENT_ORDER,
    Persona,
    get_persona,
    personas_for_stage,
)

__all__ = [
    "PERSONA_CATALOG",
    "REFINEMENT_ORDER",
    "Persona",
    "get_persona",
    "personas_for_stage",
]
