"""Prompt resolution for personas and flows."""

from .prompt_loader import (
    PromptKind,
    PromptResult,
    get_prompt_path,
    load_flow_prompt,
    load_persona_prompt,
    load_prompt,
    resolve_prompt,
)

__all__ = [
    "PromptKind",
    "PromptResult",
    "get_prompt_path",
    "load_flow_prompt",
    "load_persona_prompt",
    "load_prompt",
    "resolve_prompt",
]
