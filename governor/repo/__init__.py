"""Repository layout validation."""

from .layout import (
    REQUIRED_DIRS,
    REQUIRED_FILES,
    ensure_directories,
    require_valid_layout,
    validate_layout,
)

__all__ = [
    "REQUIRED_DIRS",
    "REQUIRED_FILES",
    "ensure_directories",
    "require_valid_layout",
    "validate_layout",
]
