"""Utility modules for skill-router."""

from skill_router.utils.errors import (
    ContentErrorKind,
    ContentUnavailableError,
    InvalidQueryError,
    RegistryError,
    RegistryErrorKind,
    SkillNotFoundError,
    SkillRouterError,
    exit_code_for,
    get_error_code,
)

__all__ = [
    "SkillRouterError",
    "InvalidQueryError",
    "SkillNotFoundError",
    "RegistryError",
    "RegistryErrorKind",
    "ContentUnavailableError",
    "ContentErrorKind",
    "exit_code_for",
    "get_error_code",
]
