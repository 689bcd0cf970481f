"""Tests for the error hierarchy and its exit-code mapping."""

import pytest

from skill_router.utils.errors import (
    ContentErrorKind,
    ContentUnavailableError,
    InvalidQueryError,
    RegistryError,
    RegistryErrorKind,
    SkillNotFoundError,
    exit_code_for,
    get_error_code,
)


@pytest.mark.parametrize(
    "exc, code, exit_code",
    [
        (InvalidQueryError("empty"), "invalid_query", 2),
        (SkillNotFoundError("x"), "skill_not_found", 2),
        (ContentUnavailableError("a.md", ContentErrorKind.IO_ERROR), "content_unavailable", 3),
        (RegistryError(RegistryErrorKind.CYCLE_DETECTED, "a -> a"), "registry_error", 4),
        (RuntimeError("boom"), "internal_error", 3),
    ],
)
def test_error_codes(exc, code, exit_code):
    """Test the machine-readable code and CLI exit code for each error."""
    assert get_error_code(exc) == code
    assert exit_code_for(exc) == exit_code


def test_content_error_message_names_ref():
    exc = ContentUnavailableError("sql/SKILL.md", ContentErrorKind.NOT_FOUND, "no file")
    assert str(exc) == "Content 'sql/SKILL.md' unavailable (not_found): no file"
    assert not exc.retryable


def test_registry_error_message_includes_kind():
    exc = RegistryError(RegistryErrorKind.DUPLICATE_ID, "id 'a' repeated", skill_id="a")
    assert str(exc).startswith("duplicate_id:")
    assert exc.skill_id == "a"
