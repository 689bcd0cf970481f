"""Custom exception classes and error handling utilities."""

from enum import Enum


class SkillRouterError(Exception):
    """Base exception for skill-router."""

    pass


class InvalidQueryError(SkillRouterError):
    """Raised when a routing request is empty or malformed."""

    def __init__(self, message: str, query: str | None = None):
        self.query = query
        super().__init__(message)


class SkillNotFoundError(InvalidQueryError):
    """Raised when a skill id is not defined in the registry."""

    def __init__(self, skill_id: str):
        self.skill_id = skill_id
        super().__init__(f"Skill '{skill_id}' not found")


class RegistryErrorKind(str, Enum):
    """Reasons a taxonomy can be rejected at build time."""

    DUPLICATE_ID = "duplicate_id"
    DANGLING_REFERENCE = "dangling_reference"
    CYCLE_DETECTED = "cycle_detected"
    MULTIPLE_PARENTS = "multiple_parents"
    INVALID_DEFINITION = "invalid_definition"


class RegistryError(SkillRouterError):
    """Raised when a skill taxonomy is malformed.

    The registry is never partially constructed: callers either get a fully
    validated registry or this error.
    """

    def __init__(self, kind: RegistryErrorKind, message: str, skill_id: str | None = None):
        self.kind = kind
        self.skill_id = skill_id
        super().__init__(f"{kind.value}: {message}")


class ContentErrorKind(str, Enum):
    """Reasons a content unit could not be materialized."""

    NOT_FOUND = "not_found"
    IO_ERROR = "io_error"


class ContentUnavailableError(SkillRouterError):
    """Raised when a content ref cannot be fetched from its backing store."""

    def __init__(self, ref: str, kind: ContentErrorKind, detail: str | None = None):
        self.ref = ref
        self.kind = kind
        self.detail = detail
        message = f"Content '{ref}' unavailable ({kind.value})"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)

    @property
    def retryable(self) -> bool:
        """Only transient I/O failures are worth a second attempt."""
        return self.kind is ContentErrorKind.IO_ERROR


# CLI exit codes
EXIT_RESOLVED = 0
EXIT_AMBIGUOUS = 1
EXIT_INVALID_INPUT = 2
EXIT_CONTENT_FAILURE = 3
EXIT_REGISTRY_FAILURE = 4


def exit_code_for(exc: BaseException) -> int:
    """Map an exception to the CLI exit code for its category.

    Args:
        exc: The exception raised while routing

    Returns:
        Process exit code
    """
    if isinstance(exc, InvalidQueryError):
        return EXIT_INVALID_INPUT
    if isinstance(exc, ContentUnavailableError):
        return EXIT_CONTENT_FAILURE
    if isinstance(exc, RegistryError):
        return EXIT_REGISTRY_FAILURE
    return EXIT_CONTENT_FAILURE


def get_error_code(exc: BaseException) -> str:
    """Get the machine-readable error code used in response payloads.

    Args:
        exc: The exception to describe

    Returns:
        Short snake_case error code
    """
    if isinstance(exc, SkillNotFoundError):
        return "skill_not_found"
    if isinstance(exc, InvalidQueryError):
        return "invalid_query"
    if isinstance(exc, ContentUnavailableError):
        return "content_unavailable"
    if isinstance(exc, RegistryError):
        return "registry_error"
    return "internal_error"
