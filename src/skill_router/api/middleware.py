"""Error handling middleware for FastAPI."""

from fastapi import Request
from fastapi.responses import JSONResponse

from skill_router.utils.errors import (
    ContentUnavailableError,
    InvalidQueryError,
    RegistryError,
    SkillNotFoundError,
)


async def skill_not_found_handler(request: Request, exc: SkillNotFoundError) -> JSONResponse:
    """Handle unknown skill id errors.

    Args:
        request: FastAPI request
        exc: Exception instance

    Returns:
        JSON error response
    """
    return JSONResponse(
        status_code=404,
        content={
            "error": "skill_not_found",
            "message": f"Skill '{exc.skill_id}' not found",
            "skill_id": exc.skill_id,
        },
    )


async def invalid_query_handler(request: Request, exc: InvalidQueryError) -> JSONResponse:
    """Handle empty or malformed routing requests.

    Args:
        request: FastAPI request
        exc: Exception instance

    Returns:
        JSON error response
    """
    return JSONResponse(
        status_code=400,
        content={
            "error": "invalid_query",
            "message": str(exc),
        },
    )


async def content_unavailable_handler(
    request: Request, exc: ContentUnavailableError
) -> JSONResponse:
    """Handle content that could not be fetched from its backing store.

    Args:
        request: FastAPI request
        exc: Exception instance

    Returns:
        JSON error response
    """
    return JSONResponse(
        status_code=503,
        content={
            "error": "content_unavailable",
            "message": str(exc),
            "ref": exc.ref,
            "kind": exc.kind.value,
        },
    )


async def registry_error_handler(request: Request, exc: RegistryError) -> JSONResponse:
    """Handle malformed taxonomies (the active registry is left in place).

    Args:
        request: FastAPI request
        exc: Exception instance

    Returns:
        JSON error response
    """
    return JSONResponse(
        status_code=422,
        content={
            "error": "registry_error",
            "message": str(exc),
            "kind": exc.kind.value,
            "skill_id": exc.skill_id,
        },
    )


def register_exception_handlers(app):
    """Register all exception handlers with FastAPI app.

    Args:
        app: FastAPI application instance
    """
    app.add_exception_handler(SkillNotFoundError, skill_not_found_handler)
    app.add_exception_handler(InvalidQueryError, invalid_query_handler)
    app.add_exception_handler(ContentUnavailableError, content_unavailable_handler)
    app.add_exception_handler(RegistryError, registry_error_handler)
