"""Skills API router: taxonomy browsing, request routing and administration."""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from skill_router.api.dependencies import get_skill_router
from skill_router.api.schemas.skills import (
    CacheStatsResponse,
    ContentRefInfo,
    ReloadResponse,
    RouteRequest,
    RouteResult,
    SkillDetail,
    SkillListResponse,
    SkillMetadata,
)
from skill_router.skills.router import SkillRouter

logger = logging.getLogger(__name__)

router = APIRouter(tags=["skills"])

# HTTP status for each routing error code
ERROR_STATUS_CODES = {
    "invalid_query": 400,
    "skill_not_found": 404,
    "content_unavailable": 503,
    "registry_error": 422,
}


@router.get("/skills", response_model=SkillListResponse)
async def list_skills(
    skill_router: SkillRouter = Depends(get_skill_router),
) -> SkillListResponse:
    """List all skills with their position in the taxonomy (metadata only)."""
    skills = [SkillMetadata(**s) for s in skill_router.registry.list_skills()]
    return SkillListResponse(skills=skills, total=len(skills))


@router.get("/skills/{skill_id}", response_model=SkillDetail)
async def get_skill(
    skill_id: str,
    skill_router: SkillRouter = Depends(get_skill_router),
) -> SkillDetail:
    """Get one skill's full definition, including triggers and content refs.

    Raises SkillNotFoundError (404) for unknown ids.
    """
    registry = skill_router.registry
    node = registry.get(skill_id)
    data = node.to_dict()
    return SkillDetail(
        id=data["id"],
        title=data["title"],
        summary=data["summary"],
        category=data["category"],
        version=data["version"],
        weight=data["weight"],
        triggers=data["triggers"],
        negative_triggers=data["negative_triggers"],
        children=data["children"],
        content=[ContentRefInfo(**c) for c in data["content"]],
        path=registry.path(node.id),
    )


@router.post("/route", response_model=RouteResult)
async def route_request(
    request: RouteRequest,
    skill_router: SkillRouter = Depends(get_skill_router),
):
    """Route a free-text request to a skill.

    Resolved and ambiguous responses return 200. Errors keep the same body
    shape with a status code matching the error: 400 for invalid queries,
    404 for an unknown skill override, 503 when content is unavailable.
    """
    response = await skill_router.route(
        request.query,
        skill_id=request.skill_id,
        max_chars=request.max_chars,
    )
    result = RouteResult(**response.to_dict())
    if response.status != "error":
        return result

    status_code = ERROR_STATUS_CODES.get(response.error["code"], 500)
    return JSONResponse(status_code=status_code, content=result.model_dump())


@router.post("/admin/reload", response_model=ReloadResponse)
def reload_registry(
    skill_router: SkillRouter = Depends(get_skill_router),
) -> ReloadResponse:
    """Rebuild the registry from the configured taxonomy.

    An invalid taxonomy raises RegistryError (422) and the current
    registry stays active.
    """
    registry = skill_router.reload()
    return ReloadResponse(total=len(registry), roots=[node.id for node in registry.roots()])


@router.get("/admin/cache", response_model=CacheStatsResponse)
async def cache_stats(
    skill_router: SkillRouter = Depends(get_skill_router),
) -> CacheStatsResponse:
    """Get content cache statistics."""
    return CacheStatsResponse(**skill_router.loader.stats())
