"""Dependency injection for FastAPI."""

from functools import lru_cache

from skill_router.core.config import Config
from skill_router.skills.router import SkillRouter, create_router


@lru_cache
def get_skill_router() -> SkillRouter:
    """Get singleton skill router instance.

    The registry is built from the configured taxonomy on first use and
    replaced in place by the admin reload endpoint.

    Returns:
        SkillRouter instance
    """
    return create_router(Config.from_env())
