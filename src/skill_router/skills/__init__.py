"""Skill routing: registry, matching, content loading and assembly.

A routing request flows through these modules:
- registry: validated, immutable taxonomy of SkillNodes
- matcher: scores nodes against free-text queries
- loader: fetches and caches content units (single-flight, LRU)
- assembler: builds size-bounded responses
- router: the facade tying the above together per request
"""

from skill_router.skills.assembler import AssembledContent, ResponseAssembler
from skill_router.skills.loader import ContentLoader, ContentUnit
from skill_router.skills.matcher import MatchResult, MatcherConfig, TriggerMatcher
from skill_router.skills.registry import ContentRef, ContentRole, SkillNode, SkillRegistry
from skill_router.skills.router import (
    RequestState,
    RouteResponse,
    RouterConfig,
    SkillRouter,
    create_router,
)
from skill_router.skills.sources import (
    ContentSource,
    FileSystemContentSource,
    InMemoryContentSource,
    RedisContentSource,
)
from skill_router.skills.taxonomy import TaxonomySource

__all__ = [
    "AssembledContent",
    "ResponseAssembler",
    "ContentLoader",
    "ContentUnit",
    "MatchResult",
    "MatcherConfig",
    "TriggerMatcher",
    "ContentRef",
    "ContentRole",
    "SkillNode",
    "SkillRegistry",
    "RequestState",
    "RouteResponse",
    "RouterConfig",
    "SkillRouter",
    "create_router",
    "ContentSource",
    "FileSystemContentSource",
    "InMemoryContentSource",
    "RedisContentSource",
    "TaxonomySource",
]
