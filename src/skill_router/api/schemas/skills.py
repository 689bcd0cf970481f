"""Schemas for Skills and routing API endpoints."""

from typing import Any, Optional

from pydantic import BaseModel, Field


class SkillMetadata(BaseModel):
    """Skill metadata with tree position (no content)."""

    id: str = Field(..., description="Unique skill identifier (e.g., 'sql.optimizer')")
    title: str = Field(..., description="Human-readable skill name")
    summary: str = Field("", description="What the skill does")
    category: str = Field("general", description="Skill category")
    version: str = Field("1.0.0", description="Skill version")
    depth: int = Field(0, description="Depth in the taxonomy (roots are 0)")
    parent: Optional[str] = Field(None, description="Parent skill id")
    children: list[str] = Field(default_factory=list, description="Sub-skill ids")


class SkillListResponse(BaseModel):
    """Response listing all skills in depth-first order."""

    skills: list[SkillMetadata]
    total: int


class ContentRefInfo(BaseModel):
    """A document backing a skill."""

    ref: str = Field(..., description="Content ref understood by the content source")
    role: str = Field(..., description="primary, examples or reference-table")


class SkillDetail(BaseModel):
    """Full definition of one skill."""

    id: str
    title: str
    summary: str = ""
    category: str = "general"
    version: str = "1.0.0"
    weight: float = 0.0
    triggers: list[str] = Field(default_factory=list)
    negative_triggers: list[str] = Field(default_factory=list)
    children: list[str] = Field(default_factory=list)
    content: list[ContentRefInfo] = Field(default_factory=list)
    path: list[str] = Field(default_factory=list, description="Ids from the root down to this skill")


class RouteRequest(BaseModel):
    """Request to route a free-text query to a skill."""

    query: str = Field("", description="Free-text user intent")
    skill_id: Optional[str] = Field(
        None,
        description="Explicit skill to use, bypassing matching",
    )
    max_chars: Optional[int] = Field(
        None,
        description="Response size budget in characters",
    )


class CandidateInfo(BaseModel):
    """A candidate skill listed in an ambiguous response."""

    id: str
    title: str
    summary: str = ""
    score: float


class RouteResult(BaseModel):
    """Result of a routing request."""

    status: str = Field(..., description="resolved, ambiguous or error")
    node: Optional[dict[str, Any]] = Field(None, description="Resolved skill metadata")
    content: Optional[str] = Field(None, description="Guidance text or candidate listing")
    truncated: Optional[bool] = Field(None, description="Whether content was cut to the budget")
    candidates: Optional[list[CandidateInfo]] = Field(None, description="Candidates when ambiguous")
    error: Optional[dict[str, Any]] = Field(None, description="Error code, message and failing ref")
    reason: Optional[str] = Field(None, description="How the response was reached")
    included_refs: list[str] = Field(default_factory=list)
    omitted_refs: list[str] = Field(default_factory=list)
    trace: list[str] = Field(default_factory=list, description="Request states visited")


class ReloadResponse(BaseModel):
    """Response after rebuilding the registry."""

    status: str = "reloaded"
    total: int = Field(..., description="Number of skills in the new registry")
    roots: list[str] = Field(default_factory=list, description="Top-level skill ids")


class CacheStatsResponse(BaseModel):
    """Content cache statistics."""

    hits: int
    misses: int
    fetches: int
    evictions: int
    entries: int
    cached_chars: int
    in_flight: int
    max_entries: int
    max_chars: int
