"""Skill router facade.

This module provides the SkillRouter class, which runs one request through
matching, sub-skill descent, content loading and response assembly:

    RECEIVED -> MATCHING -> AMBIGUOUS | RESOLVED -> LOADING -> ASSEMBLING -> COMPLETED

FAILED is reachable from any stage. Matching is pure and never retried;
a transient content I/O error is retried once after invalidating the
failing ref, then surfaced.

Usage:
    from skill_router.skills.router import create_router

    router = create_router(Config.from_env())
    response = await router.route("this query is slow")
    if response.status == "resolved":
        print(response.content)
    elif response.status == "ambiguous":
        for candidate in response.candidates:
            print(candidate["id"], candidate["summary"])
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from skill_router.core.config import Config
from skill_router.skills.assembler import AssembledContent, ResponseAssembler
from skill_router.skills.loader import ContentLoader, ContentUnit
from skill_router.skills.matcher import MatchResult, MatcherConfig, TriggerMatcher
from skill_router.skills.registry import SkillNode, SkillRegistry
from skill_router.skills.taxonomy import TaxonomySource
from skill_router.utils.errors import (
    EXIT_AMBIGUOUS,
    EXIT_CONTENT_FAILURE,
    EXIT_INVALID_INPUT,
    EXIT_REGISTRY_FAILURE,
    EXIT_RESOLVED,
    ContentUnavailableError,
    InvalidQueryError,
    RegistryError,
    SkillRouterError,
    get_error_code,
)

logger = logging.getLogger(__name__)


class RequestState(str, Enum):
    """Stages of a single routing request."""

    RECEIVED = "received"
    MATCHING = "matching"
    AMBIGUOUS = "ambiguous"
    RESOLVED = "resolved"
    LOADING = "loading"
    ASSEMBLING = "assembling"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class RouteResponse:
    """Structured result of a routing request.

    Attributes:
        status: "resolved", "ambiguous" or "error"
        node: The resolved skill's metadata (resolved only)
        content: Assembled guidance text (resolved) or candidate listing (ambiguous)
        truncated: Whether content was cut to fit the size budget
        candidates: Ranked candidate skills (ambiguous only)
        error: Error code, message and failing ref (error only)
        reason: Why the response is ambiguous ("close_scores" or "no_match")
            or how a resolved skill was chosen ("matched", "override")
        included_refs: Content refs present in the content
        omitted_refs: Content refs that did not fit the budget
        trace: The request states visited, in order
    """

    status: str
    node: Optional[dict[str, Any]] = None
    content: Optional[str] = None
    truncated: Optional[bool] = None
    candidates: Optional[list[dict[str, Any]]] = None
    error: Optional[dict[str, Any]] = None
    reason: Optional[str] = None
    included_refs: list[str] = field(default_factory=list)
    omitted_refs: list[str] = field(default_factory=list)
    trace: list[RequestState] = field(default_factory=list)

    @property
    def exit_code(self) -> int:
        """CLI exit code for this response."""
        if self.status == "resolved":
            return EXIT_RESOLVED
        if self.status == "ambiguous":
            return EXIT_AMBIGUOUS
        code = (self.error or {}).get("code")
        if code in ("invalid_query", "skill_not_found"):
            return EXIT_INVALID_INPUT
        if code == "registry_error":
            return EXIT_REGISTRY_FAILURE
        return EXIT_CONTENT_FAILURE

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary representation, omitting empty fields."""
        data: dict[str, Any] = {"status": self.status}
        for key in ("node", "content", "truncated", "candidates", "error", "reason"):
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        if self.status == "resolved":
            data["included_refs"] = self.included_refs
            data["omitted_refs"] = self.omitted_refs
        data["trace"] = [state.value for state in self.trace]
        return data


@dataclass
class RouterConfig:
    """Configuration for the skill router.

    Attributes:
        max_response_chars: Default size budget for assembled content
        max_candidates: Maximum candidates listed for ambiguous requests
        fetch_timeout: Seconds allowed per backing fetch (None waits forever)
    """

    max_response_chars: int = 8000
    max_candidates: int = 5
    fetch_timeout: float | None = 5.0


@dataclass(frozen=True)
class _Snapshot:
    """Registry and loader that belong together; swapped as one reference."""

    registry: SkillRegistry
    loader: ContentLoader
    source: Optional[TaxonomySource] = None


class _Trace:
    def __init__(self):
        self.states: list[RequestState] = [RequestState.RECEIVED]

    def enter(self, state: RequestState) -> None:
        self.states.append(state)


class SkillRouter:
    """Routes free-text requests to skills and assembles their guidance.

    The registry and loader are held in a single snapshot reference.
    Each request captures the snapshot when it starts, and reload()
    builds a complete new registry before swapping the reference, so
    in-flight requests never see a half-built tree.

    Example:
        source = TaxonomySource.from_directory("skills")
        router = SkillRouter.from_source(source)

        response = await router.route("this query is slow")
        response = await router.route("", skill_id="sql.optimizer")

        router.reload()  # rebuild from the same source
    """

    def __init__(
        self,
        registry: SkillRegistry,
        loader: ContentLoader,
        matcher: TriggerMatcher | None = None,
        assembler: ResponseAssembler | None = None,
        config: RouterConfig | None = None,
        source: TaxonomySource | None = None,
    ):
        """Initialize the router.

        Args:
            registry: Validated skill registry
            loader: Content loader for the registry's refs
            matcher: Trigger matcher (defaults to MatcherConfig defaults)
            assembler: Response assembler
            config: Router configuration
            source: Taxonomy source the registry was built from, used by reload()
        """
        self._config = config or RouterConfig()
        self._matcher = matcher or TriggerMatcher()
        self._assembler = assembler or ResponseAssembler(self._config.max_response_chars)
        self._snapshot = _Snapshot(registry=registry, loader=loader, source=source)

    @classmethod
    def from_source(
        cls,
        source: TaxonomySource,
        config: Config | None = None,
    ) -> "SkillRouter":
        """Build a router from a taxonomy source and application config.

        Raises:
            RegistryError: If the taxonomy is malformed
        """
        config = config or Config()
        registry = source.build_registry()
        loader = ContentLoader(
            source.content_source,
            max_entries=config.cache_max_entries,
            max_chars=config.cache_max_chars,
        )
        return cls(
            registry=registry,
            loader=loader,
            matcher=TriggerMatcher(MatcherConfig(ambiguity_threshold=config.ambiguity_threshold)),
            assembler=ResponseAssembler(config.max_response_chars),
            config=RouterConfig(
                max_response_chars=config.max_response_chars,
                max_candidates=config.max_candidates,
                fetch_timeout=config.fetch_timeout,
            ),
            source=source,
        )

    @property
    def registry(self) -> SkillRegistry:
        return self._snapshot.registry

    @property
    def loader(self) -> ContentLoader:
        return self._snapshot.loader

    @property
    def matcher(self) -> TriggerMatcher:
        return self._matcher

    def reload(self, source: TaxonomySource | None = None) -> SkillRegistry:
        """Rebuild the registry and swap it in atomically.

        The content loader (and its cache) is kept when the new source uses
        the same content store, minus any cached document whose source
        version has changed. Otherwise a fresh loader is created.

        Args:
            source: New taxonomy source. Defaults to the current one.

        Returns:
            The new registry

        Raises:
            RegistryError: If the new taxonomy is malformed. The current
                registry stays active.
            ValueError: If no source is given and none is known
        """
        current = self._snapshot
        source = source or current.source
        if source is None:
            raise ValueError("No taxonomy source to reload from")

        registry = source.build_registry()
        loader = current.loader
        if source.content_source is loader.source:
            loader.drop_stale()
        else:
            loader = ContentLoader(
                source.content_source,
                max_entries=loader.stats()["max_entries"],
                max_chars=loader.stats()["max_chars"],
            )

        self._snapshot = _Snapshot(registry=registry, loader=loader, source=source)
        logger.info(f"Reloaded skill registry from {source.description}: {len(registry)} skills")
        return registry

    async def route(
        self,
        query: str,
        skill_id: str | None = None,
        max_chars: int | None = None,
        timeout: float | None = None,
    ) -> RouteResponse:
        """Route one request.

        Args:
            query: Free-text user intent
            skill_id: Explicit skill to use, bypassing matching
            max_chars: Size budget override for this response
            timeout: Fetch timeout override in seconds

        Returns:
            RouteResponse with status "resolved", "ambiguous" or "error"
        """
        snapshot = self._snapshot
        trace = _Trace()
        try:
            budget = self._validate_budget(max_chars)

            if skill_id is not None:
                node = snapshot.registry.get(skill_id)
                trace.enter(RequestState.RESOLVED)
                return await self._complete(snapshot, trace, node, None, "override", budget, timeout)

            trace.enter(RequestState.MATCHING)
            results = self._matcher.rank(query, snapshot.registry)
            if not results:
                raise InvalidQueryError("No skills are registered", query=query)

            top = results[0]
            if top.score <= 0:
                trace.enter(RequestState.AMBIGUOUS)
                return self._disambiguate(
                    trace, results[: self._config.max_candidates], "no_match", budget
                )
            if top.ambiguous:
                trace.enter(RequestState.AMBIGUOUS)
                contenders = [r for r in results if r.ambiguous]
                return self._disambiguate(
                    trace, contenders[: self._config.max_candidates], "close_scores", budget
                )

            match, contenders = self._descend(top, results, snapshot.registry)
            if contenders:
                trace.enter(RequestState.AMBIGUOUS)
                return self._disambiguate(
                    trace, contenders[: self._config.max_candidates], "close_scores", budget
                )

            trace.enter(RequestState.RESOLVED)
            return await self._complete(
                snapshot, trace, match.node, match.score, "matched", budget, timeout
            )

        except SkillRouterError as e:
            trace.enter(RequestState.FAILED)
            logger.error(f"Routing failed ({get_error_code(e)}): {e}")
            return RouteResponse(status="error", error=_error_payload(e), trace=trace.states)

    def route_sync(self, query: str, **kwargs: Any) -> RouteResponse:
        """Run route() on a fresh event loop (for the CLI)."""
        return asyncio.run(self.route(query, **kwargs))

    def _validate_budget(self, max_chars: int | None) -> int:
        if max_chars is None:
            return self._config.max_response_chars
        if isinstance(max_chars, bool) or not isinstance(max_chars, int):
            raise InvalidQueryError("max_chars must be an integer")
        if max_chars <= len(self._assembler.marker):
            raise InvalidQueryError(
                f"max_chars must be greater than {len(self._assembler.marker)}"
            )
        return max_chars

    def _descend(
        self, top: MatchResult, results: list[MatchResult], registry: SkillRegistry
    ) -> tuple[MatchResult, list[MatchResult]]:
        """Move from a matched group into the sub-skill the query singles out.

        A child qualifies when one of its trigger phrases matched, or when its
        triggers cover a query keyword the group's own triggers do not. A child
        whose id or title merely repeats a query word does not qualify.

        Returns:
            Tuple of (final match, contenders). Contenders are the qualifying
            children of the final match that are too close to choose between;
            the list is empty when the match is decisive.
        """
        by_id = {r.node.id: r for r in results}
        current = top
        while current.node.children:
            qualified = sorted(
                (
                    by_id[child.id]
                    for child in registry.children_of(current.node.id)
                    if by_id[child.id].score > 0 and _refines(by_id[child.id], current)
                ),
                key=lambda r: (-r.score, -r.depth, r.node.id),
            )
            if not qualified:
                break

            best = qualified[0]
            band = self._matcher.config.ambiguity_threshold * best.score
            close = [r for r in qualified[1:] if best.score - r.score < band]
            if close:
                logger.debug(f"Sub-skills of {current.node.id} too close to call")
                return current, [best] + close

            logger.debug(f"Descending from {current.node.id} to sub-skill {best.node.id}")
            current = best
        return current, []

    def _disambiguate(
        self, trace: _Trace, candidates: list[MatchResult], reason: str, budget: int
    ) -> RouteResponse:
        trace.enter(RequestState.ASSEMBLING)
        listing = self._assembler.assemble_disambiguation(candidates, budget, reason=reason)
        trace.enter(RequestState.COMPLETED)
        logger.info(
            f"Ambiguous request ({reason}): {', '.join(c.node.id for c in candidates)}"
        )
        return RouteResponse(
            status="ambiguous",
            content=listing.text,
            truncated=listing.truncated,
            candidates=[
                {
                    "id": c.node.id,
                    "title": c.node.title,
                    "summary": c.node.summary,
                    "score": c.score,
                }
                for c in candidates
            ],
            reason=reason,
            trace=trace.states,
        )

    async def _complete(
        self,
        snapshot: _Snapshot,
        trace: _Trace,
        node: SkillNode,
        score: float | None,
        reason: str,
        budget: int,
        timeout: float | None,
    ) -> RouteResponse:
        registry = snapshot.registry

        if node.content_refs:
            trace.enter(RequestState.LOADING)
            units = await self._load_units(snapshot.loader, node, timeout)
            trace.enter(RequestState.ASSEMBLING)
            assembled = self._assembler.assemble_content(node, units, budget)
        else:
            trace.enter(RequestState.ASSEMBLING)
            assembled = self._assembler.assemble_sub_skills(
                node, registry.children_of(node.id), budget
            )
        trace.enter(RequestState.COMPLETED)

        logger.info(f"Resolved request to {node.id} ({reason}, truncated={assembled.truncated})")
        return _resolved_response(node, registry, score, reason, assembled, trace)

    async def _load_units(
        self, loader: ContentLoader, node: SkillNode, timeout: float | None
    ) -> list[ContentUnit]:
        refs = [c.ref for c in node.content_refs]
        if timeout is None:
            timeout = self._config.fetch_timeout
        try:
            return await loader.load_many(refs, timeout=timeout)
        except ContentUnavailableError as e:
            if not e.retryable:
                raise
            logger.warning(f"Retrying content load for {node.id} after error: {e}")
            loader.invalidate(e.ref)
            return await loader.load_many(refs, timeout=timeout)


def _refines(child: MatchResult, parent: MatchResult) -> bool:
    if any(hit.kind == "phrase" for hit in child.matched_triggers):
        return True
    return bool(child.matched_keywords - parent.matched_keywords)


def _resolved_response(
    node: SkillNode,
    registry: SkillRegistry,
    score: float | None,
    reason: str,
    assembled: AssembledContent,
    trace: _Trace,
) -> RouteResponse:
    node_info: dict[str, Any] = {
        "id": node.id,
        "title": node.title,
        "summary": node.summary,
        "category": node.category,
        "version": node.version,
        "path": registry.path(node.id),
    }
    if score is not None:
        node_info["score"] = score
    return RouteResponse(
        status="resolved",
        node=node_info,
        content=assembled.text,
        truncated=assembled.truncated,
        reason=reason,
        included_refs=assembled.included_refs,
        omitted_refs=assembled.omitted_refs,
        trace=trace.states,
    )


def _error_payload(exc: SkillRouterError) -> dict[str, Any]:
    payload: dict[str, Any] = {"code": get_error_code(exc), "message": str(exc)}
    if isinstance(exc, ContentUnavailableError):
        payload["ref"] = exc.ref
        payload["kind"] = exc.kind.value
    elif isinstance(exc, RegistryError):
        payload["kind"] = exc.kind.value
    skill_id = getattr(exc, "skill_id", None)
    if skill_id:
        payload["skill_id"] = skill_id
    return payload


def create_router(config: Config | None = None) -> SkillRouter:
    """Create a router from application configuration.

    Args:
        config: Application config. If None, reads the environment.

    Returns:
        Configured SkillRouter

    Raises:
        RegistryError: If the configured taxonomy is malformed
    """
    config = config or Config.from_env()
    return SkillRouter.from_source(TaxonomySource.from_config(config), config)
