"""Tests for the skill router facade.

This module tests:
- Resolution, descent into sub-skills and explicit skill overrides
- Ambiguous and no-match responses
- Error responses and the single content retry
- Atomic registry reload
"""

import asyncio

import pytest

from skill_router.core.config import BUNDLED_SKILLS_DIR, Config
from skill_router.skills.assembler import TRUNCATION_MARKER
from skill_router.skills.router import RequestState, SkillRouter
from skill_router.skills.sources import InMemoryContentSource
from skill_router.skills.taxonomy import TaxonomySource
from skill_router.utils.errors import RegistryError, RegistryErrorKind


def trace_of(response):
    return [state.value for state in response.trace]


# =============================================================================
# Resolution Tests
# =============================================================================

class TestResolve:
    """Tests for requests that resolve to a skill."""

    @pytest.mark.asyncio
    async def test_slow_query_resolves_to_optimizer(self, skill_router):
        """Test the canonical routing example."""
        response = await skill_router.route("this query is slow")

        assert response.status == "resolved"
        assert response.node["id"] == "sql.optimizer"
        assert response.node["path"] == ["sql", "sql.optimizer"]
        assert response.content.startswith("# SQL Query Optimizer")
        assert "# Examples" in response.content
        assert response.truncated is False
        assert response.included_refs == ["sql/optimizer/SKILL.md", "sql/optimizer/examples.md"]
        assert response.exit_code == 0
        assert trace_of(response) == [
            "received", "matching", "resolved", "loading", "assembling", "completed",
        ]

    @pytest.mark.asyncio
    async def test_failing_query_resolves_to_debugger(self, skill_router):
        """Test that the sibling trigger picks the debugger."""
        response = await skill_router.route("this query is failing")
        assert response.node["id"] == "sql.debugger"

    @pytest.mark.asyncio
    async def test_descends_into_child_with_own_trigger(self, skill_router):
        """Test that a matched group descends when a sub-skill trigger adds a keyword."""
        response = await skill_router.route("excel sheet with a sum")
        assert response.status == "resolved"
        assert response.node["id"] == "xlsx.formulas"
        assert response.node["path"] == ["xlsx", "xlsx.formulas"]

    @pytest.mark.asyncio
    async def test_title_words_do_not_descend(self, skill_router):
        """Test that a child matching only by its title leaves the group resolved."""
        response = await skill_router.route("spreadsheet")
        assert response.status == "resolved"
        assert response.node["id"] == "xlsx"
        assert "Spreadsheet Formulas (xlsx.formulas)" in response.content

    @pytest.mark.asyncio
    async def test_group_trigger_serves_group_content(self, skill_router):
        """Test that a query covered by the group's own triggers stays on the group."""
        response = await skill_router.route("sql")
        assert response.status == "resolved"
        assert response.node["id"] == "sql"
        assert response.included_refs == ["sql/SKILL.md"]

    @pytest.mark.asyncio
    async def test_close_sub_skills_return_candidates(self, skill_router):
        """Test that two equally matched sub-skills are listed instead of picked."""
        response = await skill_router.route("database query is slow or failing")
        assert response.status == "ambiguous"
        assert response.reason == "close_scores"
        assert sorted(c["id"] for c in response.candidates) == ["sql.debugger", "sql.optimizer"]
        assert skill_router.loader.stats()["fetches"] == 0

    @pytest.mark.parametrize("query", ["sql", "help me write a query"])
    def test_generic_queries_on_bundled_library(self, query):
        """Test that generic SQL requests resolve to the SQL group itself."""
        router = SkillRouter.from_source(TaxonomySource.from_directory(BUNDLED_SKILLS_DIR))
        response = router.route_sync(query)
        assert response.status == "resolved"
        assert response.node["id"] == "sql"
        assert response.content.startswith("# SQL")

    def test_specific_query_on_bundled_library(self):
        """Test that a sub-skill trigger still wins on the bundled library."""
        router = SkillRouter.from_source(TaxonomySource.from_directory(BUNDLED_SKILLS_DIR))
        response = router.route_sync("help me write a query, it returns wrong results")
        assert response.node["id"] == "sql.debugger"

    @pytest.mark.asyncio
    async def test_skill_override_bypasses_matching(self, skill_router):
        """Test that an explicit skill id is used as-is, even with no query."""
        response = await skill_router.route("", skill_id="sql.debugger")
        assert response.status == "resolved"
        assert response.reason == "override"
        assert response.node["id"] == "sql.debugger"
        assert "score" not in response.node
        assert RequestState.MATCHING not in response.trace

    @pytest.mark.asyncio
    async def test_group_without_content_lists_sub_skills(self, skill_router):
        """Test that a grouping skill returns a menu of its children."""
        response = await skill_router.route("", skill_id="xlsx")
        assert response.status == "resolved"
        assert "Spreadsheet Formulas (xlsx.formulas)" in response.content
        assert RequestState.LOADING not in response.trace

    @pytest.mark.asyncio
    async def test_budget_truncates_content(self, skill_router):
        """Test that oversized content is truncated to the request budget."""
        budget = len(TRUNCATION_MARKER) + 20
        response = await skill_router.route("this query is slow", max_chars=budget)
        assert response.status == "resolved"
        assert response.truncated is True
        assert len(response.content) <= budget
        assert response.omitted_refs == ["sql/optimizer/examples.md"]

    def test_route_sync(self, skill_router):
        """Test the blocking wrapper used by the CLI."""
        response = skill_router.route_sync("this query is slow")
        assert response.node["id"] == "sql.optimizer"


# =============================================================================
# Ambiguity Tests
# =============================================================================

class TestAmbiguous:
    """Tests for ambiguous and unmatched requests."""

    @pytest.mark.asyncio
    async def test_close_scores_return_candidates(self):
        """Test that near-equal skills produce a candidate listing, not content."""
        source = TaxonomySource.from_definitions(
            [
                {"id": "alpha", "title": "Alpha", "triggers": ["optimize query"], "content": ["a.md"]},
                {"id": "beta", "title": "Beta", "triggers": ["optimize queries"], "content": ["b.md"]},
            ],
            InMemoryContentSource({"a.md": "A", "b.md": "B"}),
        )
        router = SkillRouter.from_source(source, Config())
        response = await router.route("optimize my query")

        assert response.status == "ambiguous"
        assert response.reason == "close_scores"
        assert [c["id"] for c in response.candidates] == ["alpha", "beta"]
        assert "1. Alpha (alpha)" in response.content
        assert response.node is None
        assert response.exit_code == 1
        assert router.loader.stats()["fetches"] == 0

    @pytest.mark.asyncio
    async def test_no_match_lists_skills(self, skill_router):
        """Test that a query matching nothing asks the caller to choose."""
        response = await skill_router.route("bake a chocolate cake")
        assert response.status == "ambiguous"
        assert response.reason == "no_match"
        assert len(response.candidates) == 5
        assert response.content.startswith("No skill matched")

    @pytest.mark.asyncio
    async def test_candidates_are_capped(self, taxonomy_source):
        """Test that max_candidates limits the listing."""
        router = SkillRouter.from_source(taxonomy_source, Config(max_candidates=2))
        response = await router.route("bake a chocolate cake")
        assert len(response.candidates) == 2


# =============================================================================
# Error Tests
# =============================================================================

class TestErrors:
    """Tests for error responses."""

    @pytest.mark.asyncio
    async def test_empty_query_is_invalid(self, skill_router):
        """Test that a blank query is an invalid-input error."""
        response = await skill_router.route("   ")
        assert response.status == "error"
        assert response.error["code"] == "invalid_query"
        assert response.exit_code == 2
        assert response.trace[-1] is RequestState.FAILED

    @pytest.mark.asyncio
    async def test_unknown_override_is_invalid(self, skill_router):
        """Test that an unknown skill id is reported as not found."""
        response = await skill_router.route("", skill_id="nope")
        assert response.error["code"] == "skill_not_found"
        assert response.error["skill_id"] == "nope"
        assert response.exit_code == 2

    @pytest.mark.asyncio
    async def test_tiny_budget_is_invalid(self, skill_router):
        """Test that a budget too small for the truncation marker is rejected."""
        response = await skill_router.route("this query is slow", max_chars=5)
        assert response.error["code"] == "invalid_query"

    @pytest.mark.asyncio
    async def test_missing_content_names_ref(self, sample_definitions):
        """Test that NOT_FOUND content fails immediately and names the ref."""
        source = InMemoryContentSource({"sql/optimizer/SKILL.md": "# Optimizer"})
        router = SkillRouter.from_source(
            TaxonomySource.from_definitions(sample_definitions, source), Config()
        )
        response = await router.route("this query is slow")

        assert response.status == "error"
        assert response.error["code"] == "content_unavailable"
        assert response.error["kind"] == "not_found"
        assert response.error["ref"] == "sql/optimizer/examples.md"
        assert response.exit_code == 3

    @pytest.mark.asyncio
    async def test_transient_error_is_retried_once(self, sample_definitions, make_flaky_source):
        """Test that one IO_ERROR is retried and the request succeeds."""
        source = make_flaky_source({"sql/optimizer/examples.md": 1})
        router = SkillRouter.from_source(
            TaxonomySource.from_definitions(sample_definitions, source), Config()
        )
        response = await router.route("this query is slow")

        assert response.status == "resolved"
        assert source.attempts["sql/optimizer/examples.md"] == 2
        assert source.attempts["sql/optimizer/SKILL.md"] == 1

    @pytest.mark.asyncio
    async def test_persistent_error_surfaces_after_retry(self, sample_definitions, make_flaky_source):
        """Test that a second IO_ERROR is returned as an error response."""
        source = make_flaky_source({"sql/optimizer/examples.md": 5})
        router = SkillRouter.from_source(
            TaxonomySource.from_definitions(sample_definitions, source), Config()
        )
        response = await router.route("this query is slow")

        assert response.status == "error"
        assert response.error["kind"] == "io_error"
        assert response.error["ref"] == "sql/optimizer/examples.md"
        assert source.attempts["sql/optimizer/examples.md"] == 2

    def test_to_dict_omits_empty_fields(self, skill_router):
        """Test the serialized error response shape."""
        data = skill_router.route_sync("", skill_id="nope").to_dict()
        assert data["status"] == "error"
        assert "content" not in data
        assert "included_refs" not in data
        assert data["trace"] == ["received", "failed"]


# =============================================================================
# Reload Tests
# =============================================================================

class TestReload:
    """Tests for atomic registry reload."""

    def test_reload_swaps_registry(self, skill_router, memory_source):
        """Test that reload installs the new taxonomy and keeps the cache."""
        loader = skill_router.loader
        new_source = TaxonomySource.from_definitions(
            [{"id": "only", "title": "Only", "content": ["sql/SKILL.md"]}], memory_source
        )
        registry = skill_router.reload(new_source)

        assert skill_router.registry is registry
        assert [n.id for n in registry.walk()] == ["only"]
        assert skill_router.loader is loader

    @pytest.mark.asyncio
    async def test_reload_drops_edited_content(self, skill_router, memory_source):
        """Test that reload serves documents edited at the source since caching."""
        await skill_router.route("this query is slow")
        memory_source.put("sql/optimizer/SKILL.md", "# SQL Query Optimizer v2")

        skill_router.reload()
        response = await skill_router.route("this query is slow")

        assert response.content.startswith("# SQL Query Optimizer v2")
        assert "sql/optimizer/examples.md" in skill_router.loader

    def test_reload_with_new_store_replaces_loader(self, skill_router):
        """Test that a different content store gets a fresh loader."""
        loader = skill_router.loader
        new_source = TaxonomySource.from_definitions(
            [{"id": "only", "title": "Only"}], InMemoryContentSource()
        )
        skill_router.reload(new_source)
        assert skill_router.loader is not loader

    def test_invalid_reload_keeps_old_registry(self, skill_router, memory_source):
        """Test that a malformed taxonomy leaves the active registry untouched."""
        old = skill_router.registry
        bad = TaxonomySource.from_definitions(
            [{"id": "a", "children": ["b"]}, {"id": "b", "children": ["a"]}], memory_source
        )
        with pytest.raises(RegistryError) as exc_info:
            skill_router.reload(bad)

        assert exc_info.value.kind is RegistryErrorKind.CYCLE_DETECTED
        assert skill_router.registry is old

    def test_reload_rereads_same_source(self, sample_definitions, memory_source):
        """Test that reload() without arguments rebuilds from the current source."""
        definitions = list(sample_definitions)
        router = SkillRouter.from_source(
            TaxonomySource(lambda: definitions, memory_source), Config()
        )
        definitions.append({"id": "extra", "title": "Extra"})
        router.reload()
        assert "extra" in router.registry

    @pytest.mark.asyncio
    async def test_in_flight_request_keeps_its_registry(self, sample_definitions, gated_source):
        """Test that a request started before reload finishes on the old registry."""
        router = SkillRouter.from_source(
            TaxonomySource.from_definitions(sample_definitions, gated_source), Config()
        )
        task = asyncio.create_task(router.route("this query is slow"))
        await gated_source.started.wait()

        router.reload(
            TaxonomySource.from_definitions([{"id": "other", "title": "Other"}], gated_source)
        )
        gated_source.release.set()
        response = await task

        assert response.status == "resolved"
        assert response.node["id"] == "sql.optimizer"
        assert response.node["path"] == ["sql", "sql.optimizer"]
        assert "sql.optimizer" not in router.registry
