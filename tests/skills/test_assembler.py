"""Tests for response assembly within a size budget."""

import pytest

from skill_router.skills.assembler import TRUNCATION_MARKER, UNIT_SEPARATOR, ResponseAssembler
from skill_router.skills.loader import ContentUnit, compute_etag
from skill_router.skills.matcher import MatchResult
from skill_router.skills.registry import SkillNode


def make_unit(ref, text):
    return ContentUnit(ref=ref, text=text, etag=compute_etag(text))


@pytest.fixture
def node():
    return SkillNode(id="sql.optimizer", title="SQL Query Optimizer", summary="Speed up slow queries")


@pytest.fixture
def assembler():
    return ResponseAssembler(max_chars=500)


class TestAssembleContent:
    """Tests for resolved-skill content assembly."""

    def test_fits_without_truncation(self, assembler, node):
        """Test that content under budget is joined in order, untouched."""
        units = [make_unit("a.md", "primary"), make_unit("b.md", "examples")]
        result = assembler.assemble_content(node, units)
        assert result.text == "primary" + UNIT_SEPARATOR + "examples"
        assert not result.truncated
        assert result.included_refs == ["a.md", "b.md"]
        assert result.omitted_refs == []

    def test_exact_fit_is_not_truncated(self, node):
        """Test that content exactly at the budget is kept whole."""
        text = "x" * 200
        result = ResponseAssembler(max_chars=200).assemble_content(node, [make_unit("a.md", text)])
        assert result.text == text
        assert not result.truncated

    def test_oversized_content_is_truncated_within_budget(self, node):
        """Test that oversized content is cut, marked and never exceeds the budget."""
        budget = 150
        units = [make_unit("a.md", "A" * 100), make_unit("b.md", "B" * 100)]
        result = ResponseAssembler(max_chars=budget).assemble_content(node, units)

        assert result.truncated
        assert len(result.text) <= budget
        assert result.text.endswith(TRUNCATION_MARKER)
        assert result.text.startswith("A")
        assert result.included_refs == ["a.md"]
        assert result.omitted_refs == ["b.md"]

    def test_primary_comes_before_companions(self, node):
        """Test that the primary text survives truncation ahead of companions."""
        units = [make_unit("a.md", "P" * 40), make_unit("b.md", "E" * 400)]
        result = ResponseAssembler(max_chars=200).assemble_content(node, units)
        assert result.text.startswith("P" * 40 + UNIT_SEPARATOR + "E")
        assert result.included_refs == ["a.md", "b.md"]
        assert len(result.text) <= 200

    def test_per_call_budget_override(self, assembler, node):
        """Test that max_chars overrides the default budget."""
        result = assembler.assemble_content(node, [make_unit("a.md", "x" * 300)], max_chars=100)
        assert result.truncated
        assert len(result.text) <= 100

    def test_budget_must_exceed_marker(self, assembler, node):
        """Test that a budget too small for the marker is rejected."""
        with pytest.raises(ValueError):
            assembler.assemble_content(node, [], max_chars=len(TRUNCATION_MARKER))
        with pytest.raises(ValueError):
            ResponseAssembler(max_chars=10)

    def test_empty_units(self, assembler, node):
        """Test that a skill without documents assembles to empty text."""
        result = assembler.assemble_content(node, [])
        assert result.text == ""
        assert not result.truncated


class TestListings:
    """Tests for disambiguation and sub-skill listings."""

    def test_disambiguation_lists_ranked_candidates(self, assembler):
        """Test the numbered candidate listing."""
        candidates = [
            MatchResult(node=SkillNode(id="alpha", title="Alpha", summary="First"), score=1.0),
            MatchResult(node=SkillNode(id="beta", title="Beta"), score=0.95),
        ]
        result = assembler.assemble_disambiguation(candidates)
        lines = result.text.splitlines()
        assert lines[0].startswith("Several skills match")
        assert lines[1] == "1. Alpha (alpha) [score 1.00] - First"
        assert lines[2] == "2. Beta (beta) [score 0.95]"
        assert not result.truncated

    def test_no_match_heading(self, assembler):
        """Test the heading used when nothing matched."""
        candidates = [MatchResult(node=SkillNode(id="alpha", title="Alpha"), score=0.0)]
        result = assembler.assemble_disambiguation(candidates, reason="no_match")
        assert result.text.startswith("No skill matched")

    def test_listing_is_truncated(self):
        """Test that a long listing respects the budget."""
        assembler = ResponseAssembler(max_chars=120)
        candidates = [
            MatchResult(node=SkillNode(id=f"skill{i}", title=f"Skill {i}", summary="s" * 30), score=1.0)
            for i in range(10)
        ]
        result = assembler.assemble_disambiguation(candidates)
        assert result.truncated
        assert len(result.text) <= 120
        assert result.text.endswith(TRUNCATION_MARKER)

    def test_sub_skill_menu(self, assembler):
        """Test the menu listing children of a grouping skill."""
        parent = SkillNode(id="xlsx", title="Spreadsheets", children=("xlsx.formulas",))
        child = SkillNode(id="xlsx.formulas", title="Spreadsheet Formulas", summary="Lookups")
        result = assembler.assemble_sub_skills(parent, [child])
        assert result.text.splitlines() == [
            "Spreadsheets is a group of skills. Choose a sub-skill:",
            "1. Spreadsheet Formulas (xlsx.formulas) - Lookups",
        ]
