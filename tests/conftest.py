"""Shared fixtures for skill-router tests."""

import asyncio

import pytest

from skill_router.core.config import Config
from skill_router.skills.registry import SkillRegistry
from skill_router.skills.router import SkillRouter
from skill_router.skills.sources import ContentSource, InMemoryContentSource
from skill_router.skills.taxonomy import TaxonomySource
from skill_router.utils.errors import ContentErrorKind, ContentUnavailableError


SAMPLE_DEFINITIONS = [
    {
        "id": "sql",
        "title": "SQL",
        "summary": "Work with SQL databases",
        "triggers": ["sql", "database query"],
        "children": ["sql.optimizer", "sql.debugger"],
        "content": [{"ref": "sql/SKILL.md", "role": "primary"}],
    },
    {
        "id": "sql.optimizer",
        "title": "SQL Query Optimizer",
        "summary": "Speed up slow queries",
        "triggers": ["this query is slow", "optimize query"],
        "content": [
            {"ref": "sql/optimizer/SKILL.md", "role": "primary"},
            {"ref": "sql/optimizer/examples.md", "role": "examples"},
        ],
    },
    {
        "id": "sql.debugger",
        "title": "SQL Query Debugger",
        "summary": "Fix failing queries",
        "triggers": ["this query is failing", "sql error"],
        "content": [{"ref": "sql/debugger/SKILL.md", "role": "primary"}],
    },
    {
        "id": "xlsx",
        "title": "Spreadsheets",
        "summary": "Excel workbooks",
        "triggers": ["excel", "spreadsheet"],
        "children": ["xlsx.formulas"],
    },
    {
        "id": "xlsx.formulas",
        "title": "Spreadsheet Formulas",
        "summary": "Lookups and aggregations",
        "triggers": ["excel formula", "sum a column"],
        "content": [
            {"ref": "xlsx/formulas/SKILL.md", "role": "primary"},
            {"ref": "xlsx/formulas/functions.md", "role": "reference-table"},
        ],
    },
]

SAMPLE_DOCUMENTS = {
    "sql/SKILL.md": "# SQL\n\nPick a sub-skill.",
    "sql/optimizer/SKILL.md": "# SQL Query Optimizer\n\n1. Run EXPLAIN.\n2. Add the missing index.",
    "sql/optimizer/examples.md": "# Examples\n\nUse a range instead of DATE(created_at).",
    "sql/debugger/SKILL.md": "# SQL Query Debugger\n\nRead the full error message.",
    "xlsx/formulas/SKILL.md": "# Spreadsheet Formulas\n\nPrefer XLOOKUP.",
    "xlsx/formulas/functions.md": "| Function | Purpose |\n|---|---|\n| SUM | Add numbers |",
}


class GatedSource(ContentSource):
    """Async source whose fetches block until released.

    Records how many fetches ran and whether any was cancelled.
    """

    name = "gated"

    def __init__(self, documents):
        self.documents = dict(documents)
        self.fetch_count = 0
        self.cancelled = False
        self.started = asyncio.Event()
        self.release = asyncio.Event()

    async def fetch(self, ref):
        self.fetch_count += 1
        self.started.set()
        try:
            await self.release.wait()
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        if ref not in self.documents:
            raise ContentUnavailableError(ref, ContentErrorKind.NOT_FOUND)
        return self.documents[ref]


class FlakySource(InMemoryContentSource):
    """In-memory source that fails the first N fetches of chosen refs."""

    def __init__(self, documents, failures):
        super().__init__(documents)
        self.failures = dict(failures)
        self.attempts = {}

    def fetch(self, ref):
        self.attempts[ref] = self.attempts.get(ref, 0) + 1
        if self.failures.get(ref, 0) > 0:
            self.failures[ref] -= 1
            raise ContentUnavailableError(ref, ContentErrorKind.IO_ERROR, "connection reset")
        return super().fetch(ref)


@pytest.fixture
def sample_definitions():
    """Raw definitions for a small two-branch taxonomy."""
    return [dict(d) for d in SAMPLE_DEFINITIONS]


@pytest.fixture
def registry(sample_definitions):
    """Validated registry built from the sample definitions."""
    return SkillRegistry.build(sample_definitions)


@pytest.fixture
def memory_source():
    """In-memory content source holding every sample document."""
    return InMemoryContentSource(SAMPLE_DOCUMENTS)


@pytest.fixture
def taxonomy_source(sample_definitions, memory_source):
    """Taxonomy source pairing the sample definitions with their documents."""
    return TaxonomySource.from_definitions(sample_definitions, memory_source)


@pytest.fixture
def skill_router(taxonomy_source):
    """Router over the sample taxonomy with default configuration."""
    return SkillRouter.from_source(taxonomy_source, Config())


@pytest.fixture
def gated_source():
    """Async source over the sample documents that blocks until released."""
    return GatedSource(SAMPLE_DOCUMENTS)


@pytest.fixture
def make_flaky_source():
    """Factory for sources that fail the first N fetches of given refs."""

    def _make(failures):
        return FlakySource(SAMPLE_DOCUMENTS, failures)

    return _make
