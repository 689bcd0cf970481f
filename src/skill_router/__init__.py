"""Skill Router - hierarchical skill routing for AI assistants

Routes a free-text request to the most relevant skill in a curated
taxonomy, loads that skill's guidance documents on demand, and returns
them within a size budget (or a ranked list of candidates when the
request is ambiguous).
"""

__version__ = "0.1.0"

# Import core functionality
from skill_router.core.config import Config, load_environment
from skill_router.skills import (
    SkillNode,
    SkillRegistry,
    SkillRouter,
    TaxonomySource,
    create_router,
)

# Import CLI entry point
from skill_router.cli import main

__all__ = [
    "__version__",
    "Config",
    "load_environment",
    "SkillNode",
    "SkillRegistry",
    "SkillRouter",
    "TaxonomySource",
    "create_router",
    "main",
]
