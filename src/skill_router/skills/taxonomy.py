"""Taxonomy sources: where raw skill definitions come from.

Two layouts are supported.

A directory of SKILL.md files, nested to form sub-skills:

    skills/
    ├── sql/
    │   ├── SKILL.md          # primary content, YAML frontmatter
    │   ├── optimizer/
    │   │   ├── SKILL.md
    │   │   └── examples.md   # companion (role: examples)
    │   └── debugger/
    │       └── SKILL.md
    └── xlsx/
        ├── SKILL.md
        └── functions-table.md  # companion (role: reference-table)

A single YAML file listing node definitions:

    skills:
      - id: sql.optimizer
        title: SQL Query Optimizer
        triggers: ["this query is slow"]
        content:
          - {ref: sql/optimizer/SKILL.md, role: primary}
"""

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Optional

import yaml

from skill_router.core.config import Config
from skill_router.skills.registry import ContentRole, SkillNode, SkillRegistry
from skill_router.skills.sources import (
    ContentSource,
    FileSystemContentSource,
    RedisContentSource,
)
from skill_router.utils.errors import RegistryError, RegistryErrorKind

logger = logging.getLogger(__name__)

SKILL_FILE = "SKILL.md"
IGNORED_FILES = {"readme.md"}

_FRONTMATTER_RE = re.compile(r"^---\s*\n(.*?)\n---\s*(?:\n|$)(.*)$", re.DOTALL)
_HEADING_RE = re.compile(r"^\s{0,3}#{1,6}\s+(.*?)\s*#*\s*$")
_BULLET_RE = re.compile(r"^\s*(?:[-*+]|\d+[.)])\s+(.*\S)\s*$")
_QUOTED_RE = re.compile(r"[\"“”]([^\"“”]{3,})[\"“”]")
_TRIGGER_HEADING_RE = re.compile(r"trigger|when to use", re.IGNORECASE)


def parse_skill_md(content: str) -> tuple[dict[str, Any], str]:
    """Split a SKILL.md document into frontmatter metadata and body.

    Args:
        content: Full SKILL.md text

    Returns:
        Tuple of (metadata dict, markdown body). Metadata is empty when the
        document has no frontmatter.

    Raises:
        ValueError: If the frontmatter is not valid YAML or not a mapping
    """
    match = _FRONTMATTER_RE.match(content)
    if not match:
        return {}, content.strip()

    try:
        metadata = yaml.safe_load(match.group(1)) or {}
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML frontmatter: {e}") from e
    if not isinstance(metadata, dict):
        raise ValueError("YAML frontmatter must be a mapping")
    return metadata, match.group(2).strip()


def extract_trigger_bullets(body: str) -> list[str]:
    """Read trigger phrases from a "Trigger conditions" style section.

    Bullets under any heading mentioning "trigger" or "when to use" are
    collected. Quoted phrases inside a bullet are used as triggers on their
    own; otherwise the whole bullet text is the trigger.

    Args:
        body: Markdown body of a SKILL.md file

    Returns:
        Trigger phrases in document order, without duplicates
    """
    triggers: list[str] = []
    in_section = False
    for line in body.splitlines():
        heading = _HEADING_RE.match(line)
        if heading:
            in_section = bool(_TRIGGER_HEADING_RE.search(heading.group(1)))
            continue
        if not in_section:
            continue
        bullet = _BULLET_RE.match(line)
        if not bullet:
            continue
        text = bullet.group(1)
        quoted = _QUOTED_RE.findall(text)
        candidates = quoted if quoted else [re.sub(r"[*_`]", "", text).rstrip(".:;")]
        for candidate in candidates:
            candidate = candidate.strip()
            if candidate and candidate not in triggers:
                triggers.append(candidate)
    return triggers


def definitions_from_dicts(items: list[Any]) -> list[SkillNode]:
    """Validate raw definition dictionaries into SkillNodes.

    Raises:
        RegistryError: INVALID_DEFINITION for the first malformed item
    """
    return [item if isinstance(item, SkillNode) else SkillNode.from_dict(item) for item in items]


def _companion_role(path: Path) -> ContentRole:
    if path.stem.lower().startswith("example"):
        return ContentRole.EXAMPLES
    return ContentRole.REFERENCE_TABLE


def _read_skill_dir(skill_dir: Path, root: Path, definitions: list[dict[str, Any]]) -> str:
    """Read one skill directory and its nested sub-skills (pre-order)."""
    skill_md = skill_dir / SKILL_FILE
    rel = skill_dir.relative_to(root).as_posix()
    try:
        metadata, body = parse_skill_md(skill_md.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, ValueError) as e:
        raise RegistryError(
            RegistryErrorKind.INVALID_DEFINITION,
            f"Failed to read {skill_md}: {e}",
        ) from e

    skill_id = str(metadata.get("id") or rel.replace("/", "."))
    triggers = metadata.get("triggers")
    if triggers is None:
        triggers = extract_trigger_bullets(body)

    content = [{"ref": f"{rel}/{SKILL_FILE}", "role": ContentRole.PRIMARY.value}]
    for md_file in sorted(skill_dir.glob("*.md")):
        if md_file.name == SKILL_FILE or md_file.name.lower() in IGNORED_FILES:
            continue
        content.append({"ref": f"{rel}/{md_file.name}", "role": _companion_role(md_file).value})

    definition: dict[str, Any] = {
        "id": skill_id,
        "title": metadata.get("title") or metadata.get("name") or skill_dir.name.replace("_", " ").title(),
        "summary": metadata.get("summary") or metadata.get("description") or "",
        "triggers": triggers,
        "negative_triggers": metadata.get("negative_triggers"),
        "weight": metadata.get("weight", 0.0),
        "category": metadata.get("category", "general"),
        "version": metadata.get("version", "1.0.0"),
        "content": content,
        "children": [],
    }
    definitions.append(definition)

    for child_dir in sorted(p for p in skill_dir.iterdir() if p.is_dir()):
        if (child_dir / SKILL_FILE).is_file():
            definition["children"].append(_read_skill_dir(child_dir, root, definitions))

    return skill_id


def scan_skill_directory(root: Path | str) -> list[dict[str, Any]]:
    """Build raw skill definitions from a directory of SKILL.md trees.

    Args:
        root: Skills directory

    Returns:
        Definitions in depth-first order, parents before children

    Raises:
        RegistryError: If the directory is missing or a SKILL.md is malformed
    """
    root = Path(root)
    if not root.is_dir():
        raise RegistryError(
            RegistryErrorKind.INVALID_DEFINITION,
            f"Skills directory does not exist: {root}",
        )

    definitions: list[dict[str, Any]] = []
    for skill_dir in sorted(p for p in root.iterdir() if p.is_dir()):
        if not (skill_dir / SKILL_FILE).is_file():
            logger.debug(f"Skipping directory without {SKILL_FILE}: {skill_dir}")
            continue
        _read_skill_dir(skill_dir, root, definitions)

    logger.info(f"Scanned {len(definitions)} skills from {root}")
    return definitions


def load_taxonomy_file(path: Path | str) -> list[dict[str, Any]]:
    """Load raw skill definitions from a YAML taxonomy file.

    The file holds either a list of definitions or a mapping with a
    "skills" list.

    Raises:
        RegistryError: If the file is missing, not valid YAML or has the wrong shape
    """
    path = Path(path)
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError) as e:
        raise RegistryError(
            RegistryErrorKind.INVALID_DEFINITION, f"Cannot read taxonomy file {path}: {e}"
        ) from e
    except yaml.YAMLError as e:
        raise RegistryError(
            RegistryErrorKind.INVALID_DEFINITION, f"Invalid YAML in {path}: {e}"
        ) from e

    if isinstance(data, dict):
        data = data.get("skills")
    if not isinstance(data, list):
        raise RegistryError(
            RegistryErrorKind.INVALID_DEFINITION,
            f"Taxonomy file {path} must contain a list of skills",
        )
    return data


@dataclass
class TaxonomySource:
    """A taxonomy paired with the content store its refs point into.

    Reloading from a TaxonomySource swaps the registry and the content
    source together, so refs always resolve against the matching store.

    Attributes:
        load_definitions: Callable returning raw skill definitions
        content_source: Store that serves the definitions' content refs
        description: Human-readable origin, used in logs
    """

    load_definitions: Callable[[], list[Any]]
    content_source: ContentSource
    description: str = "taxonomy"

    def build_registry(self) -> SkillRegistry:
        """Load definitions and build a validated registry.

        Raises:
            RegistryError: If the definitions are malformed
        """
        logger.info(f"Building skill registry from {self.description}")
        return SkillRegistry.build(definitions_from_dicts(self.load_definitions()))

    @classmethod
    def from_directory(
        cls, root: Path | str, content_source: Optional[ContentSource] = None
    ) -> "TaxonomySource":
        root = Path(root)
        return cls(
            load_definitions=lambda: scan_skill_directory(root),
            content_source=content_source or FileSystemContentSource(root),
            description=f"directory {root}",
        )

    @classmethod
    def from_file(
        cls,
        path: Path | str,
        content_source: Optional[ContentSource] = None,
    ) -> "TaxonomySource":
        """Taxonomy from a YAML file; refs resolve relative to the file's directory."""
        path = Path(path)
        return cls(
            load_definitions=lambda: load_taxonomy_file(path),
            content_source=content_source or FileSystemContentSource(path.parent),
            description=f"file {path}",
        )

    @classmethod
    def from_definitions(
        cls, definitions: list[Any], content_source: ContentSource
    ) -> "TaxonomySource":
        return cls(
            load_definitions=lambda: list(definitions),
            content_source=content_source,
            description="in-memory definitions",
        )

    @classmethod
    def from_config(cls, config: Config) -> "TaxonomySource":
        """Build the taxonomy source described by configuration.

        Args:
            config: Application configuration

        Returns:
            TaxonomySource for the configured taxonomy and content backend
        """
        content_source: Optional[ContentSource] = None
        if config.content_backend == "redis":
            if not config.redis_url:
                raise ValueError("CONTENT_BACKEND=redis requires REDIS_URL")
            content_source = RedisContentSource(config.redis_url)

        if config.taxonomy_file is not None:
            return cls.from_file(config.taxonomy_file, content_source)
        return cls.from_directory(config.skills_dir, content_source)
