"""Skill registry holding the curated skill taxonomy.

The registry is built once from raw node definitions, validated as a whole,
and is read-only afterwards. It provides id lookup and the tree traversals
used by the matcher and router.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Iterator, Mapping, Optional

from skill_router.utils.errors import RegistryError, RegistryErrorKind, SkillNotFoundError

logger = logging.getLogger(__name__)


class ContentRole(str, Enum):
    """Role of a content unit within a skill."""

    PRIMARY = "primary"
    EXAMPLES = "examples"
    REFERENCE_TABLE = "reference-table"


@dataclass(frozen=True)
class ContentRef:
    """Reference to one loadable document backing a skill.

    Attributes:
        ref: Opaque locator understood by the content source
        role: What the document is for (primary guidance or a companion)
    """

    ref: str
    role: ContentRole = ContentRole.PRIMARY


@dataclass(frozen=True)
class SkillNode:
    """One addressable unit of guidance in the taxonomy.

    Attributes:
        id: Stable path-like identifier (e.g., "sql.optimizer")
        title: Human-readable name
        summary: Short description shown in disambiguation listings
        triggers: Phrases that indicate the skill is relevant
        negative_triggers: Phrases that reduce relevance despite partial overlap
        children: Ordered ids of sub-skills
        content_refs: Ordered content references (primary first by convention)
        weight: Static priority used to break ties
        category: Grouping label carried from the skill frontmatter
        version: Skill version for tracking updates

    Example:
        optimizer = SkillNode(
            id="sql.optimizer",
            title="SQL Query Optimizer",
            summary="Speed up slow queries",
            triggers=("this query is slow", "optimize query"),
            content_refs=(
                ContentRef("sql/optimizer/SKILL.md", ContentRole.PRIMARY),
                ContentRef("sql/optimizer/examples.md", ContentRole.EXAMPLES),
            ),
        )
    """

    id: str
    title: str
    summary: str = ""
    triggers: tuple[str, ...] = ()
    negative_triggers: tuple[str, ...] = ()
    children: tuple[str, ...] = ()
    content_refs: tuple[ContentRef, ...] = ()
    weight: float = 0.0
    category: str = "general"
    version: str = "1.0.0"

    @property
    def is_leaf(self) -> bool:
        return not self.children

    @property
    def primary_ref(self) -> Optional[ContentRef]:
        """Get the first primary content ref, if the node has one."""
        for content_ref in self.content_refs:
            if content_ref.role is ContentRole.PRIMARY:
                return content_ref
        return None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "id": self.id,
            "title": self.title,
            "summary": self.summary,
            "triggers": list(self.triggers),
            "negative_triggers": list(self.negative_triggers),
            "children": list(self.children),
            "content": [{"ref": c.ref, "role": c.role.value} for c in self.content_refs],
            "weight": self.weight,
            "category": self.category,
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SkillNode":
        """Create a node from a raw definition dictionary.

        Accepts the SKILL.md frontmatter spellings ("name", "description")
        as aliases for "title" and "summary".

        Args:
            data: Raw node definition

        Returns:
            SkillNode instance

        Raises:
            RegistryError: If the definition is missing fields or has wrong types
        """
        if not isinstance(data, Mapping):
            raise RegistryError(
                RegistryErrorKind.INVALID_DEFINITION,
                f"Skill definition must be a mapping, got {type(data).__name__}",
            )

        skill_id = data.get("id")
        if not isinstance(skill_id, str) or not skill_id.strip():
            raise RegistryError(
                RegistryErrorKind.INVALID_DEFINITION,
                "Skill definition is missing a non-empty 'id'",
            )
        skill_id = skill_id.strip()

        title = data.get("title") or data.get("name") or skill_id
        summary = data.get("summary") or data.get("description") or ""

        try:
            weight = float(data.get("weight", 0.0) or 0.0)
        except (TypeError, ValueError):
            raise RegistryError(
                RegistryErrorKind.INVALID_DEFINITION,
                f"Skill '{skill_id}' has a non-numeric weight",
                skill_id=skill_id,
            )

        return cls(
            id=skill_id,
            title=str(title),
            summary=str(summary),
            triggers=_str_tuple(data.get("triggers"), skill_id, "triggers"),
            negative_triggers=_str_tuple(
                data.get("negative_triggers"), skill_id, "negative_triggers"
            ),
            children=_str_tuple(data.get("children"), skill_id, "children"),
            content_refs=_content_refs(data.get("content", data.get("content_refs")), skill_id),
            weight=weight,
            category=str(data.get("category") or "general"),
            version=str(data.get("version") or "1.0.0"),
        )


def _str_tuple(value: Any, skill_id: str, field_name: str) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, (list, tuple)) or not all(isinstance(v, str) for v in value):
        raise RegistryError(
            RegistryErrorKind.INVALID_DEFINITION,
            f"Skill '{skill_id}' field '{field_name}' must be a list of strings",
            skill_id=skill_id,
        )
    return tuple(v.strip() for v in value if v.strip())


def _content_refs(value: Any, skill_id: str) -> tuple[ContentRef, ...]:
    if value is None:
        return ()
    if not isinstance(value, (list, tuple)):
        raise RegistryError(
            RegistryErrorKind.INVALID_DEFINITION,
            f"Skill '{skill_id}' field 'content' must be a list",
            skill_id=skill_id,
        )

    refs = []
    for item in value:
        if isinstance(item, ContentRef):
            refs.append(item)
            continue
        if isinstance(item, str):
            item = {"ref": item}
        if not isinstance(item, Mapping) or not isinstance(item.get("ref"), str):
            raise RegistryError(
                RegistryErrorKind.INVALID_DEFINITION,
                f"Skill '{skill_id}' has a content entry without a 'ref'",
                skill_id=skill_id,
            )
        try:
            role = ContentRole(item.get("role", ContentRole.PRIMARY.value))
        except ValueError:
            valid = ", ".join(r.value for r in ContentRole)
            raise RegistryError(
                RegistryErrorKind.INVALID_DEFINITION,
                f"Skill '{skill_id}' has unknown content role '{item.get('role')}'. "
                f"Valid roles are: {valid}",
                skill_id=skill_id,
            )
        refs.append(ContentRef(ref=item["ref"], role=role))
    return tuple(refs)


_VISITING = 1
_DONE = 2


class SkillRegistry:
    """Immutable registry of the skill taxonomy.

    The SkillRegistry provides:
    1. O(1) lookup of skills by id
    2. Ordered traversal of children, ancestors and leaves
    3. Metadata listings for prompts, the CLI and the API

    Instances are created with build(), which validates the whole taxonomy
    before anything is stored. A registry is never mutated afterwards, so it
    can be shared across concurrent requests without locking.

    Example:
        registry = SkillRegistry.build([
            {"id": "sql", "title": "SQL", "children": ["sql.optimizer"]},
            {"id": "sql.optimizer", "title": "Optimizer", "triggers": ["slow query"]},
        ])

        registry.get("sql.optimizer").title   # "Optimizer"
        [n.id for n in registry.all_leaves()] # ["sql.optimizer"]
    """

    def __init__(
        self,
        nodes: dict[str, SkillNode],
        roots: tuple[str, ...],
        parents: dict[str, str],
    ):
        """Initialize from already validated state. Use build() instead."""
        self._nodes = nodes
        self._roots = roots
        self._parents = parents
        self._depths: dict[str, int] = {}
        for node in self.walk():
            parent = parents.get(node.id)
            self._depths[node.id] = 0 if parent is None else self._depths[parent] + 1

    @classmethod
    def build(cls, definitions: Iterable[SkillNode | Mapping[str, Any]]) -> "SkillRegistry":
        """Validate raw node definitions and build a registry.

        Args:
            definitions: SkillNode instances or raw definition dictionaries

        Returns:
            A fully validated registry

        Raises:
            RegistryError: On duplicate ids, dangling child references,
                cycles, nodes with several parents, or malformed definitions
        """
        nodes: dict[str, SkillNode] = {}
        for definition in definitions:
            node = definition if isinstance(definition, SkillNode) else SkillNode.from_dict(definition)
            if node.id in nodes:
                raise RegistryError(
                    RegistryErrorKind.DUPLICATE_ID,
                    f"Skill id '{node.id}' is defined more than once",
                    skill_id=node.id,
                )
            nodes[node.id] = node

        for node in nodes.values():
            for child_id in node.children:
                if child_id not in nodes:
                    raise RegistryError(
                        RegistryErrorKind.DANGLING_REFERENCE,
                        f"Skill '{node.id}' lists unknown child '{child_id}'",
                        skill_id=node.id,
                    )

        _detect_cycle(nodes)

        parents: dict[str, str] = {}
        for node in nodes.values():
            for child_id in node.children:
                if child_id in parents:
                    raise RegistryError(
                        RegistryErrorKind.MULTIPLE_PARENTS,
                        f"Skill '{child_id}' is a child of both "
                        f"'{parents[child_id]}' and '{node.id}'",
                        skill_id=child_id,
                    )
                parents[child_id] = node.id

        roots = tuple(skill_id for skill_id in nodes if skill_id not in parents)
        registry = cls(nodes, roots, parents)
        logger.info(f"Built skill registry: {len(nodes)} skills, {len(roots)} roots")
        return registry

    def get(self, skill_id: str) -> SkillNode:
        """Get a skill by id.

        Raises:
            SkillNotFoundError: If the id is not defined
        """
        node = self._nodes.get(skill_id)
        if node is None:
            raise SkillNotFoundError(skill_id)
        return node

    def find(self, skill_id: str) -> Optional[SkillNode]:
        """Get a skill by id, or None if not found."""
        return self._nodes.get(skill_id)

    def children_of(self, skill_id: str) -> list[SkillNode]:
        """Get the ordered children of a skill."""
        return [self._nodes[child_id] for child_id in self.get(skill_id).children]

    def parent_of(self, skill_id: str) -> Optional[SkillNode]:
        self.get(skill_id)
        parent = self._parents.get(skill_id)
        return self._nodes[parent] if parent is not None else None

    def ancestors(self, skill_id: str) -> list[SkillNode]:
        """Get the ancestors of a skill, nearest first."""
        result = []
        parent = self.parent_of(skill_id)
        while parent is not None:
            result.append(parent)
            parent = self.parent_of(parent.id)
        return result

    def depth(self, skill_id: str) -> int:
        """Get the tree depth of a skill (top-level categories are 0)."""
        self.get(skill_id)
        return self._depths[skill_id]

    def path(self, skill_id: str) -> list[str]:
        """Get the ids from the root down to the skill."""
        return [a.id for a in reversed(self.ancestors(skill_id))] + [skill_id]

    def roots(self) -> list[SkillNode]:
        return [self._nodes[skill_id] for skill_id in self._roots]

    def walk(self) -> Iterator[SkillNode]:
        """Iterate over every skill depth-first, in declaration order."""
        stack = list(reversed(self._roots))
        while stack:
            node = self._nodes[stack.pop()]
            yield node
            stack.extend(reversed(node.children))

    def all_leaves(self) -> Iterator[SkillNode]:
        """Iterate over leaf skills depth-first.

        Each call returns a fresh generator, so the sequence can be restarted.
        """
        return (node for node in self.walk() if node.is_leaf)

    def list_skills(self) -> list[dict[str, Any]]:
        """List all skills with their tree position (metadata only).

        Returns:
            List of skill metadata dictionaries in depth-first order
        """
        return [
            {
                "id": node.id,
                "title": node.title,
                "summary": node.summary,
                "category": node.category,
                "version": node.version,
                "depth": self._depths[node.id],
                "parent": self._parents.get(node.id),
                "children": list(node.children),
            }
            for node in self.walk()
        ]

    def get_descriptions(self, format: str = "list") -> str:
        """Get formatted descriptions of all skills.

        Args:
            format: Output format - "list" for an indented tree, "table" for markdown table

        Returns:
            Formatted string of skill descriptions
        """
        if not self._nodes:
            return "No skills available."

        if format == "table":
            lines = ["| Skill | Description |", "|-------|-------------|"]
            for node in self.walk():
                lines.append(f"| {node.id} | {node.summary} |")
            return "\n".join(lines)

        lines = []
        for node in self.walk():
            line = f"{'  ' * self._depths[node.id]}- {node.id}: {node.title}"
            if node.summary:
                line += f" - {node.summary}"
            lines.append(line)
        return "\n".join(lines)

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, skill_id: object) -> bool:
        return skill_id in self._nodes

    def __iter__(self) -> Iterator[SkillNode]:
        return self.walk()


def _detect_cycle(nodes: dict[str, SkillNode]) -> None:
    """Raise CYCLE_DETECTED if the children graph has a cycle.

    Iterative DFS with a visiting/done marker per node.
    """
    state: dict[str, int] = {}
    for start in nodes:
        if start in state:
            continue
        state[start] = _VISITING
        stack = [(start, iter(nodes[start].children))]
        while stack:
            node_id, children = stack[-1]
            child_id = next(children, None)
            if child_id is None:
                state[node_id] = _DONE
                stack.pop()
                continue
            if state.get(child_id) == _VISITING:
                cycle = [n for n, _ in stack]
                cycle = cycle[cycle.index(child_id):] + [child_id]
                raise RegistryError(
                    RegistryErrorKind.CYCLE_DETECTED,
                    f"Cycle in skill children: {' -> '.join(cycle)}",
                    skill_id=child_id,
                )
            if child_id not in state:
                state[child_id] = _VISITING
                stack.append((child_id, iter(nodes[child_id].children)))
