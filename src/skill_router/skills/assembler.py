"""Response assembly within a size budget.

For a resolved skill, the primary document is emitted verbatim followed by
companion documents in declared order. Whatever does not fit is cut at the
budget and the cut is always marked, never silent. For ambiguous matches a
short ranked listing of candidates is produced instead of content.
"""

import logging
from dataclasses import dataclass, field
from typing import Sequence

from skill_router.skills.loader import ContentUnit
from skill_router.skills.matcher import MatchResult
from skill_router.skills.registry import SkillNode

logger = logging.getLogger(__name__)

TRUNCATION_MARKER = "\n\n[... truncated: content exceeds the response size limit ...]"
UNIT_SEPARATOR = "\n\n"


@dataclass
class AssembledContent:
    """Assembler output.

    Attributes:
        text: The assembled text, never longer than the budget
        truncated: True if anything was cut or left out
        included_refs: Refs that appear in the text, fully or partially
        omitted_refs: Refs that did not fit at all
    """

    text: str
    truncated: bool = False
    included_refs: list[str] = field(default_factory=list)
    omitted_refs: list[str] = field(default_factory=list)


class ResponseAssembler:
    """Builds bounded-size response bodies.

    Example:
        assembler = ResponseAssembler(max_chars=4000)
        result = assembler.assemble_content(node, units)
        if result.truncated:
            print("Showing partial guidance")
    """

    def __init__(self, max_chars: int = 8000, marker: str = TRUNCATION_MARKER):
        if max_chars <= len(marker):
            raise ValueError(f"max_chars must exceed the truncation marker length ({len(marker)})")
        self.max_chars = max_chars
        self.marker = marker

    def _budget(self, max_chars: int | None) -> int:
        budget = self.max_chars if max_chars is None else max_chars
        if budget <= len(self.marker):
            raise ValueError(
                f"Size budget must exceed the truncation marker length ({len(self.marker)})"
            )
        return budget

    def assemble_content(
        self,
        node: SkillNode,
        units: Sequence[ContentUnit],
        max_chars: int | None = None,
    ) -> AssembledContent:
        """Assemble a resolved skill's documents.

        Args:
            node: The resolved skill (used for logging)
            units: Loaded units in the skill's declared content order
            max_chars: Budget override for this response

        Returns:
            AssembledContent whose text length is at most the budget
        """
        budget = self._budget(max_chars)

        full_length = sum(u.size for u in units) + len(UNIT_SEPARATOR) * max(len(units) - 1, 0)
        if full_length <= budget:
            return AssembledContent(
                text=UNIT_SEPARATOR.join(u.text for u in units),
                included_refs=[u.ref for u in units],
            )

        room = budget - len(self.marker)
        parts: list[str] = []
        included: list[str] = []
        omitted: list[str] = []
        used = 0
        for unit in units:
            separator = UNIT_SEPARATOR if parts else ""
            available = room - used - len(separator)
            if available <= 0:
                omitted.append(unit.ref)
                continue
            piece = unit.text if unit.size <= available else unit.text[:available]
            parts.append(separator + piece)
            used += len(separator) + len(piece)
            included.append(unit.ref)

        text = "".join(parts) + self.marker
        logger.info(
            f"Truncated content for {node.id}: {full_length} chars to {len(text)} "
            f"(omitted {len(omitted)} units)"
        )
        return AssembledContent(text=text, truncated=True, included_refs=included, omitted_refs=omitted)

    def assemble_disambiguation(
        self,
        candidates: Sequence[MatchResult],
        max_chars: int | None = None,
        reason: str = "close_scores",
    ) -> AssembledContent:
        """Build a ranked listing of candidate skills (no content).

        Args:
            candidates: Match results in rank order
            max_chars: Budget override for this response
            reason: "close_scores" or "no_match", selects the heading

        Returns:
            AssembledContent with the listing text
        """
        if reason == "no_match":
            heading = "No skill matched the request clearly. Available skills:"
        else:
            heading = "Several skills match the request. Please choose one:"
        entries = [(c.node, c.score) for c in candidates]
        return self._listing(heading, entries, max_chars)

    def assemble_sub_skills(
        self,
        node: SkillNode,
        children: Sequence[SkillNode],
        max_chars: int | None = None,
    ) -> AssembledContent:
        """Build a menu of sub-skills for a grouping skill without documents."""
        heading = f"{node.title} is a group of skills. Choose a sub-skill:"
        return self._listing(heading, [(child, None) for child in children], max_chars)

    def _listing(
        self,
        heading: str,
        entries: Sequence[tuple[SkillNode, float | None]],
        max_chars: int | None,
    ) -> AssembledContent:
        budget = self._budget(max_chars)

        lines = [heading]
        for i, (node, score) in enumerate(entries, 1):
            line = f"{i}. {node.title} ({node.id})"
            if score is not None:
                line += f" [score {score:.2f}]"
            if node.summary:
                line += f" - {node.summary}"
            lines.append(line)

        text = "\n".join(lines)
        if len(text) <= budget:
            return AssembledContent(text=text)
        return AssembledContent(text=text[: budget - len(self.marker)] + self.marker, truncated=True)
