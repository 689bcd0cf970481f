"""Trigger matching for skill routing.

Scores a free-text query against every skill in a registry using:
- Exact trigger phrases found in the query (strong signal)
- Keyword coverage of the best-matching trigger (medium signal)
- Structural hints: the skill id and title words (weak signal)
- Negative triggers, which subtract from the score
- The skill's static weight (tie-break)

Ranking is fully deterministic: score, then tree depth (more specific
skills first), then id.
"""

import logging
import re
from dataclasses import dataclass, field
from functools import lru_cache

from skill_router.skills.registry import SkillNode, SkillRegistry
from skill_router.utils.errors import InvalidQueryError

logger = logging.getLogger(__name__)

_WORD_RE = re.compile(r"\w+")

STOPWORDS = frozenset(
    {
        "a", "an", "and", "any", "are", "be", "can", "do", "does", "for", "help",
        "how", "i", "in", "is", "it", "me", "my", "of", "on", "or", "our", "please",
        "some", "that", "the", "this", "to", "what", "with", "your",
    }
)


def _stem(token: str) -> str:
    """Strip common English suffixes so singular and plural forms agree."""
    if len(token) > 4 and token.endswith("ies"):
        token = token[:-3] + "y"
    elif len(token) > 5 and token.endswith("ing"):
        token = token[:-3]
    elif len(token) > 4 and token.endswith("ed"):
        token = token[:-2]
    elif len(token) > 4 and token.endswith("es") and token[-3] in "sxz":
        token = token[:-2]
    elif len(token) > 3 and token.endswith("s") and not token.endswith("ss"):
        token = token[:-1]
    if len(token) > 4 and token.endswith("e"):
        token = token[:-1]
    return token


def tokenize(text: str) -> list[str]:
    """Lowercase, split into words and stem."""
    return [_stem(word) for word in _WORD_RE.findall(text.lower())]


def keywords(text: str) -> frozenset[str]:
    """Stemmed words of a text with stopwords removed."""
    return frozenset(_stem(w) for w in _WORD_RE.findall(text.lower()) if w not in STOPWORDS)


def _contains_phrase(haystack: tuple[str, ...], phrase: tuple[str, ...]) -> bool:
    if not phrase or len(phrase) > len(haystack):
        return False
    span = len(phrase)
    return any(haystack[i:i + span] == phrase for i in range(len(haystack) - span + 1))


@dataclass(frozen=True)
class _CompiledTrigger:
    text: str
    phrase: tuple[str, ...]
    words: frozenset[str]


@dataclass(frozen=True)
class _CompiledNode:
    triggers: tuple[_CompiledTrigger, ...]
    negatives: tuple[_CompiledTrigger, ...]
    hints: frozenset[str]


def _compile_trigger(text: str) -> _CompiledTrigger:
    return _CompiledTrigger(text=text, phrase=tuple(tokenize(text)), words=keywords(text))


@lru_cache(maxsize=4096)
def _compile(node: SkillNode) -> _CompiledNode:
    hint_text = " ".join([node.id.replace(".", " ").replace("_", " ").replace("-", " "), node.title])
    return _CompiledNode(
        triggers=tuple(_compile_trigger(t) for t in node.triggers),
        negatives=tuple(_compile_trigger(t) for t in node.negative_triggers),
        hints=keywords(hint_text),
    )


@dataclass(frozen=True)
class TriggerHit:
    """Why a skill's score moved.

    Attributes:
        trigger: The trigger text (or "id/title" for structural hints)
        kind: "phrase", "keyword", "hint" or "negative"
        contribution: Amount added to (or subtracted from) the score
    """

    trigger: str
    kind: str
    contribution: float


@dataclass
class MatchResult:
    """Score of one skill for one query.

    Attributes:
        node: The scored skill
        score: Weighted relevance score (may be negative)
        matched_triggers: Which triggers fired and how much each contributed
        depth: Tree depth of the skill, used for tie-breaking
        ambiguous: True when this result is one of several top contenders
            too close to choose between automatically
        matched_keywords: Query keywords covered by any of the skill's triggers
    """

    node: SkillNode
    score: float
    matched_triggers: list[TriggerHit] = field(default_factory=list)
    depth: int = 0
    ambiguous: bool = False
    matched_keywords: frozenset[str] = frozenset()

    def to_dict(self) -> dict:
        """Convert to dictionary representation."""
        return {
            "id": self.node.id,
            "title": self.node.title,
            "summary": self.node.summary,
            "score": self.score,
            "depth": self.depth,
            "ambiguous": self.ambiguous,
            "matched_triggers": [
                {"trigger": h.trigger, "kind": h.kind, "contribution": h.contribution}
                for h in self.matched_triggers
            ],
        }


@dataclass(frozen=True)
class MatcherConfig:
    """Weights and limits for trigger matching.

    Attributes:
        phrase_weight: Added for each trigger phrase found verbatim in the query
        overlap_weight: Multiplied by the best trigger keyword coverage (0.0-1.0)
        hint_weight: Multiplied by the coverage of id/title words (0.0-1.0)
        negative_weight: Subtracted for each negative trigger found in the query
        weight_factor: Multiplied by the skill's static weight
        ambiguity_threshold: Gap between the top two contenders, relative to
            the top score, below which the match is ambiguous
        max_query_chars: Longer queries are rejected as malformed
    """

    phrase_weight: float = 3.0
    overlap_weight: float = 1.0
    hint_weight: float = 0.5
    negative_weight: float = 2.0
    weight_factor: float = 0.01
    ambiguity_threshold: float = 0.10
    max_query_chars: int = 2000


class TriggerMatcher:
    """Ranks registry skills against a free-text query.

    Example:
        matcher = TriggerMatcher(MatcherConfig(ambiguity_threshold=0.1))
        results = matcher.rank("this query is slow", registry)
        best = results[0]
        if best.ambiguous:
            contenders = [r for r in results if r.ambiguous]
    """

    def __init__(self, config: MatcherConfig | None = None):
        self._config = config or MatcherConfig()

    @property
    def config(self) -> MatcherConfig:
        return self._config

    def validate_query(self, query: str) -> str:
        """Reject empty or oversized queries before any scoring.

        Returns:
            The stripped query

        Raises:
            InvalidQueryError: If the query is not a usable string
        """
        if not isinstance(query, str):
            raise InvalidQueryError("Query must be a string")
        stripped = query.strip()
        if not stripped:
            raise InvalidQueryError("Query must not be empty", query=query)
        if len(stripped) > self._config.max_query_chars:
            raise InvalidQueryError(
                f"Query is longer than {self._config.max_query_chars} characters",
                query=query[:80],
            )
        return stripped

    def score(self, query: str, node: SkillNode) -> tuple[float, list[TriggerHit]]:
        """Score a single skill against a query.

        Args:
            query: The user query
            node: The skill to score

        Returns:
            Tuple of (score, hits explaining the score)
        """
        cfg = self._config
        compiled = _compile(node)
        query_seq = tuple(tokenize(query))
        query_words = keywords(query)

        score = 0.0
        hits: list[TriggerHit] = []

        best_coverage = 0.0
        best_trigger = None
        for trigger in compiled.triggers:
            if _contains_phrase(query_seq, trigger.phrase):
                score += cfg.phrase_weight
                hits.append(TriggerHit(trigger.text, "phrase", cfg.phrase_weight))
            if trigger.words:
                coverage = len(query_words & trigger.words) / len(trigger.words)
                if coverage > best_coverage:
                    best_coverage = coverage
                    best_trigger = trigger

        if best_trigger is not None:
            contribution = cfg.overlap_weight * best_coverage
            score += contribution
            hits.append(TriggerHit(best_trigger.text, "keyword", round(contribution, 6)))

        if compiled.hints:
            hint_coverage = len(query_words & compiled.hints) / len(compiled.hints)
            if hint_coverage > 0:
                contribution = cfg.hint_weight * hint_coverage
                score += contribution
                hits.append(TriggerHit("id/title", "hint", round(contribution, 6)))

        for negative in compiled.negatives:
            if _contains_phrase(query_seq, negative.phrase):
                score -= cfg.negative_weight
                hits.append(TriggerHit(negative.text, "negative", -cfg.negative_weight))

        score += cfg.weight_factor * node.weight
        return round(score, 6), hits

    def matched_keywords(self, query: str, node: SkillNode) -> frozenset[str]:
        """Query keywords that appear in any of the skill's triggers.

        Id and title hints are not counted.
        """
        query_words = keywords(query)
        matched: set[str] = set()
        for trigger in _compile(node).triggers:
            matched |= query_words & trigger.words
        return frozenset(matched)

    def rank(self, query: str, registry: SkillRegistry) -> list[MatchResult]:
        """Score every skill in the registry and rank the results.

        Args:
            query: Non-empty user query
            registry: Registry to rank

        Returns:
            All skills, highest score first. Never empty for a non-empty
            registry; skills that match nothing are kept with their
            (zero or weight-only) score.

        Raises:
            InvalidQueryError: If the query is empty or malformed
        """
        query = self.validate_query(query)

        results = []
        for node in registry.walk():
            node_score, hits = self.score(query, node)
            results.append(
                MatchResult(
                    node=node,
                    score=node_score,
                    matched_triggers=hits,
                    depth=registry.depth(node.id),
                    matched_keywords=self.matched_keywords(query, node),
                )
            )

        results.sort(key=lambda r: (-r.score, -r.depth, r.node.id))
        self._flag_ambiguity(results, registry)

        if results:
            top = results[0]
            logger.debug(
                f"Ranked {len(results)} skills for query; top={top.node.id} "
                f"score={top.score} ambiguous={top.ambiguous}"
            )
        return results

    def _flag_ambiguity(self, results: list[MatchResult], registry: SkillRegistry) -> None:
        """Mark the top contenders when they are too close to call.

        A skill's own ancestors and descendants refine the same guidance
        rather than compete with it, so they never make a match ambiguous.
        """
        if len(results) < 2:
            return
        top = results[0]
        if top.score <= 0:
            return

        lineage = {a.id for a in registry.ancestors(top.node.id)}
        band = self._config.ambiguity_threshold * top.score
        contenders = [
            r
            for r in results[1:]
            if r.node.id not in lineage
            and top.node.id not in {a.id for a in registry.ancestors(r.node.id)}
            and top.score - r.score < band
        ]
        if not contenders:
            return

        top.ambiguous = True
        for result in contenders:
            result.ambiguous = True
