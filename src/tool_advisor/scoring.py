"""Relevance scoring for capability recommendations.

score = 0.35 * keyword_match
      + 0.25 * capability_type
      + 0.20 * user_history
      + 0.10 * freshness
      + 0.10 * success_rate
      + confidence_boost            (then clamped to [0, 1])

keyword_match is the only query-specific signal; the other factors
personalize the ranking from usage history.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from thefuzz import fuzz

from .keywords import query_bigrams, query_terms, split_words
from .models import Capability, CapabilityType, ScoreBreakdown, clamp, utcnow

logger = logging.getLogger(__name__)

WEIGHTS: dict[str, float] = {
    "keyword_match": 0.35,
    "capability_type": 0.25,
    "user_history": 0.20,
    "freshness": 0.10,
    "success_rate": 0.10,
}

EXACT_CREDIT = 1.0
SYNONYM_CREDIT = 0.9
DEFAULT_FUZZY_THRESHOLD = 0.8

TYPE_MATCH_SCORE = 1.0
TYPE_NEUTRAL_SCORE = 0.5

HISTORY_SATURATION = 10  # usage_count at which user_history reaches 1.0

# (max age, score) buckets for last_used; older or never used scores 0.5
FRESHNESS_BUCKETS: list[tuple[timedelta, float]] = [
    (timedelta(days=1), 1.0),
    (timedelta(days=7), 0.9),
    (timedelta(days=30), 0.7),
]
STALE_FRESHNESS = 0.5

# Synonym groups - every word in a group is a synonym of every other.
# Seed table; configuration may add groups (scoring.synonyms).
SYNONYM_GROUPS: list[set[str]] = [
    {"deploy", "deployment", "ship", "release", "publish", "rollout"},
    {"test", "tests", "testing", "verify", "validate", "spec"},
    {"review", "audit", "inspect", "critique"},
    {"fix", "debug", "repair", "resolve", "bugfix", "troubleshoot"},
    {"create", "add", "new", "make", "generate", "scaffold"},
    {"delete", "remove", "destroy", "drop", "clean"},
    {"search", "find", "lookup", "locate", "grep", "query"},
    {"document", "docs", "documentation", "readme"},
    {"refactor", "restructure", "simplify", "reorganize", "cleanup"},
    {"commit", "changeset", "checkin"},
    {"pr", "pull request", "merge request", "code review"},
    {"database", "db", "sql", "schema"},
    {"kubernetes", "k8s", "kube", "cluster"},
    {"aws", "amazon", "cloud"},
    {"security", "vulnerability", "secure", "cve"},
    {"frontend", "ui", "interface", "component"},
    {"performance", "perf", "optimize", "speed", "profiling"},
    {"plan", "design", "architect", "architecture"},
    {"format", "lint", "linter", "style"},
    {"explain", "describe", "understand", "walkthrough"},
]

_HOOK_PATTERN = re.compile(
    r"\b(automatically|whenever|every time|each time|on every|after every|"
    r"before every|on each|auto-run|autorun)\b"
)
_COMMAND_PATTERN = re.compile(r"^\s*/|\b(run|execute|invoke|launch)\b")
_SKILL_PATTERN = re.compile(r"\b(help|how)\b")
_CLAUSE_CONNECTOR = re.compile(
    r",\s*(then|and|but)\b|\band then\b|\bafter that\b|\bonce that\b|;"
)
AGENT_MIN_WORDS = 15
AGENT_MIN_CONNECTORS = 2


def build_synonym_map(
    groups: Iterable[Iterable[str]],
    extra: Mapping[str, Iterable[str]] | None = None,
) -> dict[str, set[str]]:
    """
    Build word -> synonyms lookup from synonym groups.

    Args:
        groups: Sets of mutually synonymous words/phrases
        extra: Optional canonical -> synonyms additions (from configuration)

    Returns:
        Dict mapping each word to its synonyms (excluding itself)
    """
    all_groups = [set(group) for group in groups]
    for canonical, synonyms in (extra or {}).items():
        all_groups.append({canonical, *synonyms})

    synonym_map: dict[str, set[str]] = {}
    for group in all_groups:
        normalized = {" ".join(split_words(word)) for word in group} - {""}
        for word in normalized:
            synonym_map.setdefault(word, set()).update(normalized - {word})
    return synonym_map


def infer_capability_type(query: str) -> CapabilityType | None:
    """
    Infer the capability type a query is asking for from surface patterns.

    Returns:
        HOOK for "automatically"/"whenever", COMMAND for "run"/"execute",
        SKILL for "help"/"how", AGENT for long or multi-clause requests,
        or None when there is no signal.
    """
    text = query.lower()
    if _HOOK_PATTERN.search(text):
        return CapabilityType.HOOK
    if _COMMAND_PATTERN.search(text):
        return CapabilityType.COMMAND
    if _SKILL_PATTERN.search(text):
        return CapabilityType.SKILL
    if (
        len(text.split()) >= AGENT_MIN_WORDS
        or len(_CLAUSE_CONNECTOR.findall(text)) >= AGENT_MIN_CONNECTORS
    ):
        return CapabilityType.AGENT
    return None


def freshness_score(last_used: datetime | None, now: datetime | None = None) -> float:
    """Age-bucketed recency score for a capability's last use."""
    if last_used is None:
        return STALE_FRESHNESS
    age = (now or utcnow()) - last_used
    for max_age, score in FRESHNESS_BUCKETS:
        if age < max_age:
            return score
    return STALE_FRESHNESS


def user_history_score(usage_count: int) -> float:
    """Saturating usage score: min(usage_count / 10, 1.0)."""
    return min(max(usage_count, 0) / HISTORY_SATURATION, 1.0)


@dataclass
class ParsedQuery:
    """A query tokenized once and scored against many capabilities."""

    text: str
    terms: list[str] = field(default_factory=list)
    bigrams: list[str] = field(default_factory=list)
    inferred_type: CapabilityType | None = None


class Scorer:
    """Computes a bounded relevance score for (query, capability) pairs."""

    def __init__(
        self,
        synonyms: Mapping[str, Iterable[str]] | None = None,
        fuzzy_threshold: float = DEFAULT_FUZZY_THRESHOLD,
    ):
        """
        Initialize scorer.

        Args:
            synonyms: Extra canonical -> synonyms entries extending SYNONYM_GROUPS
            fuzzy_threshold: Minimum normalized similarity for a fuzzy match
        """
        self.synonyms = build_synonym_map(SYNONYM_GROUPS, synonyms)
        self.fuzzy_threshold = fuzzy_threshold

    def parse_query(self, query: str) -> ParsedQuery:
        """Tokenize a query into terms, bigrams and an inferred type."""
        terms = query_terms(query or "")
        return ParsedQuery(
            text=query or "",
            terms=terms,
            bigrams=query_bigrams(terms),
            inferred_type=infer_capability_type(query or ""),
        )

    def _token_credit(self, token: str, keywords: set[str]) -> tuple[float, str | None]:
        """Best credit for one query token: exact, synonym, then fuzzy."""
        if token in keywords:
            return EXACT_CREDIT, token
        for synonym in self.synonyms.get(token, ()):
            if synonym in keywords:
                return SYNONYM_CREDIT, synonym

        best_credit, best_keyword = 0.0, None
        is_phrase = " " in token
        for keyword in keywords:
            # Phrases only fuzzy-match phrases
            if is_phrase != (" " in keyword):
                continue
            similarity = fuzz.ratio(token, keyword) / 100.0
            if similarity >= self.fuzzy_threshold and similarity > best_credit:
                best_credit, best_keyword = similarity, keyword
        return best_credit, best_keyword

    def keyword_match(
        self, parsed: ParsedQuery, capability: Capability
    ) -> tuple[float, list[str]]:
        """
        Score keyword overlap between a parsed query and a capability.

        Each unigram earns its best credit. A bigram matching a phrase
        keyword lifts both of its unigrams to the bigram's credit.

        Returns:
            Tuple of (score 0.0-1.0, matched keywords in query order)
        """
        if not parsed.terms:
            return 0.0, []

        keywords = capability.keywords
        credits: dict[str, float] = {}
        matched: list[str] = []
        for term in parsed.terms:
            credit, keyword = self._token_credit(term, keywords)
            credits[term] = credit
            if keyword and keyword not in matched:
                matched.append(keyword)

        for bigram in parsed.bigrams:
            credit, keyword = self._token_credit(bigram, keywords)
            if not keyword:
                continue
            first, second = bigram.split(" ", 1)
            credits[first] = max(credits[first], credit)
            credits[second] = max(credits[second], credit)
            if keyword not in matched:
                matched.append(keyword)

        return sum(credits.values()) / len(parsed.terms), matched

    def score(
        self,
        query: str | ParsedQuery,
        capability: Capability,
        now: datetime | None = None,
    ) -> ScoreBreakdown:
        """
        Score how relevant a capability is to a query.

        Args:
            query: Free-text task description, or a ParsedQuery
            capability: Capability to score
            now: Reference time for freshness (defaults to current UTC time)

        Returns:
            ScoreBreakdown whose ``total`` lies in [0, 1]
        """
        parsed = query if isinstance(query, ParsedQuery) else self.parse_query(query)

        keyword_score, matched = self.keyword_match(parsed, capability)
        if parsed.inferred_type is not None and capability.type == parsed.inferred_type:
            type_score = TYPE_MATCH_SCORE
        else:
            type_score = TYPE_NEUTRAL_SCORE

        breakdown = ScoreBreakdown(
            keyword_match=keyword_score,
            capability_type=type_score,
            user_history=user_history_score(capability.usage_count),
            freshness=freshness_score(capability.last_used, now),
            success_rate=clamp(capability.success_rate, 0.0, 1.0),
            confidence_boost=clamp(capability.confidence_boost, -1.0, 1.0),
            matched_keywords=matched,
            inferred_type=parsed.inferred_type,
        )
        weighted = sum(
            weight * getattr(breakdown, factor) for factor, weight in WEIGHTS.items()
        )
        breakdown.total = clamp(weighted + breakdown.confidence_boost, 0.0, 1.0)
        return breakdown


def score_capability(query: str, capability: Capability) -> float:
    """Score a single pair with the default Scorer."""
    return Scorer().score(query, capability).total
