"""
Ranker - filters candidates, scores them and picks a presentation tier.

Tiers (from the top score):
    >= 0.90       AUTO_USE      act immediately, brief inline notice
    [0.70, 0.90)  SUGGEST_ONE   top candidate with reasons, needs confirmation
    [0.50, 0.70)  SUGGEST_MANY  top 3 candidates for the user to choose from
    <  0.50       INSUFFICIENT  no candidates, clarifying questions instead

Capabilities with zero keyword overlap are dropped before scoring, so usage
history alone can never surface an irrelevant tool.
"""

import logging
from collections.abc import Callable, Iterable
from datetime import datetime
from fnmatch import fnmatchcase

from .models import (
    Candidate,
    Capability,
    Recommendation,
    RecommendationConstraints,
    Tier,
    utcnow,
)
from .scoring import TYPE_MATCH_SCORE, ParsedQuery, Scorer

logger = logging.getLogger(__name__)

AUTO_USE_THRESHOLD = 0.90
SUGGEST_ONE_THRESHOLD = 0.70
SUGGEST_MANY_THRESHOLD = 0.50
MAX_SUGGESTIONS = 3
MAX_REASON_KEYWORDS = 4

TYPE_LABELS = {
    "agent": "agent",
    "command": "command",
    "skill": "skill",
    "hook": "hook",
    "mcp_server": "MCP server",
    "mcp_tool": "MCP tool",
}


class QueryError(Exception):
    """Raised when a query is empty or has no usable keywords."""

    pass


def select_tier(score: float) -> Tier:
    """Map the top relevance score to a presentation tier."""
    if score >= AUTO_USE_THRESHOLD:
        return Tier.AUTO_USE
    if score >= SUGGEST_ONE_THRESHOLD:
        return Tier.SUGGEST_ONE
    if score >= SUGGEST_MANY_THRESHOLD:
        return Tier.SUGGEST_MANY
    return Tier.INSUFFICIENT


def is_excluded(plugin: str, patterns: Iterable[str]) -> bool:
    """True if the plugin name matches any exclusion glob (case-insensitive)."""
    name = plugin.lower()
    return any(fnmatchcase(name, pattern.lower()) for pattern in patterns)


def _article(label: str) -> str:
    return "an" if label[:1].lower() in "aeiou" or label.startswith("MCP") else "a"


def _describe_age(last_used: datetime, now: datetime) -> str:
    days = (now - last_used).days
    if days <= 0:
        return "today"
    if days == 1:
        return "yesterday"
    return f"{days} days ago"


def generate_reasons(candidate: Candidate, now: datetime) -> list[str]:
    """
    Build template reasons for a candidate, in priority order:
    matched keywords, type match, usage/success, recency.
    """
    capability = candidate.capability
    breakdown = candidate.breakdown
    reasons: list[str] = []

    if breakdown.matched_keywords:
        shown = ", ".join(breakdown.matched_keywords[:MAX_REASON_KEYWORDS])
        reasons.append(f"Matches your request on: {shown}")

    if breakdown.inferred_type is not None and breakdown.capability_type >= TYPE_MATCH_SCORE:
        label = TYPE_LABELS.get(capability.type.value, capability.type.value)
        reasons.append(f"It is {_article(label)} {label}, which fits how the request is phrased")

    if capability.usage_count > 0:
        times = "time" if capability.usage_count == 1 else "times"
        reasons.append(
            f"You have used it {capability.usage_count} {times} "
            f"with a {capability.success_rate:.0%} success rate"
        )

    if capability.last_used is not None:
        reasons.append(f"Last used {_describe_age(capability.last_used, now)}")

    return reasons


def clarifying_questions(keywords: list[str]) -> list[str]:
    """Questions asked when no candidate is relevant enough."""
    if not keywords:
        return [
            "What task are you trying to accomplish?",
            "Is there a specific plugin, command or agent you have in mind?",
        ]

    focus = ", ".join(f"'{k}'" for k in keywords[:3])
    questions = [
        f"What would you like to do with {focus}?",
        "Should this be a one-off command, a delegated agent, "
        "a reusable skill, or an automatic hook?",
    ]
    if len(keywords) == 1:
        questions.append(
            f"Can you add detail about '{keywords[0]}', such as the service, "
            "language or file involved?"
        )
    else:
        questions.append(f"Which of {focus} matters most for this task?")
    return questions


class Ranker:
    """Turns a query and a capability set into a tiered Recommendation."""

    def __init__(
        self,
        scorer: Scorer | None = None,
        max_suggestions: int = MAX_SUGGESTIONS,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.scorer = scorer or Scorer()
        self.max_suggestions = max_suggestions
        self.clock = clock

    def _parse(self, query: str) -> ParsedQuery:
        if not query or not query.strip():
            raise QueryError("Query is empty")
        parsed = self.scorer.parse_query(query)
        if not parsed.terms:
            raise QueryError(f"No usable keywords in query: {query!r}")
        return parsed

    def rank(
        self,
        query: str | ParsedQuery,
        capabilities: Iterable[Capability],
        constraints: RecommendationConstraints | None = None,
        now: datetime | None = None,
    ) -> list[Candidate]:
        """
        Filter and score capabilities, best first.

        Ties are broken by higher usage_count, then by id.

        Raises:
            QueryError: If the query is empty or has no usable keywords
        """
        parsed = query if isinstance(query, ParsedQuery) else self._parse(query)
        constraints = constraints or RecommendationConstraints()
        now = now or self.clock()

        candidates: list[Candidate] = []
        for capability in capabilities:
            if constraints.excluded_plugins and is_excluded(
                capability.plugin, constraints.excluded_plugins
            ):
                continue
            if (
                constraints.preferred_type is not None
                and capability.type != constraints.preferred_type
            ):
                continue
            overlap, _ = self.scorer.keyword_match(parsed, capability)
            if overlap <= 0.0:
                continue

            breakdown = self.scorer.score(parsed, capability, now)
            if breakdown.total < constraints.min_relevance:
                continue
            candidates.append(
                Candidate(capability=capability, score=breakdown.total, breakdown=breakdown)
            )

        candidates.sort(
            key=lambda c: (-c.score, -c.capability.usage_count, c.capability.id)
        )
        return candidates

    def recommend(
        self,
        query: str,
        capabilities: Iterable[Capability],
        constraints: RecommendationConstraints | None = None,
    ) -> Recommendation:
        """
        Recommend capabilities for a query.

        Never raises for bad input: empty or unusable queries produce an
        INSUFFICIENT recommendation with clarifying questions.
        """
        try:
            parsed = self._parse(query)
        except QueryError as e:
            logger.info(f"Insufficient query: {e}")
            return Recommendation(
                query=query or "",
                tier=Tier.INSUFFICIENT,
                clarifying_questions=clarifying_questions([]),
            )

        now = self.clock()
        ranked = self.rank(parsed, capabilities, constraints, now)
        tier = select_tier(ranked[0].score) if ranked else Tier.INSUFFICIENT
        logger.debug(
            f"Ranked {len(ranked)} candidates for {query!r} "
            f"(top={ranked[0].score:.3f}, tier={tier.value})"
            if ranked
            else f"No candidates for {query!r}"
        )

        recommendation = Recommendation(query=query, tier=tier, keywords=parsed.terms)
        if tier == Tier.INSUFFICIENT:
            recommendation.clarifying_questions = clarifying_questions(parsed.terms)
            return recommendation

        if tier == Tier.AUTO_USE:
            top = ranked[0]
            label = TYPE_LABELS.get(top.capability.type.value, top.capability.type.value)
            recommendation.candidates = [top]
            recommendation.notice = (
                f"Using {label} {top.capability.id} (relevance {top.score:.0%})"
            )
            return recommendation

        shown = ranked[:1] if tier == Tier.SUGGEST_ONE else ranked[: self.max_suggestions]
        for candidate in shown:
            candidate.reasons = generate_reasons(candidate, now)
        recommendation.candidates = shown
        return recommendation
