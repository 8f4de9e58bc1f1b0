"""
Recommendation Formatter for Tool Advisor.

Formats a Recommendation as XML-structured context for injection into the
assistant's prompt (UserPromptSubmit hook), one block per presentation tier:

- AUTO_USE: brief notice plus the invocation to run immediately
- SUGGEST_ONE: one candidate with reasons, confirmation expected
- SUGGEST_MANY: up to three candidates for the user to choose from
- INSUFFICIENT: clarifying questions, no candidates

When the caller's project was analyzed, its detected stack follows in a
<project> block.
"""

from xml.sax.saxutils import escape

from .models import Candidate, Recommendation, Tier

ATTRIBUTE_ENTITIES = {'"': "&quot;"}

TIER_DIRECTIVES = {
    Tier.AUTO_USE: "Use this capability now and tell the user in one line that you did.",
    Tier.SUGGEST_ONE: "Suggest this capability and ask the user to confirm before using it.",
    Tier.SUGGEST_MANY: "Present these options and let the user choose one.",
    Tier.INSUFFICIENT: "No capability fits well enough. Ask the user these questions first.",
}


def _candidate_block(candidate: Candidate, rank: int) -> list[str]:
    capability = candidate.capability
    parts = [
        f'<capability rank="{rank}" id="{escape(capability.id, ATTRIBUTE_ENTITIES)}" '
        f'type="{capability.type.value}" relevance="{candidate.score:.2f}">\n'
    ]
    if capability.description:
        parts.append(f"<summary>{escape(capability.description)}</summary>\n")
    invocation = capability.metadata.get("invocation")
    if invocation:
        parts.append(f"<invocation>{escape(str(invocation))}</invocation>\n")
    if candidate.reasons:
        parts.append("<reasons>\n")
        for reason in candidate.reasons:
            parts.append(f"- {escape(reason)}\n")
        parts.append("</reasons>\n")
    parts.append("</capability>\n")
    return parts


def format_recommendation(recommendation: Recommendation) -> str:
    """
    Format a recommendation for hook context injection.

    Args:
        recommendation: Result of ToolAdvisor.recommend()

    Returns:
        XML context string ("" for an INSUFFICIENT result without questions)
    """
    tier = recommendation.tier
    if tier == Tier.INSUFFICIENT and not recommendation.clarifying_questions:
        return ""

    output_parts = [f'<tool_advisor tier="{tier.value}">\n']
    output_parts.append(f"<directive>{TIER_DIRECTIVES[tier]}</directive>\n")

    if recommendation.notice:
        output_parts.append(f"<notice>{escape(recommendation.notice)}</notice>\n")

    if recommendation.candidates:
        output_parts.append(f'<capabilities count="{len(recommendation.candidates)}">\n')
        for rank, candidate in enumerate(recommendation.candidates, 1):
            output_parts.extend(_candidate_block(candidate, rank))
        output_parts.append("</capabilities>\n")

    if recommendation.clarifying_questions:
        output_parts.append("<questions>\n")
        for question in recommendation.clarifying_questions:
            output_parts.append(f"- {escape(question)}\n")
        output_parts.append("</questions>\n")

    project = recommendation.project
    if project and project.technologies:
        output_parts.append(f'<project name="{escape(project.project, ATTRIBUTE_ENTITIES)}">\n')
        for tech in project.technologies:
            output_parts.append(
                f"- {escape(tech.name)} ({escape(tech.category)}, {tech.confidence:.0%})\n"
            )
        output_parts.append("</project>\n")

    output_parts.append("</tool_advisor>")
    return "".join(output_parts)


def format_plain(recommendation: Recommendation) -> str:
    """One-paragraph plain text rendering for logs and non-XML consumers."""
    if recommendation.tier == Tier.AUTO_USE and recommendation.notice:
        return recommendation.notice
    if not recommendation.candidates:
        return " ".join(recommendation.clarifying_questions)

    lines = []
    for rank, candidate in enumerate(recommendation.candidates, 1):
        line = f"{rank}. {candidate.capability.id} ({candidate.score:.0%})"
        if candidate.reasons:
            line += f": {candidate.reasons[0]}"
        lines.append(line)
    return "\n".join(lines)
