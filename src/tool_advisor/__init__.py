"""Tool Advisor - capability index and recommendation engine.

Catalogs Claude Code tools (agents, commands, skills, hooks, MCP servers and
MCP tools) into a local JSON index and recommends the best match for a
free-text task description.

Usage:
    from tool_advisor import ToolAdvisor

    advisor = ToolAdvisor.from_config()
    advisor.scan()
    recommendation = advisor.recommend("deploy to AWS production")
    if recommendation.candidates:
        advisor.record_feedback(recommendation.candidates[0].capability.id, "accepted")
"""

from .advisor import ToolAdvisor
from .models import (
    Capability,
    CapabilityIndex,
    CapabilityType,
    ProjectProfile,
    Recommendation,
    RecommendationConstraints,
    ScanError,
    Technology,
    Tier,
)
from .store import CapabilityStore, StoreWriteError, ValidationError

__all__ = [
    "Capability",
    "CapabilityIndex",
    "CapabilityStore",
    "CapabilityType",
    "ProjectProfile",
    "Recommendation",
    "RecommendationConstraints",
    "ScanError",
    "StoreWriteError",
    "Technology",
    "Tier",
    "ToolAdvisor",
    "ValidationError",
]

__version__ = "0.1.0"
