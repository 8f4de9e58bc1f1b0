"""Discovery - find plugins, skills, hooks and MCP servers on disk

Walks the configured scan locations and turns every component it understands
into a raw descriptor record for the Index Builder.

Usage:
    from tool_advisor.discovery import DiscoveryCollector

    collector = DiscoveryCollector(component_timeout=5.0, scan_timeout=120.0)
    batch = collector.collect(["~/.claude/plugins", "~/.claude/skills"])
    print(f"Found {len(batch.records)} components, {len(batch.errors)} errors")
"""

from .components import ComponentParseError, parse_frontmatter
from .scanner import DiscoveryCollector, load_installed_plugins

__all__ = [
    "ComponentParseError",
    "DiscoveryCollector",
    "load_installed_plugins",
    "parse_frontmatter",
]
