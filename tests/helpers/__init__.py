"""Test helpers for tool-advisor.

This package provides builders used across the unit tests:
- Factories: Capability objects and raw discovery records
- Plugins: on-disk plugin and skill directory trees
"""

from .factories import make_capability, make_index, make_record
from .plugins import frontmatter, write_plugin, write_standalone_skill

__all__ = [
    # Factories
    "make_capability",
    "make_index",
    "make_record",
    # Plugins
    "frontmatter",
    "write_plugin",
    "write_standalone_skill",
]
