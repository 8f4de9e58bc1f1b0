"""Tool Advisor command-line interface."""

from tool_advisor import __version__

__all__ = ["__version__"]
