"""Shared pytest fixtures for tool-advisor tests.

Plugin trees are written under tmp_path so every test scans its own
isolated locations. Unit tests never touch ~/.claude.
"""

from datetime import datetime, timezone
from pathlib import Path

import pytest

from tests.helpers import frontmatter, write_plugin, write_standalone_skill
from tool_advisor.store import CapabilityStore

# Capability ids produced by the plugin_location fixture
PLUGIN_LOCATION_IDS = {
    "ops:deploy",
    "ops:security-reviewer",
    "ops:terraform",
    "ops:PostToolUse",
    "ops:mcp:github",
    "ops:mcp:github:create_issue",
    "docs:readme",
}


@pytest.fixture
def plugin_location_ids() -> set[str]:
    """Capability ids the plugin_location fixture should produce."""
    return set(PLUGIN_LOCATION_IDS)


# =============================================================================
# Time Fixtures
# =============================================================================


@pytest.fixture
def now() -> datetime:
    """Fixed reference time for scoring and feedback."""
    return datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)


# =============================================================================
# Storage Fixtures
# =============================================================================


@pytest.fixture
def index_path(tmp_path: Path) -> Path:
    return tmp_path / "state" / "tool-advisor-cache.json"


@pytest.fixture
def store(index_path: Path) -> CapabilityStore:
    """Capability store backed by a temporary index file."""
    return CapabilityStore(index_path)


@pytest.fixture(autouse=True)
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep tests away from the user's real config file and env overrides."""
    monkeypatch.delenv("TOOL_ADVISOR_CONFIG_PATH", raising=False)
    monkeypatch.delenv("TOOL_ADVISOR_INDEX_PATH", raising=False)
    monkeypatch.setattr(
        "tool_advisor.config.DEFAULT_CONFIG_PATH", tmp_path / "no-such-config.yaml"
    )


# =============================================================================
# Plugin Tree Fixtures
# =============================================================================


@pytest.fixture
def plugin_location(tmp_path: Path) -> Path:
    """A scan location holding an 'ops' plugin (every component kind) and a 'docs' plugin."""
    root = tmp_path / "plugins"
    root.mkdir()

    write_plugin(
        root,
        "ops",
        manifest={
            "name": "ops",
            "version": "2.1.0",
            "description": "Operations toolkit",
            "author": {"name": "Platform Team"},
            "keywords": ["devops"],
        },
        commands={
            "deploy": frontmatter(
                description="Deploy the current service to AWS production",
                keywords=["release"],
                **{"argument-hint": "[environment]"},
            )
        },
        agents={
            "security-reviewer": frontmatter(
                name="security-reviewer",
                description="Review code changes for security vulnerabilities",
                tools="Read, Grep",
            )
        },
        skills={
            "terraform": frontmatter(
                name="terraform",
                description="Write and review Terraform infrastructure modules",
            )
        },
        hooks={
            "description": "Format files after edits",
            "hooks": {
                "PostToolUse": [
                    {
                        "matcher": "Edit",
                        "hooks": [{"type": "command", "command": "ruff format"}],
                    }
                ]
            },
        },
        mcp={
            "mcpServers": {
                "github": {
                    "command": "npx",
                    "args": ["-y", "github-mcp"],
                    "description": "GitHub issues and pull requests",
                    "tools": [{"name": "create_issue", "description": "Create a GitHub issue"}],
                }
            }
        },
    )
    write_plugin(
        root,
        "docs",
        commands={"readme": frontmatter(description="Generate a README for the project")},
    )
    return root


@pytest.fixture
def skills_location(tmp_path: Path) -> Path:
    """A scan location holding one standalone skill ('pdf')."""
    root = tmp_path / "skills"
    write_standalone_skill(
        root,
        "pdf",
        frontmatter(name="pdf", description="Extract text and tables from PDF files"),
    )
    return root
