"""Integration test fixtures.

Builds a ~/.claude-like tree (marketplace plugins, standalone skills and an
installed plugins registry) under tmp_path plus a config file pointing at it.
"""

import json
from pathlib import Path

import pytest
import yaml

from tests.helpers import frontmatter, write_plugin, write_standalone_skill


@pytest.fixture
def claude_home(tmp_path: Path) -> Path:
    home = tmp_path / "claude"
    marketplace = home / "plugins" / "marketplaces" / "acme"
    marketplace.mkdir(parents=True)

    write_plugin(
        marketplace,
        "release-tools",
        manifest={"name": "release-tools", "version": "1.4.0"},
        commands={
            "deploy": frontmatter(
                description="Deploy the current service to AWS production",
                keywords=["release", "rollout"],
            ),
            "rollback": frontmatter(description="Roll back the last production deployment"),
        },
        agents={
            "release-manager": frontmatter(
                name="release-manager",
                description="Plan a release, write the changelog and tag the version",
            )
        },
    )
    write_plugin(
        marketplace,
        "code-quality",
        manifest={"name": "code-quality", "version": "0.9.0"},
        agents={
            "code-reviewer": frontmatter(
                name="code-reviewer",
                description="Review pull requests for bugs and style problems",
                keywords=["code review"],
            )
        },
        hooks={
            "hooks": {
                "PostToolUse": [
                    {"matcher": "Write", "hooks": [{"type": "command", "command": "ruff"}]}
                ]
            },
            "description": "Lint python files after every write",
        },
    )

    write_standalone_skill(
        home / "skills",
        "spreadsheet",
        frontmatter(name="spreadsheet", description="Read and write Excel spreadsheets"),
    )

    (home / "plugins" / "installed_plugins.json").write_text(
        json.dumps({"version": 2, "plugins": {"release-tools@acme": [{"scope": "user"}]}})
    )
    return home


@pytest.fixture
def claude_config(tmp_path: Path, claude_home: Path) -> Path:
    path = tmp_path / "tool-advisor.yaml"
    path.write_text(
        yaml.safe_dump(
            {
                "index": {"path": str(claude_home / "tool-advisor-cache.json")},
                "scan": {
                    "locations": [
                        str(claude_home / "plugins" / "marketplaces"),
                        str(claude_home / "plugins"),
                        str(claude_home / "skills"),
                    ],
                    "installed_plugins_path": str(
                        claude_home / "plugins" / "installed_plugins.json"
                    ),
                },
            }
        )
    )
    return path
