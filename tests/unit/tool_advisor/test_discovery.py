"""Unit tests for the Discovery Collector and component parsers."""

import json
import threading
from pathlib import Path

import pytest

from tests.helpers import frontmatter, write_plugin
from tool_advisor.discovery import (
    ComponentParseError,
    DiscoveryCollector,
    load_installed_plugins,
    parse_frontmatter,
)
from tool_advisor.discovery.components import (
    agent_record,
    command_record,
    hook_records,
    manifest_metadata,
    mcp_records,
    skill_record,
)
from tool_advisor.indexer import capability_from_record


def ids_of(batch) -> set[str]:
    return {capability_from_record(record).id for record in batch.records}


@pytest.fixture
def collector(tmp_path):
    return DiscoveryCollector(installed_plugins_path=tmp_path / "no-registry.json")


# =============================================================================
# Component parsers
# =============================================================================


class TestParseFrontmatter:
    """Tests for YAML frontmatter extraction."""

    def test_parses_mapping(self):
        text = frontmatter(description="Deploy things", keywords=["release"])

        assert parse_frontmatter(text) == {
            "description": "Deploy things",
            "keywords": ["release"],
        }

    def test_no_frontmatter(self):
        assert parse_frontmatter("# Just markdown\n") == {}

    def test_frontmatter_without_body(self):
        assert parse_frontmatter("---\nname: deploy\n---") == {"name": "deploy"}

    def test_byte_order_mark(self):
        assert parse_frontmatter("\ufeff---\nname: deploy\n---\n") == {"name": "deploy"}

    def test_invalid_yaml(self):
        with pytest.raises(ComponentParseError):
            parse_frontmatter("---\nname: [unclosed\n---\n")

    def test_non_mapping(self):
        with pytest.raises(ComponentParseError):
            parse_frontmatter("---\n- one\n- two\n---\n")


class TestRecordBuilders:
    """Tests for descriptor records built from component files."""

    def test_command_record(self):
        text = frontmatter(
            description="Deploy   the service\n to production",
            keywords="release, rollout",
            **{"argument-hint": "[env]", "allowed-tools": "Bash, Read"},
        )

        record = command_record(text, Path("/loc/ops/commands/deploy.md"), "ops", "/loc")

        assert record["type"] == "command"
        assert record["name"] == "deploy"
        assert record["description"] == "Deploy the service to production"
        assert record["keywords"] == ["release", "rollout"]
        assert record["metadata"] == {
            "invocation": "/ops:deploy",
            "argument_hint": "[env]",
            "allowed_tools": ["Bash", "Read"],
        }
        assert record["location_scan_ok"] is True

    def test_command_without_frontmatter_uses_file_stem(self):
        record = command_record("# Lint\n", Path("/loc/ops/commands/lint.md"), "ops", "/loc")

        assert record["name"] == "lint"
        assert record["description"] == ""

    def test_agent_record(self):
        text = frontmatter(name="reviewer", description="Reviews code", tools=["Read", "Grep"])

        record = agent_record(text, Path("/loc/ops/agents/review.md"), "ops", "/loc")

        assert record["name"] == "reviewer"
        assert record["metadata"]["tools"] == ["Read", "Grep"]
        assert record["metadata"]["invocation"] == (
            'Task(subagent_type="ops:reviewer", prompt="...")'
        )

    def test_skill_record_named_after_directory(self):
        text = frontmatter(description="Extract PDF text", examples=["read this pdf"])

        record = skill_record(text, Path("/loc/ops/skills/pdf/SKILL.md"), "ops", "/loc")

        assert record["name"] == "pdf"
        assert record["triggers"] == ["read this pdf"]
        assert record["metadata"]["invocation"] == 'Skill(skill="ops:pdf")'

    def test_yaml_dates_become_strings(self):
        """Unquoted YAML dates are stored as ISO strings so the index stays JSON."""
        text = "---\nname: notes\nversion: 2024-01-15\n---\n\nTake notes\n"

        record = skill_record(text, Path("/loc/ops/skills/notes/SKILL.md"), "ops", "/loc")

        assert record["metadata"]["version"] == "2024-01-15"
        json.dumps(record)

    def test_hook_records(self):
        hooks = {
            "PreToolUse": [
                {"matcher": "Bash", "hooks": [{"type": "command", "command": "check.sh"}]}
            ],
            "Stop": [{"hooks": [{"type": "command", "command": "notify.sh"}]}],
        }

        records = hook_records(hooks, Path("/loc/ops/hooks/hooks.json"), "ops", "/loc")

        assert [r["name"] for r in records] == ["PreToolUse", "Stop"]
        assert records[0]["description"] == "PreToolUse hook for Bash"
        assert records[0]["metadata"] == {
            "event": "PreToolUse",
            "matchers": ["Bash"],
            "commands": ["check.sh"],
        }
        assert records[1]["description"] == "Stop hook"

    def test_hook_event_must_be_list(self):
        with pytest.raises(ComponentParseError):
            hook_records({"Stop": "notify.sh"}, Path("hooks.json"), "ops", "/loc")

    def test_mcp_records(self):
        servers = {
            "github": {"command": "npx", "tools": ["create_issue", {"name": "list_prs"}]},
            "docs": {"url": "https://example.invalid/mcp", "description": "Docs search"},
        }

        records = mcp_records(servers, Path("/loc/ops/.mcp.json"), "ops", "/loc")

        ids = [capability_from_record(r).id for r in records]
        assert ids == [
            "ops:mcp:github",
            "ops:mcp:github:create_issue",
            "ops:mcp:github:list_prs",
            "ops:mcp:docs",
        ]
        assert records[0]["description"] == "github MCP server integration"
        assert records[0]["metadata"]["transport"] == "stdio"
        assert records[1]["metadata"]["invocation"] == "mcp__github__create_issue"
        assert records[3]["metadata"]["transport"] == "http"

    def test_mcp_server_config_must_be_object(self):
        with pytest.raises(ComponentParseError):
            mcp_records({"github": "npx github"}, Path(".mcp.json"), "ops", "/loc")

    def test_manifest_defaults(self):
        meta = manifest_metadata({}, Path("/loc/ops"), "/loc")

        assert meta["name"] == "ops"
        assert meta["version"] == "0.0.0"

    def test_manifest_name_must_be_string(self):
        with pytest.raises(ComponentParseError):
            manifest_metadata({"name": 42}, Path("/loc/ops"), "/loc")


class TestInstalledPlugins:
    """Tests for the installed plugins registry."""

    def test_counts_installs(self, tmp_path):
        registry = tmp_path / "installed_plugins.json"
        registry.write_text(
            json.dumps({"plugins": {"ops@market": [{}, {}], "docs": {"version": "1"}}})
        )

        assert load_installed_plugins(registry) == {"ops": 2, "docs": 1}

    def test_missing_registry(self, tmp_path):
        assert load_installed_plugins(tmp_path / "absent.json") == {}
        assert load_installed_plugins(None) == {}

    def test_unreadable_registry(self, tmp_path):
        registry = tmp_path / "installed_plugins.json"
        registry.write_text("{nope")

        assert load_installed_plugins(registry) == {}


# =============================================================================
# Collector
# =============================================================================


class TestCollect:
    """Tests for walking scan locations."""

    def test_collects_every_component_kind(self, collector, plugin_location, plugin_location_ids):
        batch = collector.collect([str(plugin_location)])

        assert ids_of(batch) == plugin_location_ids
        assert batch.errors == []
        assert batch.location_status == {str(plugin_location): True}
        assert batch.plugins_scanned == 2
        assert batch.partial is False
        assert batch.plugins["ops"]["version"] == "2.1.0"
        assert batch.plugins["ops"]["status"] == "discovered"

    def test_hook_description(self, collector, plugin_location):
        batch = collector.collect([str(plugin_location)])

        hook = next(r for r in batch.records if r["type"] == "hook")
        assert hook["description"] == "PostToolUse hook for Edit: Format files after edits"

    def test_malformed_manifest_is_isolated(self, collector, plugin_location):
        """A broken plugin yields one error; its neighbours are still indexed."""
        broken = write_plugin(plugin_location, "broken", manifest_text="{not json")

        batch = collector.collect([str(plugin_location)])

        assert len(batch.errors) == 1
        assert batch.failed_paths == [str(broken)]
        assert "ops:deploy" in ids_of(batch)
        assert batch.plugins_skipped == 1

    def test_malformed_command_is_isolated(self, collector, tmp_path):
        root = tmp_path / "loc"
        root.mkdir()
        write_plugin(
            root,
            "ops",
            commands={
                "bad": "---\nname: [unclosed\n---\n",
                "good": frontmatter(description="Works fine"),
            },
        )

        batch = collector.collect([str(root)])

        assert ids_of(batch) == {"ops:good"}
        assert len(batch.errors) == 1
        assert batch.failed_paths == [str(root / "ops" / "commands" / "bad.md")]

    def test_absent_location(self, collector, tmp_path, plugin_location):
        missing = str(tmp_path / "missing")

        batch = collector.collect([missing, str(plugin_location)])

        assert batch.location_status == {missing: False, str(plugin_location): True}
        assert batch.errors == []

    def test_overlapping_locations_scan_once(self, collector, plugin_location):
        single = collector.collect([str(plugin_location)])

        batch = collector.collect([str(plugin_location), str(plugin_location / "ops")])

        assert len(batch.records) == len(single.records)
        assert batch.location_status[str(plugin_location / "ops")] is True

    def test_standalone_skill(self, collector, skills_location):
        batch = collector.collect([str(skills_location)])

        assert ids_of(batch) == {"pdf:pdf"}
        assert batch.plugins["pdf"]["status"] == "standalone"

    def test_installed_status(self, tmp_path, plugin_location):
        registry = tmp_path / "installed_plugins.json"
        registry.write_text(json.dumps({"plugins": {"ops@market": [{}, {}]}}))

        batch = DiscoveryCollector(installed_plugins_path=registry).collect(
            [str(plugin_location)]
        )

        assert batch.plugins["ops"]["status"] == "installed"
        assert batch.plugins["ops"]["install_count"] == 2
        assert batch.plugins["docs"]["status"] == "discovered"

    def test_inline_manifest_components(self, collector, tmp_path):
        root = tmp_path / "loc"
        root.mkdir()
        write_plugin(
            root,
            "inline",
            manifest={
                "name": "inline",
                "mcpServers": {"search": {"command": "search-mcp"}},
                "hooks": {"Stop": [{"hooks": [{"type": "command", "command": "bell"}]}]},
            },
        )

        batch = collector.collect([str(root)])

        assert ids_of(batch) == {"inline:mcp:search", "inline:Stop"}


class TestScanLimits:
    """Tests for component timeouts, scan deadlines and cancellation."""

    def test_slow_component_times_out(self, tmp_path, plugin_location):
        release = threading.Event()

        def reader(path: Path) -> str:
            if path.name == "deploy.md":
                release.wait(5)
            return path.read_text(encoding="utf-8")

        collector = DiscoveryCollector(
            component_timeout=0.2,
            installed_plugins_path=tmp_path / "none.json",
            reader=reader,
        )
        try:
            batch = collector.collect([str(plugin_location)])
        finally:
            release.set()

        assert "ops:deploy" not in ids_of(batch)
        assert "ops:terraform" in ids_of(batch)
        assert len(batch.errors) == 1
        assert batch.failed_paths[0].endswith("deploy.md")
        assert batch.partial is False

    def test_scan_deadline_marks_partial(self, tmp_path, plugin_location):
        collector = DiscoveryCollector(
            scan_timeout=0, installed_plugins_path=tmp_path / "none.json"
        )

        batch = collector.collect([str(plugin_location)])

        assert batch.partial is True
        assert batch.location_status == {str(plugin_location): False}
        assert batch.records == []

    def test_cancel_event(self, collector, plugin_location, skills_location):
        cancel = threading.Event()
        cancel.set()

        batch = collector.collect([str(plugin_location), str(skills_location)], cancel=cancel)

        assert batch.partial is True
        assert batch.location_status == {
            str(plugin_location): False,
            str(skills_location): False,
        }
