"""Unit tests for configuration loading."""

from pathlib import Path

import pytest

from tool_advisor import config as config_module
from tool_advisor.config import (
    DEFAULT_CONFIG,
    ConfigurationError,
    _deep_merge,
    get_index_path,
    get_scan_locations,
    load_config,
)


class TestLoadConfig:
    """Tests for load_config."""

    def test_defaults(self):
        config = load_config()

        assert config == DEFAULT_CONFIG
        assert config is not DEFAULT_CONFIG

    def test_explicit_file_merges_over_defaults(self, tmp_path):
        path = tmp_path / "tool-advisor.yaml"
        path.write_text("recommend:\n  excluded_plugins: ['legacy*']\n")

        config = load_config(path)

        assert config["recommend"]["excluded_plugins"] == ["legacy*"]
        assert config["recommend"]["max_suggestions"] == 3
        assert config["index"]["staleness_seconds"] == 3600

    def test_env_config_path(self, tmp_path, monkeypatch):
        path = tmp_path / "env.yaml"
        path.write_text("index:\n  staleness_seconds: 60\n")
        monkeypatch.setenv("TOOL_ADVISOR_CONFIG_PATH", str(path))

        assert load_config()["index"]["staleness_seconds"] == 60

    def test_invalid_explicit_file_raises(self, tmp_path):
        path = tmp_path / "broken.yaml"
        path.write_text("index: [unclosed\n")

        with pytest.raises(ConfigurationError):
            load_config(path)

    def test_non_mapping_explicit_file_raises(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- one\n- two\n")

        with pytest.raises(ConfigurationError):
            load_config(path)

    def test_missing_explicit_file_uses_defaults(self, tmp_path):
        assert load_config(tmp_path / "absent.yaml") == DEFAULT_CONFIG

    def test_invalid_default_file_is_ignored(self, tmp_path, monkeypatch):
        path = tmp_path / "default.yaml"
        path.write_text("index: [unclosed\n")
        monkeypatch.setattr(config_module, "DEFAULT_CONFIG_PATH", path)

        assert load_config() == DEFAULT_CONFIG

    def test_env_index_path_override(self, tmp_path, monkeypatch):
        monkeypatch.setenv("TOOL_ADVISOR_INDEX_PATH", str(tmp_path / "index.json"))

        config = load_config()

        assert get_index_path(config) == tmp_path / "index.json"

    def test_defaults_are_not_mutated(self, monkeypatch, tmp_path):
        monkeypatch.setenv("TOOL_ADVISOR_INDEX_PATH", str(tmp_path / "index.json"))
        load_config()

        assert DEFAULT_CONFIG["index"]["path"] != str(tmp_path / "index.json")


class TestHelpers:
    """Tests for config accessors and merging."""

    def test_scan_locations_expand_home(self):
        config = {"scan": {"locations": ["~/plugins", "/opt/skills"]}}

        assert get_scan_locations(config) == [
            str(Path.home() / "plugins"),
            "/opt/skills",
        ]

    def test_scan_locations_default(self):
        assert len(get_scan_locations({})) == len(DEFAULT_CONFIG["scan"]["locations"])

    def test_deep_merge(self):
        base = {"a": {"b": 1, "c": 2}, "d": 3}

        merged = _deep_merge(base, {"a": {"c": 20}, "e": 5})

        assert merged == {"a": {"b": 1, "c": 20}, "d": 3, "e": 5}
        assert base == {"a": {"b": 1, "c": 2}, "d": 3}
