"""Tool Advisor Configuration

Configuration loading with environment variable support and sensible defaults.

Environment Variables:
    TOOL_ADVISOR_CONFIG_PATH: Path to config file (default: ~/.claude/tool-advisor.yaml)
    TOOL_ADVISOR_INDEX_PATH: Override index file path from config

Configuration Schema:
    index:
        path: str - Index document (default: ~/.claude/tool-advisor-cache.json)
        staleness_seconds: int - Rescan when older than this (default: 3600)
    scan:
        locations: list[str] - Directories to scan for plugins and skills
        component_timeout: float - Seconds allowed per component (default: 5.0)
        scan_timeout: float - Seconds allowed for the whole scan (default: 120.0)
        installed_plugins_path: str - installed_plugins.json registry
    recommend:
        min_relevance: float - Drop candidates scoring below this (default: 0.0)
        excluded_plugins: list[str] - fnmatch patterns of plugins to ignore
        max_suggestions: int - Candidates shown for SUGGEST_MANY (default: 3)
    scoring:
        synonyms: dict[str, list[str]] - Extra synonym groups
        fuzzy_threshold: float - Minimum fuzzy similarity (default: 0.8)
    feedback:
        strategy: str - Feedback strategy version (default: nudge-v1)
    logging:
        level: str - Logging level (default: "WARNING")
"""

import copy
import logging
import os
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

CLAUDE_HOME = Path.home() / ".claude"
DEFAULT_CONFIG_PATH = CLAUDE_HOME / "tool-advisor.yaml"

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


class ConfigurationError(Exception):
    """Raised when configuration is invalid or cannot be loaded."""

    pass


# Default configuration values
DEFAULT_CONFIG: dict[str, Any] = {
    "index": {
        "path": str(CLAUDE_HOME / "tool-advisor-cache.json"),
        "staleness_seconds": 3600,
    },
    "scan": {
        "locations": [
            str(CLAUDE_HOME / "plugins" / "marketplaces"),
            str(CLAUDE_HOME / "plugins"),
            str(CLAUDE_HOME / "skills"),
        ],
        "component_timeout": 5.0,
        "scan_timeout": 120.0,
        "installed_plugins_path": str(CLAUDE_HOME / "plugins" / "installed_plugins.json"),
    },
    "recommend": {
        "min_relevance": 0.0,
        "excluded_plugins": [],
        "max_suggestions": 3,
    },
    "scoring": {
        "synonyms": {},
        "fuzzy_threshold": 0.8,
    },
    "feedback": {
        "strategy": None,  # Use registered default strategy
    },
    "project": {
        "max_files": 2000,
        "max_file_bytes": 262144,
    },
    "logging": {
        "level": "WARNING",
    },
}


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """
    Deep merge override dict into base dict.

    Args:
        base: Base dictionary (defaults)
        override: Override dictionary (user config)

    Returns:
        Merged dictionary with override values taking precedence
    """
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _read_yaml(path: Path) -> dict[str, Any]:
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise yaml.YAMLError(f"top level of {path} must be a mapping")
    return data


def load_config(config_path: str | Path | None = None) -> dict[str, Any]:
    """
    Load configuration from YAML file with environment variable overrides.

    Configuration Loading Order (later overrides earlier):
    1. Default values (DEFAULT_CONFIG)
    2. Config file (config_path parameter, TOOL_ADVISOR_CONFIG_PATH, or
       ~/.claude/tool-advisor.yaml if present)
    3. Environment variable overrides (TOOL_ADVISOR_INDEX_PATH)

    Args:
        config_path: Explicit config file path (overrides TOOL_ADVISOR_CONFIG_PATH)

    Returns:
        Merged configuration dictionary

    Raises:
        ConfigurationError: If an explicitly named config file is invalid YAML
    """
    config = copy.deepcopy(DEFAULT_CONFIG)

    file_path = config_path or os.environ.get("TOOL_ADVISOR_CONFIG_PATH")

    if file_path:
        # Explicit config path - must be valid if it exists
        resolved_path = Path(file_path).expanduser()
        if resolved_path.exists():
            try:
                config = _deep_merge(config, _read_yaml(resolved_path))
                logger.info(f"Loaded configuration from: {resolved_path}")
            except yaml.YAMLError as e:
                raise ConfigurationError(f"Invalid YAML in config file: {e}")
            except OSError as e:
                raise ConfigurationError(f"Cannot read config file: {e}")
        else:
            logger.warning(f"Config file not found (using defaults): {file_path}")
    elif DEFAULT_CONFIG_PATH.exists():
        try:
            config = _deep_merge(config, _read_yaml(DEFAULT_CONFIG_PATH))
            logger.info(f"Loaded configuration from: {DEFAULT_CONFIG_PATH}")
        except yaml.YAMLError as e:
            logger.warning(f"Invalid YAML in default config (ignoring): {e}")
        except OSError as e:
            logger.warning(f"Cannot read default config (ignoring): {e}")
    else:
        logger.debug("No config file found, using defaults")

    # Apply environment variable overrides
    index_path_override = os.environ.get("TOOL_ADVISOR_INDEX_PATH")
    if index_path_override:
        config["index"]["path"] = index_path_override
        logger.info(f"Index path override from env: {index_path_override}")

    return config


def get_index_path(config: dict[str, Any]) -> Path:
    """Get the index document path from config."""
    path = config.get("index", {}).get("path") or DEFAULT_CONFIG["index"]["path"]
    return Path(path).expanduser()


def get_scan_locations(config: dict[str, Any]) -> list[str]:
    """Get configured scan locations with ~ expanded."""
    locations = (
        config.get("scan", {}).get("locations") or DEFAULT_CONFIG["scan"]["locations"]
    )
    return [str(Path(location).expanduser()) for location in locations]


def configure_logging(level: str | int = "INFO") -> None:
    """Configure root logging for CLI and hook entry points."""
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO
    logging.basicConfig(level=level, format=LOG_FORMAT)
