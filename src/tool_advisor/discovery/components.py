"""
Component parsers - turn plugin files into raw descriptor records.

Markdown components (commands/*.md, agents/*.md, skills/*/SKILL.md) carry
YAML frontmatter:

---
name: deploy
description: Deploy the current service to production
allowed-tools: Bash, Read
keywords: [release, rollout]
---

# Markdown body

JSON components: .claude-plugin/plugin.json (manifest), hooks/hooks.json
(one Hook per event) and .mcp.json (one McpServer per server, one McpTool per
declared tool).

Parsers raise ComponentParseError for malformed input; the scanner records
it as a ScanError and moves on.
"""

import json
import re
from datetime import date, datetime
from pathlib import Path
from typing import Any

import yaml

_FRONTMATTER = re.compile(r"^---\s*\n(.*?)\n---\s*(?:\n(.*))?$", re.DOTALL)


class ComponentParseError(ValueError):
    """Raised when a component file is malformed."""

    pass


def parse_frontmatter(text: str) -> dict[str, Any]:
    """
    Extract YAML frontmatter from a markdown component.

    Returns:
        Frontmatter mapping ({} when the file has none)

    Raises:
        ComponentParseError: If the frontmatter is not valid YAML or not a mapping
    """
    match = _FRONTMATTER.match(text.lstrip("\ufeff"))
    if not match:
        return {}
    try:
        metadata = yaml.safe_load(match.group(1)) or {}
    except yaml.YAMLError as e:
        raise ComponentParseError(f"Invalid YAML frontmatter: {e}") from e
    if not isinstance(metadata, dict):
        raise ComponentParseError("Frontmatter is not a mapping")
    return metadata


def parse_json(text: str, kind: str) -> dict[str, Any]:
    """Decode a JSON component, requiring a top-level object."""
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise ComponentParseError(f"Invalid JSON in {kind}: {e}") from e
    if not isinstance(data, dict):
        raise ComponentParseError(f"{kind} is not a JSON object")
    return data


def _string_list(value: Any) -> list[str]:
    """Coerce "a, b" or [a, b] frontmatter values to a list of strings."""
    if value is None:
        return []
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    if isinstance(value, (list, tuple)):
        return [str(item).strip() for item in value if str(item).strip()]
    return [str(value)]


def _declared_keywords(metadata: dict[str, Any]) -> list[str]:
    return _string_list(metadata.get("keywords")) + _string_list(metadata.get("tags"))


def _triggers(metadata: dict[str, Any]) -> list[str]:
    return _string_list(metadata.get("triggers")) or _string_list(metadata.get("examples"))


def _json_safe(value: Any) -> Any:
    """Coerce YAML values (dates, timestamps, sets) into JSON-serializable ones."""
    if isinstance(value, dict):
        return {str(k): _json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_json_safe(v) for v in value]
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return str(value)


def _record(
    capability_type: str,
    plugin: str,
    name: str,
    description: str,
    path: Path,
    location: str,
    keywords: list[str] | None = None,
    triggers: list[str] | None = None,
    metadata: dict[str, Any] | None = None,
) -> dict[str, Any]:
    return {
        "type": capability_type,
        "plugin": plugin,
        "name": name,
        "description": " ".join(str(description or "").split()),
        "keywords": keywords or [],
        "triggers": triggers or [],
        "path": str(path),
        "metadata": {
            k: _json_safe(v) for k, v in (metadata or {}).items() if v not in (None, "", [])
        },
        "location": location,
        "location_scan_ok": True,
    }


def command_record(text: str, path: Path, plugin: str, location: str) -> dict[str, Any]:
    """Build a Command descriptor from commands/<name>.md."""
    metadata = parse_frontmatter(text)
    name = str(metadata.get("name") or path.stem)
    return _record(
        "command",
        plugin,
        name,
        metadata.get("description", ""),
        path,
        location,
        keywords=_declared_keywords(metadata),
        triggers=_triggers(metadata),
        metadata={
            "invocation": f"/{plugin}:{name}",
            "argument_hint": metadata.get("argument-hint"),
            "allowed_tools": _string_list(metadata.get("allowed-tools")),
            "model": metadata.get("model"),
        },
    )


def agent_record(text: str, path: Path, plugin: str, location: str) -> dict[str, Any]:
    """Build an Agent descriptor from agents/<name>.md."""
    metadata = parse_frontmatter(text)
    name = str(metadata.get("name") or path.stem)
    return _record(
        "agent",
        plugin,
        name,
        metadata.get("description", ""),
        path,
        location,
        keywords=_declared_keywords(metadata),
        triggers=_triggers(metadata),
        metadata={
            "invocation": f'Task(subagent_type="{plugin}:{name}", prompt="...")',
            "tools": _string_list(metadata.get("tools")),
            "model": metadata.get("model"),
            "color": metadata.get("color"),
        },
    )


def skill_record(text: str, path: Path, plugin: str, location: str) -> dict[str, Any]:
    """Build a Skill descriptor from skills/<name>/SKILL.md."""
    metadata = parse_frontmatter(text)
    name = str(metadata.get("name") or path.parent.name)
    return _record(
        "skill",
        plugin,
        name,
        metadata.get("description", ""),
        path,
        location,
        keywords=_declared_keywords(metadata),
        triggers=_triggers(metadata),
        metadata={
            "invocation": f'Skill(skill="{plugin}:{name}")',
            "allowed_tools": _string_list(metadata.get("allowed-tools")),
            "version": metadata.get("version"),
        },
    )


def hook_records(
    hooks: dict[str, Any], path: Path, plugin: str, location: str, description: str = ""
) -> list[dict[str, Any]]:
    """
    Build one Hook descriptor per event of a hooks mapping.

    Expected layout (hooks/hooks.json or plugin.json "hooks"):
        {"PreToolUse": [{"matcher": "Bash", "hooks": [{"type": "command", "command": "..."}]}]}
    """
    if not isinstance(hooks, dict):
        raise ComponentParseError("'hooks' must be an object keyed by event name")

    records = []
    for event, entries in hooks.items():
        if not isinstance(entries, list):
            raise ComponentParseError(f"Hook event '{event}' must map to a list")
        matchers: list[str] = []
        commands: list[str] = []
        for entry in entries:
            if not isinstance(entry, dict):
                continue
            if entry.get("matcher"):
                matchers.append(str(entry["matcher"]))
            for hook in entry.get("hooks") or []:
                if isinstance(hook, dict) and hook.get("command"):
                    commands.append(str(hook["command"]))

        summary = f"{event} hook"
        if matchers:
            summary += f" for {', '.join(matchers)}"
        if description:
            summary += f": {description}"
        records.append(
            _record(
                "hook",
                plugin,
                str(event),
                summary,
                path,
                location,
                metadata={"event": str(event), "matchers": matchers, "commands": commands},
            )
        )
    return records


def mcp_records(
    servers: dict[str, Any], path: Path, plugin: str, location: str
) -> list[dict[str, Any]]:
    """
    Build McpServer descriptors (plus McpTool descriptors for declared tools).

    Expected layout (.mcp.json "mcpServers" or plugin.json "mcpServers"):
        {"github": {"command": "npx", "args": [...], "description": "...", "tools": [...]}}
    """
    if not isinstance(servers, dict):
        raise ComponentParseError("'mcpServers' must be an object keyed by server name")

    records = []
    for server, config in servers.items():
        if not isinstance(config, dict):
            raise ComponentParseError(f"MCP server '{server}' config must be an object")
        server = str(server)
        records.append(
            _record(
                "mcp_server",
                plugin,
                server,
                config.get("description") or f"{server} MCP server integration",
                path,
                location,
                keywords=_declared_keywords(config),
                metadata={
                    "transport": config.get("type") or ("http" if config.get("url") else "stdio"),
                    "command": config.get("command"),
                    "args": config.get("args"),
                    "url": config.get("url"),
                },
            )
        )
        for tool in config.get("tools") or []:
            if isinstance(tool, str):
                tool = {"name": tool}
            if not isinstance(tool, dict) or not tool.get("name"):
                continue
            records.append(
                _record(
                    "mcp_tool",
                    plugin,
                    str(tool["name"]),
                    tool.get("description") or f"{tool['name']} tool of the {server} MCP server",
                    path,
                    location,
                    keywords=_declared_keywords(tool),
                    metadata={
                        "server": server,
                        "invocation": f"mcp__{server}__{tool['name']}",
                    },
                )
            )
    return records


def manifest_metadata(
    data: dict[str, Any], plugin_dir: Path, location: str
) -> dict[str, Any]:
    """Extract plugin metadata from a parsed .claude-plugin/plugin.json."""
    name = data.get("name")
    if name is not None and (not isinstance(name, str) or not name.strip()):
        raise ComponentParseError("Manifest 'name' must be a non-empty string")
    return {
        "name": (name or plugin_dir.name).strip(),
        "version": str(data.get("version") or "0.0.0"),
        "description": data.get("description") or "",
        "author": data.get("author"),
        "keywords": _string_list(data.get("keywords")),
        "homepage": data.get("homepage"),
        "repository": data.get("repository"),
        "license": data.get("license"),
        "path": str(plugin_dir),
        "location": location,
    }
