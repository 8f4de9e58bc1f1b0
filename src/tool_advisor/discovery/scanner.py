"""
Discovery Collector - walks scan locations and emits raw capability descriptors.

Layout recognised under each location:

    <plugin>/.claude-plugin/plugin.json   plugin manifest (marks a plugin root)
    <plugin>/commands/*.md                Command
    <plugin>/agents/*.md                  Agent
    <plugin>/skills/*/SKILL.md            Skill
    <plugin>/hooks/hooks.json             Hook (one per event)
    <plugin>/.mcp.json                    McpServer, McpTool
    <dir>/SKILL.md outside any plugin     standalone Skill (plugin = <dir> name)

A scan never aborts on a bad component. Malformed files and reads that exceed
the per-component timeout become ScanError entries and their paths are listed
in failed_paths, so the Index Builder keeps whatever it indexed from them
before. Absent or inaccessible locations are reported through
location_status. When the scan deadline passes (or the cancel event is set)
collection stops, the batch is flagged partial and every location not fully
walked is reported as failed.
"""

import json
import logging
import os
import threading
import time
from collections.abc import Callable
from concurrent import futures
from pathlib import Path
from typing import Any

from ..models import DiscoveryBatch, ScanError, utcnow
from .components import (
    ComponentParseError,
    agent_record,
    command_record,
    hook_records,
    manifest_metadata,
    mcp_records,
    parse_json,
    skill_record,
)

logger = logging.getLogger(__name__)

DEFAULT_COMPONENT_TIMEOUT = 5.0
DEFAULT_SCAN_TIMEOUT = 120.0
MAX_READ_WORKERS = 4

# Directories never descended into while looking for plugins
SKIP_DIRS = {"node_modules", "__pycache__", "venv"}


class ScanCancelled(Exception):
    """Raised inside a scan when the deadline passes or cancellation is requested."""

    pass


class ComponentTimeoutError(Exception):
    """Raised when a component file cannot be read within the per-component timeout."""

    pass


def _read_text(path: Path) -> str:
    return path.read_text(encoding="utf-8")


def _is_dir(path: Path) -> bool:
    try:
        return path.is_dir()
    except OSError:
        return False


def load_installed_plugins(path: Path | str | None) -> dict[str, int]:
    """
    Read the installed-plugins registry into {plugin name: install count}.

    Registry keys are either "name" or "name@marketplace"; a list entry
    counts one install per element.
    """
    if not path:
        return {}
    registry = Path(path).expanduser()
    if not registry.is_file():
        return {}
    try:
        data = json.loads(registry.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        logger.warning(f"Ignoring unreadable installed plugins registry {registry}: {e}")
        return {}

    plugins = data.get("plugins") if isinstance(data, dict) else None
    if not isinstance(plugins, dict):
        return {}

    counts: dict[str, int] = {}
    for key, entry in plugins.items():
        name = str(key).split("@", 1)[0]
        installs = len(entry) if isinstance(entry, list) else 1
        counts[name] = counts.get(name, 0) + max(installs, 1)
    return counts


class _ScanRun:
    """State for one collect() call."""

    def __init__(self, collector: "DiscoveryCollector", cancel: threading.Event | None):
        self.collector = collector
        self.cancel = cancel
        self.deadline = time.monotonic() + collector.scan_timeout
        self.executor = futures.ThreadPoolExecutor(
            max_workers=MAX_READ_WORKERS, thread_name_prefix="tool-advisor-scan"
        )
        self.installed = load_installed_plugins(collector.installed_plugins_path)
        self.batch = DiscoveryBatch()
        self.seen_units: set[Path] = set()
        self.stopped = False

    def close(self) -> None:
        self.executor.shutdown(wait=False, cancel_futures=True)

    # ------------------------------------------------------------------
    # Deadline and bounded reads
    # ------------------------------------------------------------------

    def check(self) -> None:
        if self.cancel is not None and self.cancel.is_set():
            raise ScanCancelled("scan cancelled")
        if time.monotonic() >= self.deadline:
            raise ScanCancelled(f"scan exceeded {self.collector.scan_timeout:g}s")

    def read(self, path: Path) -> str:
        """Read a component file, bounded by the component timeout and scan deadline."""
        self.check()
        component_timeout = self.collector.component_timeout
        remaining = self.deadline - time.monotonic()
        future = self.executor.submit(self.collector.reader, path)
        try:
            return future.result(timeout=max(0.0, min(component_timeout, remaining)))
        except futures.TimeoutError:
            future.cancel()
            if remaining <= component_timeout:
                raise ScanCancelled(f"scan exceeded {self.collector.scan_timeout:g}s")
            raise ComponentTimeoutError(f"Timed out after {component_timeout:g}s")

    def fail(self, path: Path | str, error: Exception | str) -> None:
        message = str(error) or type(error).__name__
        logger.warning(f"Skipping {path}: {message}")
        self.batch.errors.append(ScanError(path=str(path), error=message, timestamp=utcnow()))
        self.batch.failed_paths.append(str(path))

    def component(self, path: Path, build: Callable[[str], Any]) -> None:
        """Parse one component file, recording (not raising) any failure."""
        try:
            produced = build(self.read(path))
        except (ComponentParseError, ComponentTimeoutError, OSError, UnicodeDecodeError) as e:
            self.fail(path, e)
            return
        except ScanCancelled:
            raise
        except Exception as e:
            logger.error(f"Unexpected error parsing {path}: {e}", exc_info=True)
            self.fail(path, e)
            return
        self.batch.records.extend(produced if isinstance(produced, list) else [produced])

    # ------------------------------------------------------------------
    # Walking
    # ------------------------------------------------------------------

    def run(self, locations: list[str]) -> DiscoveryBatch:
        for location in locations:
            if self.stopped:
                self.batch.location_status[location] = False
                continue

            root = Path(location).expanduser()
            if not _is_dir(root):
                logger.info(f"Skipping scan location (absent or inaccessible): {location}")
                self.batch.location_status[location] = False
                continue

            try:
                self.scan_location(root, location)
                self.batch.location_status[location] = True
            except ScanCancelled as e:
                logger.warning(f"Scan stopped early in {location}: {e}")
                self.stopped = True
                self.batch.partial = True
                self.batch.location_status[location] = False
            except OSError as e:
                logger.warning(f"Cannot walk scan location {location}: {e}")
                self.batch.location_status[location] = False

        return self.batch

    def discover_units(self, root: Path) -> tuple[list[Path], list[Path]]:
        """Find plugin roots and standalone skill directories beneath root."""
        plugin_dirs: list[Path] = []
        skill_dirs: list[Path] = []
        walk_errors: list[OSError] = []

        for dirpath, dirnames, filenames in os.walk(root, onerror=walk_errors.append):
            self.check()
            current = Path(dirpath)
            if (current / ".claude-plugin" / "plugin.json").is_file():
                plugin_dirs.append(current)
                dirnames[:] = []
                continue
            if "SKILL.md" in filenames:
                skill_dirs.append(current)
                dirnames[:] = []
                continue
            dirnames[:] = sorted(
                d for d in dirnames if d not in SKIP_DIRS and not d.startswith(".")
            )

        for error in walk_errors:
            if error.filename and Path(error.filename) == root:
                raise error
            self.fail(error.filename or root, error)

        return plugin_dirs, skill_dirs

    def scan_location(self, root: Path, location: str) -> None:
        plugin_dirs, skill_dirs = self.discover_units(root)
        units: list[tuple[Path, Callable[[Path, str], bool]]] = [
            (d, self.scan_plugin) for d in plugin_dirs
        ] + [(d, self.scan_standalone_skill) for d in skill_dirs]

        for position, (unit_dir, scan_unit) in enumerate(units):
            resolved = unit_dir.resolve()
            if resolved in self.seen_units:
                logger.debug(f"Already scanned {unit_dir} via another location")
                continue
            self.seen_units.add(resolved)
            try:
                ok = scan_unit(unit_dir, location)
            except ScanCancelled:
                self.batch.plugins_skipped += len(units) - position
                raise
            if ok:
                self.batch.plugins_scanned += 1
            else:
                self.batch.plugins_skipped += 1

    def install_status(self, name: str) -> tuple[str, int]:
        count = self.installed.get(name, 0)
        return ("installed" if count else "discovered"), count

    def scan_plugin(self, plugin_dir: Path, location: str) -> bool:
        manifest_path = plugin_dir / ".claude-plugin" / "plugin.json"
        try:
            manifest = parse_json(self.read(manifest_path), "plugin.json")
            meta = manifest_metadata(manifest, plugin_dir, location)
        except (ComponentParseError, ComponentTimeoutError, OSError, UnicodeDecodeError) as e:
            # Prior entries under this plugin directory are retained
            self.fail(plugin_dir, f"{manifest_path.name}: {e}")
            return False

        plugin = meta["name"]
        meta["status"], meta["install_count"] = self.install_status(plugin)
        if plugin in self.batch.plugins:
            logger.debug(f"Plugin '{plugin}' also found at {plugin_dir} (keeping first)")
        else:
            self.batch.plugins[plugin] = meta

        for path in sorted((plugin_dir / "commands").glob("*.md")):
            self.component(path, lambda text, p=path: command_record(text, p, plugin, location))
        for path in sorted((plugin_dir / "agents").glob("*.md")):
            self.component(path, lambda text, p=path: agent_record(text, p, plugin, location))
        for path in sorted((plugin_dir / "skills").glob("*/SKILL.md")):
            self.component(path, lambda text, p=path: skill_record(text, p, plugin, location))

        hooks_file = plugin_dir / "hooks" / "hooks.json"
        if hooks_file.is_file():
            self.component(
                hooks_file,
                lambda text: self._hooks_from_file(text, hooks_file, plugin, location),
            )
        mcp_file = plugin_dir / ".mcp.json"
        if mcp_file.is_file():
            self.component(
                mcp_file,
                lambda text: self._mcp_from_file(text, mcp_file, plugin, location),
            )

        # Hooks and MCP servers may also be declared inline in the manifest
        try:
            if isinstance(manifest.get("hooks"), dict):
                self.batch.records.extend(
                    hook_records(manifest["hooks"], manifest_path, plugin, location)
                )
            if isinstance(manifest.get("mcpServers"), dict):
                self.batch.records.extend(
                    mcp_records(manifest["mcpServers"], manifest_path, plugin, location)
                )
        except ComponentParseError as e:
            self.fail(manifest_path, e)

        return True

    @staticmethod
    def _hooks_from_file(text: str, path: Path, plugin: str, location: str) -> list[dict]:
        data = parse_json(text, "hooks.json")
        description = data.get("description") or ""
        hooks = data.get("hooks", {k: v for k, v in data.items() if k != "description"})
        return hook_records(hooks, path, plugin, location, description=str(description))

    @staticmethod
    def _mcp_from_file(text: str, path: Path, plugin: str, location: str) -> list[dict]:
        data = parse_json(text, ".mcp.json")
        return mcp_records(data.get("mcpServers", data), path, plugin, location)

    def scan_standalone_skill(self, skill_dir: Path, location: str) -> bool:
        skill_file = skill_dir / "SKILL.md"
        plugin = skill_dir.name
        errors_before = len(self.batch.errors)
        self.component(
            skill_file, lambda text: skill_record(text, skill_file, plugin, location)
        )
        if len(self.batch.errors) > errors_before:
            return False

        status, count = self.install_status(plugin)
        self.batch.plugins.setdefault(
            plugin,
            {
                "name": plugin,
                "version": "0.0.0",
                "description": self.batch.records[-1]["description"],
                "path": str(skill_dir),
                "location": location,
                "status": "installed" if count else "standalone",
                "install_count": count,
            },
        )
        return True


class DiscoveryCollector:
    """Collects raw capability descriptors from plugin and skill directories."""

    def __init__(
        self,
        component_timeout: float = DEFAULT_COMPONENT_TIMEOUT,
        scan_timeout: float = DEFAULT_SCAN_TIMEOUT,
        installed_plugins_path: Path | str | None = None,
        reader: Callable[[Path], str] = _read_text,
    ):
        """
        Initialize collector.

        Args:
            component_timeout: Seconds allowed to read one component file
            scan_timeout: Seconds allowed for the whole collection
            installed_plugins_path: installed_plugins.json registry (optional)
            reader: Function reading a component file to text
        """
        self.component_timeout = component_timeout
        self.scan_timeout = scan_timeout
        self.installed_plugins_path = installed_plugins_path
        self.reader = reader

    def collect(
        self, locations: list[str], cancel: threading.Event | None = None
    ) -> DiscoveryBatch:
        """
        Walk every location and collect descriptors.

        Args:
            locations: Directories to scan, in priority order (a plugin
                reachable from two locations is attributed to the first)
            cancel: Optional event that stops the scan when set

        Returns:
            DiscoveryBatch with records, location status, errors and manifests
        """
        run = _ScanRun(self, cancel)
        try:
            batch = run.run(list(locations))
        finally:
            run.close()

        logger.info(
            f"Discovery collected {len(batch.records)} descriptors from "
            f"{batch.plugins_scanned} plugins ({batch.plugins_skipped} skipped, "
            f"{len(batch.errors)} errors{', partial' if batch.partial else ''})"
        )
        return batch
