"""
Index Builder - merges discovered descriptors into a CapabilityIndex.

Descriptive fields (description, keywords, metadata, path, type, triggers)
always come from the latest scan. Learned fields (usage_count, last_used,
success_rate, confidence_boost, tags) are copied forward from the prior index
for ids that survive the rescan.

An id present in the prior index but absent from the batch is pruned, unless
its location (or the component backing it) failed to scan this round.
"""

import json
import logging
from collections.abc import Callable, Mapping
from datetime import datetime
from pathlib import PurePath
from typing import Any

from .keywords import extract_keywords
from .models import (
    INDEX_VERSION,
    Capability,
    CapabilityIndex,
    CapabilityType,
    DiscoveryBatch,
    PluginInfo,
    ScanError,
    ScanMode,
    ScanStatistics,
    utcnow,
)

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("type", "plugin", "name")


def derive_capability_id(
    capability_type: CapabilityType,
    plugin: str,
    name: str,
    metadata: Mapping[str, Any] | None = None,
) -> str:
    """
    Derive a capability id from its naming convention.

    Examples:
        command "deploy" in plugin "ops"          -> "ops:deploy"
        MCP server "github" in plugin "ops"        -> "ops:mcp:github"
        MCP tool "create_issue" of server "github" -> "ops:mcp:github:create_issue"
    """
    if capability_type == CapabilityType.MCP_SERVER:
        return f"{plugin}:mcp:{name}"
    if capability_type == CapabilityType.MCP_TOOL:
        server = (metadata or {}).get("server")
        if server:
            return f"{plugin}:mcp:{server}:{name}"
        return f"{plugin}:mcp:{name}"
    return f"{plugin}:{name}"


def _is_string_list(value: Any) -> bool:
    return isinstance(value, (list, tuple, set)) and all(
        isinstance(item, str) for item in value
    )


def validate_record(record: Any) -> str | None:
    """
    Check a raw descriptor against the consumed boundary layout.

    Returns:
        None if the record is usable, otherwise a description of the problem
    """
    if not isinstance(record, Mapping):
        return f"descriptor is not a mapping ({type(record).__name__})"

    for name in REQUIRED_FIELDS:
        value = record.get(name)
        if not isinstance(value, str) or not value.strip():
            return f"missing or empty '{name}'"

    try:
        CapabilityType.parse(record["type"])
    except ValueError:
        return f"unknown capability type '{record['type']}'"

    for name in ("keywords", "triggers"):
        value = record.get(name)
        if value is not None and not _is_string_list(value):
            return f"'{name}' must be a list of strings"

    if record.get("description") is not None and not isinstance(
        record["description"], str
    ):
        return "'description' must be a string"

    metadata = record.get("metadata")
    if metadata is not None:
        if not isinstance(metadata, Mapping):
            return "'metadata' must be a mapping"
        try:
            json.dumps(dict(metadata))
        except (TypeError, ValueError) as e:
            return f"'metadata' is not JSON-serializable: {e}"

    return None


def capability_from_record(record: Mapping[str, Any]) -> Capability:
    """Build a fresh Capability (default learned fields) from a validated record."""
    capability_type = CapabilityType.parse(record["type"])
    plugin = record["plugin"].strip()
    name = record["name"].strip()
    description = (record.get("description") or "").strip()
    triggers = list(record.get("triggers") or [])
    metadata = dict(record.get("metadata") or {})

    return Capability(
        id=derive_capability_id(capability_type, plugin, name, metadata),
        type=capability_type,
        name=name,
        plugin=plugin,
        description=description,
        keywords=extract_keywords(
            [name, description, *triggers], declared=record.get("keywords")
        ),
        triggers=triggers,
        path=str(record.get("path") or ""),
        location=str(record.get("location") or ""),
        metadata=metadata,
    )


def _is_under(path: str, roots: list[str]) -> bool:
    """True if path equals or lies beneath any of the given roots."""
    if not path:
        return False
    candidate = PurePath(path)
    for root in roots:
        root_path = PurePath(root)
        if candidate == root_path or root_path in candidate.parents:
            return True
    return False


class IndexBuilder:
    """Merges a DiscoveryBatch with the prior index into a fresh CapabilityIndex."""

    def __init__(self, clock: Callable[[], datetime] = utcnow):
        """
        Initialize builder.

        Args:
            clock: Source of "now" for last_scan and error timestamps
        """
        self.clock = clock

    def build(
        self,
        batch: DiscoveryBatch,
        prior: CapabilityIndex | None = None,
        locations: list[str] | None = None,
        mode: ScanMode = ScanMode.FULL,
        duration_ms: int = 0,
    ) -> CapabilityIndex:
        """
        Build a new index from discovered records.

        Args:
            batch: Records, location status and errors from the Discovery Collector
            prior: Previously persisted index, or None on first scan
            locations: Locations scanned this round (defaults to batch.location_status keys)
            mode: FULL prunes entries from locations not in ``locations``;
                  INCREMENTAL carries them over unchanged
            duration_ms: Scan duration to record in statistics

        Returns:
            New CapabilityIndex with rebuilt keyword and plugin indexes
        """
        now = self.clock()
        scanned = list(locations if locations is not None else batch.location_status)
        scanned_set = set(scanned)
        stats = ScanStatistics(
            scan_duration_ms=duration_ms,
            plugins_scanned=batch.plugins_scanned,
            plugins_skipped=batch.plugins_skipped,
            partial=batch.partial,
            errors=list(batch.errors),
        )
        failed_paths = list(batch.failed_paths)
        prior_capabilities = prior.capabilities if prior else {}

        capabilities: dict[str, Capability] = {}
        for record in batch.records:
            problem = validate_record(record)
            if problem:
                path = "<unknown>"
                if isinstance(record, Mapping) and record.get("path"):
                    path = str(record["path"])
                logger.warning(f"Skipping malformed descriptor {path}: {problem}")
                stats.errors.append(ScanError(path=path, error=problem, timestamp=now))
                if path != "<unknown>":
                    failed_paths.append(path)
                continue

            capability = capability_from_record(record)
            if capability.id in capabilities:
                logger.debug(
                    f"Duplicate capability id '{capability.id}' at {capability.path} "
                    f"(keeping {capabilities[capability.id].path})"
                )
                continue

            previous = prior_capabilities.get(capability.id)
            if previous is not None:
                capability.copy_tracking_from(previous)
                stats.capabilities_updated += 1
            else:
                stats.capabilities_added += 1
            capabilities[capability.id] = capability

        stats.capabilities_found = len(capabilities)

        failed_locations = {
            location for location, ok in batch.location_status.items() if not ok
        }
        failed_locations.update(
            str(record.get("location"))
            for record in batch.records
            if isinstance(record, Mapping)
            and record.get("location_scan_ok") is False
            and record.get("location")
        )

        for capability_id, previous in prior_capabilities.items():
            if capability_id in capabilities:
                continue
            if mode == ScanMode.INCREMENTAL and previous.location not in scanned_set:
                capabilities[capability_id] = previous
            elif previous.location in failed_locations or _is_under(
                previous.path, failed_paths
            ):
                logger.debug(f"Retaining '{capability_id}' (its scan failed this round)")
                capabilities[capability_id] = previous
                stats.capabilities_retained += 1
            else:
                logger.debug(f"Pruning orphaned capability '{capability_id}'")
                stats.capabilities_removed += 1

        if mode == ScanMode.INCREMENTAL and prior is not None:
            scan_locations = list(prior.scan_locations)
            scan_locations.extend(loc for loc in scanned if loc not in scan_locations)
        else:
            scan_locations = scanned

        index = CapabilityIndex(
            version=INDEX_VERSION,
            last_scan=now,
            scan_locations=scan_locations,
            capabilities=dict(sorted(capabilities.items())),
            statistics=stats,
        )
        index.rebuild_keyword_index()
        index.plugin_index = build_plugin_index(
            index.capabilities,
            batch.plugins,
            prior.plugin_index if prior else None,
        )

        logger.info(
            f"Index built: {index.total_capabilities} capabilities from "
            f"{index.total_plugins} plugins (+{stats.capabilities_added} new, "
            f"{stats.capabilities_updated} updated, -{stats.capabilities_removed} removed, "
            f"{stats.capabilities_retained} retained, {len(stats.errors)} errors)"
        )
        return index


def build_plugin_index(
    capabilities: Mapping[str, Capability],
    manifests: Mapping[str, Mapping[str, Any]],
    prior: Mapping[str, PluginInfo] | None = None,
) -> dict[str, PluginInfo]:
    """
    Rebuild plugin name -> PluginInfo from capabilities and manifest metadata.

    Manifest metadata from this scan wins; plugins whose entries were retained
    without a fresh manifest keep their prior metadata.
    """
    ids_by_plugin: dict[str, list[str]] = {}
    for capability in capabilities.values():
        ids_by_plugin.setdefault(capability.plugin, []).append(capability.id)
    for name in manifests:
        ids_by_plugin.setdefault(name, [])

    plugin_index: dict[str, PluginInfo] = {}
    for name in sorted(ids_by_plugin):
        ids = sorted(ids_by_plugin[name])
        manifest = manifests.get(name)
        previous = (prior or {}).get(name)
        if manifest is not None:
            info = PluginInfo(
                name=name,
                version=str(manifest.get("version") or "0.0.0"),
                description=manifest.get("description") or "",
                author=manifest.get("author"),
                install_location=str(manifest.get("path") or ""),
                status=manifest.get("status") or "discovered",
                install_count=int(manifest.get("install_count") or 0),
            )
        elif previous is not None:
            info = PluginInfo(
                name=name,
                version=previous.version,
                description=previous.description,
                author=previous.author,
                install_location=previous.install_location,
                status=previous.status,
                install_count=previous.install_count,
            )
        else:
            first = capabilities[ids[0]]
            info = PluginInfo(name=name, install_location=first.location)
        info.capability_ids = ids
        plugin_index[name] = info
    return plugin_index
