"""
Tool Advisor Models - Data classes for indexed capabilities and recommendations.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

# On-disk schema version of the capability index document
INDEX_VERSION = "1.0.0"


def utcnow() -> datetime:
    """Return the current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def format_timestamp(value: datetime | None) -> str | None:
    """Serialize a datetime as an ISO-8601 UTC string (``...Z``)."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse an ISO-8601 timestamp, treating naive values as UTC.

    Raises:
        ValueError: If value is not an ISO-8601 string
    """
    if not value:
        return None
    if not isinstance(value, str):
        raise ValueError(f"Timestamp must be a string, got {type(value).__name__}")
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def clamp(value: float, low: float, high: float) -> float:
    """Clamp value into the closed interval [low, high]."""
    return max(low, min(high, value))


def _string_list(data: dict[str, Any], key: str) -> list[str]:
    """Read an optional list-of-strings field from a stored dictionary."""
    value = data.get(key) or []
    if not isinstance(value, list):
        raise ValueError(f"'{key}' must be a list, got {type(value).__name__}")
    return [str(item) for item in value]


class CapabilityType(str, Enum):
    """Kind of tool a capability represents."""

    AGENT = "agent"
    COMMAND = "command"
    SKILL = "skill"
    HOOK = "hook"
    MCP_SERVER = "mcp_server"
    MCP_TOOL = "mcp_tool"

    @classmethod
    def parse(cls, value: "str | CapabilityType") -> "CapabilityType":
        """Parse a type name, accepting values ("mcp_server") and names ("McpServer")."""
        if isinstance(value, CapabilityType):
            return value
        normalized = str(value).strip().lower().replace("-", "_")
        aliases = {"mcpserver": "mcp_server", "mcptool": "mcp_tool"}
        normalized = aliases.get(normalized, normalized)
        return cls(normalized)


class ScanMode(str, Enum):
    """How a scan treats locations it was not asked to rescan."""

    FULL = "full"  # Given locations are the complete set; others are pruned
    INCREMENTAL = "incremental"  # Only given locations are rescanned; others carried over


class Tier(str, Enum):
    """Presentation strategy selected from the top relevance score."""

    AUTO_USE = "auto_use"  # >= 0.90: act immediately
    SUGGEST_ONE = "suggest_one"  # [0.70, 0.90): confirm top candidate
    SUGGEST_MANY = "suggest_many"  # [0.50, 0.70): let the user choose
    INSUFFICIENT = "insufficient"  # < 0.50: ask clarifying questions


@dataclass
class Capability:
    """One indexed tool with descriptive and usage-tracking metadata."""

    id: str  # plugin:name, plugin:mcp:server
    type: CapabilityType
    name: str
    plugin: str
    description: str = ""
    keywords: set[str] = field(default_factory=set)
    triggers: list[str] = field(default_factory=list)
    path: str = ""
    location: str = ""  # Scan location the capability was discovered under
    metadata: dict[str, Any] = field(default_factory=dict)

    # Learned/tracking fields, preserved across rescans
    usage_count: int = 0
    last_used: datetime | None = None
    success_rate: float = 1.0
    confidence_boost: float = 0.0
    tags: set[str] = field(default_factory=set)

    def copy_tracking_from(self, other: "Capability") -> None:
        """Carry learned fields forward from a prior entry with the same id."""
        self.usage_count = other.usage_count
        self.last_used = other.last_used
        self.success_rate = other.success_rate
        self.confidence_boost = other.confidence_boost
        self.tags = set(other.tags)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "type": self.type.value,
            "name": self.name,
            "plugin": self.plugin,
            "description": self.description,
            "keywords": sorted(self.keywords),
            "triggers": list(self.triggers),
            "path": self.path,
            "location": self.location,
            "metadata": self.metadata,
            "usage_count": self.usage_count,
            "last_used": format_timestamp(self.last_used),
            "success_rate": self.success_rate,
            "confidence_boost": self.confidence_boost,
            "tags": sorted(self.tags),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Capability":
        """Create Capability from a stored dictionary.

        Raises:
            KeyError: If id, type or name is missing
            ValueError: If type or a timestamp is not recognised, or a list
                field is not a list
        """
        metadata = data.get("metadata") or {}
        if not isinstance(metadata, dict):
            raise ValueError("'metadata' must be an object")
        return cls(
            id=str(data["id"]),
            type=CapabilityType.parse(data["type"]),
            name=str(data["name"]),
            plugin=str(data.get("plugin") or ""),
            description=data.get("description") or "",
            keywords=set(_string_list(data, "keywords")),
            triggers=_string_list(data, "triggers"),
            path=data.get("path") or "",
            location=data.get("location") or "",
            metadata=dict(metadata),
            usage_count=max(0, int(data.get("usage_count") or 0)),
            last_used=parse_timestamp(data.get("last_used")),
            success_rate=clamp(float(data.get("success_rate", 1.0)), 0.0, 1.0),
            confidence_boost=clamp(float(data.get("confidence_boost", 0.0)), -1.0, 1.0),
            tags=set(_string_list(data, "tags")),
        )


@dataclass
class PluginInfo:
    """Derived per-plugin summary (plugin_index entry)."""

    name: str
    version: str = "0.0.0"
    description: str = ""
    author: Any = None  # string or {"name": ..., "email": ...} as in plugin.json
    capability_ids: list[str] = field(default_factory=list)
    install_location: str = ""
    status: str = "discovered"  # installed | discovered | standalone
    install_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "version": self.version,
            "description": self.description,
            "author": self.author,
            "capability_ids": list(self.capability_ids),
            "install_location": self.install_location,
            "status": self.status,
            "install_count": self.install_count,
        }

    @classmethod
    def from_dict(cls, name: str, data: dict[str, Any]) -> "PluginInfo":
        """Create PluginInfo from a stored dictionary."""
        return cls(
            name=name,
            version=data.get("version") or "0.0.0",
            description=data.get("description") or "",
            author=data.get("author"),
            capability_ids=_string_list(data, "capability_ids"),
            install_location=data.get("install_location") or "",
            status=data.get("status") or "discovered",
            install_count=int(data.get("install_count") or 0),
        )


@dataclass
class ScanError:
    """A single component or location that failed to parse during a scan."""

    path: str
    error: str
    timestamp: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": self.path,
            "error": self.error,
            "timestamp": format_timestamp(self.timestamp),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ScanError":
        if not isinstance(data, dict):
            raise ValueError(f"Scan error entry must be an object: {data!r}")
        return cls(
            path=data.get("path", ""),
            error=data.get("error", ""),
            timestamp=parse_timestamp(data.get("timestamp")) or utcnow(),
        )


@dataclass
class ScanStatistics:
    """Counters and errors reported by the most recent scan."""

    scan_duration_ms: int = 0
    plugins_scanned: int = 0
    plugins_skipped: int = 0
    capabilities_found: int = 0
    capabilities_added: int = 0
    capabilities_updated: int = 0
    capabilities_removed: int = 0
    capabilities_retained: int = 0
    partial: bool = False
    errors: list[ScanError] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "scan_duration_ms": self.scan_duration_ms,
            "plugins_scanned": self.plugins_scanned,
            "plugins_skipped": self.plugins_skipped,
            "capabilities_found": self.capabilities_found,
            "capabilities_added": self.capabilities_added,
            "capabilities_updated": self.capabilities_updated,
            "capabilities_removed": self.capabilities_removed,
            "capabilities_retained": self.capabilities_retained,
            "partial": self.partial,
            "errors": [e.to_dict() for e in self.errors],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ScanStatistics":
        return cls(
            scan_duration_ms=int(data.get("scan_duration_ms") or 0),
            plugins_scanned=int(data.get("plugins_scanned") or 0),
            plugins_skipped=int(data.get("plugins_skipped") or 0),
            capabilities_found=int(data.get("capabilities_found") or 0),
            capabilities_added=int(data.get("capabilities_added") or 0),
            capabilities_updated=int(data.get("capabilities_updated") or 0),
            capabilities_removed=int(data.get("capabilities_removed") or 0),
            capabilities_retained=int(data.get("capabilities_retained") or 0),
            partial=bool(data.get("partial", False)),
            errors=[ScanError.from_dict(e) for e in data.get("errors") or []],
        )


@dataclass
class CapabilityIndex:
    """Top-level index document persisted by the CapabilityStore."""

    version: str = INDEX_VERSION
    last_scan: datetime | None = None
    scan_locations: list[str] = field(default_factory=list)
    capabilities: dict[str, Capability] = field(default_factory=dict)
    keyword_index: dict[str, list[str]] = field(default_factory=dict)
    plugin_index: dict[str, PluginInfo] = field(default_factory=dict)
    statistics: ScanStatistics = field(default_factory=ScanStatistics)

    @property
    def total_capabilities(self) -> int:
        return len(self.capabilities)

    @property
    def total_plugins(self) -> int:
        return len(self.plugin_index)

    def get(self, capability_id: str) -> Capability | None:
        """Get a capability by id, or None if not indexed."""
        return self.capabilities.get(capability_id)

    def rebuild_keyword_index(self) -> None:
        """Recompute keyword -> capability ids from the capability list."""
        keyword_index: dict[str, list[str]] = {}
        for capability_id in sorted(self.capabilities):
            for keyword in self.capabilities[capability_id].keywords:
                keyword_index.setdefault(keyword, []).append(capability_id)
        self.keyword_index = dict(sorted(keyword_index.items()))

    def to_dict(self) -> dict[str, Any]:
        """Convert to the persisted JSON document layout."""
        return {
            "version": self.version,
            "last_scan": format_timestamp(self.last_scan),
            "scan_locations": list(self.scan_locations),
            "total_plugins": self.total_plugins,
            "total_capabilities": self.total_capabilities,
            "capabilities": [c.to_dict() for c in self.capabilities.values()],
            "keyword_index": self.keyword_index,
            "plugin_index": {
                name: info.to_dict() for name, info in self.plugin_index.items()
            },
            "statistics": self.statistics.to_dict(),
        }


@dataclass
class DiscoveryBatch:
    """Everything the Discovery Collector emits for one scan.

    Records follow the consumed boundary layout:
    {type, plugin, name, description, keywords, triggers, path, metadata,
    location, location_scan_ok}
    """

    records: list[dict[str, Any]] = field(default_factory=list)
    location_status: dict[str, bool] = field(default_factory=dict)  # location -> scan ok
    errors: list[ScanError] = field(default_factory=list)
    failed_paths: list[str] = field(default_factory=list)  # Components that failed to parse
    plugins: dict[str, dict[str, Any]] = field(default_factory=dict)  # name -> manifest meta
    plugins_scanned: int = 0
    plugins_skipped: int = 0
    partial: bool = False


@dataclass
class ScoreBreakdown:
    """Sub-scores behind a relevance score, each in [0, 1]."""

    keyword_match: float = 0.0
    capability_type: float = 0.5
    user_history: float = 0.0
    freshness: float = 0.5
    success_rate: float = 1.0
    confidence_boost: float = 0.0
    total: float = 0.0
    matched_keywords: list[str] = field(default_factory=list)
    inferred_type: CapabilityType | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "keyword_match": round(self.keyword_match, 4),
            "capability_type": round(self.capability_type, 4),
            "user_history": round(self.user_history, 4),
            "freshness": round(self.freshness, 4),
            "success_rate": round(self.success_rate, 4),
            "confidence_boost": round(self.confidence_boost, 4),
            "total": round(self.total, 4),
            "matched_keywords": list(self.matched_keywords),
            "inferred_type": self.inferred_type.value if self.inferred_type else None,
        }


@dataclass
class Candidate:
    """A scored capability offered to the caller."""

    capability: Capability
    score: float
    breakdown: ScoreBreakdown
    reasons: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.capability.id,
            "type": self.capability.type.value,
            "name": self.capability.name,
            "plugin": self.capability.plugin,
            "description": self.capability.description,
            "invocation": self.capability.metadata.get("invocation"),
            "score": round(self.score, 4),
            "breakdown": self.breakdown.to_dict(),
            "reasons": list(self.reasons),
        }


@dataclass
class RecommendationConstraints:
    """Optional caller constraints for a recommendation."""

    excluded_plugins: list[str] = field(default_factory=list)  # fnmatch patterns
    preferred_type: CapabilityType | None = None
    min_relevance: float = 0.0


@dataclass
class Technology:
    """One technology detected in a project, with the evidence behind it."""

    category: str  # language, backend, frontend, database, infrastructure, ...
    name: str
    confidence: float
    evidence: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "category": self.category,
            "name": self.name,
            "confidence": self.confidence,
            "evidence": self.evidence,
        }


@dataclass
class ProjectProfile:
    """Technology stack detected in a project directory."""

    project: str
    path: str
    analyzed_at: datetime = field(default_factory=utcnow)
    technologies: list[Technology] = field(default_factory=list)

    @property
    def names(self) -> list[str]:
        return [t.name for t in self.technologies]

    def to_dict(self) -> dict[str, Any]:
        return {
            "project": self.project,
            "path": self.path,
            "analyzed_at": format_timestamp(self.analyzed_at),
            "technologies": [t.to_dict() for t in self.technologies],
            "tech_count": len(self.technologies),
        }


@dataclass
class Recommendation:
    """Ranked outcome for one query: a tier plus its candidates."""

    query: str
    tier: Tier
    candidates: list[Candidate] = field(default_factory=list)
    keywords: list[str] = field(default_factory=list)
    clarifying_questions: list[str] = field(default_factory=list)
    notice: str | None = None  # Inline notice for AUTO_USE
    project: ProjectProfile | None = None  # Stack of the caller's project, when analyzed

    @property
    def top(self) -> Candidate | None:
        return self.candidates[0] if self.candidates else None

    def to_dict(self) -> dict[str, Any]:
        return {
            "query": self.query,
            "tier": self.tier.value,
            "candidates": [c.to_dict() for c in self.candidates],
            "keywords": list(self.keywords),
            "clarifying_questions": list(self.clarifying_questions),
            "notice": self.notice,
            "project": self.project.to_dict() if self.project else None,
        }
