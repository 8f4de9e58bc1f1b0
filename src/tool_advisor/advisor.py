"""
ToolAdvisor - wires discovery, indexing, storage, ranking and feedback together.

Scan flow:
    DiscoveryCollector.collect -> IndexBuilder.build (merged with prior index)
    -> CapabilityStore.save

Recommend flow:
    CapabilityStore.load (snapshot) -> Ranker.recommend

Feedback flow:
    FeedbackUpdater -> CapabilityStore.update (read-modify-write under lock)

A scan holds the store's writer lock from loading the prior index until the
new index is saved, so concurrent scans and feedback updates serialise.
"""

import logging
import threading
import time
from collections.abc import Callable
from datetime import datetime
from pathlib import Path
from typing import Any

from .config import get_index_path, get_scan_locations, load_config
from .discovery import DiscoveryCollector
from .feedback import FeedbackKind, FeedbackUpdater, create_strategy
from .indexer import IndexBuilder
from .models import (
    Capability,
    CapabilityIndex,
    ProjectProfile,
    Recommendation,
    RecommendationConstraints,
    ScanMode,
    Tier,
    utcnow,
)
from .project import (
    DEFAULT_MAX_FILE_BYTES,
    DEFAULT_MAX_FILES,
    ProjectAnalysisError,
    ProjectAnalyzer,
)
from .ranker import Ranker, clarifying_questions
from .scoring import Scorer
from .store import CapabilityStore, StoreWriteError

logger = logging.getLogger(__name__)

DEFAULT_STALENESS_SECONDS = 3600


class ToolAdvisor:
    """Facade over the capability index and recommendation engine."""

    def __init__(
        self,
        store: CapabilityStore,
        locations: list[str] | None = None,
        collector: DiscoveryCollector | None = None,
        ranker: Ranker | None = None,
        updater: FeedbackUpdater | None = None,
        config: dict[str, Any] | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        """
        Initialize advisor.

        Args:
            store: Persistence for the capability index
            locations: Default scan locations (from config when omitted)
            collector: Discovery Collector (default timeouts when omitted)
            ranker: Ranker (default Scorer when omitted)
            updater: Feedback updater writing through ``store``
            config: Loaded configuration dict (see tool_advisor.config)
            clock: Source of "now" for staleness and timestamps
        """
        self.config = config or {}
        self.store = store
        self.locations = list(locations or get_scan_locations(self.config))
        self.collector = collector or DiscoveryCollector()
        self.builder = IndexBuilder(clock=clock)
        self.ranker = ranker or Ranker(clock=clock)
        self.updater = updater or FeedbackUpdater(store, create_strategy(self.config), clock=clock)
        self.clock = clock

    @classmethod
    def from_config(
        cls,
        config_path: str | Path | None = None,
        config: dict[str, Any] | None = None,
    ) -> "ToolAdvisor":
        """
        Build an advisor from a configuration file (or an already-loaded dict).

        Raises:
            ConfigurationError: If the config file or feedback strategy is invalid
        """
        if config is None:
            config = load_config(config_path)

        scan = config.get("scan", {})
        scoring = config.get("scoring", {})
        recommend = config.get("recommend", {})

        store = CapabilityStore(get_index_path(config))
        collector = DiscoveryCollector(
            component_timeout=float(scan.get("component_timeout", 5.0)),
            scan_timeout=float(scan.get("scan_timeout", 120.0)),
            installed_plugins_path=scan.get("installed_plugins_path"),
        )
        scorer = Scorer(
            synonyms=scoring.get("synonyms") or {},
            fuzzy_threshold=float(scoring.get("fuzzy_threshold", 0.8)),
        )
        ranker = Ranker(scorer=scorer, max_suggestions=int(recommend.get("max_suggestions", 3)))
        return cls(store, collector=collector, ranker=ranker, config=config)

    @property
    def staleness_seconds(self) -> int:
        return int(self.config.get("index", {}).get("staleness_seconds", DEFAULT_STALENESS_SECONDS))

    # ------------------------------------------------------------------
    # Index lifecycle
    # ------------------------------------------------------------------

    def load_index(self) -> CapabilityIndex | None:
        """Read a snapshot of the persisted index (None if absent or invalid)."""
        return self.store.load_or_none()

    def scan(
        self,
        locations: list[str] | None = None,
        mode: ScanMode = ScanMode.FULL,
        cancel: threading.Event | None = None,
    ) -> CapabilityIndex:
        """
        Rescan locations and persist the merged index.

        Args:
            locations: Locations to scan (configured locations when omitted)
            mode: FULL treats ``locations`` as the complete set; INCREMENTAL
                  rescans only ``locations`` and carries the rest over
            cancel: Optional event that stops the scan early (partial result)

        Returns:
            The newly saved CapabilityIndex

        Raises:
            StoreWriteError: If the index cannot be written
        """
        targets = list(locations) if locations else list(self.locations)

        with self.store.write_lock():
            prior = self.store.load_or_none()
            if prior is None and mode == ScanMode.INCREMENTAL:
                logger.info("No usable prior index, performing a full scan")
                mode = ScanMode.FULL

            started = time.monotonic()
            batch = self.collector.collect(targets, cancel=cancel)
            duration_ms = int((time.monotonic() - started) * 1000)

            index = self.builder.build(
                batch, prior=prior, locations=targets, mode=mode, duration_ms=duration_ms
            )
            self.store.save(index)

        logger.info(
            f"Scan complete ({mode.value}): {index.total_capabilities} capabilities, "
            f"{len(index.statistics.errors)} errors in {duration_ms}ms"
        )
        return index

    def is_stale(self, index: CapabilityIndex | None, max_age: float | None = None) -> bool:
        """True if the index is missing or older than ``max_age`` seconds."""
        if index is None or index.last_scan is None:
            return True
        limit = self.staleness_seconds if max_age is None else max_age
        return (self.clock() - index.last_scan).total_seconds() > limit

    def ensure_index(self, max_age: float | None = None) -> CapabilityIndex:
        """
        Return the persisted index, rescanning first when it is missing or stale.

        Raises:
            StoreWriteError: If a rescan was needed and could not be saved
        """
        index = self.load_index()
        if self.is_stale(index, max_age):
            logger.info("Capability index missing or stale, rescanning")
            index = self.scan()
        return index

    # ------------------------------------------------------------------
    # Recommendations and feedback
    # ------------------------------------------------------------------

    def _constraints(
        self, constraints: RecommendationConstraints | None
    ) -> RecommendationConstraints:
        """Merge caller constraints with configured defaults."""
        defaults = self.config.get("recommend", {})
        excluded = list(defaults.get("excluded_plugins") or [])
        min_relevance = float(defaults.get("min_relevance") or 0.0)
        if constraints is None:
            return RecommendationConstraints(excluded_plugins=excluded, min_relevance=min_relevance)
        return RecommendationConstraints(
            excluded_plugins=excluded
            + [p for p in constraints.excluded_plugins if p not in excluded],
            preferred_type=constraints.preferred_type,
            min_relevance=max(min_relevance, constraints.min_relevance),
        )

    def recommend(
        self,
        query: str,
        constraints: RecommendationConstraints | None = None,
        refresh: bool = True,
        project_dir: str | Path | None = None,
    ) -> Recommendation:
        """
        Recommend capabilities for a free-text task description.

        Never raises for bad input or a missing index; those produce an
        INSUFFICIENT recommendation.

        Args:
            query: Task description
            constraints: Optional exclusions, preferred type, minimum relevance
            refresh: Rescan first when the index is missing or stale
            project_dir: Project whose detected stack is attached to the result
                as context (an unreadable directory is logged and skipped)
        """
        project = None
        if project_dir is not None:
            try:
                project = self.analyze_project(project_dir)
            except ProjectAnalysisError as e:
                logger.warning(f"Skipping project context: {e}")

        index: CapabilityIndex | None
        if refresh:
            try:
                index = self.ensure_index()
            except StoreWriteError as e:
                logger.error(f"Rescan could not be saved, using existing index: {e}")
                index = self.load_index()
        else:
            index = self.load_index()

        if index is None:
            recommendation = Recommendation(
                query=query or "",
                tier=Tier.INSUFFICIENT,
                clarifying_questions=clarifying_questions([]),
                notice="No capability index is available yet; run a scan first.",
            )
        else:
            recommendation = self.ranker.recommend(
                query, index.capabilities.values(), self._constraints(constraints)
            )
        recommendation.project = project
        return recommendation

    def analyze_project(self, project_dir: str | Path) -> ProjectProfile:
        """
        Detect the technology stack of a project directory.

        Raises:
            ProjectAnalysisError: If project_dir is not a directory
        """
        settings = self.config.get("project", {})
        analyzer = ProjectAnalyzer(
            max_files=int(settings.get("max_files", DEFAULT_MAX_FILES)),
            max_file_bytes=int(settings.get("max_file_bytes", DEFAULT_MAX_FILE_BYTES)),
            clock=self.clock,
        )
        return analyzer.analyze(project_dir)

    def record_feedback(
        self,
        capability_id: str,
        kind: FeedbackKind | str,
        outcome: int | bool | None = None,
    ) -> Capability:
        """
        Record accepted/rejected/completed feedback for a capability.

        Raises:
            CapabilityNotFoundError: If the id is not indexed
            ValidationError: If there is no usable index
            ValueError: If kind or outcome is invalid
        """
        return self.updater.record(capability_id, kind, outcome)

    def get_capability(self, capability_id: str) -> Capability | None:
        index = self.load_index()
        return index.get(capability_id) if index else None
