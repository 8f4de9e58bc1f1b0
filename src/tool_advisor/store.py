"""
Capability Store - durable load/save of the capability index document.

Storage: ~/.claude/tool-advisor-cache.json (one JSON document)

Writes go to a temporary file in the same directory and atomically replace
the canonical file, so a crash mid-write never leaves a truncated index.
Writers are serialised per index path: store instances in one process share
a lock, and processes coordinate through ``<index>.lock`` (filelock).
Readers parse a fresh snapshot and never block.
"""

import json
import logging
import os
import tempfile
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any, TypeVar

from filelock import FileLock

from .models import (
    Capability,
    CapabilityIndex,
    PluginInfo,
    ScanStatistics,
    parse_timestamp,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_INDEX_PATH = Path.home() / ".claude" / "tool-advisor-cache.json"

REQUIRED_FIELDS = ("version", "last_scan", "capabilities")


class ValidationError(Exception):
    """Raised when a stored index document is structurally invalid.

    Callers treat this as "no usable index" and rebuild from a full scan.
    """

    pass


class StoreWriteError(Exception):
    """Raised when the index cannot be persisted (disk full, permissions).

    The previous on-disk document is left untouched.
    """

    pass


class _WriterLock:
    """Serialises writers of one index across threads and processes.

    Threads of one process queue on a re-entrant lock; separate processes
    (concurrent CLI invocations) queue on an OS lock held on a sidecar
    ``<index>.lock`` file.
    """

    def __init__(self, path: Path):
        self.lock_path = path.with_name(f"{path.name}.lock")
        self._thread_lock = threading.RLock()
        self._file_lock = FileLock(str(self.lock_path), thread_local=False)

    def __enter__(self) -> "_WriterLock":
        self._thread_lock.acquire()
        try:
            self.lock_path.parent.mkdir(parents=True, exist_ok=True)
            self._file_lock.acquire()
        except OSError as e:
            self._thread_lock.release()
            raise StoreWriteError(
                f"Cannot lock capability index at {self.lock_path}: {e}"
            ) from e
        except BaseException:
            self._thread_lock.release()
            raise
        return self

    def __exit__(self, *exc_info: Any) -> None:
        try:
            self._file_lock.release()
        finally:
            self._thread_lock.release()


# Writer locks keyed by resolved index path
_WRITE_LOCKS: dict[str, _WriterLock] = {}
_WRITE_LOCKS_GUARD = threading.Lock()


def _write_lock_for(path: Path) -> _WriterLock:
    resolved = path.expanduser().resolve()
    key = str(resolved)
    with _WRITE_LOCKS_GUARD:
        lock = _WRITE_LOCKS.get(key)
        if lock is None:
            lock = _WriterLock(resolved)
            _WRITE_LOCKS[key] = lock
        return lock


def parse_index_document(data: Any) -> CapabilityIndex:
    """
    Parse and validate a decoded index document.

    Args:
        data: Decoded JSON document

    Returns:
        CapabilityIndex with keyword_index rebuilt from capabilities

    Raises:
        ValidationError: If required fields are missing, a capability entry
            is malformed, or capability ids are duplicated
    """
    if not isinstance(data, dict):
        raise ValidationError("Index document is not a JSON object")

    missing = [name for name in REQUIRED_FIELDS if name not in data]
    if missing:
        raise ValidationError(f"Index document missing required fields: {missing}")

    raw_capabilities = data["capabilities"]
    if not isinstance(raw_capabilities, list):
        raise ValidationError("'capabilities' must be a list")

    capabilities: dict[str, Capability] = {}
    for position, entry in enumerate(raw_capabilities):
        if not isinstance(entry, dict):
            raise ValidationError(f"Capability entry #{position} is not an object")
        try:
            capability = Capability.from_dict(entry)
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise ValidationError(f"Malformed capability entry #{position}: {e!r}") from e
        if capability.id in capabilities:
            raise ValidationError(f"Duplicate capability id: '{capability.id}'")
        capabilities[capability.id] = capability

    try:
        last_scan = parse_timestamp(data["last_scan"])
    except (TypeError, ValueError) as e:
        raise ValidationError(f"Invalid last_scan timestamp: {data['last_scan']!r}") from e

    scan_locations = data.get("scan_locations") or []
    if not isinstance(scan_locations, list):
        raise ValidationError("'scan_locations' must be a list")

    # plugin_index and statistics are derived data: unreadable parts are dropped
    plugin_index: dict[str, PluginInfo] = {}
    raw_plugins = data.get("plugin_index") or {}
    if isinstance(raw_plugins, dict):
        for name, entry in raw_plugins.items():
            if not isinstance(entry, dict):
                continue
            try:
                plugin_index[name] = PluginInfo.from_dict(name, entry)
            except (AttributeError, TypeError, ValueError) as e:
                logger.warning(f"Ignoring unreadable plugin_index entry '{name}': {e}")

    raw_statistics = data.get("statistics")
    try:
        statistics = (
            ScanStatistics.from_dict(raw_statistics)
            if isinstance(raw_statistics, dict)
            else ScanStatistics()
        )
    except (AttributeError, TypeError, ValueError) as e:
        logger.warning(f"Ignoring unreadable scan statistics: {e}")
        statistics = ScanStatistics()

    index = CapabilityIndex(
        version=str(data["version"]),
        last_scan=last_scan,
        scan_locations=[str(loc) for loc in scan_locations],
        capabilities=capabilities,
        plugin_index=plugin_index,
        statistics=statistics,
    )
    index.rebuild_keyword_index()
    return index


class CapabilityStore:
    """Atomic, single-writer persistence for the CapabilityIndex."""

    def __init__(self, path: Path | str | None = None):
        """
        Initialize store.

        Args:
            path: Index file location (default: ~/.claude/tool-advisor-cache.json)
        """
        self.path = Path(path).expanduser() if path else DEFAULT_INDEX_PATH
        self._lock = _write_lock_for(self.path)

    def exists(self) -> bool:
        return self.path.exists()

    def load(self) -> CapabilityIndex | None:
        """
        Load the index document.

        Returns:
            CapabilityIndex, or None if no index has been written yet

        Raises:
            ValidationError: If the document cannot be read or is invalid
        """
        if not self.path.exists():
            return None
        try:
            raw = self.path.read_text(encoding="utf-8")
        except OSError as e:
            raise ValidationError(f"Cannot read index {self.path}: {e}") from e
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ValidationError(f"Invalid JSON in index {self.path}: {e}") from e
        return parse_index_document(data)

    def load_or_none(self) -> CapabilityIndex | None:
        """Load the index, treating an invalid document as absent."""
        try:
            return self.load()
        except ValidationError as e:
            logger.warning(f"Ignoring unusable capability index (will rebuild): {e}")
            return None

    def save(self, index: CapabilityIndex) -> None:
        """
        Persist the index by atomic replace.

        Raises:
            StoreWriteError: If the document cannot be written
        """
        try:
            payload = json.dumps(index.to_dict(), indent=2, ensure_ascii=False)
        except (TypeError, ValueError) as e:
            raise StoreWriteError(f"Cannot serialize capability index: {e}") from e
        temp_path: str | None = None
        with self._lock:
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                with tempfile.NamedTemporaryFile(
                    "w",
                    encoding="utf-8",
                    dir=self.path.parent,
                    prefix=f".{self.path.name}.",
                    suffix=".tmp",
                    delete=False,
                ) as f:
                    temp_path = f.name
                    f.write(payload)
                    f.flush()
                    os.fsync(f.fileno())
                os.replace(temp_path, self.path)
                temp_path = None
            except OSError as e:
                raise StoreWriteError(
                    f"Cannot write capability index to {self.path}: {e}"
                ) from e
            finally:
                if temp_path and os.path.exists(temp_path):
                    os.unlink(temp_path)
        logger.debug(
            f"Saved capability index ({index.total_capabilities} capabilities) to {self.path}"
        )

    @contextmanager
    def write_lock(self) -> Iterator[None]:
        """Hold the writer lock across a multi-step read-modify-write."""
        with self._lock:
            yield

    def update(self, mutator: Callable[[CapabilityIndex], T]) -> T:
        """
        Apply a read-modify-write under the writer lock and persist the result.

        The index is reloaded inside the lock so concurrent updates never
        overwrite each other.

        Args:
            mutator: Function mutating the loaded index in place

        Returns:
            Whatever the mutator returns

        Raises:
            ValidationError: If there is no usable index to update
            StoreWriteError: If the updated index cannot be written
        """
        with self._lock:
            index = self.load()
            if index is None:
                raise ValidationError(f"No capability index at {self.path}")
            result = mutator(index)
            self.save(index)
            return result
