"""Local cache persistence for SmartCart.

This module provides the durable client-side cache and mutation queue, with
support for JSON (default) or SQLite backends. Use create_cache_store() to get
the appropriate backend based on configuration.
"""

import json
import os
import tempfile
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Protocol

from pydantic import ValidationError

from .errors import CacheStoreError
from .logging import get_logger
from .models import CollectionTag, MutationAction, QueuedMutation

logger = get_logger(__name__)


class BackendType(str, Enum):
    """Cache storage backend types."""

    JSON = "json"
    SQLITE = "sqlite"


class CacheKeys:
    """Logical cache entry names."""

    RETAILERS = "retailers"
    TRIPS = "trips"
    ACTIVE_TRIP = "active_trip"
    TRIP_ITEMS_PREFIX = "trip_items_"

    @staticmethod
    def trip_items(trip_id: str) -> str:
        return f"{CacheKeys.TRIP_ITEMS_PREFIX}{trip_id}"


class CacheStoreProtocol(Protocol):
    """Protocol defining the cache store interface."""

    async def put(self, key: str, collection_tag: CollectionTag, value: Any) -> None: ...
    async def get(self, key: str) -> Any | None: ...
    async def remove(self, key: str) -> None: ...
    async def keys(self, prefix: str = "") -> list[str]: ...
    async def enqueue_mutation(self, action: MutationAction) -> str: ...
    async def apply_mutation(
        self, key: str, collection_tag: CollectionTag, value: Any, action: MutationAction
    ) -> str: ...
    async def list_queued_mutations(self) -> list[QueuedMutation]: ...
    async def update_mutation(self, mutation: QueuedMutation) -> None: ...
    async def dequeue_mutation(self, mutation_id: str) -> None: ...
    async def queue_size(self) -> int: ...

    @property
    def location(self) -> Path: ...


def _parse_queue(rows: list[dict[str, Any]]) -> list[QueuedMutation]:
    """Parse stored queue rows, skipping any that no longer validate."""
    mutations = []
    for row in rows:
        try:
            mutations.append(QueuedMutation.model_validate(row))
        except ValidationError:
            logger.warning("Skipping unreadable queued mutation %s", row.get("id"))
    return mutations


class JSONCacheStore:
    """Cache store backed by a single JSON document.

    Cache entries and the mutation queue live in one file that is replaced
    atomically on every write, so a cache write and its queue entry made by
    apply_mutation land together or not at all.
    """

    FILE_NAME = "offline_cache.json"

    def __init__(self, cache_dir: Path | None = None):
        """Initialize cache store.

        Args:
            cache_dir: Directory for the cache file. Defaults to ./cache
        """
        self.cache_dir = cache_dir or Path.cwd() / "cache"
        self._ensure_directories()

    def _ensure_directories(self) -> None:
        """Create the cache directory if it doesn't exist."""
        self.cache_dir.mkdir(parents=True, exist_ok=True)

    def _path(self) -> Path:
        """Path to the cache document."""
        return self.cache_dir / self.FILE_NAME

    @property
    def location(self) -> Path:
        return self._path()

    def _load(self) -> dict[str, Any]:
        path = self._path()
        if not path.exists():
            return {"entries": {}, "queue": []}

        try:
            with open(path) as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise CacheStoreError(f"Failed to read cache file {path}: {e}") from e

        data.setdefault("entries", {})
        data.setdefault("queue", [])
        return data

    def _save(self, data: dict[str, Any]) -> None:
        path = self._path()
        try:
            fd, tmp_name = tempfile.mkstemp(dir=self.cache_dir, suffix=".tmp")
            with os.fdopen(fd, "w") as f:
                json.dump(data, f, indent=2)
            os.replace(tmp_name, path)
        except (OSError, TypeError, ValueError) as e:
            raise CacheStoreError(f"Failed to write cache file {path}: {e}") from e

    # --- Cache entries ---

    async def put(self, key: str, collection_tag: CollectionTag, value: Any) -> None:
        """Overwrite the entry for key.

        Args:
            key: Logical cache name
            collection_tag: Kind of collection stored
            value: JSON-compatible value
        """
        data = self._load()
        data["entries"][key] = self._entry(collection_tag, value)
        self._save(data)

    async def get(self, key: str) -> Any | None:
        """Get the last written value for key, or None if absent."""
        entry = self._load()["entries"].get(key)
        if entry is None:
            return None
        return entry["value"]

    async def remove(self, key: str) -> None:
        """Delete the entry for key. Removing an absent key is a no-op."""
        data = self._load()
        if data["entries"].pop(key, None) is not None:
            self._save(data)

    async def keys(self, prefix: str = "") -> list[str]:
        """List cache entry keys starting with prefix."""
        return sorted(k for k in self._load()["entries"] if k.startswith(prefix))

    @staticmethod
    def _entry(collection_tag: CollectionTag, value: Any) -> dict[str, Any]:
        return {
            "collection": CollectionTag(collection_tag).value,
            "value": value,
            "timestamp": datetime.now().isoformat(),
        }

    # --- Mutation queue ---

    async def enqueue_mutation(self, action: MutationAction) -> str:
        """Append a mutation to the queue.

        Returns:
            Queued mutation ID
        """
        mutation = QueuedMutation(action=action)
        data = self._load()
        data["queue"].append(mutation.model_dump(mode="json"))
        self._save(data)
        return mutation.id

    async def apply_mutation(
        self, key: str, collection_tag: CollectionTag, value: Any, action: MutationAction
    ) -> str:
        """Write a cache entry and enqueue its mutation in one document write."""
        mutation = QueuedMutation(action=action)
        data = self._load()
        data["entries"][key] = self._entry(collection_tag, value)
        data["queue"].append(mutation.model_dump(mode="json"))
        self._save(data)
        return mutation.id

    async def list_queued_mutations(self) -> list[QueuedMutation]:
        """Return pending mutations oldest first."""
        return _parse_queue(self._load()["queue"])

    async def update_mutation(self, mutation: QueuedMutation) -> None:
        """Persist changes to a queued mutation (retry count, payload)."""
        data = self._load()
        for i, row in enumerate(data["queue"]):
            if row.get("id") == mutation.id:
                data["queue"][i] = mutation.model_dump(mode="json")
                self._save(data)
                return

    async def dequeue_mutation(self, mutation_id: str) -> None:
        """Remove a mutation from the queue."""
        data = self._load()
        remaining = [row for row in data["queue"] if row.get("id") != mutation_id]
        if len(remaining) != len(data["queue"]):
            data["queue"] = remaining
            self._save(data)

    async def queue_size(self) -> int:
        """Number of queued mutations a drain would replay."""
        return len(await self.list_queued_mutations())


def create_cache_store(
    backend: BackendType = BackendType.JSON,
    cache_dir: Path | None = None,
    db_path: Path | None = None,
) -> CacheStoreProtocol:
    """Create a cache store with the specified backend.

    Args:
        backend: Which backend to use (json or sqlite)
        cache_dir: Directory for cache files (used by JSON backend, also used
                   as base path for SQLite if db_path not specified)
        db_path: Path to SQLite database file (only used by SQLite backend)

    Returns:
        A JSONCacheStore or SQLiteCacheStore instance

    Example:
        # Use JSON backend (default)
        store = create_cache_store()

        # Use SQLite with custom path
        store = create_cache_store(
            BackendType.SQLITE,
            db_path=Path("./my_cache/offline.db")
        )
    """
    if backend == BackendType.SQLITE:
        from .sqlite_store import SQLiteCacheStore

        if db_path is None and cache_dir is not None:
            db_path = cache_dir / "offline.db"

        return SQLiteCacheStore(db_path=db_path)
    else:
        return JSONCacheStore(cache_dir=cache_dir)
