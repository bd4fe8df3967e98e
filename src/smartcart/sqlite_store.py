"""SQLite-based cache persistence for SmartCart.

This module provides SQLite storage as an alternative to the JSON cache file.
It implements the same interface as JSONCacheStore for seamless switching.
"""

import json
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any

from .cache_store import _parse_queue
from .errors import CacheStoreError
from .models import CollectionTag, MutationAction, QueuedMutation


class SQLiteCacheStore:
    """Manages SQLite persistence for cache entries and the mutation queue."""

    SCHEMA_VERSION = 1

    def __init__(self, db_path: Path | None = None):
        """Initialize SQLite store.

        Args:
            db_path: Path to the SQLite database file. Defaults to ./cache/offline.db
        """
        if db_path is None:
            db_path = Path.cwd() / "cache" / "offline.db"
        self.db_path = db_path
        self._ensure_directories()
        self._init_database()

    def _ensure_directories(self) -> None:
        """Create necessary directories if they don't exist."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def location(self) -> Path:
        return self.db_path

    @contextmanager
    def _get_connection(self):
        """Get a database connection; commits on success, rolls back on error."""
        try:
            conn = sqlite3.connect(self.db_path)
        except sqlite3.Error as e:
            raise CacheStoreError(f"Failed to open cache database {self.db_path}: {e}") from e
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise CacheStoreError(f"Cache database error: {e}") from e
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _init_database(self) -> None:
        """Initialize database schema if not exists."""
        with self._get_connection() as conn:
            conn.executescript("""
                -- Schema version tracking
                CREATE TABLE IF NOT EXISTS schema_version (
                    version INTEGER PRIMARY KEY
                );

                -- Named snapshots of entity collections
                CREATE TABLE IF NOT EXISTS cache_entries (
                    key TEXT PRIMARY KEY,
                    collection TEXT NOT NULL,
                    value TEXT NOT NULL,
                    timestamp TEXT NOT NULL
                );

                -- Pending writes, replayed in seq order
                CREATE TABLE IF NOT EXISTS mutation_queue (
                    seq INTEGER PRIMARY KEY AUTOINCREMENT,
                    id TEXT NOT NULL UNIQUE,
                    payload TEXT NOT NULL
                );

                INSERT OR IGNORE INTO schema_version (version) VALUES (1);
            """)

    # --- Cache entries ---

    def _write_entry(
        self, conn: sqlite3.Connection, key: str, collection_tag: CollectionTag, value: Any
    ) -> None:
        conn.execute(
            """
            INSERT OR REPLACE INTO cache_entries (key, collection, value, timestamp)
            VALUES (?, ?, ?, ?)
            """,
            (
                key,
                CollectionTag(collection_tag).value,
                json.dumps(value),
                datetime.now().isoformat(),
            ),
        )

    async def put(self, key: str, collection_tag: CollectionTag, value: Any) -> None:
        """Overwrite the entry for key.

        Args:
            key: Logical cache name
            collection_tag: Kind of collection stored
            value: JSON-compatible value
        """
        with self._get_connection() as conn:
            self._write_entry(conn, key, collection_tag, value)

    async def get(self, key: str) -> Any | None:
        """Get the last written value for key, or None if absent."""
        with self._get_connection() as conn:
            row = conn.execute("SELECT value FROM cache_entries WHERE key = ?", (key,)).fetchone()
        if not row:
            return None
        return json.loads(row["value"])

    async def remove(self, key: str) -> None:
        """Delete the entry for key. Removing an absent key is a no-op."""
        with self._get_connection() as conn:
            conn.execute("DELETE FROM cache_entries WHERE key = ?", (key,))

    async def keys(self, prefix: str = "") -> list[str]:
        """List cache entry keys starting with prefix."""
        with self._get_connection() as conn:
            rows = conn.execute("SELECT key FROM cache_entries ORDER BY key").fetchall()
        return [row["key"] for row in rows if row["key"].startswith(prefix)]

    # --- Mutation queue ---

    def _insert_mutation(self, conn: sqlite3.Connection, mutation: QueuedMutation) -> None:
        conn.execute(
            "INSERT INTO mutation_queue (id, payload) VALUES (?, ?)",
            (mutation.id, mutation.model_dump_json()),
        )

    async def enqueue_mutation(self, action: MutationAction) -> str:
        """Append a mutation to the queue.

        Returns:
            Queued mutation ID
        """
        mutation = QueuedMutation(action=action)
        with self._get_connection() as conn:
            self._insert_mutation(conn, mutation)
        return mutation.id

    async def apply_mutation(
        self, key: str, collection_tag: CollectionTag, value: Any, action: MutationAction
    ) -> str:
        """Write a cache entry and enqueue its mutation in one transaction."""
        mutation = QueuedMutation(action=action)
        with self._get_connection() as conn:
            self._write_entry(conn, key, collection_tag, value)
            self._insert_mutation(conn, mutation)
        return mutation.id

    async def list_queued_mutations(self) -> list[QueuedMutation]:
        """Return pending mutations oldest first."""
        with self._get_connection() as conn:
            rows = conn.execute("SELECT payload FROM mutation_queue ORDER BY seq").fetchall()
        return _parse_queue([json.loads(row["payload"]) for row in rows])

    async def update_mutation(self, mutation: QueuedMutation) -> None:
        """Persist changes to a queued mutation (retry count, payload)."""
        with self._get_connection() as conn:
            conn.execute(
                "UPDATE mutation_queue SET payload = ? WHERE id = ?",
                (mutation.model_dump_json(), mutation.id),
            )

    async def dequeue_mutation(self, mutation_id: str) -> None:
        """Remove a mutation from the queue."""
        with self._get_connection() as conn:
            conn.execute("DELETE FROM mutation_queue WHERE id = ?", (mutation_id,))

    async def queue_size(self) -> int:
        """Number of queued mutations a drain would replay."""
        return len(await self.list_queued_mutations())
