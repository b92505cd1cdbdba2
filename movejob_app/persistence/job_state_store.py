"""Job state persistence layer surviving app restarts and network outages."""

import asyncio
import json
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Optional

import structlog

from ..errors import StorageReadError, StorageWriteError
from ..utils.time import Clock, days_to_ms, now_ms


class JobStateStore:
    """
    SQLite-backed key/value store of serialized job-state records.

    Each job's record is one full JSON snapshot stored under
    ``<key_prefix><job_id>``; a JSON array of known job ids is kept under
    ``index_key``. Several stores with different prefixes may share one
    database file.

    The public API is asynchronous; blocking SQLite calls run in a worker
    thread and are serialized by a lock so a reader always sees either the
    pre- or the post-image of a save.
    """

    def __init__(
        self,
        db_path: str = "job_states.db",
        key_prefix: str = "job_state_",
        index_key: str = "job_states_index",
        clock: Clock = now_ms
    ):
        self.db_path = Path(db_path)
        self.key_prefix = key_prefix
        self.index_key = index_key
        self.clock = clock
        self.logger = structlog.get_logger(__name__).bind(store=key_prefix)
        self._lock = threading.Lock()

        self._init_database()

    def key_for(self, job_id: str) -> str:
        """Storage key of a job's record."""
        return f"{self.key_prefix}{job_id}"

    def _init_database(self) -> None:
        """Initialize database schema."""
        if self.db_path.parent and not self.db_path.parent.exists():
            self.db_path.parent.mkdir(parents=True, exist_ok=True)

        with self._get_connection() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS kv_store (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at_ms INTEGER NOT NULL
                )
            """)

            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_kv_store_updated_at ON kv_store(updated_at_ms)
            """)

            conn.commit()

    @contextmanager
    def _get_connection(self):
        """Get database connection with proper error handling."""
        conn = None
        try:
            conn = sqlite3.connect(self.db_path, timeout=30.0)
            conn.row_factory = sqlite3.Row
            yield conn
        except sqlite3.Error as e:
            if conn:
                conn.rollback()
            self.logger.error("Database error", error=str(e))
            raise
        finally:
            if conn:
                conn.close()

    # Async API

    async def load(self, job_id: str) -> Optional[dict[str, Any]]:
        """
        Load a job's record.

        Returns:
            The stored record, or None when missing or unreadable
        """
        try:
            return await asyncio.to_thread(self._load_sync, job_id)
        except StorageReadError as e:
            self.logger.error(
                "Discarding unreadable job state record",
                job_id=job_id,
                key=e.key,
                error=str(e)
            )
            return None

    async def save(self, job_id: str, state: dict[str, Any]) -> None:
        """
        Write the full snapshot of a job's record.

        Raises:
            StorageWriteError: If the snapshot could not be written
        """
        await asyncio.to_thread(self._save_sync, job_id, state)

    async def delete(self, job_id: str) -> None:
        """Delete a job's record; deleting a missing record is a no-op."""
        await asyncio.to_thread(self._delete_sync, job_id)

    async def list_ids(self) -> list[str]:
        """Job ids known to the index, in insertion order."""
        return await asyncio.to_thread(self._list_ids_sync)

    async def load_all(self) -> list[dict[str, Any]]:
        """Every readable record, in index order."""
        records = []
        for job_id in await self.list_ids():
            record = await self.load(job_id)
            if record is not None:
                records.append(record)
        return records

    async def purge_older_than(self, days: float) -> int:
        """
        Remove records not modified within ``days`` days.

        Returns:
            Number of records removed
        """
        return await asyncio.to_thread(self._purge_sync, days)

    # Blocking implementation

    def _load_sync(self, job_id: str) -> Optional[dict[str, Any]]:
        key = self.key_for(job_id)
        with self._lock:
            try:
                with self._get_connection() as conn:
                    row = conn.execute(
                        "SELECT value FROM kv_store WHERE key = ?", (key,)
                    ).fetchone()
            except sqlite3.Error as e:
                raise StorageReadError(f"Failed to read {key}: {e}", key=key) from e

        if row is None:
            self.logger.debug("No stored state found", job_id=job_id)
            return None

        try:
            record = json.loads(row["value"])
        except (TypeError, ValueError) as e:
            raise StorageReadError(f"Corrupt record under {key}: {e}", key=key) from e

        if not isinstance(record, dict):
            raise StorageReadError(
                f"Record under {key} is not an object", key=key
            )

        return record

    def _save_sync(self, job_id: str, state: dict[str, Any]) -> None:
        key = self.key_for(job_id)
        try:
            payload = json.dumps(state)
        except (TypeError, ValueError) as e:
            raise StorageWriteError(f"State for {key} is not serializable: {e}", key=key) from e

        with self._lock:
            try:
                with self._get_connection() as conn:
                    updated_at = self.clock()
                    conn.execute("""
                        INSERT OR REPLACE INTO kv_store (key, value, updated_at_ms)
                        VALUES (?, ?, ?)
                    """, (key, payload, updated_at))

                    index = self._read_index(conn)
                    if job_id not in index:
                        index.append(job_id)
                        self._write_index(conn, index, updated_at)

                    conn.commit()
            except sqlite3.Error as e:
                raise StorageWriteError(f"Failed to write {key}: {e}", key=key) from e

        self.logger.debug("Job state saved", job_id=job_id, key=key)

    def _delete_sync(self, job_id: str) -> None:
        key = self.key_for(job_id)
        with self._lock:
            try:
                with self._get_connection() as conn:
                    conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))

                    index = self._read_index(conn)
                    if job_id in index:
                        index.remove(job_id)
                        self._write_index(conn, index, self.clock())

                    conn.commit()
            except sqlite3.Error as e:
                raise StorageWriteError(
                    f"Failed to delete {key}: {e}", key=key, operation="delete"
                ) from e

        self.logger.info("Job state deleted", job_id=job_id)

    def _list_ids_sync(self) -> list[str]:
        with self._lock:
            try:
                with self._get_connection() as conn:
                    return self._read_index(conn)
            except sqlite3.Error as e:
                self.logger.error("Failed to read job index", error=str(e))
                return []

    def _purge_sync(self, days: float) -> int:
        cutoff = self.clock() - days_to_ms(days)
        prefix_len = len(self.key_prefix)

        with self._lock:
            try:
                with self._get_connection() as conn:
                    rows = conn.execute("""
                        SELECT key FROM kv_store
                        WHERE key LIKE ? ESCAPE '\\' AND key != ? AND updated_at_ms < ?
                    """, (self._like_prefix(), self.index_key, cutoff)).fetchall()

                    stale_ids = [row["key"][prefix_len:] for row in rows]
                    if not stale_ids:
                        return 0

                    conn.executemany(
                        "DELETE FROM kv_store WHERE key = ?",
                        [(row["key"],) for row in rows]
                    )

                    index = [job_id for job_id in self._read_index(conn) if job_id not in stale_ids]
                    self._write_index(conn, index, self.clock())

                    conn.commit()
            except sqlite3.Error as e:
                raise StorageWriteError(
                    f"Failed to purge records: {e}", operation="purge"
                ) from e

        self.logger.info(
            "Purged old job states",
            purged=len(stale_ids),
            older_than_days=days
        )
        return len(stale_ids)

    def _like_prefix(self) -> str:
        escaped = (
            self.key_prefix.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        )
        return f"{escaped}%"

    def _read_index(self, conn: sqlite3.Connection) -> list[str]:
        row = conn.execute(
            "SELECT value FROM kv_store WHERE key = ?", (self.index_key,)
        ).fetchone()
        if row is None:
            return []

        try:
            index = json.loads(row["value"])
        except (TypeError, ValueError) as e:
            self.logger.error("Corrupt job index, rebuilding", key=self.index_key, error=str(e))
            return []

        if not isinstance(index, list):
            self.logger.error("Job index is not a list, rebuilding", key=self.index_key)
            return []
        return [str(job_id) for job_id in index]

    def _write_index(self, conn: sqlite3.Connection, index: list[str], updated_at: int) -> None:
        conn.execute("""
            INSERT OR REPLACE INTO kv_store (key, value, updated_at_ms)
            VALUES (?, ?, ?)
        """, (self.index_key, json.dumps(index), updated_at))
