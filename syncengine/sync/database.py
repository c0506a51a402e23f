"""SQLite-backed sync record store.

Provides database persistence for sync records including status tracking,
progress counters, timeout queries and retention primitives.

Concurrency notes:
- Counters are updated with `col = col + ?` statements so parallel batch
  updates never lose increments.
- Status transitions are conditional (`WHERE status = 'running'`), so a
  terminal status reached by one path is never overwritten by another.
- A partial unique index allows at most one RUNNING row per sync type,
  which resolves create races between separate processes.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Callable, Iterator

from .errors import (
    AlreadyRunningError,
    InvalidTransitionError,
    PersistenceError,
    SyncNotFoundError,
)
from .models import (
    TERMINAL_STATUSES,
    Sync,
    SyncStatus,
    TriggerSource,
    format_timestamp,
    parse_timestamp,
    utc_now,
)
from .service import SyncService

logger = logging.getLogger(__name__)

TABLE_NAME = "sync_history"

_RUNNING = SyncStatus.RUNNING.value


class DatabaseSyncService(SyncService):
    """Sync store persisted in a SQLite database."""

    def __init__(
        self,
        db_path: str,
        clock: Callable[[], datetime] = utc_now,
        timeout: float = 30.0,
    ) -> None:
        """Initialize the store.

        Args:
            db_path: Path to SQLite database file
            clock: Returns the current aware UTC time
            timeout: Seconds to wait on a locked database
        """
        self.db_path = db_path
        self.clock = clock
        self.timeout = timeout
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._ensure_tables()

    def _get_conn(self) -> sqlite3.Connection:
        """Get a database connection."""
        conn = sqlite3.connect(self.db_path, timeout=self.timeout)
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        """Open a connection, commit on success and translate store errors."""
        conn = self._get_conn()
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise PersistenceError(f"Sync store error: {e}") from e
        finally:
            conn.close()

    def _now(self) -> str:
        return format_timestamp(self.clock())

    def _ensure_tables(self) -> None:
        """Ensure the sync history table and its indexes exist."""
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(f"""
                CREATE TABLE IF NOT EXISTS {TABLE_NAME} (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    sync_type TEXT NOT NULL,
                    status TEXT NOT NULL,
                    started_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    completed_at TEXT,
                    duration_seconds INTEGER,
                    total_items INTEGER NOT NULL DEFAULT 0 CHECK (total_items >= 0),
                    synced_items INTEGER NOT NULL DEFAULT 0 CHECK (synced_items >= 0),
                    failed_items INTEGER NOT NULL DEFAULT 0 CHECK (failed_items >= 0),
                    error_message TEXT,
                    sync_details TEXT,
                    triggered_by TEXT DEFAULT 'manual'
                )
            """)

            cursor.execute(f"""
                CREATE INDEX IF NOT EXISTS idx_sync_history_status
                ON {TABLE_NAME}(status, started_at)
            """)
            cursor.execute(f"""
                CREATE INDEX IF NOT EXISTS idx_sync_history_type
                ON {TABLE_NAME}(sync_type, status)
            """)
            cursor.execute(f"""
                CREATE INDEX IF NOT EXISTS idx_sync_history_started
                ON {TABLE_NAME}(started_at)
            """)
            # Single-flight: one RUNNING row per sync type
            cursor.execute(f"""
                CREATE UNIQUE INDEX IF NOT EXISTS idx_sync_history_single_running
                ON {TABLE_NAME}(sync_type) WHERE status = '{_RUNNING}'
            """)

    # --- Lifecycle ---

    def create(
        self,
        sync_type: str,
        triggered_by: str = TriggerSource.MANUAL.value,
        details: dict[str, Any] | None = None,
    ) -> int:
        """Insert a RUNNING record for a sync type.

        Args:
            sync_type: Job-type key
            triggered_by: manual, schedule or api
            details: Extra metadata stored with the record

        Returns:
            New sync ID

        Raises:
            AlreadyRunningError: If a RUNNING record already exists for the type
        """
        now = self._now()
        payload = {**(details or {}), "triggered_by": triggered_by}

        with self._connect() as conn:
            try:
                cursor = conn.execute(
                    f"""
                    INSERT INTO {TABLE_NAME} (
                        sync_type, status, started_at, updated_at,
                        total_items, synced_items, failed_items,
                        sync_details, triggered_by
                    )
                    SELECT ?, ?, ?, ?, 0, 0, 0, ?, ?
                    WHERE NOT EXISTS (
                        SELECT 1 FROM {TABLE_NAME}
                        WHERE sync_type = ? AND status = ?
                    )
                    """,
                    (
                        sync_type,
                        _RUNNING,
                        now,
                        now,
                        json.dumps(payload),
                        triggered_by,
                        sync_type,
                        _RUNNING,
                    ),
                )
            except sqlite3.IntegrityError as e:
                raise AlreadyRunningError(sync_type) from e

            if cursor.rowcount == 0:
                raise AlreadyRunningError(sync_type)

            sync_id = int(cursor.lastrowid)

        logger.info(f"Created sync {sync_id} for type {sync_type} ({triggered_by})")
        return sync_id

    def set_total(self, sync_id: int, total: int) -> None:
        """Record the number of items this sync will process.

        Args:
            sync_id: Sync ID
            total: Number of items in the work list
        """
        if total < 0:
            raise ValueError(f"Total must be non-negative, got {total}")

        self._update_running(
            sync_id,
            "total_items = ?",
            (total,),
        )

    def increment_synced(self, sync_id: int, increment: int = 1) -> None:
        """Atomically add to the synced counter.

        Args:
            sync_id: Sync ID
            increment: Number of items synced since the last call
        """
        if increment < 0:
            raise ValueError(f"Increment must be non-negative, got {increment}")

        self._update_running(
            sync_id,
            "synced_items = synced_items + ?",
            (increment,),
        )

    def increment_failed(self, sync_id: int, increment: int = 1) -> None:
        """Atomically add to the failed counter.

        Args:
            sync_id: Sync ID
            increment: Number of items that failed since the last call
        """
        if increment < 0:
            raise ValueError(f"Increment must be non-negative, got {increment}")

        self._update_running(
            sync_id,
            "failed_items = failed_items + ?",
            (increment,),
        )

    def _update_running(
        self, sync_id: int, assignment: str, params: tuple[Any, ...]
    ) -> None:
        """Apply a progress update to a RUNNING record and refresh its heartbeat.

        Terminal records are immutable; updates to them are ignored.
        """
        with self._connect() as conn:
            cursor = conn.execute(
                f"""
                UPDATE {TABLE_NAME}
                SET {assignment}, updated_at = ?
                WHERE id = ? AND status = ?
                """,
                (*params, self._now(), sync_id, _RUNNING),
            )
            if cursor.rowcount == 0:
                self._ensure_exists(conn, sync_id)
                logger.debug(f"Ignoring progress update on finished sync {sync_id}")

    def set_status(self, sync_id: int, status: SyncStatus) -> bool:
        """Move a RUNNING record to a terminal status.

        Computes the duration from the start time and stamps completed_at.

        Args:
            sync_id: Sync ID
            status: COMPLETED, FAILED or CANCELLED

        Returns:
            True if the transition happened, False if already terminal
        """
        if status not in TERMINAL_STATUSES:
            raise InvalidTransitionError(
                f"Cannot move sync {sync_id} to non-terminal status {status.value}"
            )

        return self._finish(sync_id, status)

    def set_failed(self, sync_id: int, error_message: str) -> bool:
        """Mark a RUNNING record as FAILED with an error message.

        Args:
            sync_id: Sync ID
            error_message: Reason for the failure

        Returns:
            True if the record was failed, False if already terminal
        """
        return self._finish(sync_id, SyncStatus.FAILED, error_message)

    def _finish(
        self,
        sync_id: int,
        status: SyncStatus,
        error_message: str | None = None,
    ) -> bool:
        now = self.clock()
        stamp = format_timestamp(now)

        with self._connect() as conn:
            row = self._ensure_exists(conn, sync_id)
            started_at = parse_timestamp(row["started_at"]) or now
            duration = max(0, int((now - started_at).total_seconds()))

            if error_message is None:
                cursor = conn.execute(
                    f"""
                    UPDATE {TABLE_NAME}
                    SET status = ?, updated_at = ?, completed_at = ?,
                        duration_seconds = ?
                    WHERE id = ? AND status = ?
                    """,
                    (status.value, stamp, stamp, duration, sync_id, _RUNNING),
                )
            else:
                details = Sync.from_row(row).details
                details["error_message"] = error_message
                cursor = conn.execute(
                    f"""
                    UPDATE {TABLE_NAME}
                    SET status = ?, updated_at = ?, completed_at = ?,
                        duration_seconds = ?, error_message = ?, sync_details = ?
                    WHERE id = ? AND status = ?
                    """,
                    (
                        status.value,
                        stamp,
                        stamp,
                        duration,
                        error_message,
                        json.dumps(details),
                        sync_id,
                        _RUNNING,
                    ),
                )

            changed = cursor.rowcount > 0

        if changed:
            logger.info(f"Sync {sync_id} finished with status {status.value}")
        else:
            logger.debug(
                f"Sync {sync_id} already {row['status']}, not moving to {status.value}"
            )
        return changed

    def delete(self, sync_id: int) -> bool:
        """Delete a finished record.

        Args:
            sync_id: Sync ID

        Returns:
            True if a record was deleted, False if it did not exist

        Raises:
            InvalidTransitionError: If the record is still RUNNING
        """
        with self._connect() as conn:
            row = conn.execute(
                f"SELECT status FROM {TABLE_NAME} WHERE id = ?", (sync_id,)
            ).fetchone()
            if row is None:
                return False
            if row["status"] == _RUNNING:
                raise InvalidTransitionError(
                    f"Cannot delete running sync {sync_id}. Cancel it first."
                )
            cursor = conn.execute(
                f"DELETE FROM {TABLE_NAME} WHERE id = ? AND status != ?",
                (sync_id, _RUNNING),
            )
            deleted = cursor.rowcount > 0

        if deleted:
            logger.info(f"Deleted sync {sync_id}")
        return deleted

    def _ensure_exists(self, conn: sqlite3.Connection, sync_id: int) -> sqlite3.Row:
        """Fetch a row, raising if it does not exist."""
        row = conn.execute(
            f"SELECT * FROM {TABLE_NAME} WHERE id = ?", (sync_id,)
        ).fetchone()
        if row is None:
            raise SyncNotFoundError(sync_id)
        return row

    # --- Queries ---

    def get(self, sync_id: int) -> Sync | None:
        """Get a record by id.

        Args:
            sync_id: Sync ID

        Returns:
            Sync or None
        """
        return self._fetch_one(
            f"SELECT * FROM {TABLE_NAME} WHERE id = ?", (sync_id,)
        )

    def get_running_for_type(self, sync_type: str) -> Sync | None:
        return self._fetch_one(
            f"""
            SELECT * FROM {TABLE_NAME}
            WHERE sync_type = ? AND status = ?
            ORDER BY started_at DESC, id DESC
            LIMIT 1
            """,
            (sync_type, _RUNNING),
        )

    def get_last_finished_for_type(self, sync_type: str) -> Sync | None:
        return self._fetch_one(
            f"""
            SELECT * FROM {TABLE_NAME}
            WHERE sync_type = ? AND status IN (?, ?, ?)
            ORDER BY updated_at DESC, id DESC
            LIMIT 1
            """,
            (
                sync_type,
                SyncStatus.COMPLETED.value,
                SyncStatus.FAILED.value,
                SyncStatus.CANCELLED.value,
            ),
        )

    def get_last_completed_for_type(self, sync_type: str) -> Sync | None:
        return self._fetch_one(
            f"""
            SELECT * FROM {TABLE_NAME}
            WHERE sync_type = ? AND status = ?
            ORDER BY completed_at DESC, updated_at DESC, id DESC
            LIMIT 1
            """,
            (sync_type, SyncStatus.COMPLETED.value),
        )

    def list_recent(self, limit: int = 10) -> list[Sync]:
        """List records, newest first.

        Args:
            limit: Maximum results

        Returns:
            List of Sync records
        """
        return self._fetch_all(
            f"""
            SELECT * FROM {TABLE_NAME}
            ORDER BY started_at DESC, id DESC
            LIMIT ?
            """,
            (limit,),
        )

    def list_timed_out(
        self, timeout_minutes: int, sync_type: str | None = None
    ) -> list[Sync]:
        """List RUNNING records whose heartbeat is older than the timeout.

        The caller decides what to do with them.

        Args:
            timeout_minutes: Minutes without an update before a sync is stale
            sync_type: Optional sync type filter

        Returns:
            Stale RUNNING records, stalest first
        """
        cutoff = format_timestamp(self.clock() - timedelta(minutes=timeout_minutes))

        query = f"SELECT * FROM {TABLE_NAME} WHERE status = ? AND updated_at < ?"
        params: list[Any] = [_RUNNING, cutoff]
        if sync_type:
            query += " AND sync_type = ?"
            params.append(sync_type)
        query += " ORDER BY updated_at ASC"

        return self._fetch_all(query, params)

    def _fetch_one(self, query: str, params: Any) -> Sync | None:
        with self._connect() as conn:
            row = conn.execute(query, params).fetchone()
            return Sync.from_row(row) if row else None

    def _fetch_all(self, query: str, params: Any) -> list[Sync]:
        with self._connect() as conn:
            return [Sync.from_row(row) for row in conn.execute(query, params)]

    # --- Retention ---

    def delete_finished_older_than(self, status: SyncStatus, cutoff: datetime) -> int:
        """Delete records with a terminal status that started before cutoff.

        Args:
            status: COMPLETED, FAILED or CANCELLED
            cutoff: Start-time threshold

        Returns:
            Number of records deleted
        """
        if status not in TERMINAL_STATUSES:
            raise InvalidTransitionError(
                f"Refusing to purge records with status {status.value}"
            )

        with self._connect() as conn:
            cursor = conn.execute(
                f"""
                DELETE FROM {TABLE_NAME}
                WHERE status = ? AND started_at < ?
                """,
                (status.value, format_timestamp(cutoff)),
            )
            return cursor.rowcount

    def delete_excess_finished(self, keep: int) -> int:
        """Keep only the newest `keep` non-RUNNING records.

        RUNNING records are never counted or deleted.

        Args:
            keep: Number of finished records to retain

        Returns:
            Number of records deleted
        """
        with self._connect() as conn:
            total = conn.execute(
                f"SELECT COUNT(*) FROM {TABLE_NAME} WHERE status != ?",
                (_RUNNING,),
            ).fetchone()[0]
            if total <= keep:
                return 0

            cursor = conn.execute(
                f"""
                DELETE FROM {TABLE_NAME}
                WHERE status != ?
                AND id NOT IN (
                    SELECT id FROM {TABLE_NAME}
                    WHERE status != ?
                    ORDER BY started_at DESC, id DESC
                    LIMIT ?
                )
                """,
                (_RUNNING, _RUNNING, keep),
            )
            return cursor.rowcount

    def delete_older_than(self, cutoff: datetime) -> int:
        """Delete every non-RUNNING record that started before cutoff.

        Args:
            cutoff: Start-time threshold

        Returns:
            Number of records deleted
        """
        with self._connect() as conn:
            cursor = conn.execute(
                f"""
                DELETE FROM {TABLE_NAME}
                WHERE started_at < ? AND status != ?
                """,
                (format_timestamp(cutoff), _RUNNING),
            )
            return cursor.rowcount

    def count_finished(self) -> int:
        with self._connect() as conn:
            return conn.execute(
                f"SELECT COUNT(*) FROM {TABLE_NAME} WHERE status != ?",
                (_RUNNING,),
            ).fetchone()[0]

    def purge_statistics(self) -> dict[str, Any]:
        """Per-status counts with oldest/newest start times.

        Returns:
            Dict with total_records and a by_status list
        """
        with self._connect() as conn:
            rows = conn.execute(
                f"""
                SELECT status,
                       COUNT(*) AS count,
                       MIN(started_at) AS oldest,
                       MAX(started_at) AS newest
                FROM {TABLE_NAME}
                GROUP BY status
                ORDER BY status
                """
            ).fetchall()
            total = conn.execute(f"SELECT COUNT(*) FROM {TABLE_NAME}").fetchone()[0]

        return {
            "total_records": total,
            "by_status": [
                {
                    "status": row["status"],
                    "count": row["count"],
                    "oldest": parse_timestamp(row["oldest"]),
                    "newest": parse_timestamp(row["newest"]),
                }
                for row in rows
            ],
        }
