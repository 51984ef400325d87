"""
Database writer layer for the HireBot store.

Provides write access with transaction management: conditional single-row
updates (advisory lock compare-and-set, versioned status writes), append-only
audit inserts, and the two writes of a bot job record.
"""

import logging
import sqlite3
from pathlib import Path
from typing import Optional

from db.schema import resolve_db_path
from models.errors import (
    create_db_error,
    create_db_not_found_error,
)
from models.status import ApplicationStatus, BotJobStatus

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 5.0


class PipelineWriter:
    """
    Context manager for write operations on the HireBot database.

    Opens its own connection, begins an IMMEDIATE transaction (the write lock
    is taken up front), rolls back on exceptions and always closes the
    connection. One writer per thread; connections are never shared.

    Usage:
        with PipelineWriter(db_path) as writer:
            if writer.update_status_if_unchanged(...):
                writer.insert_activity_log(...)
                writer.commit()
    """

    def __init__(self, db_path: Optional[str] = None, timeout: float = DEFAULT_TIMEOUT_SECONDS):
        """
        Initialize writer with database path.

        Args:
            db_path: Optional database path override
            timeout: Seconds to wait on a locked database
        """
        self.db_path = db_path
        self.timeout = timeout
        self.resolved_path: Optional[Path] = None
        self.conn: Optional[sqlite3.Connection] = None
        self._in_transaction = False

    def __enter__(self):
        """
        Open connection and begin transaction.

        Raises:
            ToolError: If database file doesn't exist or connection fails
        """
        self.resolved_path = resolve_db_path(self.db_path)

        if not self.resolved_path.exists() or not self.resolved_path.is_file():
            raise create_db_not_found_error(str(self.resolved_path))

        try:
            self.conn = sqlite3.connect(str(self.resolved_path), timeout=self.timeout)
            self.conn.row_factory = sqlite3.Row

            self.conn.execute("BEGIN IMMEDIATE")
            self._in_transaction = True

            return self

        except sqlite3.OperationalError as e:
            if self.conn is not None:
                self.conn.close()
                self.conn = None
            error_msg = str(e)
            if "unable to open database" in error_msg.lower():
                raise create_db_not_found_error(str(self.resolved_path)) from e
            raise create_db_error(error_msg, retryable=True, original_error=e) from e

        except sqlite3.Error as e:
            if self.conn is not None:
                self.conn.close()
                self.conn = None
            raise create_db_error(str(e), retryable=False, original_error=e) from e

    def __exit__(self, exc_type, exc_val, exc_tb):
        """
        Rollback on exception or uncommitted work, close connection always.

        Returns:
            False to propagate exceptions
        """
        try:
            if self._in_transaction:
                self.rollback()
        finally:
            if self.conn is not None:
                self.conn.close()
                self.conn = None

        return False

    def _require_connection(self) -> sqlite3.Connection:
        if self.conn is None:
            raise create_db_error("Connection not established", retryable=False)
        return self.conn

    # -- advisory lock -----------------------------------------------------

    def try_set_lock(self, application_id: int, token: str) -> bool:
        """
        Compare-and-set the lock token: only succeeds while it is NULL.

        Returns:
            True if this call took the lock, False otherwise
        """
        conn = self._require_connection()
        try:
            cursor = conn.execute(
                """
                UPDATE applications
                SET lock_token = ?
                WHERE id = ? AND lock_token IS NULL
                """,
                (token, application_id),
            )
            return cursor.rowcount == 1
        except sqlite3.Error as e:
            raise create_db_error(str(e), retryable=True, original_error=e) from e

    def clear_lock(self, application_id: int) -> None:
        """Unconditionally set the lock token back to NULL."""
        conn = self._require_connection()
        try:
            conn.execute(
                "UPDATE applications SET lock_token = NULL WHERE id = ?",
                (application_id,),
            )
        except sqlite3.Error as e:
            raise create_db_error(str(e), retryable=True, original_error=e) from e

    def application_exists(self, application_id: int) -> bool:
        """Check whether an application row exists."""
        conn = self._require_connection()
        try:
            cursor = conn.execute("SELECT 1 FROM applications WHERE id = ?", (application_id,))
            return cursor.fetchone() is not None
        except sqlite3.Error as e:
            raise create_db_error(str(e), retryable=False, original_error=e) from e

    # -- status writes -----------------------------------------------------

    def update_status_if_unchanged(
        self,
        application_id: int,
        expected_status: str,
        expected_version: int,
        new_status: str,
        automated_run_at: Optional[str] = None,
    ) -> bool:
        """
        Write a new status only if the row still matches what was loaded.

        Bumps the row version. When automated_run_at is given it is stored in
        last_automated_run_at in the same statement.

        Returns:
            True if the row was updated, False if it changed since it was read
        """
        conn = self._require_connection()
        try:
            if automated_run_at is not None:
                cursor = conn.execute(
                    """
                    UPDATE applications
                    SET current_status = ?,
                        last_automated_run_at = ?,
                        version = version + 1
                    WHERE id = ? AND version = ? AND current_status = ?
                    """,
                    (new_status, automated_run_at, application_id, expected_version, expected_status),
                )
            else:
                cursor = conn.execute(
                    """
                    UPDATE applications
                    SET current_status = ?,
                        version = version + 1
                    WHERE id = ? AND version = ? AND current_status = ?
                    """,
                    (new_status, application_id, expected_version, expected_status),
                )
            return cursor.rowcount == 1
        except sqlite3.Error as e:
            raise create_db_error(str(e), retryable=True, original_error=e) from e

    def insert_activity_log(
        self,
        application_id: int,
        old_status: Optional[str],
        new_status: str,
        updated_by: str,
        updated_by_role: str,
        comment: Optional[str],
        timestamp: str,
    ) -> int:
        """
        Append one audit row.

        Returns:
            The new activity log id
        """
        conn = self._require_connection()
        try:
            cursor = conn.execute(
                """
                INSERT INTO activity_logs (
                    application_id, old_status, new_status, updated_by,
                    updated_by_role, comment, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (application_id, old_status, new_status, updated_by, updated_by_role, comment, timestamp),
            )
            return int(cursor.lastrowid)
        except sqlite3.Error as e:
            raise create_db_error(str(e), retryable=False, original_error=e) from e

    # -- catalogue / creation ----------------------------------------------

    def insert_role(self, name: str, is_technical: bool) -> Optional[int]:
        """
        Insert a role.

        Returns:
            The new role id, or None if a role with that name already exists
        """
        conn = self._require_connection()
        try:
            cursor = conn.execute(
                "INSERT OR IGNORE INTO roles (name, is_technical) VALUES (?, ?)",
                (name, 1 if is_technical else 0),
            )
            if cursor.rowcount == 0:
                return None
            return int(cursor.lastrowid)
        except sqlite3.Error as e:
            raise create_db_error(str(e), retryable=False, original_error=e) from e

    def insert_application(self, applicant_ref: str, role_id: int, timestamp: str) -> int:
        """Insert a new application in the Applied stage and return its id."""
        conn = self._require_connection()
        try:
            cursor = conn.execute(
                """
                INSERT INTO applications (applicant_ref, role_id, current_status, created_at)
                VALUES (?, ?, ?, ?)
                """,
                (applicant_ref, role_id, ApplicationStatus.APPLIED.value, timestamp),
            )
            return int(cursor.lastrowid)
        except sqlite3.Error as e:
            raise create_db_error(str(e), retryable=False, original_error=e) from e

    # -- bot jobs ----------------------------------------------------------

    def insert_bot_job(self, triggered_by: str, triggered_at: str, dry_run: bool) -> int:
        """First write of a bot job: the Running record. Returns its id."""
        conn = self._require_connection()
        try:
            cursor = conn.execute(
                """
                INSERT INTO bot_jobs (triggered_by, triggered_at, status, dry_run)
                VALUES (?, ?, ?, ?)
                """,
                (triggered_by, triggered_at, BotJobStatus.RUNNING.value, 1 if dry_run else 0),
            )
            return int(cursor.lastrowid)
        except sqlite3.Error as e:
            raise create_db_error(str(e), retryable=False, original_error=e) from e

    def finalize_bot_job(
        self,
        job_id: int,
        status: BotJobStatus,
        details: str,
        finished_at: str,
        total_processed: Optional[int] = None,
        total_succeeded: Optional[int] = None,
        total_failed: Optional[int] = None,
        total_skipped: Optional[int] = None,
    ) -> bool:
        """
        Second and last write of a bot job, as a single statement.

        Only a Running job can be finalized.

        Returns:
            True if the job was finalized, False if it was not Running
        """
        conn = self._require_connection()
        try:
            cursor = conn.execute(
                """
                UPDATE bot_jobs
                SET status = ?,
                    total_processed = ?,
                    total_succeeded = ?,
                    total_failed = ?,
                    total_skipped = ?,
                    details = ?,
                    finished_at = ?
                WHERE id = ? AND status = ?
                """,
                (
                    status.value,
                    total_processed,
                    total_succeeded,
                    total_failed,
                    total_skipped,
                    details,
                    finished_at,
                    job_id,
                    BotJobStatus.RUNNING.value,
                ),
            )
            return cursor.rowcount == 1
        except sqlite3.Error as e:
            raise create_db_error(str(e), retryable=False, original_error=e) from e

    # -- transaction control -----------------------------------------------

    def commit(self) -> None:
        """
        Commit the transaction.

        Raises:
            ToolError: If commit fails
        """
        conn = self._require_connection()

        if not self._in_transaction:
            return

        try:
            conn.commit()
            self._in_transaction = False
        except sqlite3.Error as e:
            raise create_db_error(
                f"Failed to commit transaction: {str(e)}", retryable=True, original_error=e
            ) from e

    def rollback(self) -> None:
        """
        Rollback the transaction.

        Does not raise: rollback is called during error handling, where the
        original exception must win. Failures are logged.
        """
        if self.conn is None or not self._in_transaction:
            return

        try:
            self.conn.rollback()
        except sqlite3.Error as e:
            logger.warning("Rollback failed: %s", e)
        finally:
            self._in_transaction = False
