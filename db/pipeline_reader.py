"""
Database reader layer for the HireBot store.

Provides read-only access to applications, activity logs, roles and bot jobs
with connection management and deterministic query ordering.
"""

import sqlite3
from contextlib import contextmanager
from typing import Any, Dict, List, Optional, Tuple

from db.schema import resolve_db_path
from models.errors import (
    create_db_error,
    create_db_not_found_error,
)
from models.status import BOT_EXCLUDED_STATUSES

DEFAULT_TIMEOUT_SECONDS = 5.0

_APPLICATION_COLUMNS = """
    a.id,
    a.applicant_ref,
    a.role_id,
    r.name AS role_name,
    r.is_technical,
    a.current_status,
    a.created_at,
    a.last_automated_run_at,
    a.lock_token,
    a.version
"""


@contextmanager
def get_connection(db_path: Optional[str] = None, timeout: float = DEFAULT_TIMEOUT_SECONDS):
    """
    Context manager for read-only SQLite connections.

    Ensures connections are always properly closed, even on errors.

    Args:
        db_path: Optional database path override
        timeout: Seconds to wait on a locked database

    Yields:
        sqlite3.Connection: Database connection

    Raises:
        ToolError: If database file doesn't exist or connection fails
    """
    resolved_path = resolve_db_path(db_path)

    if not resolved_path.exists() or not resolved_path.is_file():
        raise create_db_not_found_error(str(resolved_path))

    conn = None
    try:
        uri = f"file:{resolved_path}?mode=ro"
        conn = sqlite3.connect(uri, uri=True, timeout=timeout)
        conn.row_factory = sqlite3.Row

        yield conn

    except sqlite3.OperationalError as e:
        error_msg = str(e)
        if "unable to open database" in error_msg.lower():
            raise create_db_not_found_error(str(resolved_path)) from e
        else:
            raise create_db_error(error_msg, retryable=True, original_error=e) from e

    except sqlite3.Error as e:
        raise create_db_error(str(e), retryable=False, original_error=e) from e

    finally:
        if conn is not None:
            conn.close()


def _row_to_dict(row: Optional[sqlite3.Row]) -> Optional[Dict[str, Any]]:
    if row is None:
        return None
    return {key: row[key] for key in row.keys()}


def fetch_application(conn: sqlite3.Connection, application_id: int) -> Optional[Dict[str, Any]]:
    """
    Point lookup of one application joined with its role.

    Returns:
        Row as dict (is_technical as bool), or None if absent
    """
    cursor = conn.execute(
        f"""
        SELECT {_APPLICATION_COLUMNS}
        FROM applications a
        JOIN roles r ON r.id = a.role_id
        WHERE a.id = ?
        """,
        (application_id,),
    )
    record = _row_to_dict(cursor.fetchone())
    if record is not None:
        record["is_technical"] = bool(record["is_technical"])
    return record


def fetch_bot_candidates(
    conn: sqlite3.Connection, cooldown_threshold: str, batch_size: int
) -> List[Dict[str, Any]]:
    """
    Select applications eligible for automated advancement.

    Eligible rows:
    - belong to a technical role
    - are not currently locked
    - are not in Hired or Offer
    - were never advanced by the bot, or last advanced before the threshold

    Ordered by id so the selection is stable within one call.

    Args:
        conn: Database connection
        cooldown_threshold: ISO 8601 UTC timestamp; runs at or after it are too recent
        batch_size: Maximum number of rows to return

    Returns:
        List of application dicts
    """
    placeholders = ",".join("?" * len(BOT_EXCLUDED_STATUSES))
    query = f"""
        SELECT {_APPLICATION_COLUMNS}
        FROM applications a
        JOIN roles r ON r.id = a.role_id
        WHERE r.is_technical = 1
          AND a.lock_token IS NULL
          AND a.current_status NOT IN ({placeholders})
          AND (a.last_automated_run_at IS NULL OR a.last_automated_run_at < ?)
        ORDER BY a.id ASC
        LIMIT ?
    """
    params = [status.value for status in BOT_EXCLUDED_STATUSES]
    params.extend([cooldown_threshold, batch_size])

    rows = conn.execute(query, params).fetchall()
    candidates = []
    for row in rows:
        record = _row_to_dict(row)
        record["is_technical"] = bool(record["is_technical"])
        candidates.append(record)
    return candidates


def fetch_activity_logs(conn: sqlite3.Connection, application_id: int) -> List[Dict[str, Any]]:
    """Return the audit trail of one application, newest first."""
    cursor = conn.execute(
        """
        SELECT id, application_id, old_status, new_status, updated_by,
               updated_by_role, comment, created_at
        FROM activity_logs
        WHERE application_id = ?
        ORDER BY created_at DESC, id DESC
        """,
        (application_id,),
    )
    return [_row_to_dict(row) for row in cursor.fetchall()]


def fetch_role_by_name(conn: sqlite3.Connection, name: str) -> Optional[Dict[str, Any]]:
    """Look up a role by its unique name."""
    cursor = conn.execute(
        "SELECT id, name, is_technical FROM roles WHERE name = ?",
        (name,),
    )
    record = _row_to_dict(cursor.fetchone())
    if record is not None:
        record["is_technical"] = bool(record["is_technical"])
    return record


def fetch_bot_job(conn: sqlite3.Connection, job_id: int) -> Optional[Dict[str, Any]]:
    """Point lookup of one bot job record."""
    cursor = conn.execute(
        """
        SELECT id, triggered_by, triggered_at, status, dry_run, total_processed,
               total_succeeded, total_failed, total_skipped, details, finished_at
        FROM bot_jobs
        WHERE id = ?
        """,
        (job_id,),
    )
    record = _row_to_dict(cursor.fetchone())
    if record is not None:
        record["dry_run"] = bool(record["dry_run"])
    return record


def fetch_recent_bot_jobs(conn: sqlite3.Connection, limit: int) -> List[Dict[str, Any]]:
    """Return the most recent bot jobs, newest first."""
    cursor = conn.execute(
        """
        SELECT id, triggered_by, triggered_at, status, dry_run, total_processed,
               total_succeeded, total_failed, total_skipped, details, finished_at
        FROM bot_jobs
        ORDER BY triggered_at DESC, id DESC
        LIMIT ?
        """,
        (limit,),
    )
    jobs = []
    for row in cursor.fetchall():
        record = _row_to_dict(row)
        record["dry_run"] = bool(record["dry_run"])
        jobs.append(record)
    return jobs


def count_activity_by_role(conn: sqlite3.Connection, updated_by_role: str) -> int:
    """Count audit rows written under a given actor role."""
    cursor = conn.execute(
        "SELECT COUNT(*) AS total FROM activity_logs WHERE updated_by_role = ?",
        (updated_by_role,),
    )
    return int(cursor.fetchone()["total"])


def count_transitions_by_status(
    conn: sqlite3.Connection, updated_by_role: str
) -> List[Dict[str, Any]]:
    """Group audit rows of one actor role by their new_status."""
    cursor = conn.execute(
        """
        SELECT new_status AS status, COUNT(*) AS count
        FROM activity_logs
        WHERE updated_by_role = ?
        GROUP BY new_status
        ORDER BY new_status ASC
        """,
        (updated_by_role,),
    )
    return [_row_to_dict(row) for row in cursor.fetchall()]


def _application_filter(
    applicant_ref: Optional[str], is_technical: Optional[bool]
) -> Tuple[str, List[Any]]:
    clauses = []
    params: List[Any] = []
    if applicant_ref is not None:
        clauses.append("a.applicant_ref = ?")
        params.append(applicant_ref)
    if is_technical is not None:
        clauses.append("r.is_technical = ?")
        params.append(1 if is_technical else 0)
    where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
    return where, params


def count_applications(
    conn: sqlite3.Connection,
    applicant_ref: Optional[str] = None,
    is_technical: Optional[bool] = None,
) -> int:
    """Count applications matching the optional applicant and role-kind filters."""
    where, params = _application_filter(applicant_ref, is_technical)
    cursor = conn.execute(
        f"""
        SELECT COUNT(*) AS total
        FROM applications a
        JOIN roles r ON r.id = a.role_id
        {where}
        """,
        params,
    )
    return int(cursor.fetchone()["total"])


def fetch_applications(
    conn: sqlite3.Connection,
    applicant_ref: Optional[str] = None,
    is_technical: Optional[bool] = None,
    skip: int = 0,
    take: int = 50,
) -> List[Dict[str, Any]]:
    """
    Page through applications, newest first.

    Args:
        conn: Database connection
        applicant_ref: Only this applicant's applications
        is_technical: Only technical (True) or non-technical (False) roles
        skip: Rows to skip
        take: Maximum rows to return

    Returns:
        List of application dicts ordered by created_at DESC, id DESC
    """
    where, params = _application_filter(applicant_ref, is_technical)
    cursor = conn.execute(
        f"""
        SELECT {_APPLICATION_COLUMNS}
        FROM applications a
        JOIN roles r ON r.id = a.role_id
        {where}
        ORDER BY a.created_at DESC, a.id DESC
        LIMIT ? OFFSET ?
        """,
        params + [take, skip],
    )
    applications = []
    for row in cursor.fetchall():
        record = _row_to_dict(row)
        record["is_technical"] = bool(record["is_technical"])
        applications.append(record)
    return applications


def count_applications_by_status(
    conn: sqlite3.Connection, applicant_ref: Optional[str] = None
) -> List[Dict[str, Any]]:
    """Group applications by current_status, optionally for one applicant."""
    where, params = _application_filter(applicant_ref, None)
    cursor = conn.execute(
        f"""
        SELECT a.current_status AS status, COUNT(*) AS count
        FROM applications a
        JOIN roles r ON r.id = a.role_id
        {where}
        GROUP BY a.current_status
        ORDER BY a.current_status ASC
        """,
        params,
    )
    return [_row_to_dict(row) for row in cursor.fetchall()]


def count_rows(conn: sqlite3.Connection, table: str) -> int:
    """Total rows of one of the pipeline tables."""
    if table not in ("roles", "applications", "activity_logs", "bot_jobs"):
        raise ValueError(f"Unknown table: {table}")
    cursor = conn.execute(f"SELECT COUNT(*) AS total FROM {table}")
    return int(cursor.fetchone()["total"])
