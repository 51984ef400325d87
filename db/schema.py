"""
Database path resolution and schema bootstrap for the HireBot store.

Creates the roles, applications, activity_logs and bot_jobs tables plus the
indexes used by candidate selection. Every operation here is idempotent.
"""

import os
import sqlite3
from pathlib import Path
from typing import Optional

from models.errors import create_db_error

# Default database path relative to repository root
DEFAULT_DB_PATH = "data/hirebot.db"

# Roles seeded into a fresh database: (name, is_technical)
DEFAULT_ROLES = (
    ("Applicant", False),
    ("Bot", False),
    ("Admin", False),
    ("Backend Engineer", True),
    ("Frontend Developer", True),
    ("DevOps Engineer", True),
    ("Sales Associate", False),
    ("HR Manager", False),
)


def resolve_db_path(db_path: Optional[str] = None) -> Path:
    """
    Resolve the database path with support for overrides and defaults.

    Resolution order:
    1. Provided db_path parameter
    2. HIREBOT_DB environment variable
    3. HIREBOT_ROOT/data/hirebot.db
    4. Default path: data/hirebot.db

    Args:
        db_path: Optional database path override

    Returns:
        Resolved absolute Path to the database
    """
    if db_path is not None:
        path_str = db_path
    else:
        db_env = os.getenv("HIREBOT_DB")
        if db_env:
            path_str = db_env
        else:
            root_env = os.getenv("HIREBOT_ROOT")
            if root_env:
                return Path(root_env) / "data" / "hirebot.db"
            path_str = DEFAULT_DB_PATH

    path = Path(path_str)

    if not path.is_absolute():
        repo_root = Path(__file__).resolve().parents[1]  # db/ -> repo/
        path = repo_root / path

    return path


def ensure_parent_dirs(db_path: Path) -> None:
    """
    Ensure parent directories exist for the database file.

    Raises:
        ToolError: If directory creation fails
    """
    try:
        db_path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise create_db_error(
            f"Failed to create parent directories: {str(e)}", retryable=False, original_error=e
        ) from e


def bootstrap_schema(conn: sqlite3.Connection) -> None:
    """
    Bootstrap all tables and indexes if they don't exist.

    Creates:
    - roles: role catalogue with the is_technical flag
    - applications: one row per application, carrying the advisory lock_token
      and the row version used for optimistic conflict detection
    - activity_logs: append-only status history
    - bot_jobs: one row per batch run

    Args:
        conn: Database connection

    Raises:
        ToolError: If schema creation fails
    """
    try:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS roles (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL UNIQUE,
                is_technical INTEGER NOT NULL DEFAULT 0
            )
        """)

        conn.execute("""
            CREATE TABLE IF NOT EXISTS applications (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                applicant_ref TEXT NOT NULL,
                role_id INTEGER NOT NULL REFERENCES roles(id),
                current_status TEXT NOT NULL DEFAULT 'Applied',
                created_at TEXT NOT NULL,
                last_automated_run_at TEXT,
                lock_token TEXT,
                version INTEGER NOT NULL DEFAULT 0
            )
        """)

        conn.execute("""
            CREATE TABLE IF NOT EXISTS activity_logs (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                application_id INTEGER NOT NULL REFERENCES applications(id),
                old_status TEXT,
                new_status TEXT NOT NULL,
                updated_by TEXT NOT NULL,
                updated_by_role TEXT NOT NULL,
                comment TEXT,
                created_at TEXT NOT NULL
            )
        """)

        conn.execute("""
            CREATE TABLE IF NOT EXISTS bot_jobs (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                triggered_by TEXT NOT NULL,
                triggered_at TEXT NOT NULL,
                status TEXT NOT NULL DEFAULT 'Running',
                dry_run INTEGER NOT NULL DEFAULT 0,
                total_processed INTEGER,
                total_succeeded INTEGER,
                total_failed INTEGER,
                total_skipped INTEGER,
                details TEXT,
                finished_at TEXT
            )
        """)

        conn.execute("CREATE INDEX IF NOT EXISTS idx_applications_lock_token ON applications(lock_token)")
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_applications_last_automated_run_at "
            "ON applications(last_automated_run_at)"
        )
        conn.execute("CREATE INDEX IF NOT EXISTS idx_applications_role_id ON applications(role_id)")
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_activity_logs_application_id "
            "ON activity_logs(application_id)"
        )
        conn.execute("CREATE INDEX IF NOT EXISTS idx_bot_jobs_triggered_at ON bot_jobs(triggered_at)")

        conn.commit()

    except sqlite3.Error as e:
        raise create_db_error(
            f"Failed to bootstrap schema: {str(e)}", retryable=False, original_error=e
        ) from e


def seed_default_roles(conn: sqlite3.Connection) -> int:
    """
    Insert the default role catalogue, skipping roles that already exist.

    Returns:
        Number of roles inserted
    """
    try:
        inserted = 0
        for name, is_technical in DEFAULT_ROLES:
            cursor = conn.execute(
                "INSERT OR IGNORE INTO roles (name, is_technical) VALUES (?, ?)",
                (name, 1 if is_technical else 0),
            )
            inserted += cursor.rowcount
        conn.commit()
        return inserted
    except sqlite3.Error as e:
        raise create_db_error(
            f"Failed to seed roles: {str(e)}", retryable=False, original_error=e
        ) from e


def initialize_database(db_path: Optional[str] = None, seed_roles: bool = False) -> Path:
    """
    Create the database file if needed and bootstrap its schema.

    Args:
        db_path: Optional database path override
        seed_roles: Also insert DEFAULT_ROLES

    Returns:
        Resolved database path
    """
    resolved = resolve_db_path(db_path)
    ensure_parent_dirs(resolved)

    try:
        conn = sqlite3.connect(str(resolved))
    except sqlite3.Error as e:
        raise create_db_error(str(e), retryable=False, original_error=e) from e

    try:
        bootstrap_schema(conn)
        if seed_roles:
            seed_default_roles(conn)
    finally:
        conn.close()

    return resolved
