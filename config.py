"""
Configuration module for the HireBot MCP Server.

Provides centralized configuration management with support for:
- Environment variables
- Default values
- Path resolution
- Logging configuration
"""

import logging
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Load environment variables from .env file at project root
_env_path = Path(__file__).resolve().parent / ".env"
load_dotenv(dotenv_path=_env_path)

DEFAULT_DB_RELATIVE_PATH = Path("data") / "hirebot.db"


def _parse_bool(env_var: str, default: bool) -> bool:
    """Parse a boolean value from an environment variable."""
    value = os.getenv(env_var)
    if value is None:
        return default
    return value.lower() in ("true", "1", "t", "y", "yes")


def _parse_int(env_var: str, default: int) -> int:
    """Parse an integer from env, falling back to default on garbage."""
    value = os.getenv(env_var)
    if value is None or not value.strip():
        return default
    try:
        return int(value)
    except ValueError:
        return default


class Config:
    """
    Configuration class for MCP server settings.

    Supports configuration via environment variables (and .env file) with sensible defaults.
    All relative paths are resolved against the repository root.
    """

    def __init__(self):
        """Initialize configuration from environment variables and defaults."""
        self._repo_root = self._find_repo_root()

        # Database configuration
        self.db_path = self._resolve_db_path()
        self.db_timeout_seconds = float(os.getenv("HIREBOT_DB_TIMEOUT_SECONDS", "5"))

        # Logging configuration
        self.log_level = os.getenv("HIREBOT_LOG_LEVEL", "INFO").upper()
        self.log_file = self._resolve_log_path()

        # Server configuration
        self.server_name = os.getenv("HIREBOT_SERVER_NAME", "hirebot-mcp-server")

        # Bot run configuration. The cooldown stays raw here and is validated
        # per run, so a bad value fails the job instead of the process.
        self.bot_cooldown_seconds = os.getenv("HIREBOT_BOT_COOLDOWN_SECONDS", "60")
        self.bot_batch_size = _parse_int("HIREBOT_BOT_BATCH_SIZE", 50)
        self.bot_max_workers = _parse_int("HIREBOT_BOT_MAX_WORKERS", 1)
        self.bot_actor = os.getenv("HIREBOT_BOT_ACTOR", "bot@hirebot.local")
        self.recent_jobs_limit = _parse_int("HIREBOT_RECENT_JOBS_LIMIT", 10)

        # Interactive update policy
        self.allow_manual_technical_updates = _parse_bool(
            "HIREBOT_ALLOW_MANUAL_TECHNICAL_UPDATES", False
        )

    def _find_repo_root(self) -> Path:
        """
        Find the repository root directory.

        config.py lives at the repository root.
        """
        return Path(__file__).resolve().parent

    def _resolve_db_path(self) -> Path:
        """
        Resolve the database path from environment or default.

        Resolution order:
        1. HIREBOT_DB environment variable (absolute or relative)
        2. HIREBOT_ROOT/data/hirebot.db
        3. Default: <repo_root>/data/hirebot.db

        Returns:
            Resolved absolute Path to database
        """
        db_env = os.getenv("HIREBOT_DB")
        if db_env:
            db_path = Path(db_env)
            if db_path.is_absolute():
                return db_path
            return self._repo_root / db_path

        root_env = os.getenv("HIREBOT_ROOT")
        if root_env:
            return Path(root_env) / DEFAULT_DB_RELATIVE_PATH

        return self._repo_root / DEFAULT_DB_RELATIVE_PATH

    def _resolve_log_path(self) -> Optional[Path]:
        """
        Resolve the log file path from environment.

        If HIREBOT_LOG_FILE is set, logs will be written to that file.
        Otherwise, logs go to stderr only.
        """
        log_env = os.getenv("HIREBOT_LOG_FILE")
        if not log_env:
            return None

        log_path = Path(log_env)
        if log_path.is_absolute():
            return log_path
        return self._repo_root / log_path

    def setup_logging(self):
        """
        Configure logging based on configuration settings.

        Sets up logging to stderr and optionally to a file.
        Log level is controlled by HIREBOT_LOG_LEVEL.
        """
        numeric_level = getattr(logging, self.log_level, logging.INFO)

        formatter = logging.Formatter(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s", datefmt="%Y-%m-%d %H:%M:%S"
        )

        root_logger = logging.getLogger()
        root_logger.setLevel(numeric_level)

        # Remove existing handlers to avoid duplicates
        root_logger.handlers.clear()

        # stdout belongs to the stdio transport, so always log to stderr
        stderr_handler = logging.StreamHandler()
        stderr_handler.setLevel(numeric_level)
        stderr_handler.setFormatter(formatter)
        root_logger.addHandler(stderr_handler)

        if self.log_file:
            self.log_file.parent.mkdir(parents=True, exist_ok=True)

            file_handler = logging.FileHandler(self.log_file)
            file_handler.setLevel(numeric_level)
            file_handler.setFormatter(formatter)
            root_logger.addHandler(file_handler)

            logging.info(f"Logging to file: {self.log_file}")

        logging.info(f"Log level set to: {self.log_level}")
        logging.info(f"Repository root: {self._repo_root}")
        logging.info(f"Database path: {self.db_path}")

    def get_db_path_str(self) -> str:
        """Get database path as string for use in tool handlers."""
        return str(self.db_path)

    def validate(self) -> list[str]:
        """
        Validate configuration and return any warnings.

        Returns:
            List of warning messages (empty if all valid)
        """
        warnings = []

        if not self.db_path.exists():
            warnings.append(
                f"Database file not found: {self.db_path}. "
                "It will be created on first write."
            )

        try:
            cooldown = int(str(self.bot_cooldown_seconds).strip())
            if cooldown < 0:
                warnings.append(
                    f"HIREBOT_BOT_COOLDOWN_SECONDS is negative ({cooldown}); bot runs will fail."
                )
        except ValueError:
            warnings.append(
                f"HIREBOT_BOT_COOLDOWN_SECONDS is not an integer ({self.bot_cooldown_seconds!r}); "
                "bot runs will fail."
            )

        if self.bot_max_workers < 1:
            warnings.append(
                f"HIREBOT_BOT_MAX_WORKERS must be >= 1 (got {self.bot_max_workers}); using 1."
            )

        if self.log_file:
            log_dir = self.log_file.parent
            if not log_dir.exists():
                try:
                    log_dir.mkdir(parents=True, exist_ok=True)
                except Exception as e:
                    warnings.append(f"Cannot create log directory {log_dir}: {e}")
            elif not os.access(log_dir, os.W_OK):
                warnings.append(f"Log directory not writable: {log_dir}")

        return warnings


# Global configuration instance
config = Config()


def get_config() -> Config:
    """
    Get the global configuration instance.

    Returns:
        Global Config instance
    """
    return config
