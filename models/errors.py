"""
Error model for HireBot tool handlers.

Provides structured, machine-distinguishable error codes and sanitized
error messages shared by the policy, lock, executor and bot layers.
"""

from enum import Enum
from typing import Any, Dict, List, Optional
import re


class ErrorCode(str, Enum):
    """Structured error codes for the MCP tools."""
    VALIDATION_ERROR = "VALIDATION_ERROR"
    TRANSITION_ERROR = "TRANSITION_ERROR"
    LOCK_CONFLICT = "LOCK_CONFLICT"
    CONCURRENCY_CONFLICT = "CONCURRENCY_CONFLICT"
    NOT_FOUND = "NOT_FOUND"
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    DB_NOT_FOUND = "DB_NOT_FOUND"
    DB_ERROR = "DB_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class ToolError(Exception):
    """Base exception for tool errors with structured error information."""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        retryable: bool = False,
        original_error: Optional[Exception] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        """
        Initialize a tool error.

        Args:
            code: The error code
            message: Human-readable error message
            retryable: Whether the operation can be retried
            original_error: The original exception if this wraps another error
            details: Optional structured context (e.g. allowed transition targets)
        """
        self.code = code
        self.message = message
        self.retryable = retryable
        self.original_error = original_error
        self.details = details
        super().__init__(message)

    def to_dict(self) -> dict:
        """Convert error to dictionary format for MCP response."""
        error = {
            "code": self.code.value,
            "message": self.message,
            "retryable": self.retryable,
        }
        if self.details:
            error["details"] = self.details
        return {"error": error}


def sanitize_path(path: str) -> str:
    """
    Sanitize file paths to avoid exposing sensitive system details.

    Returns only the basename for absolute paths, keeps relative paths.
    """
    import os
    if os.path.isabs(path):
        return os.path.basename(path)
    return path


def sanitize_sql_error(error_msg: str) -> str:
    """
    Sanitize SQL error messages to remove sensitive details.

    Removes SQL fragments and absolute paths, keeps actionable information.

    Args:
        error_msg: The original error message

    Returns:
        Sanitized error message
    """
    sanitized = re.sub(r'SQL:.*', '', error_msg, flags=re.IGNORECASE)
    sanitized = re.sub(r'\b(SELECT|INSERT|UPDATE|DELETE)\b.*', '[SQL query]', sanitized, flags=re.IGNORECASE)
    sanitized = re.sub(r'/[^\s]+/', '[path]/', sanitized)
    return sanitized.strip()


def sanitize_stack_trace(error_msg: str) -> str:
    """Keep only the first line of a multi-line error message."""
    lines = error_msg.split('\n')
    if lines:
        return lines[0].strip()
    return error_msg


def sanitize_error_message(error: Exception) -> str:
    """
    Reduce an exception to a short, safe message for reports and job details.

    ToolErrors are already sanitized and are returned verbatim.
    """
    if isinstance(error, ToolError):
        return error.message
    return sanitize_stack_trace(sanitize_sql_error(str(error))) or type(error).__name__


def create_validation_error(message: str) -> ToolError:
    """Create a VALIDATION_ERROR (bad input, unknown status, missing role)."""
    return ToolError(
        code=ErrorCode.VALIDATION_ERROR,
        message=message,
        retryable=False
    )


def create_transition_error(
    current_status: str, target_status: str, allowed_targets: List[str]
) -> ToolError:
    """
    Create a TRANSITION_ERROR for a move the status policy forbids.

    Args:
        current_status: Status the application is in
        target_status: Requested status
        allowed_targets: Statuses that would have been accepted

    Returns:
        ToolError with TRANSITION_ERROR code and allowed targets in details
    """
    allowed_str = ", ".join(allowed_targets) if allowed_targets else "none"
    return ToolError(
        code=ErrorCode.TRANSITION_ERROR,
        message=(
            f"Invalid transition from {current_status} to {target_status}. "
            f"Allowed targets: {allowed_str}"
        ),
        retryable=False,
        details={"allowed_targets": list(allowed_targets)},
    )


def create_lock_conflict_error(application_id: int) -> ToolError:
    """Create a LOCK_CONFLICT error; the holder will release, so retry later."""
    return ToolError(
        code=ErrorCode.LOCK_CONFLICT,
        message=f"Application {application_id} is currently locked by another writer",
        retryable=True,
    )


def create_concurrency_conflict_error(application_id: int) -> ToolError:
    """Create a CONCURRENCY_CONFLICT error for a stale read detected at write time."""
    return ToolError(
        code=ErrorCode.CONCURRENCY_CONFLICT,
        message=(
            f"Application {application_id} was updated by another writer. "
            "Reload and try again."
        ),
        retryable=True,
    )


def create_not_found_error(entity: str, identifier: Any) -> ToolError:
    """
    Create a NOT_FOUND error.

    Args:
        entity: Human-readable entity name (e.g. "Application", "Bot job")
        identifier: The identifier that was looked up

    Returns:
        ToolError with NOT_FOUND code
    """
    return ToolError(
        code=ErrorCode.NOT_FOUND,
        message=f"{entity} not found: {identifier}",
        retryable=False,
    )


def create_configuration_error(message: str) -> ToolError:
    """Create a CONFIGURATION_ERROR for missing or invalid run parameters."""
    return ToolError(
        code=ErrorCode.CONFIGURATION_ERROR,
        message=f"Configuration error: {message}",
        retryable=False,
    )


def create_db_not_found_error(db_path: str) -> ToolError:
    """
    Create a database not found error.

    Args:
        db_path: The database path that was not found

    Returns:
        ToolError with DB_NOT_FOUND code
    """
    sanitized_path = sanitize_path(db_path)
    return ToolError(
        code=ErrorCode.DB_NOT_FOUND,
        message=f"Database not found: {sanitized_path}",
        retryable=False
    )


def create_db_error(message: str, retryable: bool = False, original_error: Optional[Exception] = None) -> ToolError:
    """
    Create a database error.

    Args:
        message: Description of the database error
        retryable: Whether the operation can be retried
        original_error: The original exception

    Returns:
        ToolError with DB_ERROR code
    """
    sanitized_message = sanitize_sql_error(message)
    sanitized_message = sanitize_stack_trace(sanitized_message)

    return ToolError(
        code=ErrorCode.DB_ERROR,
        message=f"Database error: {sanitized_message}",
        retryable=retryable,
        original_error=original_error
    )


def create_internal_error(message: str, original_error: Optional[Exception] = None) -> ToolError:
    """
    Create an internal error for unexpected exceptions.

    Args:
        message: Description of the internal error
        original_error: The original exception

    Returns:
        ToolError with INTERNAL_ERROR code
    """
    sanitized_message = sanitize_stack_trace(message)

    return ToolError(
        code=ErrorCode.INTERNAL_ERROR,
        message=f"Internal error: {sanitized_message}",
        retryable=True,
        original_error=original_error
    )
