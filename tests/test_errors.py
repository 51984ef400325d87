"""
Unit tests for error model and sanitization functions.

Tests error codes, error structure, factories, and message sanitization.
"""

from models.errors import (
    ErrorCode,
    ToolError,
    create_concurrency_conflict_error,
    create_configuration_error,
    create_db_error,
    create_db_not_found_error,
    create_internal_error,
    create_lock_conflict_error,
    create_not_found_error,
    create_transition_error,
    create_validation_error,
    sanitize_error_message,
    sanitize_path,
    sanitize_sql_error,
    sanitize_stack_trace,
)


class TestErrorCode:
    """Tests for ErrorCode enum."""

    def test_all_error_codes_exist(self):
        assert ErrorCode.VALIDATION_ERROR == "VALIDATION_ERROR"
        assert ErrorCode.TRANSITION_ERROR == "TRANSITION_ERROR"
        assert ErrorCode.LOCK_CONFLICT == "LOCK_CONFLICT"
        assert ErrorCode.CONCURRENCY_CONFLICT == "CONCURRENCY_CONFLICT"
        assert ErrorCode.NOT_FOUND == "NOT_FOUND"
        assert ErrorCode.CONFIGURATION_ERROR == "CONFIGURATION_ERROR"
        assert ErrorCode.DB_NOT_FOUND == "DB_NOT_FOUND"
        assert ErrorCode.DB_ERROR == "DB_ERROR"
        assert ErrorCode.INTERNAL_ERROR == "INTERNAL_ERROR"


class TestToolError:
    """Tests for ToolError exception class."""

    def test_to_dict_without_details(self):
        error = ToolError(ErrorCode.NOT_FOUND, "Application not found: 3")

        assert error.to_dict() == {
            "error": {
                "code": "NOT_FOUND",
                "message": "Application not found: 3",
                "retryable": False,
            }
        }

    def test_to_dict_with_details(self):
        error = ToolError(
            ErrorCode.TRANSITION_ERROR, "nope", details={"allowed_targets": ["Rejected"]}
        )

        assert error.to_dict()["error"]["details"] == {"allowed_targets": ["Rejected"]}

    def test_is_exception(self):
        error = create_validation_error("bad")
        assert isinstance(error, Exception)
        assert str(error) == "bad"


class TestFactories:
    """Tests for the error factory functions."""

    def test_transition_error(self):
        error = create_transition_error("HRInterview", "Reviewed", ["Offer", "Hired", "Rejected"])

        assert error.code == ErrorCode.TRANSITION_ERROR
        assert error.retryable is False
        assert "HRInterview" in error.message
        assert "Reviewed" in error.message
        assert error.details == {"allowed_targets": ["Offer", "Hired", "Rejected"]}

    def test_transition_error_without_targets(self):
        error = create_transition_error("Hired", "Rejected", [])
        assert "Allowed targets: none" in error.message

    def test_conflicts_are_retryable(self):
        assert create_lock_conflict_error(7).retryable is True
        assert create_concurrency_conflict_error(7).retryable is True
        assert create_lock_conflict_error(7).code == ErrorCode.LOCK_CONFLICT
        assert create_concurrency_conflict_error(7).code == ErrorCode.CONCURRENCY_CONFLICT

    def test_not_found(self):
        error = create_not_found_error("Bot job", 12)
        assert error.message == "Bot job not found: 12"
        assert error.retryable is False

    def test_configuration_error(self):
        error = create_configuration_error("batch_size 0 is outside the allowed range 1-1000")
        assert error.code == ErrorCode.CONFIGURATION_ERROR
        assert error.message.startswith("Configuration error: ")

    def test_db_not_found_hides_directories(self):
        error = create_db_not_found_error("/secret/place/hirebot.db")
        assert error.message == "Database not found: hirebot.db"

    def test_db_error_strips_sql(self):
        error = create_db_error("near SELECT * FROM applications: syntax error")
        assert "applications" not in error.message
        assert error.message.startswith("Database error:")

    def test_internal_error_is_retryable(self):
        error = create_internal_error("boom\nTraceback ...")
        assert error.retryable is True
        assert error.message == "Internal error: boom"


class TestSanitization:
    """Tests for message sanitization helpers."""

    def test_sanitize_path(self):
        assert sanitize_path("/var/lib/hirebot.db") == "hirebot.db"
        assert sanitize_path("data/hirebot.db") == "data/hirebot.db"

    def test_sanitize_sql_error(self):
        assert sanitize_sql_error("error in UPDATE applications SET x=1") == "error in [SQL query]"

    def test_sanitize_stack_trace(self):
        assert sanitize_stack_trace("first\nsecond") == "first"

    def test_sanitize_error_message_keeps_tool_error(self):
        error = create_lock_conflict_error(5)
        assert sanitize_error_message(error) == error.message

    def test_sanitize_error_message_plain_exception(self):
        assert sanitize_error_message(RuntimeError("disk full\nmore")) == "disk full"

    def test_sanitize_error_message_empty(self):
        assert sanitize_error_message(RuntimeError()) == "RuntimeError"
