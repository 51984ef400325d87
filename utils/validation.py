"""
Input validation utilities for HireBot tool handlers.

Validates identifiers, statuses, actor metadata and bot run parameters.
Interactive input problems raise VALIDATION_ERROR; bad bot run parameters
raise CONFIGURATION_ERROR so the run can be recorded as Failed.
"""

from datetime import datetime, timezone
from typing import Optional, Tuple

from models.errors import create_configuration_error, create_validation_error
from models.status import ApplicationStatus

# Bot run parameters
MIN_BATCH_SIZE = 1
MAX_BATCH_SIZE = 1000
MAX_WORKERS_LIMIT = 32

# list_bot_jobs paging
DEFAULT_JOBS_LIMIT = 10
MIN_JOBS_LIMIT = 1
MAX_JOBS_LIMIT = 100

# list_applications paging
DEFAULT_PAGE_TAKE = 50
MAX_PAGE_TAKE = 500

# Free-text bounds
MAX_COMMENT_LENGTH = 2000
MIN_ROLE_NAME_LENGTH = 2
MAX_ROLE_NAME_LENGTH = 200


def _validate_positive_id(value, label: str) -> int:
    if value is None:
        raise create_validation_error(f"Invalid {label}: cannot be null")

    # bool is a subclass of int in Python, reject explicitly
    if isinstance(value, bool) or not isinstance(value, int):
        raise create_validation_error(
            f"Invalid {label} type: expected integer, got {type(value).__name__}"
        )

    if value < 1:
        raise create_validation_error(f"Invalid {label}: {value} must be a positive integer (>= 1)")

    return value


def validate_application_id(application_id) -> int:
    """
    Validate an application identifier.

    Raises:
        ToolError: If application_id is not a positive integer
    """
    return _validate_positive_id(application_id, "application ID")


def validate_job_id(job_id) -> int:
    """
    Validate a bot job identifier.

    Raises:
        ToolError: If job_id is not a positive integer
    """
    return _validate_positive_id(job_id, "job ID")


def validate_status(status) -> ApplicationStatus:
    """
    Validate a target application status.

    Args:
        status: The status value to validate

    Returns:
        The matching ApplicationStatus member

    Raises:
        ToolError: If status is missing, not a string, or unknown
    """
    if status is None:
        raise create_validation_error("Invalid status: cannot be null")

    if isinstance(status, ApplicationStatus):
        return status

    if not isinstance(status, str):
        raise create_validation_error(
            f"Invalid status type: expected string, got {type(status).__name__}"
        )

    if not status:
        raise create_validation_error("Invalid status: cannot be empty")

    if status != status.strip():
        raise create_validation_error(
            f"Invalid status: '{status}' contains leading or trailing whitespace"
        )

    # Case-sensitive
    try:
        return ApplicationStatus(status)
    except ValueError:
        allowed = ", ".join(s.value for s in ApplicationStatus)
        raise create_validation_error(
            f"Invalid status value: '{status}'. Allowed values are: {allowed}"
        )


def validate_actor(value, field_name: str) -> str:
    """
    Validate actor identity/role strings supplied by the caller.

    The identity layer has already verified them; only shape is checked here.
    """
    if value is None:
        raise create_validation_error(f"Invalid {field_name}: cannot be null")

    if not isinstance(value, str):
        raise create_validation_error(
            f"Invalid {field_name} type: expected string, got {type(value).__name__}"
        )

    if not value.strip():
        raise create_validation_error(f"Invalid {field_name}: cannot be empty")

    return value.strip()


def validate_comment(comment) -> Optional[str]:
    """Validate an optional free-text comment for the audit trail."""
    if comment is None:
        return None

    if not isinstance(comment, str):
        raise create_validation_error(
            f"Invalid comment type: expected string, got {type(comment).__name__}"
        )

    if len(comment) > MAX_COMMENT_LENGTH:
        raise create_validation_error(
            f"Invalid comment: length {len(comment)} exceeds maximum of {MAX_COMMENT_LENGTH}"
        )

    return comment if comment.strip() else None


def validate_role_name(name) -> str:
    """Validate a role name (2-200 characters after trimming)."""
    if name is None or not isinstance(name, str) or not name.strip():
        raise create_validation_error("Invalid role name: role name is required")

    name = name.strip()
    if not MIN_ROLE_NAME_LENGTH <= len(name) <= MAX_ROLE_NAME_LENGTH:
        raise create_validation_error(
            f"Invalid role name: must be between {MIN_ROLE_NAME_LENGTH} and "
            f"{MAX_ROLE_NAME_LENGTH} characters"
        )
    return name


def validate_dry_run(dry_run: Optional[bool]) -> bool:
    """
    Validate the dry_run flag of a bot run.

    Returns:
        Validated dry_run value (default: False)
    """
    if dry_run is None:
        return False

    if not isinstance(dry_run, bool):
        raise create_validation_error(
            f"Invalid dry_run type: expected boolean, got {type(dry_run).__name__}"
        )

    return dry_run


def validate_jobs_limit(limit: Optional[int]) -> int:
    """
    Validate the limit of list_bot_jobs.

    Returns:
        Validated limit (default: 10)
    """
    if limit is None:
        return DEFAULT_JOBS_LIMIT

    if isinstance(limit, bool) or not isinstance(limit, int):
        raise create_validation_error(
            f"Invalid limit type: expected integer, got {type(limit).__name__}"
        )

    if limit < MIN_JOBS_LIMIT:
        raise create_validation_error(f"Invalid limit: {limit} is below minimum of {MIN_JOBS_LIMIT}")

    if limit > MAX_JOBS_LIMIT:
        raise create_validation_error(f"Invalid limit: {limit} exceeds maximum of {MAX_JOBS_LIMIT}")

    return limit


def validate_page(skip: Optional[int], take: Optional[int]) -> Tuple[int, int]:
    """
    Validate list_applications paging.

    Returns:
        (skip, take) with defaults 0 and 50

    Raises:
        ToolError: If skip is negative or take is outside 1..500
    """
    skip = 0 if skip is None else skip
    take = DEFAULT_PAGE_TAKE if take is None else take

    for label, value in (("skip", skip), ("take", take)):
        if isinstance(value, bool) or not isinstance(value, int):
            raise create_validation_error(
                f"Invalid {label} type: expected integer, got {type(value).__name__}"
            )

    if skip < 0:
        raise create_validation_error(f"Invalid skip: {skip} must be >= 0")

    if take < 1 or take > MAX_PAGE_TAKE:
        raise create_validation_error(f"Invalid take: {take} must be between 1 and {MAX_PAGE_TAKE}")

    return skip, take


# ============================================================================
# Bot run parameters (CONFIGURATION_ERROR)
# ============================================================================


def validate_batch_size(batch_size) -> int:
    """
    Validate the candidate cap of a bot run.

    Raises:
        ToolError: CONFIGURATION_ERROR if batch_size is not an integer in 1..1000
    """
    if isinstance(batch_size, bool) or not isinstance(batch_size, int):
        raise create_configuration_error(
            f"batch_size must be an integer, got {type(batch_size).__name__}"
        )

    if batch_size < MIN_BATCH_SIZE or batch_size > MAX_BATCH_SIZE:
        raise create_configuration_error(
            f"batch_size {batch_size} is outside the allowed range "
            f"{MIN_BATCH_SIZE}-{MAX_BATCH_SIZE}"
        )

    return batch_size


def validate_cooldown_seconds(cooldown) -> int:
    """
    Validate the minimum number of seconds between automated moves.

    Accepts an int or a numeric string (the raw environment value).

    Raises:
        ToolError: CONFIGURATION_ERROR if missing, unparsable or negative
    """
    if cooldown is None or isinstance(cooldown, bool):
        raise create_configuration_error("bot cooldown seconds is not configured")

    if isinstance(cooldown, str):
        try:
            cooldown = int(cooldown.strip())
        except ValueError:
            raise create_configuration_error(
                f"bot cooldown seconds is not an integer: {cooldown!r}"
            )

    if not isinstance(cooldown, int):
        raise create_configuration_error(
            f"bot cooldown seconds must be an integer, got {type(cooldown).__name__}"
        )

    if cooldown < 0:
        raise create_configuration_error(f"bot cooldown seconds cannot be negative: {cooldown}")

    return cooldown


def validate_max_workers(max_workers) -> int:
    """
    Validate the size of the bot's worker pool.

    Raises:
        ToolError: CONFIGURATION_ERROR if not an integer in 1..32
    """
    if isinstance(max_workers, bool) or not isinstance(max_workers, int):
        raise create_configuration_error(
            f"max_workers must be an integer, got {type(max_workers).__name__}"
        )

    if max_workers < 1 or max_workers > MAX_WORKERS_LIMIT:
        raise create_configuration_error(
            f"max_workers {max_workers} is outside the allowed range 1-{MAX_WORKERS_LIMIT}"
        )

    return max_workers


# ============================================================================
# Timestamps
# ============================================================================


def format_utc_timestamp(moment: datetime) -> str:
    """
    Format a datetime as ISO 8601 UTC with millisecond precision and Z suffix.

    Stored timestamps all use this format, so they compare correctly as strings.
    Naive datetimes are taken to be UTC.
    """
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    moment = moment.astimezone(timezone.utc)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def get_current_utc_timestamp() -> str:
    """
    Generate a UTC timestamp in ISO 8601 format with millisecond precision.

    Example: 2026-02-04T03:47:36.966Z
    """
    return format_utc_timestamp(datetime.now(timezone.utc))
