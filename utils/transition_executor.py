"""
Apply one validated status change and its audit entry as one atomic unit.

The application is read, checked against the status policy, then written
with a conditional UPDATE keyed on the row version and status that were
read. If another writer got there first the UPDATE matches nothing, the
transaction is rolled back, and CONCURRENCY_CONFLICT is raised.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from db.pipeline_reader import fetch_application, get_connection
from db.pipeline_writer import DEFAULT_TIMEOUT_SECONDS, PipelineWriter
from models.errors import create_concurrency_conflict_error, create_not_found_error
from models.status import ApplicationStatus
from utils.status_policy import check_transition_or_raise
from utils.validation import (
    format_utc_timestamp,
    validate_actor,
    validate_application_id,
    validate_comment,
    validate_status,
)


@dataclass(frozen=True)
class TransitionOutcome:
    """What a successful transition changed."""

    application_id: int
    old_status: ApplicationStatus
    new_status: ApplicationStatus
    activity_log_id: int
    updated_at: str
    is_automated: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "application_id": self.application_id,
            "previous_status": self.old_status.value,
            "new_status": self.new_status.value,
            "activity_log_id": self.activity_log_id,
            "updated_at": self.updated_at,
        }


def load_application(
    db_path: Optional[str], application_id: int, timeout: float = DEFAULT_TIMEOUT_SECONDS
) -> Optional[Dict[str, Any]]:
    """Read one application snapshot (with its role) for validation."""
    with get_connection(db_path, timeout=timeout) as conn:
        return fetch_application(conn, application_id)


class TransitionExecutor:
    """Validated, audited, conflict-checked status writes."""

    def __init__(
        self,
        db_path: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Args:
            db_path: Optional database path override
            timeout: Seconds to wait on a locked database
            clock: Returns the current UTC time; injectable for tests
        """
        self.db_path = db_path
        self.timeout = timeout
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def apply_transition(
        self,
        application_id: int,
        new_status,
        actor: str,
        actor_role: str,
        comment: Optional[str] = None,
        is_automated: bool = False,
        snapshot: Optional[Dict[str, Any]] = None,
    ) -> TransitionOutcome:
        """
        Move one application to new_status.

        Steps:
        1. Validate arguments and load the application (NOT_FOUND if absent)
        2. Check the status policy (TRANSITION_ERROR, nothing written)
        3. In one transaction: conditional status UPDATE (plus
           last_automated_run_at when is_automated) and one activity_logs row
        4. If the row changed since it was read: CONCURRENCY_CONFLICT, nothing written

        Args:
            application_id: Application to move
            new_status: Target status (ApplicationStatus or its string value)
            actor: Identity recorded as updated_by
            actor_role: Role recorded as updated_by_role
            comment: Optional audit comment
            is_automated: True for bot moves; stamps last_automated_run_at
            snapshot: Application row already read by the caller; it is the
                baseline for conflict detection instead of a fresh read

        Returns:
            TransitionOutcome

        Raises:
            ToolError: VALIDATION_ERROR, NOT_FOUND, TRANSITION_ERROR,
                CONCURRENCY_CONFLICT, DB_ERROR
        """
        application_id = validate_application_id(application_id)
        target = validate_status(new_status)
        actor = validate_actor(actor, "actor")
        actor_role = validate_actor(actor_role, "actor_role")
        comment = validate_comment(comment)

        application = snapshot
        if application is None:
            application = load_application(self.db_path, application_id, timeout=self.timeout)
        if application is None:
            raise create_not_found_error("Application", application_id)

        current = ApplicationStatus(application["current_status"])
        check_transition_or_raise(current, target)

        timestamp = format_utc_timestamp(self.clock())

        with PipelineWriter(self.db_path, timeout=self.timeout) as writer:
            updated = writer.update_status_if_unchanged(
                application_id=application_id,
                expected_status=current.value,
                expected_version=application["version"],
                new_status=target.value,
                automated_run_at=timestamp if is_automated else None,
            )
            if not updated:
                raise create_concurrency_conflict_error(application_id)

            activity_log_id = writer.insert_activity_log(
                application_id=application_id,
                old_status=current.value,
                new_status=target.value,
                updated_by=actor,
                updated_by_role=actor_role,
                comment=comment,
                timestamp=timestamp,
            )
            writer.commit()

        return TransitionOutcome(
            application_id=application_id,
            old_status=current,
            new_status=target,
            activity_log_id=activity_log_id,
            updated_at=timestamp,
            is_automated=is_automated,
        )
