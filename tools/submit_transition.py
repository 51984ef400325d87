"""
Main MCP tool handler for submit_transition.

Interactive single-application status change. Runs the same
acquire -> validate -> persist -> release unit the bot uses, so an admin
and a bot run can never both write the same application at once.
"""

from typing import Any, Dict

from pydantic import ValidationError

from config import get_config
from models.errors import ToolError, create_internal_error, create_not_found_error, create_validation_error
from schemas.applications import SubmitTransitionRequest, SubmitTransitionResponse
from utils.lock_coordinator import LockCoordinator
from utils.pydantic_error_mapper import map_pydantic_validation_error
from utils.transition_executor import TransitionExecutor, load_application
from utils.validation import (
    validate_actor,
    validate_application_id,
    validate_comment,
    validate_status,
)


def submit_transition(args: Dict[str, Any]) -> Dict[str, Any]:
    """
    Move one application to a new status on behalf of an interactive actor.

    Steps:
    1. Validate request shape and values (status must be a known stage)
    2. Load the application (NOT_FOUND if absent)
    3. Refuse technical-role applications unless manual updates are enabled
    4. Take the advisory lock (LOCK_CONFLICT if the bot or another admin holds it)
    5. Apply the transition with policy check and audit row
    6. Release the lock on every path, with bounded retries; a release that
       still fails after a committed change is reported as a warning

    Args:
        args: Dictionary containing parameters:
            - application_id (int): Application to move
            - new_status (str): Target status
            - actor (str): Verified identity of the caller
            - actor_role (str): Verified role of the caller
            - comment (str, optional): Audit comment
            - db_path (str, optional): Database path override

    Returns:
        Dictionary with structure (success case):
        {
            "success": true,
            "application_id": int,
            "previous_status": str,
            "new_status": str,
            "activity_log_id": int,
            "updated_at": str,
            "message": str,
            "warning": str        # only when the lock could not be released
        }

        On error, returns:
        {
            "error": {
                "code": str,         # VALIDATION_ERROR, NOT_FOUND, TRANSITION_ERROR,
                                     # LOCK_CONFLICT, CONCURRENCY_CONFLICT, DB_ERROR, ...
                "message": str,
                "retryable": bool,   # true for LOCK_CONFLICT and CONCURRENCY_CONFLICT
                "details": {...}     # allowed_targets for TRANSITION_ERROR
            }
        }
    """
    try:
        request = SubmitTransitionRequest.model_validate(args)

        application_id = validate_application_id(request.application_id)
        target = validate_status(request.new_status)
        actor = validate_actor(request.actor, "actor")
        actor_role = validate_actor(request.actor_role, "actor_role")
        comment = validate_comment(request.comment)

        config = get_config()
        timeout = config.db_timeout_seconds

        application = load_application(request.db_path, application_id, timeout=timeout)
        if application is None:
            raise create_not_found_error("Application", application_id)

        if application["is_technical"] and not config.allow_manual_technical_updates:
            raise create_validation_error(
                "Cannot manually update technical role applications; they are advanced by the bot"
            )

        locks = LockCoordinator(request.db_path, timeout=timeout)
        executor = TransitionExecutor(request.db_path, timeout=timeout)

        with locks.held(application_id) as lease:
            outcome = executor.apply_transition(
                application_id=application_id,
                new_status=target,
                actor=actor,
                actor_role=actor_role,
                comment=comment,
                is_automated=False,
            )

        warning = None
        if not lease.released:
            warning = f"Status updated but the lock could not be released: {lease.release_error}"

        return SubmitTransitionResponse(
            success=True,
            message="Application status updated successfully",
            warning=warning,
            **outcome.to_dict(),
        ).model_dump(exclude_none=True)

    except ValidationError as e:
        return map_pydantic_validation_error(e).to_dict()

    except ToolError as e:
        return e.to_dict()

    except Exception as e:
        internal_error = create_internal_error(message=str(e), original_error=e)
        return internal_error.to_dict()
