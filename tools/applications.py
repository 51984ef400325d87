"""
MCP tool handlers for roles, applications and their audit trail.

- create_role: add a role to the catalogue
- create_application: open an application in Applied, with its creation audit row
- get_application: one application with its role
- list_activity_log: full status history, newest first
- release_application_lock: operator clear of a lock left by a crashed writer
- list_applications: paged application lists, newest first
- get_pipeline_metrics: admin or applicant dashboard totals
"""

import logging
from typing import Any, Dict

from pydantic import ValidationError

from config import get_config
from db.pipeline_reader import (
    count_applications,
    count_applications_by_status,
    count_rows,
    fetch_activity_logs,
    fetch_application,
    fetch_applications,
    fetch_role_by_name,
    get_connection,
)
from db.pipeline_writer import PipelineWriter
from models.errors import (
    ToolError,
    create_internal_error,
    create_not_found_error,
    create_validation_error,
)
from models.status import ApplicationStatus
from schemas.applications import (
    ActivityLogRecord,
    ApplicationIdRequest,
    ApplicationRecord,
    CreateApplicationRequest,
    CreateApplicationResponse,
    CreateRoleRequest,
    CreateRoleResponse,
    ListActivityLogResponse,
    ListApplicationsRequest,
    ListApplicationsResponse,
    PipelineMetricsRequest,
    PipelineMetricsResponse,
    ReleaseLockResponse,
)
from utils.lock_coordinator import LockCoordinator
from utils.pydantic_error_mapper import map_pydantic_validation_error
from utils.validation import (
    get_current_utc_timestamp,
    validate_application_id,
    validate_page,
    validate_role_name,
)

logger = logging.getLogger(__name__)

APPLICANT_ACTOR_ROLE = "Applicant"


def _handle(func, args: Dict[str, Any]) -> Dict[str, Any]:
    """Run a handler body and map failures to the error contract."""
    try:
        return func(args)

    except ValidationError as e:
        return map_pydantic_validation_error(e).to_dict()

    except ToolError as e:
        return e.to_dict()

    except Exception as e:
        return create_internal_error(message=str(e), original_error=e).to_dict()


def _create_role(args: Dict[str, Any]) -> Dict[str, Any]:
    request = CreateRoleRequest.model_validate(args)
    name = validate_role_name(request.name)

    with PipelineWriter(request.db_path, timeout=get_config().db_timeout_seconds) as writer:
        role_id = writer.insert_role(name, request.is_technical)
        if role_id is None:
            raise create_validation_error(f"Role already exists: {name}")
        writer.commit()

    return CreateRoleResponse(
        role_id=role_id,
        name=name,
        is_technical=request.is_technical,
        message="Role created successfully",
    ).model_dump()


def create_role(args: Dict[str, Any]) -> Dict[str, Any]:
    """
    Add a role to the catalogue.

    Args:
        args: Dictionary containing:
            - name (str): Unique role name, 2-200 characters
            - is_technical (bool, optional): Bot-advanced role (default: false)
            - db_path (str, optional): Database path override

    Returns:
        {"role_id": int, "name": str, "is_technical": bool, "message": str},
        or VALIDATION_ERROR when the name is invalid or taken
    """
    return _handle(_create_role, args)


def _create_application(args: Dict[str, Any]) -> Dict[str, Any]:
    request = CreateApplicationRequest.model_validate(args)
    timeout = get_config().db_timeout_seconds

    with get_connection(request.db_path, timeout=timeout) as conn:
        role = fetch_role_by_name(conn, request.role_name)
    if role is None:
        raise create_validation_error(f"Role not found: {request.role_name}")

    timestamp = get_current_utc_timestamp()
    with PipelineWriter(request.db_path, timeout=timeout) as writer:
        application_id = writer.insert_application(request.applicant_ref, role["id"], timestamp)
        activity_log_id = writer.insert_activity_log(
            application_id=application_id,
            old_status=None,
            new_status=ApplicationStatus.APPLIED.value,
            updated_by=request.applicant_ref,
            updated_by_role=APPLICANT_ACTOR_ROLE,
            comment="Application created",
            timestamp=timestamp,
        )
        writer.commit()

    return CreateApplicationResponse(
        application_id=application_id,
        status=ApplicationStatus.APPLIED.value,
        activity_log_id=activity_log_id,
        message="Application created successfully",
    ).model_dump()


def create_application(args: Dict[str, Any]) -> Dict[str, Any]:
    """
    Open a new application in the Applied stage.

    The application row and its creation audit row (old_status null) are
    written in one transaction.

    Args:
        args: Dictionary containing:
            - applicant_ref (str): Verified identity of the applicant
            - role_name (str): Name of an existing role
            - db_path (str, optional): Database path override

    Returns:
        {"application_id": int, "status": "Applied", "activity_log_id": int, "message": str}
    """
    return _handle(_create_application, args)


def _get_application(args: Dict[str, Any]) -> Dict[str, Any]:
    request = ApplicationIdRequest.model_validate(args)
    application_id = validate_application_id(request.application_id)

    with get_connection(request.db_path, timeout=get_config().db_timeout_seconds) as conn:
        row = fetch_application(conn, application_id)
    if row is None:
        raise create_not_found_error("Application", application_id)

    row["is_locked"] = row.get("lock_token") is not None
    return ApplicationRecord.model_validate(row).model_dump()


def get_application(args: Dict[str, Any]) -> Dict[str, Any]:
    """
    Return one application with its role name and technical flag.

    Args:
        args: Dictionary containing:
            - application_id (int)
            - db_path (str, optional): Database path override
    """
    return _handle(_get_application, args)


def _list_activity_log(args: Dict[str, Any]) -> Dict[str, Any]:
    request = ApplicationIdRequest.model_validate(args)
    application_id = validate_application_id(request.application_id)

    with get_connection(request.db_path, timeout=get_config().db_timeout_seconds) as conn:
        if fetch_application(conn, application_id) is None:
            raise create_not_found_error("Application", application_id)
        rows = fetch_activity_logs(conn, application_id)

    entries = [ActivityLogRecord.model_validate(row) for row in rows]
    return ListActivityLogResponse(
        application_id=application_id,
        count=len(entries),
        entries=entries,
    ).model_dump()


def list_activity_log(args: Dict[str, Any]) -> Dict[str, Any]:
    """
    Return the status history of one application, newest first.

    Args:
        args: Dictionary containing:
            - application_id (int)
            - db_path (str, optional): Database path override

    Returns:
        {"application_id": int, "count": int, "entries": [ActivityLogRecord, ...]}
    """
    return _handle(_list_activity_log, args)


def _release_application_lock(args: Dict[str, Any]) -> Dict[str, Any]:
    request = ApplicationIdRequest.model_validate(args)
    application_id = validate_application_id(request.application_id)
    timeout = get_config().db_timeout_seconds

    with get_connection(request.db_path, timeout=timeout) as conn:
        row = fetch_application(conn, application_id)
    if row is None:
        raise create_not_found_error("Application", application_id)

    was_locked = row["lock_token"] is not None
    LockCoordinator(request.db_path, timeout=timeout).release(application_id)
    if was_locked:
        logger.warning("Lock on application %s cleared by operator", application_id)

    return ReleaseLockResponse(
        application_id=application_id,
        was_locked=was_locked,
        message="Lock released" if was_locked else "Application was not locked",
    ).model_dump()


def release_application_lock(args: Dict[str, Any]) -> Dict[str, Any]:
    """
    Clear the advisory lock on one application.

    Locks have no expiry; this is how a lock left behind by a crashed
    process is recovered. Idempotent.
    """
    return _handle(_release_application_lock, args)


def _list_applications(args: Dict[str, Any]) -> Dict[str, Any]:
    request = ListApplicationsRequest.model_validate(args)
    skip, take = validate_page(request.skip, request.take)

    with get_connection(request.db_path, timeout=get_config().db_timeout_seconds) as conn:
        total = count_applications(conn, request.applicant_ref, request.is_technical)
        rows = fetch_applications(conn, request.applicant_ref, request.is_technical, skip, take)

    applications = []
    for row in rows:
        row["is_locked"] = row.get("lock_token") is not None
        applications.append(ApplicationRecord.model_validate(row))

    return ListApplicationsResponse(
        total_count=total,
        count=len(applications),
        skip=skip,
        take=take,
        applications=applications,
    ).model_dump()


def list_applications(args: Dict[str, Any]) -> Dict[str, Any]:
    """
    Page through applications, newest first.

    With applicant_ref this is one applicant's own list; with
    is_technical=false it is the admin view of the applications managed
    interactively. Both filters combine; with neither, every application
    is listed.

    Args:
        args: Dictionary containing:
            - applicant_ref (str, optional): Only this applicant's applications
            - is_technical (bool, optional): Only technical or non-technical roles
            - skip (int, optional): Rows to skip (default: 0)
            - take (int, optional): Page size, 1-500 (default: 50)
            - db_path (str, optional): Database path override

    Returns:
        {"total_count": int, "count": int, "skip": int, "take": int,
         "applications": [ApplicationRecord, ...]}
    """
    return _handle(_list_applications, args)


def _status_count(status_counts, status: ApplicationStatus) -> int:
    return next((item["count"] for item in status_counts if item["status"] == status.value), 0)


def _get_pipeline_metrics(args: Dict[str, Any]) -> Dict[str, Any]:
    request = PipelineMetricsRequest.model_validate(args)

    with get_connection(request.db_path, timeout=get_config().db_timeout_seconds) as conn:
        status_counts = count_applications_by_status(conn, request.applicant_ref)

        if request.applicant_ref is not None:
            total = count_applications(conn, applicant_ref=request.applicant_ref)
            hired = _status_count(status_counts, ApplicationStatus.HIRED)
            return PipelineMetricsResponse(
                scope="applicant",
                applicant_ref=request.applicant_ref,
                total_applications=total,
                status_counts=status_counts,
                hired=hired,
                success_rate=round(hired / total * 100, 2) if total else 0.0,
            ).model_dump(exclude_none=True)

        technical = count_applications(conn, is_technical=True)
        non_technical = count_applications(conn, is_technical=False)
        total_roles = count_rows(conn, "roles")
        bot_runs = count_rows(conn, "bot_jobs")

    return PipelineMetricsResponse(
        scope="admin",
        total_applications=technical + non_technical,
        status_counts=status_counts,
        technical_applications=technical,
        non_technical_applications=non_technical,
        total_roles=total_roles,
        bot_runs=bot_runs,
    ).model_dump(exclude_none=True)


def get_pipeline_metrics(args: Dict[str, Any]) -> Dict[str, Any]:
    """
    Dashboard totals for the whole pipeline, or for one applicant.

    Args:
        args: Dictionary containing:
            - applicant_ref (str, optional): Switch to the applicant view
            - db_path (str, optional): Database path override

    Returns:
        Admin view: {"scope": "admin", "total_applications", "technical_applications",
        "non_technical_applications", "total_roles", "bot_runs", "status_counts"}

        Applicant view: {"scope": "applicant", "applicant_ref", "total_applications",
        "status_counts", "hired", "success_rate"} where success_rate is the
        percentage of applications that reached Hired, 0 when there are none
    """
    return _handle(_get_pipeline_metrics, args)
