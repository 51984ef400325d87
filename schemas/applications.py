"""Pydantic schemas for application, role and activity-log tools."""

from __future__ import annotations

from typing import Optional

from pydantic import field_validator

from schemas.common import (
    DbPathMixin,
    RowRecord,
    StrictIgnoreRequest,
    StrictResponse,
    validate_optional_non_empty_str,
)


class ApplicationRecord(RowRecord):
    """Application row joined with its role. lock_token is internal and not exposed."""

    id: int
    applicant_ref: str
    role_id: int
    role_name: str
    is_technical: bool
    current_status: str
    created_at: str
    last_automated_run_at: Optional[str] = None
    is_locked: bool = False


class ActivityLogRecord(RowRecord):
    """One audit row. old_status is None only for the creation event."""

    id: int
    application_id: int
    old_status: Optional[str] = None
    new_status: str
    updated_by: str
    updated_by_role: str
    comment: Optional[str] = None
    created_at: str


class SubmitTransitionRequest(DbPathMixin, StrictIgnoreRequest):
    """Request schema for submit_transition."""

    application_id: int
    new_status: str
    actor: str
    actor_role: str
    comment: Optional[str] = None


class SubmitTransitionResponse(StrictResponse):
    """Success response schema for submit_transition."""

    success: bool
    application_id: int
    previous_status: str
    new_status: str
    activity_log_id: int
    updated_at: str
    message: str
    warning: Optional[str] = None


class ApplicationIdRequest(DbPathMixin, StrictIgnoreRequest):
    """Request schema for tools keyed by a single application id."""

    application_id: int


class ListActivityLogResponse(StrictResponse):
    """Response schema for list_activity_log."""

    application_id: int
    count: int
    entries: list[ActivityLogRecord]


class CreateRoleRequest(DbPathMixin, StrictIgnoreRequest):
    """Request schema for create_role."""

    name: str
    is_technical: bool = False


class CreateRoleResponse(StrictResponse):
    """Response schema for create_role."""

    role_id: int
    name: str
    is_technical: bool
    message: str


class CreateApplicationRequest(DbPathMixin, StrictIgnoreRequest):
    """Request schema for create_application."""

    applicant_ref: str
    role_name: str

    @field_validator("applicant_ref", "role_name")
    @classmethod
    def validate_required_text(cls, value: str, info) -> str:
        return validate_optional_non_empty_str(value, info.field_name).strip()


class CreateApplicationResponse(StrictResponse):
    """Response schema for create_application."""

    application_id: int
    status: str
    activity_log_id: int
    message: str


class ReleaseLockResponse(StrictResponse):
    """Response schema for release_application_lock."""

    application_id: int
    was_locked: bool
    message: str


class ListApplicationsRequest(DbPathMixin, StrictIgnoreRequest):
    """Request schema for list_applications."""

    applicant_ref: Optional[str] = None
    is_technical: Optional[bool] = None
    skip: Optional[int] = None
    take: Optional[int] = None

    @field_validator("applicant_ref")
    @classmethod
    def validate_applicant_ref(cls, value: Optional[str]) -> Optional[str]:
        value = validate_optional_non_empty_str(value, "applicant_ref")
        return value.strip() if value is not None else None


class ListApplicationsResponse(StrictResponse):
    """Response schema for list_applications."""

    total_count: int
    count: int
    skip: int
    take: int
    applications: list[ApplicationRecord]


class PipelineMetricsRequest(DbPathMixin, StrictIgnoreRequest):
    """Request schema for get_pipeline_metrics. applicant_ref selects the applicant view."""

    applicant_ref: Optional[str] = None

    @field_validator("applicant_ref")
    @classmethod
    def validate_applicant_ref(cls, value: Optional[str]) -> Optional[str]:
        value = validate_optional_non_empty_str(value, "applicant_ref")
        return value.strip() if value is not None else None


class StatusCount(StrictResponse):
    """Number of applications currently in one status."""

    status: str
    count: int


class PipelineMetricsResponse(StrictResponse):
    """Response schema for get_pipeline_metrics.

    Admin scope fills the role and bot totals; applicant scope fills
    applicant_ref, hired and success_rate.
    """

    scope: str
    total_applications: int
    status_counts: list[StatusCount]
    applicant_ref: Optional[str] = None
    hired: Optional[int] = None
    success_rate: Optional[float] = None
    technical_applications: Optional[int] = None
    non_technical_applications: Optional[int] = None
    total_roles: Optional[int] = None
    bot_runs: Optional[int] = None
