"""Pydantic schemas for the bot tools: run_bot, get_bot_job, list_bot_jobs, get_bot_metrics."""

from __future__ import annotations

from typing import Optional

from schemas.common import DbPathMixin, RowRecord, StrictIgnoreRequest, StrictResponse


class BotJobRecord(RowRecord):
    """Snapshot of one persisted bot job.

    Totals stay None while the job is Running and are set together when it
    is finalized.
    """

    id: int
    triggered_by: str
    triggered_at: str
    status: str
    dry_run: bool = False
    total_processed: Optional[int] = None
    total_succeeded: Optional[int] = None
    total_failed: Optional[int] = None
    total_skipped: Optional[int] = None
    details: Optional[str] = None
    finished_at: Optional[str] = None


class RunBotRequest(DbPathMixin, StrictIgnoreRequest):
    """Request schema for run_bot.

    batch_size is range-checked by the runner so that an out-of-range value
    is recorded as a Failed job.
    """

    triggered_by: str
    dry_run: Optional[bool] = None
    batch_size: Optional[int] = None


class RunBotItemResult(StrictResponse):
    """Per-candidate result of a bot run."""

    application_id: int
    outcome: str
    previous_status: Optional[str] = None
    new_status: Optional[str] = None
    error: Optional[str] = None


class RunBotResponse(StrictResponse):
    """Response schema for run_bot."""

    job_id: int
    status: str
    message: str
    dry_run: bool
    total_processed: Optional[int] = None
    total_succeeded: Optional[int] = None
    total_failed: Optional[int] = None
    total_skipped: Optional[int] = None
    results: list[RunBotItemResult] = []


class GetBotJobRequest(DbPathMixin, StrictIgnoreRequest):
    """Request schema for get_bot_job."""

    job_id: int


class ListBotJobsRequest(DbPathMixin, StrictIgnoreRequest):
    """Request schema for list_bot_jobs."""

    limit: Optional[int] = None


class ListBotJobsResponse(StrictResponse):
    """Response schema for list_bot_jobs."""

    count: int
    jobs: list[BotJobRecord]


class BotMetricsRequest(DbPathMixin, StrictIgnoreRequest):
    """Request schema for get_bot_metrics."""

    recent_limit: Optional[int] = None


class StatusTransitionCount(StrictResponse):
    """How many bot moves landed in one status."""

    status: str
    count: int


class BotMetricsResponse(StrictResponse):
    """Response schema for get_bot_metrics."""

    total_processed_by_bot: int
    status_transitions: list[StatusTransitionCount]
    recent_jobs: list[BotJobRecord]
