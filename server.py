#!/usr/bin/env python3
"""
MCP Server entry point for HireBot.

Exposes the application status engine to agents and admin front-ends over
the Model Context Protocol:

- submit_transition: interactive single-application status change
- run_bot: automated one-stage advancement of technical-role applications
- get_bot_job / list_bot_jobs / get_bot_metrics: bot run accounting
- list_activity_log / get_application / list_applications: read the pipeline state
- get_pipeline_metrics: admin and applicant dashboard totals
- create_role / create_application: catalogue and intake
- release_application_lock: operator recovery of a leaked lock

The caller's identity and role are trusted as given; authentication happens
in front of this server.

Usage:
    python server.py

The server runs in stdio mode by default.
"""

import logging

from mcp.server.fastmcp import FastMCP

from config import get_config
from db.schema import initialize_database
from tools.applications import (
    create_application,
    create_role,
    get_application,
    get_pipeline_metrics,
    list_activity_log,
    list_applications,
    release_application_lock,
)
from tools.bot_jobs import get_bot_job, get_bot_metrics, list_bot_jobs
from tools.run_bot import run_bot
from tools.submit_transition import submit_transition

config = get_config()
mcp = FastMCP(
    name=config.server_name,
    instructions=(
        "This server tracks job applications through the hiring pipeline "
        "Applied -> Reviewed -> CodingRound -> TechnicalInterview -> HRInterview -> Offer -> Hired, "
        "with Rejected reachable from every stage except Hired. "
        "\n\n"
        "Use submit_transition to move a single non-technical application; statuses only move forward "
        "(skips allowed) or to Rejected. LOCK_CONFLICT and CONCURRENCY_CONFLICT errors are retryable. "
        "Use run_bot to advance eligible technical-role applications one stage each; "
        "it returns a job_id that get_bot_job reports on. "
        "Use list_activity_log to read an application's audit trail, newest first. "
        "Use list_applications to page through applications and get_pipeline_metrics for totals."
    ),
)


def _with_db_path(args: dict, db_path: str | None) -> dict:
    if db_path is not None:
        args["db_path"] = db_path
    return args


@mcp.tool(
    name="submit_transition",
    description=(
        "Change one application's status on behalf of an interactive actor. "
        "Enforces the forward-only policy, takes the per-application lock, and appends an audit entry."
    ),
)
def submit_transition_tool(
    application_id: int,
    new_status: str,
    actor: str,
    actor_role: str,
    comment: str | None = None,
    db_path: str | None = None,
) -> dict:
    """
    Change one application's status.

    Args:
        application_id: Application to move.
        new_status: Target status (Applied, Reviewed, CodingRound, TechnicalInterview,
            HRInterview, Offer, Hired, Rejected).
        actor: Verified identity of the caller, recorded as updated_by.
        actor_role: Verified role of the caller, recorded as updated_by_role.
        comment: Optional audit comment.
        db_path: Optional SQLite path override.

    Returns:
        {"success", "application_id", "previous_status", "new_status",
         "activity_log_id", "updated_at", "message"} or {"error": {...}}
    """
    args = {
        "application_id": application_id,
        "new_status": new_status,
        "actor": actor,
        "actor_role": actor_role,
    }
    if comment is not None:
        args["comment"] = comment
    return submit_transition(_with_db_path(args, db_path))


@mcp.tool(
    name="run_bot",
    description=(
        "Run the automated advancement bot over eligible technical-role applications. "
        "Each selected application moves one stage. Returns a job id and summary."
    ),
)
def run_bot_tool(
    triggered_by: str,
    dry_run: bool | None = None,
    batch_size: int | None = None,
    db_path: str | None = None,
) -> dict:
    """
    Start one bot run.

    Args:
        triggered_by: Verified identity starting the run.
        dry_run: Report what would change without writing (default: false).
        batch_size: Maximum candidates, 1-1000 (default: HIREBOT_BOT_BATCH_SIZE).
        db_path: Optional SQLite path override.
    """
    args = {"triggered_by": triggered_by}
    if dry_run is not None:
        args["dry_run"] = dry_run
    if batch_size is not None:
        args["batch_size"] = batch_size
    return run_bot(_with_db_path(args, db_path))


@mcp.tool(name="get_bot_job", description="Get the status and totals of one bot run.")
def get_bot_job_tool(job_id: int, db_path: str | None = None) -> dict:
    """Get one bot job record by id."""
    return get_bot_job(_with_db_path({"job_id": job_id}, db_path))


@mcp.tool(name="list_bot_jobs", description="List the most recent bot runs, newest first.")
def list_bot_jobs_tool(limit: int | None = None, db_path: str | None = None) -> dict:
    """List recent bot jobs (default 10, max 100)."""
    args = {}
    if limit is not None:
        args["limit"] = limit
    return list_bot_jobs(_with_db_path(args, db_path))


@mcp.tool(
    name="get_bot_metrics",
    description="Count bot-made transitions per status and list recent bot runs.",
)
def get_bot_metrics_tool(recent_limit: int | None = None, db_path: str | None = None) -> dict:
    """Bot footprint in the audit trail."""
    args = {}
    if recent_limit is not None:
        args["recent_limit"] = recent_limit
    return get_bot_metrics(_with_db_path(args, db_path))


@mcp.tool(
    name="list_activity_log",
    description="Return the full status history of one application, newest first.",
)
def list_activity_log_tool(application_id: int, db_path: str | None = None) -> dict:
    """Audit trail of one application."""
    return list_activity_log(_with_db_path({"application_id": application_id}, db_path))


@mcp.tool(name="get_application", description="Get one application with its role.")
def get_application_tool(application_id: int, db_path: str | None = None) -> dict:
    """One application record."""
    return get_application(_with_db_path({"application_id": application_id}, db_path))


@mcp.tool(name="create_role", description="Add a role; technical roles are advanced by the bot.")
def create_role_tool(name: str, is_technical: bool = False, db_path: str | None = None) -> dict:
    """Create a role."""
    return create_role(_with_db_path({"name": name, "is_technical": is_technical}, db_path))


@mcp.tool(
    name="create_application",
    description="Open an application for a role in the Applied stage.",
)
def create_application_tool(applicant_ref: str, role_name: str, db_path: str | None = None) -> dict:
    """Create an application and its creation audit entry."""
    return create_application(
        _with_db_path({"applicant_ref": applicant_ref, "role_name": role_name}, db_path)
    )


@mcp.tool(
    name="release_application_lock",
    description=(
        "Operator recovery: clear the processing lock on one application. "
        "Use only when a crashed run left the application locked."
    ),
)
def release_application_lock_tool(application_id: int, db_path: str | None = None) -> dict:
    """Clear a leaked lock."""
    return release_application_lock(_with_db_path({"application_id": application_id}, db_path))


@mcp.tool(
    name="list_applications",
    description=(
        "Page through applications, newest first. Filter by applicant_ref for one applicant, "
        "or is_technical=false for the interactively managed applications."
    ),
)
def list_applications_tool(
    applicant_ref: str | None = None,
    is_technical: bool | None = None,
    skip: int | None = None,
    take: int | None = None,
    db_path: str | None = None,
) -> dict:
    """
    List applications.

    Args:
        applicant_ref: Only this applicant's applications.
        is_technical: Only technical (true) or non-technical (false) roles.
        skip: Rows to skip (default 0).
        take: Page size, 1-500 (default 50).
        db_path: Optional SQLite path override.
    """
    args = {}
    for key, value in (
        ("applicant_ref", applicant_ref),
        ("is_technical", is_technical),
        ("skip", skip),
        ("take", take),
    ):
        if value is not None:
            args[key] = value
    return list_applications(_with_db_path(args, db_path))


@mcp.tool(
    name="get_pipeline_metrics",
    description=(
        "Pipeline totals: technical vs non-technical applications, roles, bot runs and "
        "per-status counts. With applicant_ref, that applicant's counts and hire rate."
    ),
)
def get_pipeline_metrics_tool(applicant_ref: str | None = None, db_path: str | None = None) -> dict:
    """Admin or applicant dashboard totals."""
    args = {}
    if applicant_ref is not None:
        args["applicant_ref"] = applicant_ref
    return get_pipeline_metrics(_with_db_path(args, db_path))


def main():
    """
    Main entry point for the MCP server.

    Bootstraps the database schema and default roles, then serves over stdio.
    """
    config.setup_logging()

    logger = logging.getLogger(__name__)
    logger.info("Starting HireBot MCP Server")
    logger.info(f"Server name: {config.server_name}")

    warnings = config.validate()
    for warning in warnings:
        logger.warning(warning)

    db_path = initialize_database(config.get_db_path_str(), seed_roles=True)
    logger.info(f"Database ready: {db_path}")

    logger.info("Server starting in stdio mode")
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
