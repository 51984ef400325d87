"""
Read-only MCP tool handlers for bot job records.

- get_bot_job: snapshot of one job
- list_bot_jobs: most recent jobs, newest first
- get_bot_metrics: audit-trail totals for moves made by the bot
"""

from typing import Any, Dict

from pydantic import ValidationError

from config import get_config
from db.pipeline_reader import (
    count_activity_by_role,
    count_transitions_by_status,
    fetch_bot_job,
    fetch_recent_bot_jobs,
    get_connection,
)
from models.bot_job import to_bot_job_record
from models.errors import ToolError, create_internal_error, create_not_found_error
from schemas.bot_jobs import (
    BotMetricsRequest,
    BotMetricsResponse,
    GetBotJobRequest,
    ListBotJobsRequest,
    ListBotJobsResponse,
)
from utils.bot_runner import BOT_ACTOR_ROLE
from utils.pydantic_error_mapper import map_pydantic_validation_error
from utils.validation import validate_job_id, validate_jobs_limit


def get_bot_job(args: Dict[str, Any]) -> Dict[str, Any]:
    """
    Return the persisted record of one bot run.

    Args:
        args: Dictionary containing:
            - job_id (int): Bot job id returned by run_bot
            - db_path (str, optional): Database path override

    Returns:
        BotJobRecord fields (id, triggered_by, triggered_at, status, dry_run,
        total_processed, total_succeeded, total_failed, total_skipped,
        details, finished_at), or {"error": {...}} with NOT_FOUND
    """
    try:
        request = GetBotJobRequest.model_validate(args)
        job_id = validate_job_id(request.job_id)

        with get_connection(request.db_path, timeout=get_config().db_timeout_seconds) as conn:
            row = fetch_bot_job(conn, job_id)

        if row is None:
            raise create_not_found_error("Bot job", job_id)

        return to_bot_job_record(row)

    except ValidationError as e:
        return map_pydantic_validation_error(e).to_dict()

    except ToolError as e:
        return e.to_dict()

    except Exception as e:
        return create_internal_error(message=str(e), original_error=e).to_dict()


def list_bot_jobs(args: Dict[str, Any]) -> Dict[str, Any]:
    """
    Return the most recent bot jobs, newest first.

    Args:
        args: Dictionary containing:
            - limit (int, optional): 1-100 (default: HIREBOT_RECENT_JOBS_LIMIT, 10)
            - db_path (str, optional): Database path override
    """
    try:
        request = ListBotJobsRequest.model_validate(args)
        config = get_config()
        limit = validate_jobs_limit(
            request.limit if request.limit is not None else config.recent_jobs_limit
        )

        with get_connection(request.db_path, timeout=config.db_timeout_seconds) as conn:
            rows = fetch_recent_bot_jobs(conn, limit)

        return ListBotJobsResponse(count=len(rows), jobs=rows).model_dump()

    except ValidationError as e:
        return map_pydantic_validation_error(e).to_dict()

    except ToolError as e:
        return e.to_dict()

    except Exception as e:
        return create_internal_error(message=str(e), original_error=e).to_dict()


def get_bot_metrics(args: Dict[str, Any]) -> Dict[str, Any]:
    """
    Summarize the bot's footprint in the audit trail.

    Returns:
        {
            "total_processed_by_bot": int,     # audit rows written by the bot
            "status_transitions": [{"status": str, "count": int}],
            "recent_jobs": [BotJobRecord, ...] # newest first
        }
    """
    try:
        request = BotMetricsRequest.model_validate(args)
        limit = validate_jobs_limit(
            request.recent_limit if request.recent_limit is not None else 5
        )

        with get_connection(request.db_path, timeout=get_config().db_timeout_seconds) as conn:
            total = count_activity_by_role(conn, BOT_ACTOR_ROLE)
            transitions = count_transitions_by_status(conn, BOT_ACTOR_ROLE)
            recent = fetch_recent_bot_jobs(conn, limit)

        return BotMetricsResponse(
            total_processed_by_bot=total,
            status_transitions=transitions,
            recent_jobs=recent,
        ).model_dump()

    except ValidationError as e:
        return map_pydantic_validation_error(e).to_dict()

    except ToolError as e:
        return e.to_dict()

    except Exception as e:
        return create_internal_error(message=str(e), original_error=e).to_dict()
