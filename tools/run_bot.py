"""
MCP tool handler for run_bot.

Starts one batch run of the automated advancement engine with settings
from config, overridable per call for dry_run and batch_size.
"""

from typing import Any, Dict

from pydantic import ValidationError

from config import get_config
from models.errors import ToolError, create_internal_error
from schemas.bot_jobs import RunBotRequest
from utils.bot_runner import BotRunner
from utils.pydantic_error_mapper import map_pydantic_validation_error
from utils.validation import validate_actor, validate_dry_run


def build_bot_runner(db_path=None) -> BotRunner:
    """Create a BotRunner wired to the global configuration."""
    config = get_config()
    return BotRunner(
        db_path=db_path,
        cooldown_seconds=config.bot_cooldown_seconds,
        max_workers=config.bot_max_workers,
        actor=config.bot_actor,
        timeout=config.db_timeout_seconds,
    )


def run_bot(args: Dict[str, Any]) -> Dict[str, Any]:
    """
    Advance eligible technical-role applications by one stage.

    Args:
        args: Dictionary containing parameters:
            - triggered_by (str): Verified identity starting the run
            - dry_run (bool, optional): Report outcomes without writing (default: false)
            - batch_size (int, optional): Candidate cap, 1-1000 (default: config)
            - db_path (str, optional): Database path override

    Returns:
        Dictionary with structure:
        {
            "job_id": int,
            "status": "Completed" | "Failed",
            "message": str,
            "dry_run": bool,
            "total_processed": int,    # Completed only
            "total_succeeded": int,
            "total_failed": int,
            "total_skipped": int,      # lock conflicts
            "results": [{"application_id", "outcome", "previous_status",
                         "new_status", "error"}]
        }

        A configuration problem (e.g. invalid batch_size or cooldown) still
        returns a job_id, with status "Failed" and the reason in message.

        Request validation or an unusable database returns:
        {"error": {"code": str, "message": str, "retryable": bool}}
    """
    try:
        request = RunBotRequest.model_validate(args)
        triggered_by = validate_actor(request.triggered_by, "triggered_by")
        dry_run = validate_dry_run(request.dry_run)

        runner = build_bot_runner(request.db_path)
        batch_size = request.batch_size
        if batch_size is None:
            batch_size = get_config().bot_batch_size

        result = runner.run(dry_run=dry_run, batch_size=batch_size, triggered_by=triggered_by)
        return result.to_dict()

    except ValidationError as e:
        return map_pydantic_validation_error(e).to_dict()

    except ToolError as e:
        return e.to_dict()

    except Exception as e:
        internal_error = create_internal_error(message=str(e), original_error=e)
        return internal_error.to_dict()
