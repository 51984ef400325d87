"""
Automated batch advancement ("the bot").

One run:
1. Persist a Running bot job so its id exists before any work starts
2. Validate run parameters and select a bounded, stable candidate set
3. Process every candidate independently under its advisory lock
4. Fold per-candidate outcomes into a summary and finalize the job

Per-candidate problems never abort the batch. Only a failure before
processing starts (bad configuration, candidate query failing) does, and
that is recorded on the job as Failed rather than raised. A job record
that cannot be finalized is logged and reported in the returned message;
the job id is still returned.

Known limitations:
- Locks have no expiry (see utils.lock_coordinator). A lock left by a
  crashed run, or one whose release exhausted its retries, keeps the
  application out of every selection until an operator releases it.
- Technical-role applications in Rejected have no next stage and are never
  stamped with last_automated_run_at, so they match the selection on every
  run. With selection ordered by id and capped at batch_size, enough of
  them can fill every batch and starve later candidates.
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

from db.pipeline_reader import fetch_bot_candidates, get_connection
from db.pipeline_writer import DEFAULT_TIMEOUT_SECONDS, PipelineWriter
from models.bot_job import BotRunSummary, CandidateOutcome, CandidateResult
from models.errors import ErrorCode, ToolError, create_not_found_error, sanitize_error_message
from models.status import BotJobStatus
from schemas.bot_jobs import RunBotResponse
from utils.lock_coordinator import LockCoordinator
from utils.status_policy import next_automated_status
from utils.transition_executor import TransitionExecutor, load_application
from utils.validation import (
    format_utc_timestamp,
    validate_batch_size,
    validate_cooldown_seconds,
    validate_max_workers,
)

logger = logging.getLogger(__name__)

BOT_ACTOR_ROLE = "Bot"
DEFAULT_BOT_ACTOR = "bot@hirebot.local"
DEFAULT_BATCH_SIZE = 50
DEFAULT_COOLDOWN_SECONDS = 60
DEFAULT_FINALIZE_ATTEMPTS = 3
DEFAULT_RETRY_BACKOFF_SECONDS = 0.05


@dataclass
class BotRunResult:
    """What run() hands back: always a job id and a message."""

    job_id: int
    status: BotJobStatus
    message: str
    dry_run: bool
    summary: Optional[BotRunSummary] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "job_id": self.job_id,
            "status": self.status.value,
            "message": self.message,
            "dry_run": self.dry_run,
        }
        if self.summary is not None:
            payload.update(
                total_processed=self.summary.processed,
                total_succeeded=self.summary.succeeded,
                total_failed=self.summary.failed,
                total_skipped=self.summary.skipped,
                results=[result.to_dict() for result in self.summary.results],
            )
        return RunBotResponse.model_validate(payload).model_dump(exclude_none=True)


class BotRunner:
    """Drives LockCoordinator and TransitionExecutor over a candidate batch."""

    def __init__(
        self,
        db_path: Optional[str] = None,
        cooldown_seconds: Any = DEFAULT_COOLDOWN_SECONDS,
        max_workers: Any = 1,
        actor: str = DEFAULT_BOT_ACTOR,
        actor_role: str = BOT_ACTOR_ROLE,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        clock: Optional[Callable[[], datetime]] = None,
        locks: Optional[LockCoordinator] = None,
        executor: Optional[TransitionExecutor] = None,
        finalize_attempts: int = DEFAULT_FINALIZE_ATTEMPTS,
        retry_backoff: float = DEFAULT_RETRY_BACKOFF_SECONDS,
    ):
        """
        Args:
            db_path: Optional database path override
            cooldown_seconds: Minimum age of last_automated_run_at; raw values
                (e.g. the env string) are validated per run
            max_workers: Size of the worker pool; 1 processes sequentially
            actor: Identity written to audit rows
            actor_role: Role written to audit rows
            timeout: Seconds to wait on a locked database
            clock: Returns the current UTC time; injectable for tests
            locks: LockCoordinator override
            executor: TransitionExecutor override
            finalize_attempts: Tries at writing the final job record
            retry_backoff: Base delay between finalization attempts
        """
        self.db_path = db_path
        self.cooldown_seconds = cooldown_seconds
        self.max_workers = max_workers
        self.actor = actor
        self.actor_role = actor_role
        self.timeout = timeout
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.locks = locks or LockCoordinator(db_path, timeout=timeout)
        self.executor = executor or TransitionExecutor(db_path, timeout=timeout, clock=self.clock)
        self.finalize_attempts = max(1, finalize_attempts)
        self.retry_backoff = retry_backoff

    # -- job record --------------------------------------------------------

    def _create_job(self, triggered_by: str, dry_run: bool) -> int:
        with PipelineWriter(self.db_path, timeout=self.timeout) as writer:
            job_id = writer.insert_bot_job(
                triggered_by=triggered_by,
                triggered_at=format_utc_timestamp(self.clock()),
                dry_run=dry_run,
            )
            writer.commit()
        return job_id

    def _write_finalization(self, job_id: int, status: BotJobStatus, details: str,
                            summary: Optional[BotRunSummary]) -> None:
        totals: Dict[str, Optional[int]] = {}
        if summary is not None:
            totals = {
                "total_processed": summary.processed,
                "total_succeeded": summary.succeeded,
                "total_failed": summary.failed,
                "total_skipped": summary.skipped,
            }
        with PipelineWriter(self.db_path, timeout=self.timeout) as writer:
            finalized = writer.finalize_bot_job(
                job_id=job_id,
                status=status,
                details=details,
                finished_at=format_utc_timestamp(self.clock()),
                **totals,
            )
            writer.commit()
        if not finalized:
            logger.error("Bot job %s was no longer Running at finalization", job_id)

    def _finalize_job(self, job_id: int, status: BotJobStatus, details: str,
                      summary: Optional[BotRunSummary] = None) -> Optional[str]:
        """
        Move the job out of Running, retrying up to finalize_attempts times.

        Returns:
            None on success, or the last error message if the record could
            not be written. Never raises.
        """
        last_error = None
        for attempt in range(1, self.finalize_attempts + 1):
            try:
                self._write_finalization(job_id, status, details, summary)
                return None
            except Exception as e:  # noqa: BLE001
                last_error = sanitize_error_message(e)
                logger.warning(
                    "Finalizing bot job %s failed (attempt %s/%s): %s",
                    job_id, attempt, self.finalize_attempts, last_error,
                )
            if attempt < self.finalize_attempts:
                time.sleep(self.retry_backoff * attempt)

        logger.error(
            "Bot job %s could not be finalized as %s and is still Running: %s",
            job_id, status.value, last_error,
        )
        return last_error

    # -- candidate selection -----------------------------------------------

    def select_candidates(self, batch_size: int, cooldown_seconds: int) -> List[Dict[str, Any]]:
        """Eligible applications, capped at batch_size, ordered by id."""
        threshold = format_utc_timestamp(self.clock() - timedelta(seconds=cooldown_seconds))
        with get_connection(self.db_path, timeout=self.timeout) as conn:
            return fetch_bot_candidates(conn, threshold, batch_size)

    # -- per-candidate processing ------------------------------------------

    def _advance_locked(self, application_id: int, dry_run: bool) -> CandidateResult:
        # Re-read under the lock; the selection snapshot may be stale.
        application = load_application(self.db_path, application_id, timeout=self.timeout)
        if application is None:
            raise create_not_found_error("Application", application_id)

        current = application["current_status"]
        target = next_automated_status(current)

        if target is None:
            return CandidateResult(application_id, CandidateOutcome.SUCCEEDED, previous_status=current)

        if dry_run:
            return CandidateResult(
                application_id,
                CandidateOutcome.SUCCEEDED,
                previous_status=current,
                new_status=target.value,
            )

        outcome = self.executor.apply_transition(
            application_id=application_id,
            new_status=target,
            actor=self.actor,
            actor_role=self.actor_role,
            comment=f"Automated transition from {current} to {target.value}",
            is_automated=True,
            snapshot=application,
        )
        return CandidateResult(
            application_id,
            CandidateOutcome.SUCCEEDED,
            previous_status=outcome.old_status.value,
            new_status=outcome.new_status.value,
        )

    def process_candidate(self, candidate: Dict[str, Any], dry_run: bool) -> CandidateResult:
        """
        Lock, advance and release one candidate. Never raises.

        A lock conflict means another writer owns the record right now; the
        candidate is skipped and left for a later run. The outcome follows
        the transition alone: a committed move whose lock release failed is
        still SUCCEEDED, with the release failure noted in its error.
        """
        application_id = candidate["id"]
        try:
            with self.locks.held(application_id) as lease:
                result = self._advance_locked(application_id, dry_run)

        except ToolError as e:
            if e.code == ErrorCode.LOCK_CONFLICT:
                logger.debug("Skipping application %s: %s", application_id, e.message)
                return CandidateResult(application_id, CandidateOutcome.SKIPPED, error=e.message)
            logger.warning("Bot failed to advance application %s: %s", application_id, e.message)
            return CandidateResult(
                application_id,
                CandidateOutcome.FAILED,
                previous_status=candidate.get("current_status"),
                error=e.message,
            )

        except Exception as e:  # noqa: BLE001
            message = sanitize_error_message(e)
            logger.warning(
                "Unexpected error advancing application %s: %s", application_id, message, exc_info=True
            )
            return CandidateResult(
                application_id,
                CandidateOutcome.FAILED,
                previous_status=candidate.get("current_status"),
                error=message,
            )

        if not lease.released:
            logger.error(
                "Application %s advanced but its lock was not released: %s",
                application_id, lease.release_error,
            )
            result = replace(result, error=f"Lock release failed: {lease.release_error}")
        return result

    def process_candidates(
        self, candidates: List[Dict[str, Any]], dry_run: bool, max_workers: int
    ) -> BotRunSummary:
        """
        Process candidates and fold their outcomes.

        With max_workers > 1 a fixed-size pool fans out; results come back in
        candidate order and are folded by this thread alone.
        """
        if max_workers <= 1 or len(candidates) <= 1:
            results = [self.process_candidate(candidate, dry_run) for candidate in candidates]
        else:
            with ThreadPoolExecutor(max_workers=min(max_workers, len(candidates))) as pool:
                results = list(
                    pool.map(lambda candidate: self.process_candidate(candidate, dry_run), candidates)
                )
        return BotRunSummary.fold(results)

    # -- entry point -------------------------------------------------------

    def run(self, dry_run: bool = False, batch_size: Any = DEFAULT_BATCH_SIZE,
            triggered_by: str = "system") -> BotRunResult:
        """
        Execute one batch run.

        Args:
            dry_run: Compute outcomes without writing statuses or audit rows
            batch_size: Maximum number of candidates (1-1000)
            triggered_by: Identity of whoever started the run

        Returns:
            BotRunResult with the job id and a summary message, whether the
            run completed, failed, found nothing to do, or could not write
            its final job record

        Raises:
            ToolError: Only if the Running job record itself cannot be created
        """
        job_id = self._create_job(triggered_by, dry_run)
        logger.info(
            "Bot job %s started by %s (dry_run=%s, batch_size=%s)",
            job_id, triggered_by, dry_run, batch_size,
        )

        try:
            batch_size = validate_batch_size(batch_size)
            cooldown_seconds = validate_cooldown_seconds(self.cooldown_seconds)
            max_workers = validate_max_workers(self.max_workers)
            candidates = self.select_candidates(batch_size, cooldown_seconds)

        except Exception as e:  # noqa: BLE001
            error_message = sanitize_error_message(e)
            logger.error("Bot job %s failed before processing: %s", job_id, error_message)
            message = f"Bot run failed: {error_message}"
            finalize_error = self._finalize_job(job_id, BotJobStatus.FAILED, error_message)
            if finalize_error is not None:
                message += f". Job record could not be finalized: {finalize_error}"
            return BotRunResult(
                job_id=job_id,
                status=BotJobStatus.FAILED,
                message=message,
                dry_run=dry_run,
            )

        summary = self.process_candidates(candidates, dry_run, max_workers)
        details = summary.describe(dry_run=dry_run)
        finalize_error = self._finalize_job(job_id, BotJobStatus.COMPLETED, details, summary)

        logger.info("Bot job %s completed. %s", job_id, details)
        message = (
            f"Bot completed. Processed: {summary.processed}, "
            f"Succeeded: {summary.succeeded}, Failed: {summary.failed}, "
            f"Skipped: {summary.skipped}"
        )
        if finalize_error is not None:
            message += f". Job record could not be finalized: {finalize_error}"
        return BotRunResult(
            job_id=job_id,
            status=BotJobStatus.COMPLETED,
            message=message,
            dry_run=dry_run,
            summary=summary,
        )
