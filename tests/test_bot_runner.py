"""
Tests for the automated advancement engine.

Covers candidate selection (technical roles only, cooldown, exclusions,
locks), one-stage advancement with audit rows, dry runs, per-candidate
failure isolation, configuration and selection failures recorded on the
job, job records that cannot be finalized, lock releases that fail after a
committed move, and the worker pool producing the same totals as
sequential processing.
"""

import os
import sqlite3
import tempfile
from datetime import datetime, timedelta, timezone

import pytest

from db.pipeline_writer import PipelineWriter
from db.schema import bootstrap_schema
from models.bot_job import BotRunSummary, CandidateOutcome, CandidateResult
from models.errors import ToolError, create_db_error, create_lock_conflict_error
from models.status import BotJobStatus
from utils.bot_runner import BotRunner
from utils.lock_coordinator import LockCoordinator
from utils.transition_executor import TransitionExecutor
from utils.validation import format_utc_timestamp

FIXED_NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


def fixed_clock():
    return FIXED_NOW


def ts(delta_seconds=0):
    """Timestamp relative to FIXED_NOW."""
    return format_utc_timestamp(FIXED_NOW + timedelta(seconds=delta_seconds))


@pytest.fixture
def temp_db():
    """Empty database with one technical and one non-technical role."""
    fd, path = tempfile.mkstemp(suffix=".db")
    os.close(fd)

    conn = sqlite3.connect(path)
    bootstrap_schema(conn)
    conn.execute("INSERT INTO roles (id, name, is_technical) VALUES (1, 'Backend Engineer', 1)")
    conn.execute("INSERT INTO roles (id, name, is_technical) VALUES (2, 'Recruiter', 0)")
    conn.commit()
    conn.close()

    yield path

    try:
        os.unlink(path)
    except OSError:
        pass


def add_application(db_path, applicant_ref, role_id=1, status="Applied",
                    last_automated_run_at=None, lock_token=None):
    conn = sqlite3.connect(db_path)
    try:
        cursor = conn.execute(
            """
            INSERT INTO applications (applicant_ref, role_id, current_status, created_at,
                                      last_automated_run_at, lock_token)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (applicant_ref, role_id, status, ts(-86400), last_automated_run_at, lock_token),
        )
        conn.commit()
        return cursor.lastrowid
    finally:
        conn.close()


def query(db_path, sql, params=()):
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    try:
        return [dict(row) for row in conn.execute(sql, params).fetchall()]
    finally:
        conn.close()


def application(db_path, application_id):
    return query(db_path, "SELECT * FROM applications WHERE id = ?", (application_id,))[0]


def logs_for(db_path, application_id):
    return query(
        db_path, "SELECT * FROM activity_logs WHERE application_id = ? ORDER BY id", (application_id,)
    )


def bot_job(db_path, job_id):
    return query(db_path, "SELECT * FROM bot_jobs WHERE id = ?", (job_id,))[0]


def make_runner(db_path, **kwargs):
    kwargs.setdefault("cooldown_seconds", 60)
    kwargs.setdefault("clock", fixed_clock)
    return BotRunner(db_path, **kwargs)


class TestSingleAdvance:
    """One eligible application, one run."""

    def test_applied_moves_to_reviewed(self, temp_db):
        app_id = add_application(temp_db, "alice@example.com")

        result = make_runner(temp_db).run(triggered_by="admin@example.com")

        assert result.status == BotJobStatus.COMPLETED
        assert result.summary.succeeded == 1
        assert result.summary.failed == 0

        row = application(temp_db, app_id)
        assert row["current_status"] == "Reviewed"
        assert row["lock_token"] is None
        assert row["last_automated_run_at"] == ts()

        logs = logs_for(temp_db, app_id)
        assert len(logs) == 1
        assert logs[0]["old_status"] == "Applied"
        assert logs[0]["new_status"] == "Reviewed"
        assert logs[0]["updated_by_role"] == "Bot"
        assert logs[0]["updated_by"] == "bot@hirebot.local"
        assert logs[0]["comment"] == "Automated transition from Applied to Reviewed"

    def test_moves_exactly_one_stage(self, temp_db):
        app_id = add_application(temp_db, "bob@example.com", status="CodingRound")

        make_runner(temp_db).run()

        assert application(temp_db, app_id)["current_status"] == "TechnicalInterview"

    def test_hr_interview_moves_to_offer(self, temp_db):
        app_id = add_application(temp_db, "carol@example.com", status="HRInterview")

        make_runner(temp_db).run()

        assert application(temp_db, app_id)["current_status"] == "Offer"

    def test_custom_actor(self, temp_db):
        app_id = add_application(temp_db, "dave@example.com")

        make_runner(temp_db, actor="scheduler@hirebot.local").run()

        assert logs_for(temp_db, app_id)[0]["updated_by"] == "scheduler@hirebot.local"

    def test_result_dict_shape(self, temp_db):
        app_id = add_application(temp_db, "erin@example.com")

        payload = make_runner(temp_db).run(triggered_by="admin@example.com").to_dict()

        assert payload["status"] == "Completed"
        assert payload["total_processed"] == 1
        assert payload["total_skipped"] == 0
        assert payload["results"] == [
            {
                "application_id": app_id,
                "outcome": "succeeded",
                "previous_status": "Applied",
                "new_status": "Reviewed",
            }
        ]


class TestCandidateSelection:
    """Which applications a run picks up."""

    def test_non_technical_never_selected(self, temp_db):
        app_id = add_application(temp_db, "frank@example.com", role_id=2)

        result = make_runner(temp_db).run()

        assert result.summary.processed == 0
        assert application(temp_db, app_id)["current_status"] == "Applied"
        assert logs_for(temp_db, app_id) == []

    @pytest.mark.parametrize("status", ["Hired", "Offer"])
    def test_hired_and_offer_excluded(self, temp_db, status):
        app_id = add_application(temp_db, "gina@example.com", status=status)

        candidates = make_runner(temp_db).select_candidates(batch_size=50, cooldown_seconds=60)

        assert app_id not in [c["id"] for c in candidates]

    def test_locked_excluded(self, temp_db):
        app_id = add_application(temp_db, "hank@example.com", lock_token="someone-else")

        result = make_runner(temp_db).run()

        assert result.summary.processed == 0
        assert result.summary.skipped == 0
        assert application(temp_db, app_id)["lock_token"] == "someone-else"

    def test_recent_run_within_cooldown_excluded(self, temp_db):
        app_id = add_application(temp_db, "ivy@example.com", last_automated_run_at=ts(-30))

        make_runner(temp_db, cooldown_seconds=60).run()

        assert application(temp_db, app_id)["current_status"] == "Applied"

    def test_run_older_than_cooldown_selected(self, temp_db):
        app_id = add_application(temp_db, "jack@example.com", last_automated_run_at=ts(-120))

        make_runner(temp_db, cooldown_seconds=60).run()

        assert application(temp_db, app_id)["current_status"] == "Reviewed"

    def test_second_run_respects_cooldown(self, temp_db):
        """An application advanced by one run is not advanced again immediately."""
        app_id = add_application(temp_db, "kate@example.com")
        runner = make_runner(temp_db)

        runner.run()
        second = runner.run()

        assert second.summary.processed == 0
        assert application(temp_db, app_id)["current_status"] == "Reviewed"
        assert len(logs_for(temp_db, app_id)) == 1

    def test_zero_cooldown_allows_immediate_rerun(self, temp_db):
        app_id = add_application(temp_db, "liam@example.com")
        clock_times = iter([FIXED_NOW + timedelta(seconds=i) for i in range(100)])
        runner = make_runner(temp_db, cooldown_seconds=0, clock=lambda: next(clock_times))

        runner.run()
        runner.run()

        assert application(temp_db, app_id)["current_status"] == "CodingRound"

    def test_batch_size_caps_and_orders_by_id(self, temp_db):
        ids = [add_application(temp_db, f"user{i}@example.com") for i in range(5)]

        candidates = make_runner(temp_db).select_candidates(batch_size=3, cooldown_seconds=60)

        assert [c["id"] for c in candidates] == ids[:3]

    def test_rejected_selected_and_left_in_place(self, temp_db):
        """Rejected has no successor; the bot counts it as a no-op success."""
        app_id = add_application(temp_db, "mia@example.com", status="Rejected")

        result = make_runner(temp_db).run()

        assert result.summary.succeeded == 1
        assert application(temp_db, app_id)["current_status"] == "Rejected"
        assert logs_for(temp_db, app_id) == []
        assert application(temp_db, app_id)["lock_token"] is None


class TestDryRun:
    """Dry runs compute outcomes and write nothing but the job record."""

    def test_nothing_written(self, temp_db):
        ids = [add_application(temp_db, f"dry{i}@example.com") for i in range(3)]

        result = make_runner(temp_db).run(dry_run=True, triggered_by="admin@example.com")

        assert result.summary.succeeded == 3
        assert result.dry_run is True
        for app_id in ids:
            row = application(temp_db, app_id)
            assert row["current_status"] == "Applied"
            assert row["last_automated_run_at"] is None
            assert row["lock_token"] is None
            assert logs_for(temp_db, app_id) == []

        job = bot_job(temp_db, result.job_id)
        assert job["status"] == "Completed"
        assert job["dry_run"] == 1
        assert "Dry run" in job["details"]

    def test_reports_would_be_status(self, temp_db):
        add_application(temp_db, "nina@example.com", status="TechnicalInterview")

        result = make_runner(temp_db).run(dry_run=True)

        item = result.summary.results[0]
        assert item.previous_status == "TechnicalInterview"
        assert item.new_status == "HRInterview"

    def test_conflicts_still_skipped(self, temp_db):
        """Dry run succeeded count is candidates minus lock conflicts."""
        first = add_application(temp_db, "oscar@example.com")
        add_application(temp_db, "paula@example.com")

        runner = make_runner(temp_db)
        candidates = runner.select_candidates(batch_size=50, cooldown_seconds=60)
        LockCoordinator(temp_db).acquire(first)

        summary = runner.process_candidates(candidates, dry_run=True, max_workers=1)

        assert summary.succeeded == len(candidates) - 1
        assert summary.skipped == 1


class TestFailureIsolation:
    """One bad candidate never stops the batch."""

    def test_lock_taken_after_selection_is_skipped(self, temp_db):
        first = add_application(temp_db, "quinn@example.com")
        second = add_application(temp_db, "rita@example.com")

        runner = make_runner(temp_db)
        candidates = runner.select_candidates(batch_size=50, cooldown_seconds=60)
        token = LockCoordinator(temp_db).acquire(first)

        summary = runner.process_candidates(candidates, dry_run=False, max_workers=1)

        assert summary.skipped == 1
        assert summary.succeeded == 1
        assert summary.processed == 1
        assert application(temp_db, first)["current_status"] == "Applied"
        assert application(temp_db, first)["lock_token"] == token
        assert application(temp_db, second)["current_status"] == "Reviewed"

    def test_executor_failure_counted_and_lock_released(self, temp_db):
        bad = add_application(temp_db, "sam@example.com")
        good = add_application(temp_db, "tina@example.com")

        class FlakyExecutor(TransitionExecutor):
            def apply_transition(self, application_id, *args, **kwargs):
                if application_id == bad:
                    raise RuntimeError("disk on fire")
                return super().apply_transition(application_id, *args, **kwargs)

        executor = FlakyExecutor(temp_db, clock=fixed_clock)
        result = make_runner(temp_db, executor=executor).run()

        assert result.status == BotJobStatus.COMPLETED
        assert result.summary.failed == 1
        assert result.summary.succeeded == 1
        assert result.summary.processed == 2

        assert application(temp_db, bad)["current_status"] == "Applied"
        assert application(temp_db, bad)["lock_token"] is None
        assert logs_for(temp_db, bad) == []
        assert application(temp_db, good)["current_status"] == "Reviewed"

        failed = [r for r in result.summary.results if r.outcome == CandidateOutcome.FAILED]
        assert failed[0].application_id == bad
        assert "disk on fire" in failed[0].error

    def test_concurrent_change_counted_as_failure(self, temp_db):
        """A transition that loses the race to another writer is a failed candidate."""
        app_id = add_application(temp_db, "uma@example.com")

        class RacingExecutor(TransitionExecutor):
            def apply_transition(self, application_id, *args, **kwargs):
                conn = sqlite3.connect(temp_db)
                conn.execute("UPDATE applications SET version = version + 1 WHERE id = ?", (application_id,))
                conn.commit()
                conn.close()
                return super().apply_transition(application_id, *args, **kwargs)

        runner = make_runner(temp_db, executor=RacingExecutor(temp_db, clock=fixed_clock))
        result = runner.run()

        assert result.summary.failed == 1
        assert logs_for(temp_db, app_id) == []
        assert application(temp_db, app_id)["lock_token"] is None

    def test_process_candidate_never_raises(self, temp_db):
        class ConflictingLocks(LockCoordinator):
            def acquire(self, application_id):
                raise create_lock_conflict_error(application_id)

        runner = make_runner(temp_db, locks=ConflictingLocks(temp_db))
        result = runner.process_candidate({"id": 1, "current_status": "Applied"}, dry_run=False)

        assert result.outcome == CandidateOutcome.SKIPPED


class TestJobRecord:
    """The bot_jobs row written for each run."""

    def test_completed_job_totals(self, temp_db):
        for i in range(3):
            add_application(temp_db, f"job{i}@example.com")

        result = make_runner(temp_db).run(triggered_by="admin@example.com")
        job = bot_job(temp_db, result.job_id)

        assert job["status"] == "Completed"
        assert job["triggered_by"] == "admin@example.com"
        assert job["triggered_at"] == ts()
        assert job["finished_at"] == ts()
        assert job["total_processed"] == 3
        assert job["total_succeeded"] == 3
        assert job["total_failed"] == 0
        assert job["total_skipped"] == 0
        assert job["details"] == (
            "Processed 3 applications. Succeeded: 3, Failed: 0, Skipped (locked): 0"
        )
        assert result.message == "Bot completed. Processed: 3, Succeeded: 3, Failed: 0, Skipped: 0"

    def test_zero_candidates(self, temp_db):
        result = make_runner(temp_db).run()
        job = bot_job(temp_db, result.job_id)

        assert result.status == BotJobStatus.COMPLETED
        assert job["total_processed"] == 0
        assert job["total_succeeded"] == 0

    def test_job_is_running_while_processing(self, temp_db):
        add_application(temp_db, "vera@example.com")
        observed = []

        class ObservingExecutor(TransitionExecutor):
            def apply_transition(self, *args, **kwargs):
                observed.extend(query(temp_db, "SELECT status, total_processed FROM bot_jobs"))
                return super().apply_transition(*args, **kwargs)

        runner = make_runner(temp_db, executor=ObservingExecutor(temp_db, clock=fixed_clock))
        result = runner.run()

        assert observed == [{"status": "Running", "total_processed": None}]
        assert bot_job(temp_db, result.job_id)["status"] == "Completed"

    def test_each_run_gets_its_own_job(self, temp_db):
        runner = make_runner(temp_db)
        first = runner.run()
        second = runner.run()

        assert first.job_id != second.job_id


class TestConfigurationFailure:
    """Bad run parameters produce a Failed job instead of an exception."""

    @pytest.mark.parametrize("cooldown", ["soon", "-5", -1, None])
    def test_invalid_cooldown(self, temp_db, cooldown):
        app_id = add_application(temp_db, "will@example.com")

        result = make_runner(temp_db, cooldown_seconds=cooldown).run()

        assert result.status == BotJobStatus.FAILED
        assert result.message.startswith("Bot run failed: Configuration error")
        job = bot_job(temp_db, result.job_id)
        assert job["status"] == "Failed"
        assert "cooldown" in job["details"]
        assert job["total_processed"] is None
        assert job["finished_at"] == ts()
        assert application(temp_db, app_id)["current_status"] == "Applied"

    def test_numeric_string_cooldown_accepted(self, temp_db):
        app_id = add_application(temp_db, "xena@example.com")

        result = make_runner(temp_db, cooldown_seconds="60").run()

        assert result.status == BotJobStatus.COMPLETED
        assert application(temp_db, app_id)["current_status"] == "Reviewed"

    @pytest.mark.parametrize("batch_size", [0, -1, 1001, "ten"])
    def test_invalid_batch_size(self, temp_db, batch_size):
        result = make_runner(temp_db).run(batch_size=batch_size)

        assert result.status == BotJobStatus.FAILED
        job = bot_job(temp_db, result.job_id)
        assert job["status"] == "Failed"
        assert "batch_size" in job["details"]

    def test_invalid_max_workers(self, temp_db):
        result = make_runner(temp_db, max_workers=0).run()

        assert result.status == BotJobStatus.FAILED

    def test_failed_result_dict_has_no_totals(self, temp_db):
        payload = make_runner(temp_db, cooldown_seconds="soon").run().to_dict()

        assert payload["status"] == "Failed"
        assert "total_processed" not in payload
        assert "job_id" in payload

    def test_missing_database_raises(self, tmp_path):
        runner = make_runner(str(tmp_path / "missing.db"))

        with pytest.raises(ToolError):
            runner.run()


class TestWorkerPool:
    """Parallel processing matches sequential outcomes."""

    def test_parallel_totals_match_sequential(self, temp_db):
        ids = [add_application(temp_db, f"pool{i}@example.com") for i in range(12)]

        result = make_runner(temp_db, max_workers=4).run()

        assert result.summary.succeeded == 12
        assert result.summary.failed == 0
        assert result.summary.skipped == 0
        assert [r.application_id for r in result.summary.results] == ids

        for app_id in ids:
            assert application(temp_db, app_id)["current_status"] == "Reviewed"
            assert application(temp_db, app_id)["lock_token"] is None
            assert len(logs_for(temp_db, app_id)) == 1

    def test_parallel_with_skips(self, temp_db):
        ids = [add_application(temp_db, f"mix{i}@example.com") for i in range(6)]
        runner = make_runner(temp_db)
        candidates = runner.select_candidates(batch_size=50, cooldown_seconds=60)

        locks = LockCoordinator(temp_db)
        locks.acquire(ids[1])
        locks.acquire(ids[4])

        summary = runner.process_candidates(candidates, dry_run=False, max_workers=3)

        assert summary.succeeded == 4
        assert summary.skipped == 2
        assert summary.processed == summary.succeeded + summary.failed


class TestSummary:
    """Tests for BotRunSummary accounting."""

    def test_fold_counts(self):
        summary = BotRunSummary.fold([
            CandidateResult(1, CandidateOutcome.SUCCEEDED),
            CandidateResult(2, CandidateOutcome.FAILED, error="x"),
            CandidateResult(3, CandidateOutcome.SKIPPED),
            CandidateResult(4, CandidateOutcome.SUCCEEDED),
        ])

        assert summary.succeeded == 2
        assert summary.failed == 1
        assert summary.skipped == 1
        assert summary.processed == 3

    def test_empty_summary(self):
        summary = BotRunSummary.fold([])
        assert summary.processed == 0
        assert summary.describe() == "Processed 0 applications. Succeeded: 0, Failed: 0, Skipped (locked): 0"


class TestSelectionFailure:
    """A failing candidate query is recorded on the job, not raised."""

    def test_query_error_fails_job(self, temp_db, monkeypatch):
        app_id = add_application(temp_db, "yuri@example.com")

        def broken_query(conn, threshold, batch_size):
            raise create_db_error("disk I/O error", retryable=True)

        monkeypatch.setattr("utils.bot_runner.fetch_bot_candidates", broken_query)

        result = make_runner(temp_db).run(triggered_by="admin@example.com")

        assert result.job_id is not None
        assert result.status == BotJobStatus.FAILED
        assert result.message == "Bot run failed: Database error: disk I/O error"
        job = bot_job(temp_db, result.job_id)
        assert job["status"] == "Failed"
        assert "disk I/O error" in job["details"]
        assert job["total_processed"] is None
        assert application(temp_db, app_id)["current_status"] == "Applied"


class TestFinalizationFailure:
    """The job id comes back even when the final job record cannot be written."""

    @staticmethod
    def fail_finalize(monkeypatch, failures):
        calls = {"count": 0}
        original = PipelineWriter.finalize_bot_job

        def flaky_finalize(self, *args, **kwargs):
            calls["count"] += 1
            if calls["count"] <= failures:
                raise create_db_error("database is locked", retryable=True)
            return original(self, *args, **kwargs)

        monkeypatch.setattr(PipelineWriter, "finalize_bot_job", flaky_finalize)
        return calls

    def test_completed_run_keeps_job_id(self, temp_db, monkeypatch):
        app_id = add_application(temp_db, "zane@example.com")
        calls = self.fail_finalize(monkeypatch, failures=100)

        result = make_runner(temp_db, retry_backoff=0).run()

        assert calls["count"] == 3
        assert result.job_id is not None
        assert result.status == BotJobStatus.COMPLETED
        assert result.summary.succeeded == 1
        assert "could not be finalized" in result.message
        assert "database is locked" in result.message
        assert bot_job(temp_db, result.job_id)["status"] == "Running"
        assert application(temp_db, app_id)["current_status"] == "Reviewed"

    def test_failed_run_keeps_job_id(self, temp_db, monkeypatch):
        self.fail_finalize(monkeypatch, failures=100)

        result = make_runner(temp_db, cooldown_seconds="soon", retry_backoff=0).run()

        assert result.status == BotJobStatus.FAILED
        assert result.message.startswith("Bot run failed: Configuration error")
        assert "could not be finalized" in result.message
        assert bot_job(temp_db, result.job_id)["status"] == "Running"

    def test_transient_failure_is_retried(self, temp_db, monkeypatch):
        add_application(temp_db, "abby@example.com")
        calls = self.fail_finalize(monkeypatch, failures=1)

        result = make_runner(temp_db, retry_backoff=0).run()

        assert calls["count"] == 2
        assert "could not be finalized" not in result.message
        job = bot_job(temp_db, result.job_id)
        assert job["status"] == "Completed"
        assert job["total_succeeded"] == 1


class FailingReleaseLocks(LockCoordinator):
    """Release raises DB_ERROR for the first `failures` calls."""

    def __init__(self, db_path, failures):
        super().__init__(db_path, release_backoff=0)
        self.failures = failures

    def release(self, application_id):
        if self.failures > 0:
            self.failures -= 1
            raise create_db_error("database is locked", retryable=True)
        super().release(application_id)


class TestReleaseFailure:
    """Outcomes follow the committed transition, not the lock release."""

    def test_transient_release_failure_retried(self, temp_db):
        app_id = add_application(temp_db, "bea@example.com")
        runner = make_runner(temp_db, locks=FailingReleaseLocks(temp_db, failures=1))

        result = runner.run()

        assert result.summary.succeeded == 1
        assert result.summary.failed == 0
        assert result.summary.results[0].error is None
        assert application(temp_db, app_id)["lock_token"] is None
        assert application(temp_db, app_id)["current_status"] == "Reviewed"

    def test_exhausted_release_still_counts_committed_move(self, temp_db):
        app_id = add_application(temp_db, "cleo@example.com")
        runner = make_runner(temp_db, locks=FailingReleaseLocks(temp_db, failures=100))

        result = runner.run()

        assert result.summary.succeeded == 1
        assert result.summary.failed == 0
        item = result.summary.results[0]
        assert item.outcome == CandidateOutcome.SUCCEEDED
        assert item.new_status == "Reviewed"
        assert item.error.startswith("Lock release failed: Database error: database is locked")

        logs = logs_for(temp_db, app_id)
        assert [(log["old_status"], log["new_status"]) for log in logs] == [("Applied", "Reviewed")]
        assert bot_job(temp_db, result.job_id)["total_succeeded"] == 1
        assert application(temp_db, app_id)["lock_token"] is not None
