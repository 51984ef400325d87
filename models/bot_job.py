"""
Outcome accounting for bot runs.

Each candidate yields one CandidateResult. BotRunSummary folds them into the
counts that finalize the bot job record:

    processed = succeeded + failed
    skipped   = lock conflicts, excluded from processed
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from schemas.bot_jobs import BotJobRecord


class CandidateOutcome(str, Enum):
    """What happened to one candidate during a bot run."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class CandidateResult:
    """Result of processing one candidate."""

    application_id: int
    outcome: CandidateOutcome
    previous_status: Optional[str] = None
    new_status: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result = {"application_id": self.application_id, "outcome": self.outcome.value}
        if self.previous_status is not None:
            result["previous_status"] = self.previous_status
        if self.new_status is not None:
            result["new_status"] = self.new_status
        if self.error is not None:
            result["error"] = self.error
        return result


@dataclass
class BotRunSummary:
    """Counts accumulated over one batch."""

    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    results: List[CandidateResult] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return self.succeeded + self.failed

    def add(self, result: CandidateResult) -> "BotRunSummary":
        if result.outcome == CandidateOutcome.SUCCEEDED:
            self.succeeded += 1
        elif result.outcome == CandidateOutcome.FAILED:
            self.failed += 1
        else:
            self.skipped += 1
        self.results.append(result)
        return self

    @classmethod
    def fold(cls, results: Iterable[CandidateResult]) -> "BotRunSummary":
        summary = cls()
        for result in results:
            summary.add(result)
        return summary

    def describe(self, dry_run: bool = False) -> str:
        """Human-readable summary stored in the job's details."""
        text = (
            f"Processed {self.processed} applications. "
            f"Succeeded: {self.succeeded}, Failed: {self.failed}, "
            f"Skipped (locked): {self.skipped}"
        )
        if dry_run:
            text += ". Dry run: no changes were written"
        return text


def to_bot_job_record(row: Dict[str, Any]) -> Dict[str, Any]:
    """Map a bot_jobs row to the stable BotJobRecord output schema."""
    return BotJobRecord.model_validate(row).model_dump()
