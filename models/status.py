"""
Centralized, type-safe status definitions for the HireBot pipeline.

This module is the single source of truth for all status values used across
the application. It defines:

- ``ApplicationStatus``: hiring stages stored in ``applications.current_status``
  and in the ``activity_logs`` audit trail.
- ``PIPELINE_SEQUENCE``: the ordered forward path through those stages.
- ``BotJobStatus``: lifecycle states of a persisted bot job record.

All Enums inherit from ``(str, Enum)`` so that members are directly
comparable to plain strings and serialize naturally to JSON at tool
boundaries.
"""

from enum import Enum


class ApplicationStatus(str, Enum):
    """Enum for hiring stages stored in the 'applications' table.

    Forward path:
        Applied -> Reviewed -> CodingRound -> TechnicalInterview
                -> HRInterview -> Offer -> Hired
    Side branch:
        any stage except Hired -> Rejected
    """

    APPLIED = "Applied"
    REVIEWED = "Reviewed"
    CODING_ROUND = "CodingRound"
    TECHNICAL_INTERVIEW = "TechnicalInterview"
    HR_INTERVIEW = "HRInterview"
    OFFER = "Offer"
    HIRED = "Hired"
    REJECTED = "Rejected"


# Ordered forward path. Rejected is a side branch outside it.
PIPELINE_SEQUENCE = (
    ApplicationStatus.APPLIED,
    ApplicationStatus.REVIEWED,
    ApplicationStatus.CODING_ROUND,
    ApplicationStatus.TECHNICAL_INTERVIEW,
    ApplicationStatus.HR_INTERVIEW,
    ApplicationStatus.OFFER,
    ApplicationStatus.HIRED,
)

# Stages the bot never selects as candidates.
BOT_EXCLUDED_STATUSES = (ApplicationStatus.HIRED, ApplicationStatus.OFFER)


class BotJobStatus(str, Enum):
    """Enum for the lifecycle of a bot job record.

    Running -> Completed | Failed. A job leaves Running exactly once.
    """

    RUNNING = "Running"
    COMPLETED = "Completed"
    FAILED = "Failed"
