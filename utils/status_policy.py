"""
Transition policy for application statuses.

This module enforces the forward-only hiring pipeline:
- Any forward move along PIPELINE_SEQUENCE is allowed, including skips
- Rejected is reachable from every status except Hired (re-rejecting a
  rejected application is accepted and only adds an audit row)
- Everything else (backward, same-status, leaving Rejected) is blocked

The bot uses next_automated_status, which only ever moves one stage.
"""

from typing import Any, Dict, List, Optional, Union

from models.errors import create_transition_error
from models.status import ApplicationStatus, PIPELINE_SEQUENCE

StatusLike = Union[ApplicationStatus, str]


def _coerce(status: StatusLike) -> ApplicationStatus:
    if isinstance(status, ApplicationStatus):
        return status
    return ApplicationStatus(status)


def stage_index(status: StatusLike) -> Optional[int]:
    """Position of a status in PIPELINE_SEQUENCE, or None for Rejected."""
    status = _coerce(status)
    if status in PIPELINE_SEQUENCE:
        return PIPELINE_SEQUENCE.index(status)
    return None


class TransitionResult:
    """Result of a transition policy check."""

    def __init__(
        self,
        allowed: bool,
        allowed_targets: Optional[List[ApplicationStatus]] = None,
        error_message: Optional[str] = None,
    ):
        """
        Initialize a transition result.

        Args:
            allowed: Whether the transition is allowed
            allowed_targets: Statuses reachable from the current status
            error_message: Error message if transition is blocked
        """
        self.allowed = allowed
        self.allowed_targets = allowed_targets or []
        self.error_message = error_message

    def to_dict(self) -> Dict[str, Any]:
        """Convert result to dictionary format."""
        result = {
            "allowed": self.allowed,
            "allowed_targets": [s.value for s in self.allowed_targets],
        }
        if self.error_message:
            result["error_message"] = self.error_message
        return result


def is_valid_transition(current: StatusLike, target: StatusLike) -> bool:
    """
    Decide whether current -> target is a legal status change.

    True iff target is later than current in PIPELINE_SEQUENCE, or target is
    Rejected and current is not Hired.

    Examples:
        >>> is_valid_transition("Applied", "HRInterview")
        True
        >>> is_valid_transition("HRInterview", "Reviewed")
        False
        >>> is_valid_transition("CodingRound", "Rejected")
        True
        >>> is_valid_transition("Hired", "Rejected")
        False
    """
    current = _coerce(current)
    target = _coerce(target)

    if target == ApplicationStatus.REJECTED:
        return current != ApplicationStatus.HIRED

    current_index = stage_index(current)
    target_index = stage_index(target)
    if current_index is None or target_index is None:
        return False

    return target_index > current_index


def allowed_targets(current: StatusLike) -> List[ApplicationStatus]:
    """Statuses reachable from current, in pipeline order with Rejected last."""
    current = _coerce(current)
    candidates = list(PIPELINE_SEQUENCE) + [ApplicationStatus.REJECTED]
    return [status for status in candidates if is_valid_transition(current, status)]


def check_transition(current: StatusLike, target: StatusLike) -> TransitionResult:
    """
    Validate a status change and report what would have been acceptable.

    Returns:
        TransitionResult with allowed flag, allowed targets and, when
        blocked, a human-readable reason
    """
    current = _coerce(current)
    target = _coerce(target)
    targets = allowed_targets(current)

    if is_valid_transition(current, target):
        return TransitionResult(allowed=True, allowed_targets=targets)

    if current == target:
        reason = f"Application is already in {current.value}"
    elif not targets:
        reason = f"{current.value} is a terminal status"
    else:
        reason = "Status can only move forward or be rejected"

    return TransitionResult(
        allowed=False,
        allowed_targets=targets,
        error_message=f"Invalid transition from {current.value} to {target.value}. {reason}.",
    )


def check_transition_or_raise(current: StatusLike, target: StatusLike) -> TransitionResult:
    """
    Validate a status change, raising when it is not allowed.

    Raises:
        ToolError: TRANSITION_ERROR with the allowed targets in details
    """
    result = check_transition(current, target)
    if not result.allowed:
        raise create_transition_error(
            _coerce(current).value,
            _coerce(target).value,
            [s.value for s in result.allowed_targets],
        )
    return result


def next_automated_status(current: StatusLike) -> Optional[ApplicationStatus]:
    """
    The single stage the bot advances to from current.

    Returns None for Offer, Hired and Rejected: the bot never moves
    applications into Hired and never out of a terminal status.
    """
    current = _coerce(current)
    index = stage_index(current)
    if index is None:
        return None

    # Offer -> Hired is left to humans
    if index >= len(PIPELINE_SEQUENCE) - 2:
        return None

    return PIPELINE_SEQUENCE[index + 1]
