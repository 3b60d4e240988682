"""Reject/revise cycle tracking.

After a configurable number of rejections (three by default) an entry is
escalated and can only be revised with an administrative override.
"""

from dataclasses import dataclass
from typing import Optional

DEFAULT_MAX_REVISION_CYCLES = 3


@dataclass
class RevisionCheck:
    """Outcome of counting one more rejection.

    Attributes:
        revision_count: Count after this rejection
        should_escalate: Whether the limit has been reached
        message: Escalation message when escalating
    """

    revision_count: int
    should_escalate: bool
    message: Optional[str] = None


def check_revision_on_rejection(
    current_count: Optional[int], max_cycles: int = DEFAULT_MAX_REVISION_CYCLES
) -> RevisionCheck:
    """Count a rejection and decide whether it triggers escalation.

    Example:
        >>> check_revision_on_rejection(2).should_escalate
        True
    """
    new_count = (current_count or 0) + 1
    escalate = new_count >= max_cycles
    message = None
    if escalate:
        message = (
            f"Entry has been rejected {new_count} times and requires admin review."
        )
    return RevisionCheck(
        revision_count=new_count, should_escalate=escalate, message=message
    )


def requires_admin_intervention(
    revision_count: Optional[int],
    escalated_to_admin: bool,
    max_cycles: int = DEFAULT_MAX_REVISION_CYCLES,
) -> bool:
    if escalated_to_admin:
        return True
    return (revision_count or 0) >= max_cycles


def remaining_revision_attempts(
    revision_count: Optional[int], max_cycles: int = DEFAULT_MAX_REVISION_CYCLES
) -> int:
    """Rejections left before escalation (negative once exceeded)."""
    return max_cycles - (revision_count or 0)


def escalation_warning(
    revision_count: Optional[int], max_cycles: int = DEFAULT_MAX_REVISION_CYCLES
) -> Optional[str]:
    """Message for the submitter as the revision limit approaches."""
    remaining = remaining_revision_attempts(revision_count, max_cycles)

    if remaining <= 0:
        return (
            f"This entry has exceeded the maximum revision cycles ({max_cycles}) "
            "and requires admin review."
        )
    if remaining == 1:
        return (
            "Warning: This is the last revision attempt. One more rejection "
            "will escalate this entry to admin review."
        )
    if remaining == 2:
        return f"Note: {remaining} revision attempts remaining before admin escalation."
    return None
