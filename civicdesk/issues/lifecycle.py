"""
Issue Lifecycle

Status transition graph for plain status updates. Reopening a resolved
issue is not part of this graph: it only happens through a resident
rejecting the resolution, which always carries feedback text.
"""

from typing import Dict, FrozenSet

from .errors import InvalidTransitionError
from .models import IssueStatus


TRANSITIONS: Dict[IssueStatus, FrozenSet[IssueStatus]] = {
    IssueStatus.PENDING: frozenset({
        IssueStatus.IN_PROGRESS, IssueStatus.RESOLVED, IssueStatus.REJECTED,
    }),
    IssueStatus.IN_PROGRESS: frozenset({
        IssueStatus.PENDING, IssueStatus.RESOLVED, IssueStatus.REJECTED,
    }),
    IssueStatus.RESOLVED: frozenset(),
    # TODO: confirm with product whether reconsidering a rejection should require a note
    IssueStatus.REJECTED: frozenset({
        IssueStatus.PENDING, IssueStatus.IN_PROGRESS,
    }),
}


def parse_status(value) -> IssueStatus:
    """Coerce a status value, raising InvalidTransitionError for unknown values."""
    if isinstance(value, IssueStatus):
        return value
    try:
        return IssueStatus(value)
    except ValueError:
        raise InvalidTransitionError(f"Unknown status: {value!r}") from None


def can_transition(current: IssueStatus, new: IssueStatus) -> bool:
    """
    Check whether a plain status update is allowed.

    Re-applying the current status is allowed (explicit re-confirmation),
    except for resolved issues, which plain updates cannot touch at all.
    """
    if current == new:
        return current != IssueStatus.RESOLVED
    return new in TRANSITIONS[current]


def check_transition(current: IssueStatus, new: IssueStatus, issue_id: str = None) -> None:
    """Raise InvalidTransitionError if a plain status update is not allowed."""
    if can_transition(current, new):
        return

    if current == IssueStatus.RESOLVED:
        message = (
            f"Cannot move a resolved issue to {new.value}; "
            "only the resident can reopen it by rejecting the resolution"
        )
    else:
        message = f"Cannot move issue from {current.value} to {new.value}"
    raise InvalidTransitionError(message, issue_id=issue_id)
