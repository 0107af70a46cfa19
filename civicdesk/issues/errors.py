"""
Issue Errors

All errors are local, synchronous and non-retryable: the caller surfaces
the message and lets the user correct the input.
"""

from typing import Optional


class IssueError(Exception):
    """Base class for issue lifecycle errors."""

    def __init__(self, message: str, issue_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.issue_id = issue_id


class ValidationError(IssueError):
    """Malformed input: empty required field, unknown enum value, bad coordinates."""


class NotFoundError(IssueError):
    """Operation references an unknown issue id."""


class InvalidTransitionError(IssueError):
    """Status change not permitted by the lifecycle graph."""


class InvalidAssignmentError(IssueError):
    """Employee is not in the candidate pool for the department."""


class PermissionDeniedError(IssueError):
    """Actor lacks the capability required by the operation."""
