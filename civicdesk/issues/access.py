"""
Access Control

Role checks at the operation boundary. Callers pass an Actor; the store
decides whether that actor may perform the operation on the given issue.
"""

from dataclasses import dataclass
from enum import Enum

from .errors import PermissionDeniedError
from .models import Issue


class Role(Enum):
    """Who is acting."""
    RESIDENT = "resident"
    STAFF = "staff"
    EMPLOYEE = "employee"
    SYSTEM = "system"


@dataclass(frozen=True)
class Actor:
    """An authenticated caller (identity comes from an external collaborator)."""
    id: str
    name: str
    role: Role

    @classmethod
    def system(cls) -> "Actor":
        return cls(id="system", name="system", role=Role.SYSTEM)

    @classmethod
    def guest(cls, guest_id: str, name: str = "Anonymous Resident") -> "Actor":
        """Residents may report without an account."""
        return cls(id=guest_id, name=name, role=Role.RESIDENT)


def require_can_create(actor: Actor) -> None:
    if actor.role not in (Role.RESIDENT, Role.STAFF, Role.SYSTEM):
        raise PermissionDeniedError(f"{actor.role.value} cannot submit issues")


def require_can_assign(actor: Actor, issue: Issue) -> None:
    if actor.role != Role.STAFF:
        raise PermissionDeniedError(
            f"{actor.role.value} cannot assign issues", issue_id=issue.id
        )


def require_can_work_on(actor: Actor, issue: Issue) -> None:
    """Status and note updates: staff, or the employee the issue is assigned to."""
    if actor.role == Role.STAFF:
        return
    if actor.role == Role.EMPLOYEE and issue.assigned_employee_id == actor.id:
        return
    raise PermissionDeniedError(
        f"{actor.name} ({actor.role.value}) cannot update issue {issue.id}",
        issue_id=issue.id,
    )


def require_can_review_resolution(actor: Actor, issue: Issue) -> None:
    """Confirm/contest a resolution: the reporter, or staff on their behalf."""
    if actor.role == Role.STAFF:
        return
    if actor.role == Role.RESIDENT and actor.id == issue.reporter_id:
        return
    raise PermissionDeniedError(
        f"Only the reporter can review the resolution of issue {issue.id}",
        issue_id=issue.id,
    )
