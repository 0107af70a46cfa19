"""
Issue Store

Sole owner of the issue collection. Every mutation goes through here so the
lifecycle rules, the audit trail and the access checks are enforced in one
place. Records are persisted through an injected StorageBackend.
"""

import logging
import math
import threading
import uuid
from contextlib import contextmanager
from datetime import datetime
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional

from civicdesk.utils.time import utcnow
from . import access
from .access import Actor
from .errors import (
    InvalidAssignmentError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from .lifecycle import check_transition, parse_status
from .models import Category, Issue, IssueStatus, Priority, StatusHistoryEntry
from .storage import StorageBackend

if TYPE_CHECKING:
    from civicdesk.assignment.resolver import AssignmentResolver

logger = logging.getLogger(__name__)


def parse_category(value, field_name: str = "category") -> Category:
    """Coerce a category/department value, raising ValidationError if unknown."""
    if isinstance(value, Category):
        return value
    try:
        return Category(value)
    except ValueError:
        raise ValidationError(f"Unknown {field_name}: {value!r}") from None


def parse_priority(value) -> Priority:
    if isinstance(value, Priority):
        return value
    try:
        return Priority(value)
    except ValueError:
        raise ValidationError(f"Unknown priority: {value!r}") from None


def validate_coordinates(latitude, longitude) -> None:
    """Coordinates are optional but paired, finite and within range."""
    if latitude is None and longitude is None:
        return
    if latitude is None or longitude is None:
        raise ValidationError("Latitude and longitude must be given together")

    for name, value, limit in (("latitude", latitude, 90), ("longitude", longitude, 180)):
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValidationError(f"{name} must be a number, got {value!r}")
        if not math.isfinite(value):
            raise ValidationError(f"{name} must be finite")
        if not -limit <= value <= limit:
            raise ValidationError(f"{name} {value} out of range [-{limit}, {limit}]")


def _require_text(value: Optional[str], field_name: str) -> str:
    if value is None or not str(value).strip():
        raise ValidationError(f"{field_name} is required")
    return str(value).strip()


class IssueStore:
    """
    Issue lifecycle and assignment state machine.

    Features:
    - Create issues with validation and a seeded audit trail
    - Status updates constrained by the lifecycle graph
    - Department/employee assignment validated against the directory
    - Resident confirmation or rejection of a resolution
    - Per-issue locking so concurrent writers cannot lose updates

    Example:
        store = IssueStore(InMemoryStorage(), AssignmentResolver(directory))

        issue = store.create(resident, title="Pothole", description="Deep hole",
                             category="roads", location="Main Rd")
        store.assign(issue.id, "roads", "emp-001", "Thabo", assigned_by=staff)
        store.update_status(issue.id, "in-progress", changed_by=staff)
    """

    def __init__(
        self,
        storage: StorageBackend,
        resolver: "AssignmentResolver",
        clock: Callable[[], datetime] = utcnow,
        id_factory: Callable[[], str] = None,
    ):
        """
        Initialize the issue store.

        Args:
            storage: Backend holding one JSON record per issue
            resolver: Assignment candidate resolver
            clock: Returns the current aware datetime (injectable for tests)
            id_factory: Returns fresh issue ids (defaults to uuid4)
        """
        self.storage = storage
        self.resolver = resolver
        self._clock = clock
        self._id_factory = id_factory or (lambda: str(uuid.uuid4()))
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()
        logger.info("IssueStore initialized")

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, issue_id: str) -> Issue:
        """Get issue by ID, raising NotFoundError if unknown."""
        record = self.storage.get(issue_id)
        if record is None:
            raise NotFoundError(f"Issue {issue_id} not found", issue_id=issue_id)
        return Issue.from_dict(record)

    def list_issues(
        self,
        status: Optional[IssueStatus] = None,
        category: Optional[Category] = None,
        reporter_id: Optional[str] = None,
        employee_id: Optional[str] = None,
    ) -> List[Issue]:
        """List issues with optional filters, most recent first."""
        issues = [Issue.from_dict(r) for r in self.storage.list()]

        if status:
            status = parse_status(status)
            issues = [i for i in issues if i.status == status]
        if category:
            category = parse_category(category)
            issues = [i for i in issues if i.category == category]
        if reporter_id:
            issues = [i for i in issues if i.reporter_id == reporter_id]
        if employee_id:
            issues = [i for i in issues if i.assigned_employee_id == employee_id]

        issues.sort(key=lambda i: i.created_at, reverse=True)
        return issues

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def create(
        self,
        reporter: Actor,
        title: str,
        description: str,
        category,
        location: str = "",
        latitude: Optional[float] = None,
        longitude: Optional[float] = None,
        photo_ref: Optional[str] = None,
        priority=Priority.MEDIUM,
        ai_category=None,
        ai_confidence: Optional[float] = None,
        ai_analysis: Optional[Dict[str, Any]] = None,
    ) -> Issue:
        """
        Validate and persist a new issue.

        Args:
            reporter: Resident (or guest) submitting the report
            title: Short summary (required)
            description: Details (required)
            category: One of the Category values
            location: Free-text location
            latitude, longitude: Optional coordinates, both or neither
            photo_ref: Optional photo reference
            priority: Initial priority (caller's choice or classifier output)
            ai_category, ai_confidence, ai_analysis: Classifier metadata

        Returns:
            The persisted Issue with status pending and one history entry

        Raises:
            ValidationError: On empty text, unknown enum values or bad coordinates
            PermissionDeniedError: If the actor may not submit issues
        """
        access.require_can_create(reporter)

        title = _require_text(title, "title")
        description = _require_text(description, "description")
        category = parse_category(category)
        priority = parse_priority(priority)
        validate_coordinates(latitude, longitude)
        if ai_category is not None:
            ai_category = parse_category(ai_category, "ai_category")
        if ai_confidence is not None and not 0.0 <= ai_confidence <= 1.0:
            raise ValidationError(f"ai_confidence {ai_confidence} out of range [0, 1]")

        now = self._clock()
        issue = Issue(
            id=self._new_id(),
            reporter_id=reporter.id,
            reporter_name=reporter.name,
            title=title,
            description=description,
            category=category,
            location=location or "",
            latitude=float(latitude) if latitude is not None else None,
            longitude=float(longitude) if longitude is not None else None,
            photo_ref=photo_ref,
            status=IssueStatus.PENDING,
            priority=priority,
            ai_category=ai_category,
            ai_confidence=ai_confidence,
            ai_analysis=ai_analysis,
            created_at=now,
            updated_at=now,
            status_history=[
                StatusHistoryEntry(
                    status=IssueStatus.PENDING,
                    changed_by="system",
                    changed_at=now,
                    note="created",
                )
            ],
        )

        self._save(issue)
        logger.info(
            f"Created issue {issue.id}: {title} "
            f"(category={category.value}, priority={priority.value})"
        )
        return issue

    def update_status(
        self,
        issue_id: str,
        new_status,
        changed_by: Actor,
        note: Optional[str] = None,
    ) -> Issue:
        """
        Move an issue along the lifecycle graph.

        Re-applying the current status is accepted and still recorded in the
        history. A resolved issue cannot be changed here; it is reopened only
        through reject_resolution.

        Raises:
            NotFoundError: Unknown issue
            InvalidTransitionError: Unknown status or transition not in the graph
            PermissionDeniedError: Actor may not work on this issue
        """
        with self._locked(issue_id):
            issue = self.get(issue_id)
            new_status = parse_status(new_status)
            access.require_can_work_on(changed_by, issue)

            try:
                check_transition(issue.status, new_status, issue_id=issue_id)
            except InvalidTransitionError:
                logger.warning(
                    f"Rejected transition {issue.status.value} -> {new_status.value} "
                    f"for issue {issue_id}"
                )
                raise

            now = self._now(issue)
            issue.status = new_status
            issue.updated_at = now
            if new_status == IssueStatus.RESOLVED and issue.resolved_at is None:
                issue.resolved_at = now
            self._append_history(issue, changed_by.name, now, note)

            self._save(issue)

        logger.info(f"Updated issue {issue_id} status to {new_status.value}")
        return issue

    def assign(
        self,
        issue_id: str,
        department,
        employee_id: str,
        employee_name: Optional[str],
        assigned_by: Actor,
    ) -> Issue:
        """
        Route an issue to a department and employee.

        Status is left unchanged; callers usually follow up with update_status.

        Raises:
            NotFoundError: Unknown issue
            ValidationError: Unknown department
            InvalidAssignmentError: Employee not in the department's pool
            PermissionDeniedError: Actor is not staff
        """
        with self._locked(issue_id):
            issue = self.get(issue_id)
            access.require_can_assign(assigned_by, issue)
            department = parse_category(department, "department")

            if not employee_id or not self.resolver.validate(department, employee_id):
                logger.warning(
                    f"Rejected assignment of issue {issue_id} to {employee_id} "
                    f"in {department.value}"
                )
                raise InvalidAssignmentError(
                    f"Employee {employee_id} is not available in department {department.value}",
                    issue_id=issue_id,
                )

            if not employee_name:
                employee = self.resolver.directory.find(employee_id)
                employee_name = employee.name if employee else employee_id

            now = self._now(issue)
            issue.department = department
            issue.assigned_employee_id = employee_id
            issue.assigned_employee_name = employee_name
            issue.assigned_by = assigned_by.name
            issue.updated_at = now
            self._append_history(
                issue,
                assigned_by.name,
                now,
                f"Assigned to {employee_name} ({department.value})",
            )

            self._save(issue)

        logger.info(f"Assigned issue {issue_id} to {employee_id} ({department.value})")
        return issue

    def update_notes(self, issue_id: str, notes: Optional[str], actor: Actor) -> Issue:
        """Set internal staff notes. Not a status change, so no history entry."""
        with self._locked(issue_id):
            issue = self.get(issue_id)
            access.require_can_work_on(actor, issue)

            issue.staff_notes = notes.strip() if notes and notes.strip() else None
            issue.updated_at = self._now(issue)
            self._save(issue)

        logger.info(f"Updated notes on issue {issue_id}")
        return issue

    def confirm_resolution(self, issue_id: str, resident: Actor) -> Issue:
        """
        Reporter confirms that a resolved issue is actually fixed.

        Raises:
            NotFoundError: Unknown issue
            InvalidTransitionError: Issue is not resolved
            PermissionDeniedError: Actor is not the reporter (or staff)
        """
        with self._locked(issue_id):
            issue = self.get(issue_id)
            access.require_can_review_resolution(resident, issue)
            if issue.status != IssueStatus.RESOLVED:
                raise InvalidTransitionError(
                    f"Cannot confirm a non-resolved issue (status is {issue.status.value})",
                    issue_id=issue_id,
                )

            now = self._now(issue)
            issue.resident_confirmed = True
            issue.resident_rejected = False
            issue.updated_at = now
            self._append_history(issue, resident.name, now, "Resolution confirmed by resident")

            self._save(issue)

        logger.info(f"Resident confirmed resolution of issue {issue_id}")
        return issue

    def reject_resolution(self, issue_id: str, resident: Actor, feedback: str) -> Issue:
        """
        Reporter contests a resolution; the issue goes back to in-progress.

        This is the only way out of the resolved status. resolved_at keeps its
        original value.

        Raises:
            NotFoundError: Unknown issue
            InvalidTransitionError: Issue is not resolved
            ValidationError: Feedback is empty
            PermissionDeniedError: Actor is not the reporter (or staff)
        """
        with self._locked(issue_id):
            issue = self.get(issue_id)
            access.require_can_review_resolution(resident, issue)
            if issue.status != IssueStatus.RESOLVED:
                raise InvalidTransitionError(
                    f"Cannot reject a non-resolved issue (status is {issue.status.value})",
                    issue_id=issue_id,
                )
            feedback = _require_text(feedback, "feedback")

            now = self._now(issue)
            issue.status = IssueStatus.IN_PROGRESS
            issue.resident_rejected = True
            issue.resident_confirmed = False
            issue.resident_feedback = feedback
            issue.updated_at = now
            self._append_history(
                issue, resident.name, now, f"Resolution rejected by resident: {feedback}"
            )

            self._save(issue)

        logger.info(f"Resident rejected resolution of issue {issue_id}; reopened")
        return issue

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @contextmanager
    def _locked(self, issue_id: str):
        """
        Serialize read-modify-write cycles on one issue.

        Locks are only created for issues that exist, so lookups of
        unknown ids do not grow the registry.
        """
        with self._locks_guard:
            if issue_id not in self._locks and self.storage.get(issue_id) is None:
                raise NotFoundError(f"Issue {issue_id} not found", issue_id=issue_id)
            lock = self._locks.setdefault(issue_id, threading.Lock())
        with lock:
            yield

    def _new_id(self) -> str:
        while True:
            issue_id = self._id_factory()
            if self.storage.get(issue_id) is None:
                return issue_id
            logger.warning(f"Issue id collision on {issue_id}, regenerating")

    def _now(self, issue: Issue) -> datetime:
        """Current time, never earlier than the last history entry."""
        now = self._clock()
        if issue.status_history and now < issue.status_history[-1].changed_at:
            return issue.status_history[-1].changed_at
        return now

    def _append_history(
        self, issue: Issue, changed_by: str, changed_at: datetime, note: Optional[str]
    ) -> None:
        issue.status_history.append(
            StatusHistoryEntry(
                status=issue.status,
                changed_by=changed_by,
                changed_at=changed_at,
                note=note,
            )
        )

    def _save(self, issue: Issue) -> None:
        self.storage.put(issue.id, issue.to_dict())
