"""
Issue Manager - Business Logic

Orchestrates the reporting workflow around the IssueStore: classification
of new reports, notifications to residents and employees, dashboard data.
"""

import logging
from typing import Any, Dict, List, Optional

from civicdesk.analytics.aggregator import StatsAggregator
from civicdesk.assignment.directory import Employee
from civicdesk.classification.gateway import (
    ClassificationGateway,
    analyze_image_with_fallback,
    classify_with_fallback,
)
from civicdesk.classification.keywords import priority_for_category
from civicdesk.config import CLASSIFIER_TIMEOUT_SECONDS
from civicdesk.notifications import NotificationCenter, NotificationType
from .access import Actor
from .models import Issue, IssueStatus
from .store import IssueStore, parse_category

logger = logging.getLogger(__name__)


STATUS_MESSAGES = {
    IssueStatus.PENDING: "Your report is back in the queue awaiting review.",
    IssueStatus.IN_PROGRESS: "Work has started on your report.",
    IssueStatus.RESOLVED: "Your report has been marked as resolved. Please confirm the fix.",
    IssueStatus.REJECTED: "Your report was not accepted by the municipality.",
}


class IssueManager:
    """
    Manages the reporting workflow.

    Responsibilities:
    - Classify new reports (gateway with keyword fallback)
    - Pick default priority from the category
    - Notify reporters and assignees about lifecycle events
    - Provide dashboard data for staff

    Example:
        manager = IssueManager(store, NotificationCenter())

        issue = manager.submit_report(resident, "Burst pipe", "Water flooding street",
                                      location="12 Church St")
        manager.assign_issue(issue.id, "water", "emp-water-01", actor=staff)
        manager.change_status(issue.id, "resolved", actor=staff)
    """

    def __init__(
        self,
        store: IssueStore,
        notifications: Optional[NotificationCenter] = None,
        gateway: Optional[ClassificationGateway] = None,
        classifier_timeout: float = CLASSIFIER_TIMEOUT_SECONDS,
        aggregator: Optional[StatsAggregator] = None,
    ):
        """
        Initialize the issue manager.

        Args:
            store: IssueStore owning the issues
            notifications: Inbox service (a private in-memory one if None)
            gateway: External classifier (keyword matching only if None)
            classifier_timeout: Seconds to wait for the classifier
            aggregator: Statistics projections
        """
        self.store = store
        self.notifications = notifications or NotificationCenter()
        self.gateway = gateway
        self.classifier_timeout = classifier_timeout
        self.aggregator = aggregator or StatsAggregator()
        logger.info(
            f"IssueManager initialized (classifier={'gateway' if gateway else 'keywords'})"
        )

    def submit_report(
        self,
        reporter: Actor,
        title: str,
        description: str,
        location: str = "",
        category=None,
        priority=None,
        latitude: Optional[float] = None,
        longitude: Optional[float] = None,
        photo_ref: Optional[str] = None,
    ) -> Issue:
        """
        Classify and create a report.

        The resident's own category and priority win over the suggestion;
        the suggestion is still stored as classifier metadata.
        """
        suggestion = classify_with_fallback(
            self.gateway, title or "", description or "", timeout=self.classifier_timeout
        )

        category = parse_category(category) if category else suggestion.category
        if priority is None:
            priority = priority_for_category(category)

        issue = self.store.create(
            reporter,
            title=title,
            description=description,
            category=category,
            location=location,
            latitude=latitude,
            longitude=longitude,
            photo_ref=photo_ref,
            priority=priority,
            ai_category=suggestion.category,
            ai_confidence=suggestion.confidence,
            ai_analysis={"keywords": suggestion.keywords, "source": suggestion.source},
        )

        self.notifications.notify(
            reporter.id,
            NotificationType.STATUS_UPDATE,
            "Report received",
            f"Your report '{issue.title}' was submitted as {issue.short_id()}.",
            issue.id,
        )
        return issue

    def submit_image_report(
        self,
        reporter: Actor,
        image_bytes: bytes,
        photo_ref: str,
        location: str = "",
        media_type: str = "image/jpeg",
        title: Optional[str] = None,
        description: Optional[str] = None,
        latitude: Optional[float] = None,
        longitude: Optional[float] = None,
    ) -> Issue:
        """
        Create a report from a photo.

        If image analysis is unavailable the resident's own title and
        description are classified by keyword instead (and are then required).
        """
        analysis = analyze_image_with_fallback(
            self.gateway, image_bytes, media_type, timeout=self.classifier_timeout
        )
        if analysis is None:
            logger.info("Image analysis unavailable, classifying report text")
            return self.submit_report(
                reporter,
                title=title,
                description=description,
                location=location,
                latitude=latitude,
                longitude=longitude,
                photo_ref=photo_ref,
            )

        issue = self.store.create(
            reporter,
            title=title or analysis.title,
            description=description or analysis.description,
            category=analysis.category,
            location=location,
            latitude=latitude,
            longitude=longitude,
            photo_ref=photo_ref,
            priority=analysis.priority,
            ai_category=analysis.category,
            ai_confidence=analysis.confidence,
            ai_analysis=analysis.to_analysis_dict(),
        )

        self.notifications.notify(
            reporter.id,
            NotificationType.STATUS_UPDATE,
            "Report received",
            f"Your photo report '{issue.title}' was submitted as {issue.short_id()}.",
            issue.id,
        )
        return issue

    def change_status(
        self,
        issue_id: str,
        status,
        actor: Actor,
        note: Optional[str] = None,
        staff_notes: Optional[str] = None,
    ) -> Issue:
        """Update status (and optionally notes), then notify the reporter."""
        issue = self.store.update_status(issue_id, status, changed_by=actor, note=note)
        if staff_notes is not None:
            issue = self.store.update_notes(issue_id, staff_notes, actor)

        if issue.status == IssueStatus.RESOLVED:
            kind = NotificationType.RESOLVED
        elif issue.status == IssueStatus.REJECTED:
            kind = NotificationType.REJECTED
        else:
            kind = NotificationType.STATUS_UPDATE

        self.notifications.notify(
            issue.reporter_id,
            kind,
            f"Report {issue.short_id()} is {issue.status.value}",
            STATUS_MESSAGES[issue.status],
            issue.id,
        )
        return issue

    def assign_issue(
        self,
        issue_id: str,
        department,
        employee_id: str,
        actor: Actor,
        employee_name: Optional[str] = None,
        start_work: bool = False,
    ) -> Issue:
        """
        Assign an issue and optionally move it to in-progress.

        Notifies the assignee and the reporter.
        """
        issue = self.store.assign(
            issue_id, department, employee_id, employee_name, assigned_by=actor
        )

        self.notifications.notify(
            employee_id,
            NotificationType.ASSIGNMENT,
            f"New assignment {issue.short_id()}",
            f"You have been assigned '{issue.title}' at {issue.location or 'unspecified location'}.",
            issue.id,
        )

        if start_work and issue.status == IssueStatus.PENDING:
            return self.change_status(
                issue_id, IssueStatus.IN_PROGRESS, actor, note="Work started on assignment"
            )

        self.notifications.notify(
            issue.reporter_id,
            NotificationType.ASSIGNMENT,
            f"Report {issue.short_id()} assigned",
            f"Your report was routed to the {issue.department.value} department.",
            issue.id,
        )
        return issue

    def confirm_resolution(self, issue_id: str, resident: Actor) -> Issue:
        issue = self.store.confirm_resolution(issue_id, resident)
        if issue.assigned_employee_id:
            self.notifications.notify(
                issue.assigned_employee_id,
                NotificationType.COMMENT,
                f"Resolution confirmed for {issue.short_id()}",
                f"{resident.name} confirmed the fix.",
                issue.id,
            )
        return issue

    def reject_resolution(self, issue_id: str, resident: Actor, feedback: str) -> Issue:
        """Resident contests the fix; the assignee is alerted (and Slack, if configured)."""
        issue = self.store.reject_resolution(issue_id, resident, feedback)
        recipient = issue.assigned_employee_id
        if recipient:
            self.notifications.notify(
                recipient,
                NotificationType.REJECTED,
                f"Resolution rejected for {issue.short_id()}",
                f"{resident.name}: {issue.resident_feedback}",
                issue.id,
                mirror_to_slack=True,
            )
        return issue

    def available_employees(self, department) -> List[Employee]:
        """Candidate pool for an assignment dialog (may be empty)."""
        return self.store.resolver.candidates_for(parse_category(department, "department"))

    def get_dashboard_data(self) -> Dict[str, Any]:
        """
        Get data for the staff dashboard.

        Returns:
            Dashboard data dict with:
            - summary: Aggregated statistics
            - insights: Plain-language observations
            - pending: Issues awaiting triage
            - unassigned: Open issues without an assignee
        """
        issues = self.store.list_issues()
        summary = self.aggregator.summary(issues)

        return {
            "summary": summary.to_dict(),
            "insights": self.aggregator.generate_insights(summary),
            "pending": [i.to_dict() for i in issues if i.status == IssueStatus.PENDING],
            "unassigned": [
                i.to_dict() for i in issues
                if not i.is_assigned()
                and i.status in (IssueStatus.PENDING, IssueStatus.IN_PROGRESS)
            ],
        }
