"""
Issue Export

CSV, JSON and plain-text summary renderings of an issue snapshot for the
reporting UI.
"""

import csv
import io
import json
from collections import Counter
from datetime import datetime
from typing import Iterable, List, Optional

from civicdesk.issues.models import Issue, IssueStatus
from civicdesk.utils.time import utcnow

CSV_HEADER = [
    "Report ID",
    "Title",
    "Description",
    "Category",
    "Priority",
    "Status",
    "Location",
    "Latitude",
    "Longitude",
    "Reported By",
    "Created Date",
    "Updated Date",
    "Assigned To",
    "AI Confidence",
    "Issue Type",
    "Keywords",
    "Safety Risk Level",
]


def _format_timestamp(dt: datetime) -> str:
    return dt.strftime("%Y-%m-%d %H:%M:%S")


def _csv_row(issue: Issue) -> List[str]:
    analysis = issue.ai_analysis or {}
    return [
        issue.short_id(),
        issue.title,
        issue.description,
        issue.category.value,
        issue.priority.value,
        issue.status.value,
        issue.location or "",
        "" if issue.latitude is None else str(issue.latitude),
        "" if issue.longitude is None else str(issue.longitude),
        issue.reporter_name,
        _format_timestamp(issue.created_at),
        _format_timestamp(issue.updated_at),
        issue.assigned_employee_name or "Unassigned",
        f"{round(issue.ai_confidence * 100)}%" if issue.ai_confidence is not None else "",
        analysis.get("issue_type", ""),
        ", ".join(analysis.get("keywords", [])),
        analysis.get("risk_level", ""),
    ]


def to_csv(issues: Iterable[Issue]) -> str:
    """
    Render issues as CSV.

    Fields containing commas, quotes or line breaks are quoted and embedded
    quotes doubled. Returns an empty string for an empty collection.
    """
    issues = list(issues)
    if not issues:
        return ""

    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_MINIMAL, lineterminator="\n")
    writer.writerow(CSV_HEADER)
    for issue in issues:
        writer.writerow(_csv_row(issue))
    return buffer.getvalue()


def to_json(issues: Iterable[Issue]) -> str:
    """Full-detail JSON export (same layout as the stored records)."""
    return json.dumps([issue.to_dict() for issue in issues], indent=2)


def _share(count: int, total: int) -> int:
    return round(count * 100 / total) if total else 0


def summary_report(
    issues: Iterable[Issue],
    generated_at: Optional[datetime] = None,
    title: str = "Service Delivery Reports Summary",
) -> str:
    """Plain-text overview with status, category and priority breakdowns."""
    issues = list(issues)
    total = len(issues)
    generated_at = generated_at or utcnow()

    statuses = Counter(i.status for i in issues)
    categories = Counter(i.category.value for i in issues)
    priorities = Counter(i.priority.value for i in issues)

    lines = [
        title,
        f"Generated: {_format_timestamp(generated_at)}",
        "=" * 64,
        "",
        "OVERVIEW",
        "--------",
        f"Total Reports: {total}",
    ]
    for label, status in (
        ("Pending", IssueStatus.PENDING),
        ("In Progress", IssueStatus.IN_PROGRESS),
        ("Resolved", IssueStatus.RESOLVED),
        ("Rejected", IssueStatus.REJECTED),
    ):
        lines.append(f"{label}: {statuses[status]} ({_share(statuses[status], total)}%)")

    lines += ["", "CATEGORY BREAKDOWN", "------------------"]
    for category, count in sorted(categories.items(), key=lambda kv: (-kv[1], kv[0])):
        lines.append(f"{category}: {count} ({_share(count, total)}%)")

    lines += ["", "PRIORITY BREAKDOWN", "------------------"]
    for priority, count in sorted(priorities.items(), key=lambda kv: (-kv[1], kv[0])):
        lines.append(f"{priority}: {count} ({_share(count, total)}%)")

    lines += ["", "=" * 64]
    return "\n".join(lines) + "\n"
