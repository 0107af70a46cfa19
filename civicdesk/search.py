"""
Issue Search

Text search, filters and sorting for dashboard issue lists.
"""

import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, List, Optional

from civicdesk.issues.models import Issue, Priority
from civicdesk.utils.time import ensure_aware

PRIORITY_RANK = {
    Priority.URGENT: 4,
    Priority.HIGH: 3,
    Priority.MEDIUM: 2,
    Priority.LOW: 1,
}

SORT_FIELDS = ("created_at", "updated_at", "priority", "ai_confidence")


@dataclass
class SearchFilters:
    """Dashboard filter state. "all" or None disables a filter."""
    query: Optional[str] = None
    category: Optional[str] = None
    status: Optional[str] = None
    priority: Optional[str] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    min_confidence: Optional[float] = None
    has_photo: Optional[bool] = None
    assigned_to: Optional[str] = None


def fuzzy_match(text: str, query: str) -> bool:
    """Case-insensitive substring match, or every query word present."""
    if not text:
        return False
    text = text.lower()
    query = query.lower().strip()
    if query in text:
        return True
    return all(word in text for word in re.split(r"\s+", query) if word)


def _searchable_fields(issue: Issue) -> List[str]:
    analysis = issue.ai_analysis or {}
    fields = [issue.title, issue.description, issue.location, issue.reporter_name]
    fields.extend(analysis.get("keywords", []))
    if analysis.get("issue_type"):
        fields.append(analysis["issue_type"])
    return [f for f in fields if f]


def search_issues(issues: Iterable[Issue], query: Optional[str]) -> List[Issue]:
    issues = list(issues)
    if not query or not query.strip():
        return issues
    return [
        issue for issue in issues
        if any(fuzzy_match(text, query) for text in _searchable_fields(issue))
    ]


def _active(value) -> bool:
    return value is not None and value != "all"


def filter_issues(issues: Iterable[Issue], filters: SearchFilters) -> List[Issue]:
    """Apply every active filter in turn."""
    filtered = list(issues)

    if filters.query:
        filtered = search_issues(filtered, filters.query)
    if _active(filters.category):
        filtered = [i for i in filtered if i.category.value == filters.category]
    if _active(filters.status):
        filtered = [i for i in filtered if i.status.value == filters.status]
    if _active(filters.priority):
        filtered = [i for i in filtered if i.priority.value == filters.priority]

    if filters.date_from:
        start = ensure_aware(filters.date_from)
        filtered = [i for i in filtered if i.created_at >= start]
    if filters.date_to:
        # Inclusive of the whole end day
        end = ensure_aware(filters.date_to).replace(hour=0, minute=0, second=0, microsecond=0)
        end += timedelta(days=1)
        filtered = [i for i in filtered if i.created_at < end]

    if filters.min_confidence is not None:
        filtered = [
            i for i in filtered
            if i.ai_confidence is not None and i.ai_confidence >= filters.min_confidence
        ]
    if filters.has_photo is not None:
        filtered = [i for i in filtered if bool(i.photo_ref) == filters.has_photo]
    if _active(filters.assigned_to):
        if filters.assigned_to == "unassigned":
            filtered = [i for i in filtered if not i.is_assigned()]
        else:
            filtered = [i for i in filtered if i.assigned_employee_id == filters.assigned_to]

    return filtered


def sort_issues(
    issues: Iterable[Issue], field: str = "created_at", direction: str = "desc"
) -> List[Issue]:
    """Sort by one of SORT_FIELDS. Missing confidences sort as 0."""
    if field not in SORT_FIELDS:
        raise ValueError(f"Unknown sort field: {field}")

    if field == "priority":
        key = lambda i: PRIORITY_RANK[i.priority]
    elif field == "ai_confidence":
        key = lambda i: i.ai_confidence or 0.0
    else:
        key = lambda i: getattr(i, field)

    return sorted(issues, key=key, reverse=(direction == "desc"))
