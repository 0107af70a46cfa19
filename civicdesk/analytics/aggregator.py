"""
Issue Statistics

Read-only projections over a snapshot of issues for dashboards and
reports. Every method is a pure function of its input.
"""

import math
from collections import Counter
from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Any

from civicdesk.issues.models import Category, Issue, IssueStatus, Priority
from civicdesk.utils.time import days_between_ceil, ensure_aware, utcnow


PRIORITY_ORDER = [Priority.URGENT, Priority.HIGH, Priority.MEDIUM, Priority.LOW]


def _percentage(count: int, total: int) -> int:
    """Whole-number percentage, halves rounded up."""
    if total == 0:
        return 0
    return int(math.floor(count * 100 / total + 0.5))


@dataclass
class CategoryStats:
    category: Category
    count: int
    percentage: int

    def to_dict(self) -> Dict[str, Any]:
        return {"category": self.category.value, "count": self.count, "percentage": self.percentage}


@dataclass
class BreakdownEntry:
    """Count and share of one status or priority value."""
    value: str
    count: int
    percentage: int


@dataclass
class AnalyticsSummary:
    total_reports: int
    pending_reports: int
    in_progress_reports: int
    resolved_reports: int
    rejected_reports: int
    avg_resolution_days: float
    avg_confidence: float
    category_breakdown: List[CategoryStats] = field(default_factory=list)
    priority_breakdown: List[BreakdownEntry] = field(default_factory=list)
    status_breakdown: List[BreakdownEntry] = field(default_factory=list)
    monthly_trend: List[Dict[str, Any]] = field(default_factory=list)
    top_issue_types: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["category_breakdown"] = [c.to_dict() for c in self.category_breakdown]
        return data


class StatsAggregator:
    """
    Dashboard statistics over an issue collection.

    Example:
        stats = StatsAggregator()
        stats.counts_by_category(store.list_issues())
        # [CategoryStats(Category.WATER, 2, 67), CategoryStats(Category.ROADS, 1, 33)]
    """

    def counts_by_status(self, issues: Iterable[Issue]) -> Dict[IssueStatus, int]:
        counts = {status: 0 for status in IssueStatus}
        for issue in issues:
            counts[issue.status] += 1
        return counts

    def counts_by_priority(self, issues: Iterable[Issue]) -> Dict[Priority, int]:
        counts = {priority: 0 for priority in Priority}
        for issue in issues:
            counts[issue.priority] += 1
        return counts

    def counts_by_category(self, issues: Iterable[Issue]) -> List[CategoryStats]:
        """Categories present in the snapshot, by count descending then name."""
        issues = list(issues)
        counts = Counter(issue.category for issue in issues)
        stats = [
            CategoryStats(category=category, count=count, percentage=_percentage(count, len(issues)))
            for category, count in counts.items()
        ]
        stats.sort(key=lambda s: (-s.count, s.category.value))
        return stats

    def average_resolution_days(self, issues: Iterable[Issue]) -> float:
        """Mean of whole days (rounded up) from creation to last update, over resolved issues."""
        durations = [
            days_between_ceil(issue.created_at, issue.updated_at)
            for issue in issues
            if issue.status == IssueStatus.RESOLVED
        ]
        if not durations:
            return 0.0
        return sum(durations) / len(durations)

    def average_classification_confidence(self, issues: Iterable[Issue]) -> float:
        values = [issue.ai_confidence for issue in issues if issue.ai_confidence is not None]
        if not values:
            return 0.0
        return sum(values) / len(values)

    def priority_breakdown(self, issues: Iterable[Issue]) -> List[BreakdownEntry]:
        """Priorities present in the snapshot, most urgent first."""
        issues = list(issues)
        counts = self.counts_by_priority(issues)
        return [
            BreakdownEntry(p.value, counts[p], _percentage(counts[p], len(issues)))
            for p in PRIORITY_ORDER
            if counts[p]
        ]

    def status_breakdown(self, issues: Iterable[Issue]) -> List[BreakdownEntry]:
        issues = list(issues)
        counts = self.counts_by_status(issues)
        entries = [
            BreakdownEntry(s.value, n, _percentage(n, len(issues)))
            for s, n in counts.items()
            if n
        ]
        entries.sort(key=lambda e: (-e.count, e.value))
        return entries

    def monthly_trend(
        self, issues: Iterable[Issue], months: int = 6, now: Optional[datetime] = None
    ) -> List[Dict[str, Any]]:
        """Issues created per calendar month over the last N months (oldest first)."""
        now = ensure_aware(now) if now else utcnow()

        keys = []
        year, month = now.year, now.month
        for _ in range(months):
            keys.append(f"{year}-{month:02d}")
            month -= 1
            if month == 0:
                year, month = year - 1, 12
        keys.reverse()

        counts = {key: 0 for key in keys}
        for issue in issues:
            key = f"{issue.created_at.year}-{issue.created_at.month:02d}"
            if key in counts:
                counts[key] += 1

        return [{"date": key, "count": counts[key]} for key in keys]

    def top_issue_types(self, issues: Iterable[Issue], limit: int = 5) -> List[Dict[str, Any]]:
        counts = Counter(
            (issue.ai_analysis or {}).get("issue_type") or "Unknown" for issue in issues
        )
        ranked = sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))
        return [{"type": t, "count": n} for t, n in ranked[:limit]]

    def summary(self, issues: Iterable[Issue], now: Optional[datetime] = None) -> AnalyticsSummary:
        issues = list(issues)
        by_status = self.counts_by_status(issues)

        return AnalyticsSummary(
            total_reports=len(issues),
            pending_reports=by_status[IssueStatus.PENDING],
            in_progress_reports=by_status[IssueStatus.IN_PROGRESS],
            resolved_reports=by_status[IssueStatus.RESOLVED],
            rejected_reports=by_status[IssueStatus.REJECTED],
            avg_resolution_days=self.average_resolution_days(issues),
            avg_confidence=self.average_classification_confidence(issues),
            category_breakdown=self.counts_by_category(issues),
            priority_breakdown=self.priority_breakdown(issues),
            status_breakdown=self.status_breakdown(issues),
            monthly_trend=self.monthly_trend(issues, now=now),
            top_issue_types=self.top_issue_types(issues),
        )

    def generate_insights(self, summary: AnalyticsSummary) -> List[str]:
        """Plain-language observations for the staff dashboard."""
        insights: List[str] = []
        if summary.total_reports == 0:
            return insights

        resolution_rate = _percentage(summary.resolved_reports, summary.total_reports)
        if resolution_rate > 75:
            insights.append(f"Excellent resolution rate of {resolution_rate}%")
        elif resolution_rate < 50:
            insights.append(
                f"Resolution rate is {resolution_rate}%, consider increasing resources"
            )

        if summary.avg_resolution_days > 0:
            days = round(summary.avg_resolution_days, 1)
            if summary.avg_resolution_days <= 3:
                insights.append(f"Fast average resolution time of {days} days")
            elif summary.avg_resolution_days > 7:
                insights.append(f"Average resolution time is {days} days, consider optimization")

        if summary.category_breakdown:
            top = summary.category_breakdown[0]
            if top.percentage > 40:
                insights.append(
                    f"{top.category.value} issues represent {top.percentage}% of all reports"
                )

        urgent = next(
            (p.count for p in summary.priority_breakdown if p.value == Priority.URGENT.value), 0
        )
        if urgent > summary.total_reports * 0.2:
            insights.append(
                f"High number of urgent issues ({urgent}), immediate attention required"
            )

        if summary.avg_confidence > 0.85:
            insights.append(
                f"Classifier shows {round(summary.avg_confidence * 100)}% average confidence"
            )

        if summary.pending_reports > summary.in_progress_reports * 2:
            insights.append(
                f"Growing backlog: {summary.pending_reports} pending reports need assignment"
            )

        return insights
