"""Issue analytics for dashboards."""

from .aggregator import AnalyticsSummary, BreakdownEntry, CategoryStats, StatsAggregator

__all__ = ["AnalyticsSummary", "BreakdownEntry", "CategoryStats", "StatsAggregator"]
