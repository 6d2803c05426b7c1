"""
Core analytics module.

Contains the data models, the schema-adaptive query builder and the
PostgreSQL client for the visitor table.
"""

from .client import VisitorStore
from .models import (
    AnalyticsData,
    AnalyticsOverview,
    CityStats,
    ConnectionReport,
    CountryStats,
    DailyBucket,
    DashboardMetrics,
    GeolocationResult,
    HourlyBucket,
    RecentActivity,
    SchemaReport,
    VisitorRecord,
    VisitPayload,
)
from .schema import ColumnAvailability, build_select_query

__all__ = [
    "VisitorRecord", "VisitPayload", "GeolocationResult",
    "AnalyticsData", "AnalyticsOverview", "CountryStats", "CityStats",
    "RecentActivity", "HourlyBucket", "DailyBucket",
    "DashboardMetrics", "SchemaReport", "ConnectionReport",
    "ColumnAvailability", "build_select_query",
    "VisitorStore",
]
