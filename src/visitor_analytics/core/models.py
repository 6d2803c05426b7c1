"""
Pydantic models for visitor analytics data.
"""
from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

# =============================================================================
# Raw Data Models
# =============================================================================

class GeolocationResult(BaseModel):
    """Approximate location of an IP address."""
    country: str = "Unknown"
    state: str = "Unknown"
    city: str = "Unknown"
    region: str | None = None
    timezone: str | None = None


class VisitorRecord(BaseModel):
    """A single recorded visit, as returned by the data listing endpoint."""
    model_config = ConfigDict(populate_by_name=True)

    id: int
    ip: str
    country: str = "Unknown"
    state: str = "Unknown"
    city: str = "Unknown"
    client_timestamp: datetime | None = None

    # Caller-supplied
    language: str = "Unknown"
    referrer: str = "Direct"
    page_name: str = "Unknown"

    # Technology (recomputed from user_agent on read)
    user_agent: str = "Unknown"
    browser: str = "Unknown"
    version: str = "Unknown"
    os: str = "Unknown"
    platform: str = "Unknown"
    device: str = "Unknown"
    is_vpn: bool = Field(default=False, alias="isVPN")
    source: str = "Unknown"


class VisitPayload(BaseModel):
    """Body of POST /api/visitor. Every field is optional."""
    userAgent: str | None = None
    page: str | None = None
    timestamp: str | None = None
    language: str | None = None
    referrer: str | None = None


# =============================================================================
# Aggregated Metrics
# =============================================================================

class AnalyticsOverview(BaseModel):
    """Whole-table summary counts."""
    total_visits: int = 0
    unique_visitors: int = 0
    countries_visited: int = 0
    cities_visited: int = 0
    avg_hours_since_visit: float | None = None
    first_visit: datetime | None = None
    last_visit: datetime | None = None


class CountryStats(BaseModel):
    """Visit counts for a country."""
    country: str
    visits: int
    unique_visitors: int


class CityStats(BaseModel):
    """Visit counts for a city."""
    city: str
    visits: int
    unique_visitors: int


class RecentActivity(BaseModel):
    """Totals for the last 24 hours."""
    visits_last_24h: int = 0
    unique_visitors_last_24h: int = 0


class HourlyBucket(BaseModel):
    """Visits within one hour-of-day."""
    hour: int
    visits: int


class DailyBucket(BaseModel):
    """Visits within one calendar day."""
    date: date
    visits: int
    unique_visitors: int


class AnalyticsData(BaseModel):
    """Complete /api/analytics response."""
    success: bool = True
    overview: AnalyticsOverview
    topCountries: list[CountryStats] = Field(default_factory=list)
    topCities: list[CityStats] = Field(default_factory=list)
    recentActivity: RecentActivity
    hourlyDistribution: list[HourlyBucket] = Field(default_factory=list)
    dailyDistribution: list[DailyBucket] = Field(default_factory=list)


class DashboardMetrics(BaseModel):
    """Summary cards derived from the visitor list."""
    totalVisits: int = 0
    uniqueVisitors: int = 0
    topCountry: str = "Unknown"
    topCity: str = "Unknown"
    recentActivity: int = 0
    topBrowser: str = "Unknown"
    topOS: str = "Unknown"
    topDevice: str = "Unknown"
    topLanguage: str = "Unknown"
    topPlatform: str = "Unknown"
    vpnVisits: int = 0
    topBrowserVersion: str = "Unknown"


# =============================================================================
# Diagnostics
# =============================================================================

class ColumnInfo(BaseModel):
    """One row of information_schema.columns."""
    column_name: str
    data_type: str
    is_nullable: str
    column_default: str | None = None


class TableStatistics(BaseModel):
    """Row statistics reported by /api/schema."""
    total_rows: int = 0
    unique_ips: int = 0
    unique_countries: int = 0
    unique_cities: int = 0
    earliest_visit: datetime | None = None
    latest_visit: datetime | None = None


class SchemaReport(BaseModel):
    """Table structure, sample rows and statistics."""
    success: bool = True
    structure: list[ColumnInfo] = Field(default_factory=list)
    sampleData: list[dict[str, Any]] = Field(default_factory=list)
    statistics: TableStatistics


class ConnectionReport(BaseModel):
    """Connectivity check result."""
    success: bool = True
    currentTime: datetime
    tableExists: bool
    rowCount: int | None = None
    sampleData: list[dict[str, Any]] | None = None
    message: str | None = None
