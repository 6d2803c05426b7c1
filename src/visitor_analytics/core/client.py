"""
PostgreSQL client for the visitor table.

All reads and writes go through one asyncpg pool. Queries are independent
single statements: nothing here opens a transaction, so aggregates read
back-to-back may see rows inserted in between.
"""
import asyncio
import logging
import ssl
from datetime import datetime
from typing import Any, Optional

import asyncpg

from ..user_agent import classify_user_agent
from .models import (
    AnalyticsData, AnalyticsOverview, CityStats, ColumnInfo, ConnectionReport,
    CountryStats, DailyBucket, GeolocationResult, HourlyBucket, RecentActivity,
    SchemaReport, TableStatistics, VisitorRecord,
)
from .schema import (
    ColumnAvailability, build_select_query,
    create_table_sql, migrate_table_sql,
)

logger = logging.getLogger(__name__)

# Raised when two writers race on CREATE TABLE or ADD COLUMN IF NOT EXISTS
_CREATE_RACE_ERRORS = (
    asyncpg.exceptions.UniqueViolationError,
    asyncpg.exceptions.DuplicateTableError,
    asyncpg.exceptions.DuplicateObjectError,
    asyncpg.exceptions.DuplicateColumnError,
)

# Timestamp columns the aggregates can run on, best first
ANALYTICS_TIME_COLUMNS = ("visit_time", "client_timestamp", "created_at", "timestamp")

TOP_LOCATIONS_LIMIT = 10


def _time_column(availability: ColumnAvailability) -> str:
    for column in ANALYTICS_TIME_COLUMNS:
        if availability.has(column):
            return column
    return ANALYTICS_TIME_COLUMNS[0]


def _ssl_argument(database_url: str, verify: bool):
    """TLS settings for asyncpg: no-verify context unless disabled in the URL."""
    if "sslmode=disable" in database_url:
        return False
    if verify:
        return ssl.create_default_context()
    context = ssl.create_default_context()
    context.check_hostname = False
    context.verify_mode = ssl.CERT_NONE
    return context


class VisitorStore:
    """Reads and writes visitor rows."""

    def __init__(
        self,
        database_url: str,
        table_name: str = "visitor_info",
        ssl_verify: bool = False,
        pool_min_size: int = 1,
        pool_max_size: int = 5,
    ):
        self.database_url = database_url
        self.table = table_name
        self.ssl_verify = ssl_verify
        self.pool_min_size = pool_min_size
        self.pool_max_size = pool_max_size
        self._pool: Optional[asyncpg.Pool] = None
        self._pool_lock = asyncio.Lock()
        self._columns: Optional[ColumnAvailability] = None

    # =========================================================================
    # CONNECTION
    # =========================================================================

    async def _get_pool(self) -> asyncpg.Pool:
        """Get or create the connection pool."""
        if self._pool is None:
            async with self._pool_lock:
                if self._pool is None:
                    self._pool = await asyncpg.create_pool(
                        self.database_url,
                        min_size=self.pool_min_size,
                        max_size=self.pool_max_size,
                        ssl=_ssl_argument(self.database_url, self.ssl_verify),
                    )
                    logger.info(f"Connection pool created (max_size={self.pool_max_size})")
        return self._pool

    async def close(self) -> None:
        """Close the connection pool."""
        if self._pool is not None:
            await self._pool.close()
            self._pool = None
            logger.info("Connection pool closed")

    async def _query(self, sql: str, params: Optional[list] = None) -> list[dict]:
        """Execute a SQL query and return rows as dicts."""
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            rows = await conn.fetch(sql, *(params or []))
        return [dict(row) for row in rows]

    async def _execute(self, sql: str, params: Optional[list] = None) -> None:
        """Execute a SQL statement without returning results."""
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            await conn.execute(sql, *(params or []))

    # =========================================================================
    # SCHEMA
    # =========================================================================

    async def get_columns(self, refresh: bool = False) -> ColumnAvailability:
        """Return the table's columns, introspecting only when not cached.

        A missing table is never cached, so a table created later (by
        another process or by the first visit) is seen on the next read.
        """
        if self._columns is not None and not refresh:
            return self._columns
        rows = await self._query(
            """
            SELECT column_name
            FROM information_schema.columns
            WHERE table_name = $1
            ORDER BY ordinal_position
            """,
            [self.table],
        )
        columns = ColumnAvailability(r["column_name"] for r in rows)
        self._remember_columns(columns)
        return columns

    def _remember_columns(self, columns: ColumnAvailability) -> None:
        if columns.is_empty:
            self._columns = None
            logger.debug(f"Table {self.table} not found; column set not cached")
            return
        self._columns = columns
        logger.debug(f"Resolved columns for {self.table}: {columns.columns}")

    def invalidate_columns(self) -> None:
        """Drop the cached column set so the next read introspects again."""
        self._columns = None

    async def _run_ddl(self, statements: list[str]) -> None:
        for sql in statements:
            try:
                await self._execute(sql)
            except _CREATE_RACE_ERRORS as e:
                logger.debug(f"Concurrent schema change on {self.table} ignored: {e}")

    async def ensure_table(self) -> None:
        """Create the table if absent and add any missing canonical columns.

        DDL only runs when the known layout is incomplete; a table that
        already has every canonical column costs one cached lookup.
        Safe to call concurrently.
        """
        columns = await self.get_columns()
        if columns.is_empty:
            await self._run_ddl([create_table_sql(self.table)])
            logger.info(f"Table {self.table} created")
            columns = await self.get_columns(refresh=True)

        statements = migrate_table_sql(self.table, columns)
        if statements:
            await self._run_ddl(statements)
            logger.info(f"Table {self.table} migrated; column cache invalidated")
            self.invalidate_columns()

    # =========================================================================
    # WRITES
    # =========================================================================

    async def insert_visit(
        self,
        ip: str,
        geolocation: GeolocationResult,
        user_agent: str,
        browser: str,
        version: str,
        os: str,
        platform: str,
        device: str,
        language: str = "Unknown",
        referrer: str = "Direct",
        page_name: str = "Unknown",
        is_vpn: bool = False,
        client_timestamp: Optional[datetime] = None,
        visit_time: Optional[datetime] = None,
    ) -> dict:
        """Insert one visit and return the stored row.

        Missing timestamps default to NOW(); visit_time is only set
        explicitly when loading sample data.
        """
        rows = await self._query(
            f"""
            INSERT INTO {self.table} (
                ip, country, state, city, region, timezone,
                user_agent, browser, version, os, platform, device,
                language, referrer, page_name, is_vpn,
                client_timestamp, visit_time
            )
            VALUES (
                $1, $2, $3, $4, $5, $6,
                $7, $8, $9, $10, $11, $12,
                $13, $14, $15, $16,
                COALESCE($17::timestamptz, NOW()), COALESCE($18::timestamptz, NOW())
            )
            RETURNING *
            """,
            [
                ip, geolocation.country, geolocation.state, geolocation.city,
                geolocation.region, geolocation.timezone,
                user_agent, browser, version, os, platform, device,
                language, referrer, page_name, is_vpn,
                client_timestamp, visit_time,
            ],
        )
        return rows[0] if rows else {}

    async def clear_visits(self) -> None:
        """Delete every row. Only used when loading sample data."""
        await self._execute(f"DELETE FROM {self.table}")

    # =========================================================================
    # LISTING
    # =========================================================================

    async def list_visits(self) -> list[dict[str, Any]]:
        """Return every visit, newest first, with UA fields recomputed."""
        availability = await self.get_columns()
        rows = await self._query(build_select_query(availability, self.table))

        visits = []
        for row in rows:
            ua = classify_user_agent(row.get("user_agent"))
            record = VisitorRecord(**{**row, **ua.to_dict()})
            visits.append(record.model_dump(mode="json", by_alias=True))
        return visits

    # =========================================================================
    # AGGREGATES
    # =========================================================================

    async def _analytics_time_column(self) -> str:
        return _time_column(await self.get_columns())

    async def get_overview(self, ts: str) -> AnalyticsOverview:
        rows = await self._query(
            f"""
            SELECT
                COUNT(*) as total_visits,
                COUNT(DISTINCT ip) as unique_visitors,
                COUNT(DISTINCT country) as countries_visited,
                COUNT(DISTINCT city) as cities_visited,
                AVG(EXTRACT(EPOCH FROM (NOW() - {ts})) / 3600) as avg_hours_since_visit,
                MIN({ts}) as first_visit,
                MAX({ts}) as last_visit
            FROM {self.table}
            """
        )
        return AnalyticsOverview(**rows[0]) if rows else AnalyticsOverview()

    async def get_top_countries(self, limit: int = TOP_LOCATIONS_LIMIT) -> list[CountryStats]:
        rows = await self._query(
            f"""
            SELECT
                country,
                COUNT(*) as visits,
                COUNT(DISTINCT ip) as unique_visitors
            FROM {self.table}
            WHERE country != 'Unknown'
            GROUP BY country
            ORDER BY visits DESC
            LIMIT $1
            """,
            [limit],
        )
        return [CountryStats(**r) for r in rows]

    async def get_top_cities(self, limit: int = TOP_LOCATIONS_LIMIT) -> list[CityStats]:
        rows = await self._query(
            f"""
            SELECT
                city,
                COUNT(*) as visits,
                COUNT(DISTINCT ip) as unique_visitors
            FROM {self.table}
            WHERE city != 'Unknown'
            GROUP BY city
            ORDER BY visits DESC
            LIMIT $1
            """,
            [limit],
        )
        return [CityStats(**r) for r in rows]

    async def get_recent_activity(self, ts: str) -> RecentActivity:
        rows = await self._query(
            f"""
            SELECT
                COUNT(*) as visits_last_24h,
                COUNT(DISTINCT ip) as unique_visitors_last_24h
            FROM {self.table}
            WHERE {ts} >= NOW() - INTERVAL '24 hours'
            """
        )
        return RecentActivity(**rows[0]) if rows else RecentActivity()

    async def get_hourly_distribution(self, ts: str) -> list[HourlyBucket]:
        rows = await self._query(
            f"""
            SELECT
                EXTRACT(HOUR FROM {ts})::int as hour,
                COUNT(*) as visits
            FROM {self.table}
            WHERE {ts} >= NOW() - INTERVAL '24 hours'
            GROUP BY EXTRACT(HOUR FROM {ts})
            ORDER BY hour
            """
        )
        return [HourlyBucket(**r) for r in rows]

    async def get_daily_distribution(self, ts: str) -> list[DailyBucket]:
        rows = await self._query(
            f"""
            SELECT
                DATE({ts}) as date,
                COUNT(*) as visits,
                COUNT(DISTINCT ip) as unique_visitors
            FROM {self.table}
            WHERE {ts} >= NOW() - INTERVAL '7 days'
            GROUP BY DATE({ts})
            ORDER BY date
            """
        )
        return [DailyBucket(**r) for r in rows]

    async def get_analytics(self) -> AnalyticsData:
        """Run every aggregate. Any failing query fails the whole call."""
        ts = await self._analytics_time_column()
        return AnalyticsData(
            overview=await self.get_overview(ts),
            topCountries=await self.get_top_countries(),
            topCities=await self.get_top_cities(),
            recentActivity=await self.get_recent_activity(ts),
            hourlyDistribution=await self.get_hourly_distribution(ts),
            dailyDistribution=await self.get_daily_distribution(ts),
        )

    # =========================================================================
    # DIAGNOSTICS
    # =========================================================================

    async def describe_schema(self) -> SchemaReport:
        """Table structure, the 10 newest rows and basic statistics."""
        self.invalidate_columns()
        structure = await self._query(
            """
            SELECT column_name, data_type, is_nullable, column_default
            FROM information_schema.columns
            WHERE table_name = $1
            ORDER BY ordinal_position
            """,
            [self.table],
        )
        availability = ColumnAvailability(r["column_name"] for r in structure)
        self._remember_columns(availability)
        ts = _time_column(availability)

        sample = await self._query(f"SELECT * FROM {self.table} ORDER BY id DESC LIMIT 10")
        stats = await self._query(
            f"""
            SELECT
                COUNT(*) as total_rows,
                COUNT(DISTINCT ip) as unique_ips,
                COUNT(DISTINCT country) as unique_countries,
                COUNT(DISTINCT city) as unique_cities,
                MIN({ts}) as earliest_visit,
                MAX({ts}) as latest_visit
            FROM {self.table}
            """
        )
        return SchemaReport(
            structure=[ColumnInfo(**r) for r in structure],
            sampleData=sample,
            statistics=TableStatistics(**stats[0]) if stats else TableStatistics(),
        )

    async def check_connection(self) -> ConnectionReport:
        """Check connectivity and whether the table exists."""
        now = await self._query("SELECT NOW() as current_time")
        exists = await self._query(
            """
            SELECT EXISTS (
                SELECT FROM information_schema.tables
                WHERE table_name = $1
            )
            """,
            [self.table],
        )
        current_time = now[0]["current_time"]
        table_exists = bool(exists and exists[0]["exists"])

        if not table_exists:
            return ConnectionReport(
                currentTime=current_time,
                tableExists=False,
                message=f"{self.table} table does not exist",
            )

        count = await self._query(f"SELECT COUNT(*) as count FROM {self.table}")
        sample = await self._query(f"SELECT * FROM {self.table} LIMIT 5")
        return ConnectionReport(
            currentTime=current_time,
            tableExists=True,
            rowCount=count[0]["count"] if count else 0,
            sampleData=sample,
        )
