"""
Visitor analytics: record page visits and explore them on a dashboard.

Usage:
    from visitor_analytics import AnalyticsConfig, setup_analytics

    analytics = setup_analytics(AnalyticsConfig(database_url="postgresql://..."))

    # Include API and dashboard routes
    app.include_router(analytics.api_router, prefix="/api")
    app.include_router(analytics.dashboard_router, prefix="/dashboard")

    # In templates: {{ analytics.tracking_script("Home") }}
"""

import asyncio
import json
import logging

import asyncpg

from .config import AnalyticsConfig, ConfigurationError
from .core.client import VisitorStore
from .geolocation import GeolocationCache, GeolocationService
from .routes import DashboardSession, create_api_router, create_dashboard_router

logger = logging.getLogger(__name__)

__version__ = "0.1.0"
__all__ = [
    "setup_analytics", "Analytics", "AnalyticsConfig", "ConfigurationError",
    "VisitorStore", "GeolocationService", "GeolocationCache",
]


class Analytics:
    """Main analytics interface for a site."""

    def __init__(self, config: AnalyticsConfig, api_prefix: str = "/api"):
        self.config = config
        self.api_prefix = api_prefix
        self.store = VisitorStore(
            database_url=config.database_url,
            table_name=config.table_name,
            ssl_verify=config.ssl_verify,
            pool_min_size=config.pool_min_size,
            pool_max_size=config.pool_max_size,
        )
        self.geolocation = GeolocationService(
            primary_url=config.primary_geolocation_url,
            fallback_url=config.fallback_geolocation_url,
            timeout=config.geolocation_timeout,
        )
        self.dashboard_session = DashboardSession(config, self.geolocation, api_prefix=api_prefix)
        self.api_router = create_api_router(
            self.store, self.geolocation, expose_error_details=config.expose_error_details
        )
        self.dashboard_router = create_dashboard_router(self.dashboard_session)

    async def startup(self) -> None:
        """Resolve the table's columns up front.

        An unreachable database is not fatal here; the first request
        retries the introspection.
        """
        try:
            columns = await self.store.get_columns(refresh=True)
        except (asyncpg.PostgresError, OSError, asyncio.TimeoutError) as e:
            logger.warning(f"Column introspection deferred, database unavailable: {e}")
            return
        if columns.is_empty:
            logger.info(f"Table {self.config.table_name} not found; it is created on first visit")

    async def shutdown(self) -> None:
        """Close the database pool and HTTP clients."""
        await self.dashboard_session.aclose()
        await self.geolocation.aclose()
        await self.store.close()

    def tracking_script(self, page_name: str = "Unknown") -> str:
        """Generate the visitor tracking script HTML for templates.

        Posts one visit to the ingestion endpoint per page load. Failures
        are only logged to the browser console.
        """
        endpoint = json.dumps(f"{self.api_prefix}/visitor")
        page = json.dumps(page_name)
        return f'''<script>
(function(){{
  var d=document,n=navigator;
  fetch({endpoint},{{
    method:"POST",
    headers:{{"Content-Type":"application/json"}},
    body:JSON.stringify({{
      page:{page},
      timestamp:new Date().toISOString(),
      language:n.language||"Unknown",
      referrer:d.referrer||"Direct"
    }})
  }}).catch(function(e){{console.error("Failed to track visitor:",e)}});
}})();
</script>'''


def setup_analytics(config: AnalyticsConfig | None = None, api_prefix: str = "/api") -> Analytics:
    """
    Set up analytics for a site.

    Args:
        config: Analytics configuration. Read from the environment if omitted.
        api_prefix: Prefix the API router will be mounted under; the
                    dashboard and the tracking script call it there.

    Returns:
        Analytics instance with api_router, dashboard_router and tracking_script()
    """
    return Analytics(config or AnalyticsConfig.from_env(), api_prefix=api_prefix)
