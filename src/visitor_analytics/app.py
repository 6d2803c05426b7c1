"""
Standalone FastAPI application.

Run with:
    uvicorn --factory visitor_analytics.app:create_app
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import HTMLResponse

from . import __version__, setup_analytics
from .config import AnalyticsConfig

logger = logging.getLogger(__name__)


def create_app(config: AnalyticsConfig | None = None) -> FastAPI:
    """Build an app serving the API under /api and the dashboard under /dashboard."""
    analytics = setup_analytics(config)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"Visitor analytics {__version__} starting (table={analytics.config.table_name})")
        await analytics.startup()
        yield
        await analytics.shutdown()

    app = FastAPI(title=analytics.config.display_name, version=__version__, lifespan=lifespan)
    app.state.analytics = analytics
    app.include_router(analytics.api_router, prefix="/api")
    app.include_router(analytics.dashboard_router, prefix="/dashboard")

    @app.get("/", response_class=HTMLResponse)
    async def home():
        """Landing page; records a visit on load."""
        return f"""<!DOCTYPE html>
<html lang="en">
<head><meta charset="UTF-8"><title>{analytics.config.display_name}</title></head>
<body style="font-family: system-ui; padding: 2rem;">
<h1>{analytics.config.display_name}</h1>
<p><a href="/dashboard/">Open the dashboard</a></p>
{analytics.tracking_script("Home")}
</body>
</html>"""

    return app
