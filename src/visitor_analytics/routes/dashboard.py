"""
Dashboard routes for Visitor Analytics.

Uses Jinja2 templates for rendering. The page is driven by a
DashboardDataLoader owned by the router, so the geolocation cache lives as
long as the router does. Filters, sorting and pagination are plain query
parameters.
"""

import logging
from collections import Counter
from datetime import date, datetime
from pathlib import Path
from urllib.parse import urlencode
from typing import Optional

import httpx
from fastapi import APIRouter, HTTPException, Query, Request
from fastapi.responses import FileResponse, HTMLResponse
from fastapi.templating import Jinja2Templates
from pydantic import BaseModel

from ..config import AnalyticsConfig
from ..core.loader import DashboardDataLoader
from ..geolocation import GeolocationCache, GeolocationService

logger = logging.getLogger(__name__)

SORTABLE_COLUMNS = (
    "id", "ip", "country", "state", "city", "platform", "browser",
    "version", "os", "device", "language", "page_name", "client_timestamp",
)
DEFAULT_SORT = "client_timestamp"
DEFAULT_PER_PAGE = 25
MAX_PER_PAGE = 200
CHART_TOP_N = 10


def filter_visitors(
    visitors: list[dict],
    country: str | None = None,
    day: date | None = None,
) -> list[dict]:
    """Keep visitors matching the selected country and calendar day."""
    result = visitors
    if country and country != "all":
        result = [v for v in result if v.get("country") == country]
    if day is not None:
        result = [v for v in result if str(v.get("client_timestamp", ""))[:10] == day.isoformat()]
    return result


def sort_visitors(visitors: list[dict], sort: str, order: str = "desc") -> list[dict]:
    """Sort by a whitelisted column; unknown columns fall back to the timestamp."""
    if sort not in SORTABLE_COLUMNS:
        sort = DEFAULT_SORT

    def key(v: dict):
        value = v.get(sort)
        if sort == "id":
            return value if isinstance(value, int) else 0
        return str(value or "")

    return sorted(visitors, key=key, reverse=(order != "asc"))


def paginate(items: list, page: int, per_page: int) -> tuple[list, int, int]:
    """Slice one page. Returns (items, page, total_pages), with page clamped."""
    per_page = max(1, min(per_page, MAX_PER_PAGE))
    total_pages = max(1, -(-len(items) // per_page))
    page = max(1, min(page, total_pages))
    start = (page - 1) * per_page
    return items[start:start + per_page], page, total_pages


def group_counts(visitors: list[dict], key: str, limit: int = CHART_TOP_N) -> list[dict]:
    """Top values of one field as [{name, value}], most frequent first."""
    counts = Counter(v.get(key) or "Unknown" for v in visitors)
    return [{"name": name, "value": count} for name, count in counts.most_common(limit)]


def hourly_counts(visitors: list[dict]) -> list[dict]:
    """Visits per hour-of-day, all 24 hours present."""
    counts = [0] * 24
    for v in visitors:
        ts = v.get("client_timestamp")
        try:
            hour = datetime.fromisoformat(str(ts).replace("Z", "+00:00")).hour
        except ValueError:
            continue
        counts[hour] += 1
    return [{"hour": f"{h:02d}:00", "visits": counts[h]} for h in range(24)]


def _pydantic_json(value):
    """Convert Pydantic models to JSON-serializable dicts.

    Handles single models, lists of models, and nested structures.
    """
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    elif isinstance(value, list):
        return [_pydantic_json(item) for item in value]
    elif isinstance(value, dict):
        return {k: _pydantic_json(v) for k, v in value.items()}
    return value


class DashboardSession:
    """The data loader shared by one dashboard router.

    The loader is created on first use so that, without an api_base_url, it
    can call the API in-process through the app it is mounted on.
    """

    def __init__(
        self,
        config: AnalyticsConfig,
        geolocation: GeolocationService,
        api_prefix: str = "/api",
        cache: Optional[GeolocationCache] = None,
    ):
        self.config = config
        self.geolocation = geolocation
        self.api_prefix = api_prefix
        self.cache = cache if cache is not None else GeolocationCache()
        self.loader: Optional[DashboardDataLoader] = None

    def get_loader(self, app) -> DashboardDataLoader:
        if self.loader is None:
            # fetch_timeout_seconds bounds the whole request, not httpx
            if self.config.api_base_url:
                http_client = httpx.AsyncClient(base_url=self.config.api_base_url, timeout=None)
            else:
                http_client = httpx.AsyncClient(
                    transport=httpx.ASGITransport(app=app),
                    base_url="http://dashboard",
                    timeout=None,
                )
            self.loader = DashboardDataLoader(
                http_client,
                self.geolocation,
                cache=self.cache,
                timeout=self.config.fetch_timeout_seconds,
                data_path=f"{self.api_prefix}/data",
            )
        return self.loader

    async def aclose(self) -> None:
        """Close the loader's HTTP client."""
        if self.loader is not None:
            await self.loader.http_client.aclose()
            self.loader = None


def create_dashboard_router(session: DashboardSession) -> APIRouter:
    """Create dashboard router with Jinja2 templates.

    Args:
        session: Loader state shared by every request to this dashboard
    """
    config = session.config
    api_prefix = session.api_prefix
    router = APIRouter(tags=["dashboard"])

    # Set up templates
    template_dir = Path(__file__).parent.parent / "templates"
    templates = Jinja2Templates(directory=str(template_dir))
    templates.env.filters["pydantic_json"] = _pydantic_json

    # Static files directory
    static_dir = Path(__file__).parent.parent / "static"

    # Explicit routes for static files (mount() doesn't work with include_router prefix)
    @router.get("/static/css/{filename}")
    async def serve_css(filename: str):
        """Serve CSS files with caching."""
        file_path = static_dir / "css" / filename
        if not file_path.exists() or not file_path.is_file():
            raise HTTPException(status_code=404, detail="File not found")
        return FileResponse(
            file_path,
            media_type="text/css",
            headers={"Cache-Control": "public, max-age=31536000"},
        )

    @router.get("/static/js/{filename}")
    async def serve_js(filename: str):
        """Serve JavaScript files with caching."""
        file_path = static_dir / "js" / filename
        if not file_path.exists() or not file_path.is_file():
            raise HTTPException(status_code=404, detail="File not found")
        return FileResponse(
            file_path,
            media_type="application/javascript",
            headers={"Cache-Control": "public, max-age=31536000"},
        )

    @router.get("/", response_class=HTMLResponse)
    async def dashboard_page(
        request: Request,
        refresh: bool = False,
        country: str = "all",
        day: str | None = Query(None, alias="date", description="Show one day (YYYY-MM-DD)"),
        sort: str = DEFAULT_SORT,
        order: str = "desc",
        page: int = 1,
        per_page: int = DEFAULT_PER_PAGE,
    ):
        """Render the dashboard."""
        loader = session.get_loader(request.app)
        if refresh or not loader.has_loaded:
            await loader.fetch()

        selected_day = None
        context_date = ""
        if day:
            try:
                selected_day = date.fromisoformat(day)
                context_date = selected_day.isoformat()
            except ValueError:
                logger.debug(f"Ignoring invalid date filter: {day!r}")

        order = "asc" if order == "asc" else "desc"
        if sort not in SORTABLE_COLUMNS:
            sort = DEFAULT_SORT

        filtered = filter_visitors(loader.visitors, country, selected_day)
        rows, page, total_pages = paginate(sort_visitors(filtered, sort, order), page, per_page)
        countries = sorted({v["country"] for v in loader.visitors if v["country"] != "Unknown"})

        analytics = await loader.fetch_analytics(f"{api_prefix}/analytics") if not loader.error else None

        base_params = {
            "country": country,
            "date": context_date,
            "sort": sort,
            "order": order,
            "per_page": per_page,
        }

        def url_with(**overrides) -> str:
            """Current query string with some parameters replaced."""
            params = {k: v for k, v in {**base_params, **overrides}.items() if v not in (None, "")}
            return "?" + urlencode(params)

        context = {
            "site_name": config.display_name,
            "api_prefix": api_prefix,
            "error": loader.error,
            "last_updated": loader.last_updated,
            "metrics": loader.metrics,
            "analytics": analytics,
            "visitors": rows,
            "map_visitors": filtered,
            "total_filtered": len(filtered),
            "countries": countries,
            "selected_country": country,
            "selected_date": context_date,
            "sort": sort,
            "order": order,
            "page": page,
            "per_page": per_page,
            "total_pages": total_pages,
            "sortable_columns": SORTABLE_COLUMNS,
            "url_with": url_with,
            "charts": {
                "countries": group_counts(filtered, "country"),
                "browsers": group_counts(filtered, "browser"),
                "os": group_counts(filtered, "os"),
                "devices": group_counts(filtered, "device"),
                "hourly": hourly_counts(filtered),
            },
        }
        status_code = 500 if loader.error else 200
        return templates.TemplateResponse(
            request, "pages/dashboard.html", context, status_code=status_code
        )

    return router
