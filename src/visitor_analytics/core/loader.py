"""
Dashboard data loader.

Fetches the visitor list from the data endpoint, resolves each IP's
location through a session-owned GeolocationCache, and derives the summary
metrics shown on the dashboard cards. Failures are kept as state
(`error`) for the UI to render, never raised.
"""
import asyncio
import logging
from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable, Optional

import httpx

from ..geolocation import GeolocationCache, GeolocationService
from .models import DashboardMetrics, GeolocationResult

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 10.0
RECENT_WINDOW = timedelta(hours=1)

_UNKNOWN_LOCATION = GeolocationResult()


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value:
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def _most_common(values: Iterable[str]) -> str:
    """Most frequent value; ties go to whichever was seen first."""
    counts = Counter(values)
    if not counts:
        return "Unknown"
    return counts.most_common(1)[0][0] or "Unknown"


def compute_metrics(visitors: list[dict], now: Optional[datetime] = None) -> DashboardMetrics:
    """Derive dashboard summary metrics from processed visitor rows."""
    now = now or datetime.now(timezone.utc)
    cutoff = now - RECENT_WINDOW

    recent = 0
    for v in visitors:
        ts = _parse_timestamp(v.get("client_timestamp"))
        if ts is not None and ts > cutoff:
            recent += 1

    return DashboardMetrics(
        totalVisits=len(visitors),
        uniqueVisitors=len({v.get("ip") for v in visitors}),
        topCountry=_most_common(v.get("country") for v in visitors),
        topCity=_most_common(v.get("city") for v in visitors),
        recentActivity=recent,
        topBrowser=_most_common(v.get("browser") for v in visitors),
        topOS=_most_common(v.get("os") for v in visitors),
        topDevice=_most_common(v.get("device") for v in visitors),
        topLanguage=_most_common(v.get("language") for v in visitors),
        topPlatform=_most_common(v.get("platform") for v in visitors),
        vpnVisits=sum(1 for v in visitors if v.get("isVPN")),
        topBrowserVersion=_most_common(v.get("version") for v in visitors),
    )


class DashboardDataLoader:
    """Loads and summarises visitor data for one dashboard instance.

    Args:
        http_client: Client pointed at the API (base_url set)
        geolocation: Service used for per-IP lookups
        cache: Session geolocation cache; a fresh one is created if omitted
        timeout: Seconds before a fetch is abandoned with "Request timeout"
        data_path: Path of the data listing endpoint
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        geolocation: GeolocationService,
        cache: Optional[GeolocationCache] = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        data_path: str = "/api/data",
    ):
        self.http_client = http_client
        self.geolocation = geolocation
        self.cache = cache if cache is not None else GeolocationCache()
        self.timeout = timeout
        self.data_path = data_path

        self.visitors: list[dict] = []
        self.metrics = DashboardMetrics()
        self.loading = False
        self.error: Optional[str] = None
        self.last_updated: Optional[datetime] = None
        self._fetching = False

    @property
    def has_loaded(self) -> bool:
        return self.last_updated is not None

    async def fetch(self) -> None:
        """Fetch, enrich and summarise. A call while one is running is a no-op."""
        if self._fetching:
            return

        self._fetching = True
        self.loading = True
        self.error = None
        try:
            try:
                response = await asyncio.wait_for(
                    self.http_client.get(self.data_path), timeout=self.timeout
                )
            except (asyncio.TimeoutError, httpx.TimeoutException):
                raise RuntimeError("Request timeout") from None

            if not response.is_success:
                raise RuntimeError(f"HTTP error! status: {response.status_code}")

            raw = response.json()
            if not isinstance(raw, list):
                raise RuntimeError("Invalid data format received")

            self.visitors = await self.process_with_geolocation(raw)
            self.metrics = compute_metrics(self.visitors)
            self.last_updated = datetime.now(timezone.utc)
        except (RuntimeError, httpx.HTTPError, ValueError) as e:
            logger.warning(f"Dashboard data fetch failed: {e}")
            self.error = str(e) or "An error occurred"
        finally:
            self.loading = False
            self._fetching = False

    async def fetch_analytics(self, path: str = "/api/analytics") -> Optional[dict]:
        """Fetch the aggregate payload for charts; None if it is unavailable."""
        try:
            response = await asyncio.wait_for(self.http_client.get(path), timeout=self.timeout)
            response.raise_for_status()
            return response.json()
        except (asyncio.TimeoutError, httpx.HTTPError, ValueError) as e:
            logger.warning(f"Analytics fetch failed: {e}")
            return None

    async def process_with_geolocation(self, rows: list[dict]) -> list[dict]:
        """Resolve each new IP once, then build normalised visitor rows."""
        unique_ips = list(dict.fromkeys(str(row.get("ip") or "Unknown") for row in rows))
        for ip in unique_ips:
            if ip == "Unknown":
                continue
            if ip in self.cache:
                logger.debug(f"Geolocation cache hit for {ip}")
                continue
            self.cache.put(ip, await self.geolocation.lookup(ip))

        now = datetime.now(timezone.utc).isoformat()
        processed = []
        for index, row in enumerate(rows):
            ip = str(row.get("ip") or "Unknown")
            geo = self.cache.get(ip) or _UNKNOWN_LOCATION
            processed.append({
                "id": row.get("id") or index + 1,
                "ip": ip,
                "country": geo.country,
                "state": geo.state,
                "city": geo.city,
                "client_timestamp": row.get("client_timestamp") or now,
                "language": row.get("language") or "Unknown",
                "platform": row.get("platform") or "Unknown",
                "user_agent": row.get("user_agent") or "Unknown",
                "browser": row.get("browser") or "Unknown",
                "version": row.get("version") or "Unknown",
                "os": row.get("os") or "Unknown",
                "device": row.get("device") or "Unknown",
                "isVPN": bool(row.get("isVPN")),
                "referrer": row.get("referrer") or "Direct",
                "page_name": row.get("page_name") or "Unknown",
                "source": row.get("source") or "Unknown",
            })
        return processed
