"""
Load sample visits for local development.

    DATABASE_URL=postgresql://... python -m visitor_analytics.seed
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone

from .config import AnalyticsConfig
from .core.client import VisitorStore
from .core.models import GeolocationResult
from .user_agent import classify_user_agent

logger = logging.getLogger(__name__)

SAMPLE_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

# (ip, country, city, hours ago)
SAMPLE_VISITS = [
    ("8.8.8.8", "United States", "Mountain View", 2),
    ("1.1.1.1", "United States", "Los Angeles", 4),
    ("208.67.222.222", "United States", "San Francisco", 6),
    ("9.9.9.9", "Germany", "Berlin", 8),
    ("149.112.112.112", "Canada", "Toronto", 10),
    ("76.76.19.19", "United Kingdom", "London", 12),
    ("94.140.14.14", "France", "Paris", 14),
    ("185.228.168.9", "Sweden", "Stockholm", 16),
    ("76.223.126.88", "Japan", "Tokyo", 18),
    ("8.26.56.26", "Australia", "Sydney", 20),
]


async def populate_sample_data(store: VisitorStore, clear: bool = True) -> int:
    """Insert SAMPLE_VISITS, optionally clearing the table first.

    Returns:
        Number of rows inserted
    """
    await store.ensure_table()
    if clear:
        await store.clear_visits()

    ua = classify_user_agent(SAMPLE_USER_AGENT)
    now = datetime.now(timezone.utc)
    for ip, country, city, hours_ago in SAMPLE_VISITS:
        visited = now - timedelta(hours=hours_ago)
        await store.insert_visit(
            ip=ip,
            geolocation=GeolocationResult(country=country, city=city),
            user_agent=SAMPLE_USER_AGENT,
            browser=ua.browser,
            version=ua.version,
            os=ua.os,
            platform=ua.platform,
            device=ua.device.value,
            page_name="Sample",
            client_timestamp=visited,
            visit_time=visited,
        )
    logger.info(f"Inserted {len(SAMPLE_VISITS)} sample visits into {store.table}")
    return len(SAMPLE_VISITS)


async def _main() -> None:
    config = AnalyticsConfig.from_env()
    store = VisitorStore(
        database_url=config.database_url,
        table_name=config.table_name,
        ssl_verify=config.ssl_verify,
    )
    try:
        await populate_sample_data(store)
    finally:
        await store.close()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    asyncio.run(_main())
