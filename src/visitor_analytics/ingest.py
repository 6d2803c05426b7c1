"""
Visit ingestion: resolve who is visiting, then write one row.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Mapping

from .core.client import VisitorStore
from .core.models import VisitPayload
from .geolocation import GeolocationService
from .user_agent import UNKNOWN, classify_user_agent

logger = logging.getLogger(__name__)

FALLBACK_IP = "127.0.0.1"


def get_client_ip(headers: Mapping[str, str]) -> str:
    """Resolve the client IP from proxy headers.

    Precedence: x-forwarded-for (first entry), x-real-ip, cf-connecting-ip,
    then 127.0.0.1. Header lookup must be case-insensitive, as Starlette's
    Headers is.
    """
    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()

    real_ip = headers.get("x-real-ip")
    if real_ip:
        return real_ip

    cf_ip = headers.get("cf-connecting-ip")
    if cf_ip:
        return cf_ip

    return FALLBACK_IP


def parse_client_timestamp(value: str | None) -> datetime | None:
    """Parse an ISO-8601 client timestamp; naive values are taken as UTC.

    Returns None when missing or unparseable so the row gets write-time now.
    """
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        logger.debug(f"Ignoring unparseable client timestamp: {value!r}")
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


async def record_visit(
    store: VisitorStore,
    geolocation: GeolocationService,
    headers: Mapping[str, str],
    payload: VisitPayload,
) -> dict[str, Any]:
    """Record one visit and return the API response body.

    Storage errors propagate to the caller; geolocation never fails.
    """
    ip = get_client_ip(headers)
    geo = await geolocation.lookup(ip)

    user_agent = payload.userAgent or headers.get("user-agent") or UNKNOWN
    ua = classify_user_agent(user_agent)

    await store.ensure_table()
    visitor = await store.insert_visit(
        ip=ip,
        geolocation=geo,
        user_agent=user_agent,
        browser=ua.browser,
        version=ua.version,
        os=ua.os,
        platform=ua.platform,
        device=ua.device.value,
        language=payload.language or UNKNOWN,
        referrer=payload.referrer or "Direct",
        page_name=payload.page or UNKNOWN,
        is_vpn=ua.is_vpn,
        client_timestamp=parse_client_timestamp(payload.timestamp),
    )
    logger.info(f"Recorded visit from {ip} ({geo.country}, {geo.city})")

    return {
        "success": True,
        "visitor": visitor,
        "geolocation": geo.model_dump(),
        "device": ua.device.value,
        "version": ua.version,
    }
