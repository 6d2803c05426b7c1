"""
IP geolocation with a primary/fallback service chain.

Lookups never raise: a failing primary service falls through to the
fallback, and a failing fallback yields UNKNOWN_RESULT. Private and
loopback addresses resolve to LOCAL_RESULT without touching the network.
"""

import logging

import httpx

from .config import DEFAULT_FALLBACK_GEOLOCATION_URL, DEFAULT_PRIMARY_GEOLOCATION_URL
from .core.models import GeolocationResult

logger = logging.getLogger(__name__)

LOCAL_RESULT = GeolocationResult(country="Local", state="Development", city="Development")
UNKNOWN_RESULT = GeolocationResult(country="Unknown", state="Unknown", city="Unknown")

_LOCAL_ADDRESSES = {"127.0.0.1", "::1", "localhost"}
_PRIVATE_PREFIXES = ("192.168.", "10.")


class GeolocationError(Exception):
    """A single geolocation service could not resolve an address."""
    pass


def is_private_ip(ip: str) -> bool:
    """Check if an address is loopback or in a private range we skip."""
    return ip in _LOCAL_ADDRESSES or ip.startswith(_PRIVATE_PREFIXES)


def _parse_primary(data: dict) -> GeolocationResult:
    """Map an ipapi.co style response."""
    if data.get("error"):
        raise GeolocationError(f"IP API error: {data.get('reason') or data.get('error')}")
    return GeolocationResult(
        country=data.get("country_name") or "Unknown",
        state=data.get("region") or data.get("state") or "Unknown",
        city=data.get("city") or "Unknown",
        region=data.get("region") or None,
        timezone=data.get("timezone") or None,
    )


def _parse_fallback(data: dict) -> GeolocationResult:
    """Map an ipinfo.io style response."""
    if data.get("error") or data.get("bogon"):
        raise GeolocationError(f"Fallback API error: {data.get('error') or 'bogon address'}")
    return GeolocationResult(
        country=data.get("country") or "Unknown",
        state=data.get("region") or data.get("state") or "Unknown",
        city=data.get("city") or "Unknown",
        region=data.get("region") or None,
        timezone=data.get("timezone") or None,
    )


class GeolocationService:
    """Resolve IP addresses to approximate locations.

    Args:
        http_client: Optional shared httpx.AsyncClient. When omitted the
            service owns one and closes it in aclose().
        primary_url: URL template with an {ip} placeholder
        fallback_url: URL template with an {ip} placeholder
        timeout: Timeout for an owned client (None = no timeout)
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient | None = None,
        primary_url: str = DEFAULT_PRIMARY_GEOLOCATION_URL,
        fallback_url: str = DEFAULT_FALLBACK_GEOLOCATION_URL,
        timeout: float | None = None,
    ):
        self.primary_url = primary_url
        self.fallback_url = fallback_url
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=timeout)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _fetch(self, url_template: str, ip: str) -> dict:
        response = await self._client.get(url_template.format(ip=ip))
        if not response.is_success:
            raise GeolocationError(f"HTTP error! status: {response.status_code}")
        try:
            data = response.json()
        except ValueError as e:
            raise GeolocationError(f"Invalid JSON from {response.url.host}") from e
        if not isinstance(data, dict):
            raise GeolocationError(f"Unexpected response shape from {response.url.host}")
        return data

    async def lookup(self, ip: str) -> GeolocationResult:
        """Resolve an IP address. Never raises."""
        if is_private_ip(ip):
            return LOCAL_RESULT

        try:
            return _parse_primary(await self._fetch(self.primary_url, ip))
        except (httpx.HTTPError, GeolocationError) as e:
            logger.warning(f"Primary geolocation failed for {ip}: {e}")

        try:
            return _parse_fallback(await self._fetch(self.fallback_url, ip))
        except (httpx.HTTPError, GeolocationError) as e:
            logger.warning(f"Fallback geolocation failed for {ip}: {e}")

        return UNKNOWN_RESULT


class GeolocationCache:
    """In-memory geolocation results for one dashboard session.

    Owned and passed in by the caller so it can be reset between sessions
    and inspected in tests. `processed` records every IP that has been
    looked up, including ones that resolved to Unknown.
    """

    def __init__(self):
        self._results: dict[str, GeolocationResult] = {}
        self.processed: set[str] = set()

    def __contains__(self, ip: str) -> bool:
        return ip in self.processed

    def __len__(self) -> int:
        return len(self._results)

    def get(self, ip: str) -> GeolocationResult | None:
        return self._results.get(ip)

    def put(self, ip: str, result: GeolocationResult) -> None:
        self._results[ip] = result
        self.processed.add(ip)

    def clear(self) -> None:
        self._results.clear()
        self.processed.clear()
