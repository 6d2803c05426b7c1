"""Tests for the geolocation service chain and cache."""

import asyncio

import httpx
import pytest

from visitor_analytics.core.models import GeolocationResult
from visitor_analytics.geolocation import (
    LOCAL_RESULT,
    UNKNOWN_RESULT,
    GeolocationCache,
    GeolocationService,
    is_private_ip,
)


def run_async(coro):
    """Helper to run async functions in sync tests."""
    return asyncio.run(coro)


def _service(handler):
    """Build a service whose HTTP calls go to `handler`, recording each request."""
    calls = []

    def recording(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return handler(request)

    client = httpx.AsyncClient(transport=httpx.MockTransport(recording))
    return GeolocationService(http_client=client), calls


PRIMARY_OK = {
    "ip": "8.8.8.8",
    "country_name": "United States",
    "region": "California",
    "city": "Mountain View",
    "timezone": "America/Los_Angeles",
}

FALLBACK_OK = {
    "ip": "8.8.8.8",
    "country": "US",
    "region": "California",
    "city": "Mountain View",
    "timezone": "America/Los_Angeles",
}


class TestPrivateAddresses:
    """Test detection of addresses that skip external lookups."""

    @pytest.mark.parametrize("ip", ["127.0.0.1", "::1", "localhost", "192.168.1.20", "10.0.0.5"])
    def test_private(self, ip):
        assert is_private_ip(ip) is True

    @pytest.mark.parametrize("ip", ["8.8.8.8", "172.16.0.1", "1.2.3.4"])
    def test_public(self, ip):
        assert is_private_ip(ip) is False

    def test_lookup_makes_no_requests(self):
        service, calls = _service(lambda request: httpx.Response(200, json=PRIMARY_OK))

        result = run_async(service.lookup("192.168.1.20"))

        assert result == LOCAL_RESULT
        assert result.country == "Local"
        assert result.state == "Development"
        assert result.city == "Development"
        assert calls == []


class TestLookupChain:
    """Test primary/fallback/unknown resolution."""

    def test_primary_success(self):
        service, calls = _service(lambda request: httpx.Response(200, json=PRIMARY_OK))

        result = run_async(service.lookup("8.8.8.8"))

        assert result.country == "United States"
        assert result.state == "California"
        assert result.city == "Mountain View"
        assert result.timezone == "America/Los_Angeles"
        assert len(calls) == 1
        assert calls[0].url.host == "ipapi.co"
        assert "/8.8.8.8/" in calls[0].url.path

    def test_primary_error_field_falls_back(self):
        def handler(request):
            if request.url.host == "ipapi.co":
                return httpx.Response(200, json={"error": True, "reason": "RateLimited"})
            return httpx.Response(200, json=FALLBACK_OK)

        service, calls = _service(handler)
        result = run_async(service.lookup("8.8.8.8"))

        assert result.country == "US"
        assert result.city == "Mountain View"
        assert [c.url.host for c in calls] == ["ipapi.co", "ipinfo.io"]

    def test_primary_http_error_falls_back(self):
        def handler(request):
            if request.url.host == "ipapi.co":
                return httpx.Response(429, json={})
            return httpx.Response(200, json=FALLBACK_OK)

        service, _ = _service(handler)
        result = run_async(service.lookup("8.8.8.8"))

        assert result.country == "US"

    def test_primary_network_error_falls_back(self):
        def handler(request):
            if request.url.host == "ipapi.co":
                raise httpx.ConnectError("connection refused", request=request)
            return httpx.Response(200, json=FALLBACK_OK)

        service, _ = _service(handler)
        result = run_async(service.lookup("8.8.8.8"))

        assert result.state == "California"

    def test_both_fail_returns_unknown(self):
        def handler(request):
            if request.url.host == "ipapi.co":
                return httpx.Response(500, text="boom")
            return httpx.Response(200, json={"error": {"title": "Wrong ip"}})

        service, calls = _service(handler)
        result = run_async(service.lookup("8.8.8.8"))

        assert result == UNKNOWN_RESULT
        assert (result.country, result.state, result.city) == ("Unknown", "Unknown", "Unknown")
        assert len(calls) == 2

    def test_invalid_json_falls_through(self):
        service, _ = _service(lambda request: httpx.Response(200, text="<html>nope</html>"))

        result = run_async(service.lookup("8.8.8.8"))

        assert result == UNKNOWN_RESULT

    def test_bogon_fallback_is_unknown(self):
        def handler(request):
            if request.url.host == "ipapi.co":
                return httpx.Response(200, json={"error": True})
            return httpx.Response(200, json={"ip": "100.64.0.1", "bogon": True})

        service, _ = _service(handler)
        result = run_async(service.lookup("100.64.0.1"))

        assert result == UNKNOWN_RESULT

    def test_missing_fields_default_to_unknown(self):
        service, _ = _service(lambda request: httpx.Response(200, json={"country_name": "Japan"}))

        result = run_async(service.lookup("1.1.1.1"))

        assert result.country == "Japan"
        assert result.state == "Unknown"
        assert result.city == "Unknown"

    def test_custom_url_templates(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, json=PRIMARY_OK)

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        service = GeolocationService(
            http_client=client,
            primary_url="https://geo.example.com/lookup/{ip}",
        )
        run_async(service.lookup("9.9.9.9"))

        assert str(calls[0].url) == "https://geo.example.com/lookup/9.9.9.9"


class TestGeolocationCache:
    """Test the per-session cache."""

    def test_put_and_get(self):
        cache = GeolocationCache()
        result = GeolocationResult(country="Germany", city="Berlin")
        cache.put("9.9.9.9", result)

        assert "9.9.9.9" in cache
        assert cache.get("9.9.9.9") == result
        assert len(cache) == 1

    def test_miss(self):
        cache = GeolocationCache()
        assert "1.1.1.1" not in cache
        assert cache.get("1.1.1.1") is None

    def test_clear(self):
        cache = GeolocationCache()
        cache.put("9.9.9.9", UNKNOWN_RESULT)
        cache.clear()

        assert "9.9.9.9" not in cache
        assert len(cache) == 0
        assert cache.processed == set()
