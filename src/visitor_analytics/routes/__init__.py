"""
Visitor analytics routes.

The JSON API (ingestion, listing, aggregates, diagnostics) and the
Jinja2-rendered dashboard are separate routers so a host app can mount
them under its own prefixes.
"""

from .api import create_api_router
from .dashboard import DashboardSession, create_dashboard_router

__all__ = ["create_api_router", "create_dashboard_router", "DashboardSession"]
