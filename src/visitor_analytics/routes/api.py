"""
JSON API routes: visit ingestion, data listing, aggregates and diagnostics.

Every handler maps a storage failure to a 500 response carrying the error
message. Geolocation failures never reach this layer.
"""

import logging
import traceback

from fastapi import APIRouter, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from ..core.client import VisitorStore
from ..core.models import VisitPayload
from ..geolocation import GeolocationService
from ..ingest import get_client_ip, record_visit

logger = logging.getLogger(__name__)


def create_api_router(
    store: VisitorStore,
    geolocation: GeolocationService,
    expose_error_details: bool = False,
) -> APIRouter:
    """Create the /api router.

    Args:
        store: Visitor table client
        geolocation: Service used by the ingestion handlers
        expose_error_details: Include tracebacks in 500 responses
    """
    router = APIRouter(tags=["visitor-api"])

    def _error_response(e: Exception, with_details: bool = True) -> JSONResponse:
        body = {"error": str(e) or e.__class__.__name__}
        if with_details and expose_error_details:
            body["details"] = "".join(traceback.format_exception(e))
        return JSONResponse(body, status_code=500)

    @router.post("/visitor")
    async def track_visitor(request: Request, payload: VisitPayload | None = None):
        """Record a visit for the calling client."""
        try:
            result = await record_visit(
                store, geolocation, request.headers, payload or VisitPayload()
            )
        except Exception as e:
            logger.exception(f"Failed to record visit: {e}")
            return _error_response(e)
        return JSONResponse(jsonable_encoder(result))

    @router.get("/visitor")
    async def lookup_visitor(request: Request):
        """Resolve the caller's IP and location without recording anything."""
        try:
            ip = get_client_ip(request.headers)
            geo = await geolocation.lookup(ip)
        except Exception as e:
            logger.exception(f"Visitor lookup failed: {e}")
            return _error_response(e, with_details=False)
        return {"ip": ip, "geolocation": geo.model_dump()}

    @router.get("/data")
    async def list_data():
        """Every recorded visit, newest first, with UA fields recomputed."""
        try:
            visits = await store.list_visits()
        except Exception as e:
            logger.exception(f"Failed to list visits: {e}")
            return _error_response(e, with_details=False)
        return JSONResponse(jsonable_encoder(visits))

    @router.get("/analytics")
    async def analytics():
        """Aggregate statistics over the whole table."""
        try:
            data = await store.get_analytics()
        except Exception as e:
            logger.exception(f"Analytics query failed: {e}")
            return _error_response(e)
        return JSONResponse(data.model_dump(mode="json"))

    @router.get("/schema")
    async def schema():
        """Table structure, sample rows and statistics."""
        try:
            report = await store.describe_schema()
        except Exception as e:
            logger.exception(f"Schema inspection failed: {e}")
            return _error_response(e)
        return JSONResponse(report.model_dump(mode="json"))

    @router.get("/test-db")
    async def test_db():
        """Database connectivity check."""
        try:
            report = await store.check_connection()
        except Exception as e:
            logger.exception(f"Database check failed: {e}")
            return _error_response(e)
        return JSONResponse(report.model_dump(mode="json", exclude_none=True))

    return router
