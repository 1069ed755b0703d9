"""Liveness service for the order portal, built with FastAPI.

``GET /api/health`` reports whether the process is up, how long it has
been running and which build/environment it is. ``HEAD /api/health``
answers 200 with no body for load balancers. Every response carries the
``X-Request-ID`` of the request.
"""

import time
from datetime import datetime, timezone

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response

from portal import settings
from portal.gateway.logging_filters import get_logger
from portal.gateway.middleware import add_request_id

logger = get_logger("portal.monitoring")

_STARTED_AT = time.monotonic()
NO_CACHE = {"Cache-Control": "no-cache"}

app = FastAPI(title="Order Portal")
app.middleware("http")(add_request_id)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def build_health_payload() -> dict:
    """Liveness payload.

    Returns:
        dict: ``status``, ``timestamp`` (ISO-8601 UTC), ``uptime`` in
        seconds, ``environment`` and ``version``.
    """
    return {
        "status": "healthy",
        "timestamp": _now_iso(),
        "uptime": round(time.monotonic() - _STARTED_AT, 3),
        "environment": getattr(settings, "ENVIRONMENT", "development"),
        "version": getattr(settings, "VERSION", "1.0.0"),
    }


@app.get("/api/health")
def health(request: Request):
    """Liveness probe.

    Returns:
        JSONResponse: 200 with the health payload, or 500 with
        ``status="unhealthy"`` when the payload cannot be built.
    """
    try:
        payload = build_health_payload()
    except Exception:
        logger.exception("health check failed", extra={"path": request.url.path})
        return JSONResponse(
            {"status": "unhealthy", "error": "Internal server error", "timestamp": _now_iso()},
            status_code=500,
            headers=NO_CACHE,
        )
    return JSONResponse(payload, status_code=200, headers=NO_CACHE)


@app.head("/api/health")
def health_head():
    return Response(status_code=200, headers=NO_CACHE)


def serve() -> None:
    """Run the liveness app with uvicorn on ``HEALTH_HOST``:``HEALTH_PORT``."""
    uvicorn.run(
        app,
        host=getattr(settings, "HEALTH_HOST", "0.0.0.0"),
        port=int(getattr(settings, "HEALTH_PORT", 3000)),
        log_level=str(getattr(settings, "LOG_LEVEL", "INFO")).lower(),
    )


if __name__ == "__main__":
    serve()
