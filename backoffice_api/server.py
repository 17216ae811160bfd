"""
FastAPI Back Office API Server

Provides the REST API behind the React admin UI: clients, accounts,
shops, shop associations, documents, institutions and the audit trail.

Usage:
    uvicorn backoffice_api.server:app --reload --port 3001
"""

import time
import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, Response, HTTPException
from fastapi.responses import RedirectResponse

from backoffice_api.middleware import (
    setup_cors,
    setup_exception_handlers,
    RequestLoggingMiddleware,
)
from backoffice_api.routes import ROUTERS
from backoffice_db.connection import DatabaseSettings, init_db, close_db, get_db_provider
from backoffice_db.monitoring import (
    check_health,
    configure_monitoring,
    get_db_metrics,
    get_monitoring_config,
    render_prometheus_metrics,
)
from config_manager import get_config

_config = get_config()

# Setup logging
logging.basicConfig(
    level=getattr(logging, _config.logging.level, logging.INFO),
    format=_config.logging.format,
)
logger = logging.getLogger(__name__)

API_HOST = _config.api.host
API_PORT = _config.api.port

_startup_time: Optional[datetime] = None

# Create FastAPI application
app = FastAPI(
    title="Back Office API",
    description="Administrative API for clients, accounts, shops and their documents",
    version="1.0.0",
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json",
)

# Setup middleware
setup_cors(app, _config.api.cors_origins)
app.add_middleware(RequestLoggingMiddleware)
setup_exception_handlers(app)

for router in ROUTERS:
    app.include_router(router, prefix="/api")


@app.on_event("startup")
async def startup():
    """Open the store, create or migrate the schema and configure monitoring."""
    global _startup_time

    logger.info("Starting Back Office API...")
    start_time = time.time()

    configure_monitoring(
        slow_query_threshold_ms=_config.monitoring.slow_query_threshold_ms,
        warning_threshold_ms=_config.monitoring.warning_threshold_ms,
        enable_prometheus=_config.monitoring.enable_prometheus,
    )

    provider = init_db(DatabaseSettings.from_config(_config))
    logger.info("Database ready at %s", provider.engine.url)

    _startup_time = datetime.now(timezone.utc)
    logger.info("API ready in %.2fs on %s:%d", time.time() - start_time, API_HOST, API_PORT)


@app.on_event("shutdown")
async def shutdown():
    logger.info("Shutting down Back Office API...")
    close_db()


def _health_payload() -> dict:
    """Store health plus query statistics. Never raises."""
    provider = get_db_provider()
    if not provider.is_initialized:
        database = {"healthy": False, "error": "Database not initialized"}
        healthy = False
    else:
        status = check_health(provider.engine, provider.session_factory)
        database = status.to_dict()
        healthy = status.healthy

    uptime_seconds = None
    if _startup_time:
        uptime_seconds = int((datetime.now(timezone.utc) - _startup_time).total_seconds())

    return {
        "success": healthy,
        "status": "healthy" if healthy else "unhealthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "uptimeSeconds": uptime_seconds,
        "database": database,
        "queryStats": get_db_metrics(),
    }


@app.get("/health", summary="Health check", tags=["health"])
async def health_check():
    """Return store health and query stats. Always returns HTTP 200."""
    return _health_payload()


@app.get("/api/health", summary="Health check", tags=["health"])
async def api_health_check():
    return _health_payload()


@app.get("/api/metrics", summary="Prometheus metrics", tags=["health"])
async def metrics():
    if not get_monitoring_config().enable_prometheus:
        raise HTTPException(status_code=404, detail="Metrics are disabled")
    payload, content_type = render_prometheus_metrics()
    return Response(content=payload, media_type=content_type)


# Root redirect to docs
@app.get("/", include_in_schema=False)
async def root():
    """Redirect root to API documentation."""
    return RedirectResponse(url="/api/docs")


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=API_HOST, port=API_PORT)
