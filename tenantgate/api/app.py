"""FastAPI application for the TenantGate control plane.

Endpoints:
  GET    /health                    Health check (public)
  GET    /v1/me/permissions         Effective roles and scopes of the caller
  GET    /v1/namespaces             List visible namespaces
  POST   /v1/namespaces             Create a namespace
  GET    /v1/namespaces/{id}        Get a namespace
  GET    /v1/graphs                 List visible graphs and subgraphs
  POST   /v1/graphs                 Create a graph or subgraph
  GET    /v1/graphs/{id}            Get a graph or subgraph
  PATCH  /v1/graphs/{id}            Rename a graph or subgraph
  DELETE /v1/graphs/{id}            Delete a graph or subgraph
  POST   /v1/graphs/{id}/check      Request a subgraph schema check
"""

from __future__ import annotations

import logging
import os
import time
from contextlib import asynccontextmanager
from uuid import uuid4

from fastapi import Depends, FastAPI, Request, Response
from fastapi.responses import JSONResponse

import tenantgate
from tenantgate.api.routes import graphs, me, namespaces
from tenantgate.auth import require_actor
from tenantgate.config import settings
from tenantgate.exceptions import TenantGateError
from tenantgate.logging_config import log_startup_info, setup_logging
from tenantgate.storage.database import Database

logger = logging.getLogger("tenantgate")

_STARTUP_TIME: float = 0.0

_db = Database(os.environ.get("TG_DB_PATH", settings.db_path))


@asynccontextmanager
async def lifespan(app: FastAPI):
    global _STARTUP_TIME
    _STARTUP_TIME = time.monotonic()
    setup_logging()
    await _db.connect()
    log_startup_info()
    yield
    logger.info("Closing database connection")
    await _db.close()
    logger.info("Shutdown complete")


_OPENAPI_TAGS = [
    {"name": "Health", "description": "Health checks and version info"},
    {"name": "Me", "description": "Caller identity and effective permissions"},
    {"name": "Namespaces", "description": "Namespace management"},
    {"name": "Graphs", "description": "Federated graphs and subgraphs"},
]

app = FastAPI(
    title="TenantGate",
    description="Multi-tenant control plane with group-based access control.",
    version=tenantgate.__version__,
    lifespan=lifespan,
    dependencies=[Depends(require_actor)],
    openapi_tags=_OPENAPI_TAGS,
)
app.state.db = _db


# ---------------------------------------------------------------------------
# Error handlers
# ---------------------------------------------------------------------------
@app.exception_handler(TenantGateError)
async def tenantgate_error_handler(request: Request, exc: TenantGateError) -> JSONResponse:
    """Centralized handler for TenantGate exceptions."""
    request_id = getattr(request.state, "request_id", "unknown")
    if exc.status_code >= 500:
        logger.error(
            "%s on %s %s: %s",
            exc.error_type,
            request.method,
            request.url.path,
            exc.message,
            extra={"request_id": request_id, "path": request.url.path},
        )
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": exc.error_type,
            "message": exc.message,
            "request_id": request_id,
        },
    )


# ---------------------------------------------------------------------------
# Request logging middleware (also sets request_id on state for error handler)
# ---------------------------------------------------------------------------
@app.middleware("http")
async def request_logging_middleware(request: Request, call_next) -> Response:
    request_id = str(uuid4())[:8]
    request.state.request_id = request_id
    start = time.monotonic()
    response: Response = await call_next(request)
    elapsed_ms = round((time.monotonic() - start) * 1000, 1)
    actor = getattr(request.state, "actor", None)
    logger.info(
        "%s %s %s %.1fms [%s]",
        request.method,
        request.url.path,
        response.status_code,
        elapsed_ms,
        request_id,
        extra={
            "request_id": request_id,
            "path": request.url.path,
            "method": request.method,
            "status_code": response.status_code,
            "duration_ms": elapsed_ms,
            "actor": actor.id if actor is not None else None,
            "organization_id": actor.organization_id if actor is not None else None,
        },
    )
    response.headers["X-Request-ID"] = request_id
    return response


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------
@app.get("/health", tags=["Health"], summary="Health check")
async def health():
    uptime_s = time.monotonic() - _STARTUP_TIME if _STARTUP_TIME > 0 else 0
    return {
        "status": "ok",
        "version": tenantgate.__version__,
        "uptime_seconds": round(uptime_s, 1),
    }


app.include_router(me.router)
app.include_router(namespaces.router)
app.include_router(graphs.router)
