# tunnel_plane/main.py
"""
Tunnel Plane HTTP service

Wires the peer and interface routers, maps domain errors to HTTP statuses
and creates the tables on startup.
"""

import uvicorn
import logging
from datetime import datetime
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError

from tunnel_plane.api.v1 import interfaces, peers
from tunnel_plane.config import settings
from tunnel_plane.core.exceptions import (
    AddressPoolExhaustedError,
    ConflictError,
    InvalidKeyFormatError,
    InvalidRequestError,
    NotFoundError,
    ProtectedInterfaceError,
    RemoteOperationError,
    TunnelPlaneError,
)
from tunnel_plane.database.session import init_db, db_manager
from tunnel_plane.schemas.base import HealthResponse

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

started_at: Optional[datetime] = None

# Most specific class wins (looked up along the MRO)
ERROR_STATUS = {
    NotFoundError: status.HTTP_404_NOT_FOUND,
    InvalidKeyFormatError: status.HTTP_400_BAD_REQUEST,
    InvalidRequestError: status.HTTP_400_BAD_REQUEST,
    AddressPoolExhaustedError: status.HTTP_409_CONFLICT,
    ConflictError: status.HTTP_409_CONFLICT,
    ProtectedInterfaceError: status.HTTP_403_FORBIDDEN,
    RemoteOperationError: status.HTTP_502_BAD_GATEWAY,
}


def status_for(exc: TunnelPlaneError) -> int:
    for error_type in type(exc).__mro__:
        if error_type in ERROR_STATUS:
            return ERROR_STATUS[error_type]
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def error_body(error: str, error_code: str, details: Optional[dict] = None) -> dict:
    """ErrorResponse-shaped payload"""
    return {
        "success": False,
        "error": error,
        "error_code": error_code,
        "details": details or None,
        "timestamp": datetime.utcnow().isoformat(),
    }


@asynccontextmanager
async def lifespan(app: FastAPI):
    global started_at

    logger.info(f"{settings.APP_NAME} {settings.APP_VERSION} starting ({settings.ENV})")
    logger.info(
        f"Gateway {settings.ROUTER_HOST}:{settings.ROUTER_PORT}, "
        f"default interface {settings.DEFAULT_INTERFACE_NAME}"
    )

    init_db()
    started_at = datetime.utcnow()

    yield

    logger.info(f"{settings.APP_NAME} stopped")


app = FastAPI(
    title=settings.APP_NAME,
    description="""
    Tunnel Plane API

    Provisions WireGuard peers on a RouterOS gateway and keeps the local
    record in sync with the device:
    - Tunnel interface provisioning and teardown
    - Peer create / revoke / reactivate / delete
    - Client configuration generation

    ## Authentication

    All endpoints under /api/v1 require the X-Admin-Token header
    """,
    version=settings.APP_VERSION,
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=settings.CORS_ALLOW_CREDENTIALS,
    allow_methods=["*"],
    allow_headers=["*"],
)


# === Error mapping ===

@app.exception_handler(TunnelPlaneError)
async def domain_error_handler(request: Request, exc: TunnelPlaneError):
    status_code = status_for(exc)
    log = logger.error if status_code >= 500 else logger.info
    log(f"{exc.error_code} on {request.method} {request.url.path}: {exc.message}")

    return JSONResponse(status_code=status_code, content=error_body(exc.message, exc.error_code, exc.details))


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    fields = [
        {
            "field": ".".join(str(part) for part in err["loc"]),
            "message": err["msg"],
            "type": err["type"],
        }
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=error_body("Request validation failed", "VALIDATION_ERROR", {"errors": fields}),
    )


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
    details = {"message": str(exc)} if settings.DEBUG else None
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_body("Internal server error", "INTERNAL_ERROR", details),
    )


app.include_router(peers.router, prefix=settings.API_PREFIX, tags=["Peers"])
app.include_router(interfaces.router, prefix=settings.API_PREFIX, tags=["Interfaces"])


@app.get("/", summary="Service information")
async def service_info():
    return {
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "api": settings.API_PREFIX,
        "health": "/health"
    }


@app.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
    description="Local store connectivity and the configured gateway"
)
def health_check():
    database_ok = db_manager.check_connection()
    uptime = (datetime.utcnow() - started_at).total_seconds() if started_at else None

    return HealthResponse(
        status="healthy" if database_ok else "unhealthy",
        version=settings.APP_VERSION,
        uptime_seconds=uptime,
        database="connected" if database_ok else "disconnected",
        gateway=f"{settings.ROUTER_HOST}:{settings.ROUTER_PORT}",
        default_interface=settings.DEFAULT_INTERFACE_NAME
    )


def run() -> None:
    uvicorn.run(
        "tunnel_plane.main:app",
        host=settings.API_HOST,
        port=settings.API_PORT,
        reload=settings.is_development,
        log_level=settings.LOG_LEVEL.lower()
    )


if __name__ == "__main__":
    run()
