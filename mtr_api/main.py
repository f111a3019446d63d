"""FastAPI application entry point."""
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from mtr_api.core.config import settings
from mtr_api.core.exceptions import MTRServiceError
from mtr_api.core.structured_logging import build_log_context, configure_logging
from mtr_api.db.session import engine

configure_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

# ============================================================================
# FastAPI App
# ============================================================================

app = FastAPI(
    title="MTR API",
    description="Medication therapy review workflow API",
    version=settings.VERSION,
    docs_url="/docs" if settings.is_dev else None,
    redoc_url="/redoc" if settings.is_dev else None,
)

# CORS middleware - must be added before routers
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=[
        "Content-Type",
        "Authorization",
        "X-Requested-With",
        "X-Request-ID",
        "X-User-Id",
        "X-Workplace-Id",
        "X-Admin",
    ],
    expose_headers=["X-Request-ID"],
)


# ============================================================================
# Error envelope
# ============================================================================

def _error_response(status_code: int, error_type: str, message: str, details=None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "success": False,
            "error": {"type": error_type, "message": message, "details": details},
        },
    )


@app.exception_handler(MTRServiceError)
async def mtr_service_error_handler(request: Request, exc: MTRServiceError):
    log = logger.error if exc.status_code >= 500 else logger.info
    log(
        f"{exc.error_type}: {exc.message}",
        extra=build_log_context(
            request_id=request.headers.get("x-request-id"),
            route=request.url.path,
            method=request.method,
        ),
    )
    return _error_response(exc.status_code, exc.error_type, exc.message, exc.details)


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    errors = []
    for item in exc.errors():
        location = ".".join(str(part) for part in item.get("loc", ()))
        errors.append(f"{location}: {item.get('msg')}")
    return _error_response(400, "ValidationFailure", "Request validation failed", {"errors": errors})


# ============================================================================
# Routers
# ============================================================================

from mtr_api.routers import (  # noqa: E402
    audit,
    mtr_follow_ups,
    mtr_interventions,
    mtr_problems,
    mtr_reference,
    mtr_sessions,
)

app.include_router(mtr_sessions.router)
app.include_router(mtr_problems.router)
app.include_router(mtr_interventions.router)
app.include_router(mtr_follow_ups.router)
app.include_router(mtr_reference.router)
app.include_router(audit.router)


# ============================================================================
# Health Check
# ============================================================================

@app.get("/health")
def health():
    """
    Health check endpoint.

    Verifies database connectivity and returns environment info.
    """
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))
    return {"status": "ok", "env": settings.ENV, "version": settings.VERSION}
