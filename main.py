"""
Main FastAPI application entry point for Identity Reconciliation System
This file sets up the FastAPI application with configuration, middleware,
error mapping and the /identify endpoint. It serves as the entry point for
both local development (uvicorn) and AWS Lambda deployment (see lambda_handler.py).
"""

import logging
import time
import traceback
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import InterfaceError, OperationalError

from config import settings
from database import db_manager
from schemas.identify import IdentifyRequest, IdentifyResponse, ErrorResponse
from services.exceptions import (
    ConflictExhausted,
    ConsistencyError,
    StoreError,
    ValidationError,
)
from services.identity_service import IdentityService, identity_service

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL, logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "no-referrer",
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.AUTO_CREATE_TABLES:
        await db_manager.create_tables()
    logger.info(f"Identity Reconciliation API started ({settings.ENVIRONMENT})")
    yield
    logger.info("Shutting down gracefully")
    await db_manager.dispose()


# Create FastAPI application instance
app = FastAPI(
    title=settings.API_TITLE,
    description=settings.API_DESCRIPTION,
    version=settings.API_VERSION,
    debug=settings.DEBUG,
    lifespan=lifespan
)

# Configure CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=settings.CORS_ORIGINS != ["*"],
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)


@app.middleware("http")
async def access_log_middleware(request: Request, call_next):
    """Add security headers and log every request with its duration"""
    started = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - started) * 1000

    for header, value in SECURITY_HEADERS.items():
        response.headers.setdefault(header, value)

    logger.info(
        f"{request.method} {request.url.path} -> {response.status_code} ({elapsed_ms:.1f}ms)"
    )
    return response


def error_json(status_code: int, error: str, message: str, details=None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=error, message=message, details=details).model_dump()
    )


# Exception handlers
@app.exception_handler(RequestValidationError)
async def request_validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle request body validation errors"""
    logger.warning(f"Validation error for {request.url}: {exc.errors()}")

    error_details = []
    for error in exc.errors():
        error_details.append({
            "field": " -> ".join(str(x) for x in error["loc"]),
            "message": error["msg"],
            "type": error["type"]
        })

    return error_json(
        400,
        "ValidationError",
        "Request validation failed",
        {"errors": error_details}
    )


@app.exception_handler(ValidationError)
async def engine_validation_exception_handler(request: Request, exc: ValidationError):
    logger.warning(f"Rejected by identity engine: {exc}")
    return error_json(400, "ValidationError", str(exc))


@app.exception_handler(ConflictExhausted)
async def conflict_exception_handler(request: Request, exc: ConflictExhausted):
    return error_json(
        503,
        "ServiceUnavailable",
        "Too many concurrent updates, please retry",
        {"attempts": exc.attempts}
    )


@app.exception_handler(ConsistencyError)
async def consistency_exception_handler(request: Request, exc: ConsistencyError):
    return error_json(
        500,
        "InternalServerError",
        "Unable to process identity reconciliation request"
    )


@app.exception_handler(StoreError)
async def store_exception_handler(request: Request, exc: StoreError):
    if isinstance(exc.original, (OperationalError, InterfaceError)):
        logger.error(f"Database connection error for {request.url}: {exc}")
        return error_json(
            503,
            "DatabaseConnectionError",
            "Database is currently unavailable. Please try again later."
        )

    logger.error(f"Database error for {request.url}: {exc}")
    return error_json(
        500,
        "InternalServerError",
        "Unable to process identity reconciliation request"
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle unexpected errors"""
    logger.error(f"Unexpected error for {request.url}: {exc}")
    logger.error(f"Traceback: {traceback.format_exc()}")
    return error_json(500, "InternalServerError", "An unexpected error occurred")


def get_identity_service() -> IdentityService:
    return identity_service


@app.get("/")
async def root():
    return {"status": "ok"}


@app.get("/health")
async def health_check():
    """
    Health check endpoint for monitoring and load balancer health checks
    """
    db_status = "connected" if await db_manager.test_connection() else "disconnected"

    return {
        "status": "healthy" if db_status == "connected" else "degraded",
        "environment": settings.ENVIRONMENT,
        "version": settings.API_VERSION,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "lambda": settings.is_lambda_environment(),
        "database": {"status": db_status}
    }


@app.post("/identify", response_model=IdentifyResponse)
async def identify_endpoint(
    request: IdentifyRequest,
    service: IdentityService = Depends(get_identity_service)
):
    """
    Main identity reconciliation endpoint

    Links customer identities based on email and/or phone number.
    Returns consolidated contact information including all linked emails,
    phone numbers, and secondary contact IDs.

    **Examples:**
    - New customer: Creates primary contact
    - Existing email + new phone: Creates secondary contact
    - Two existing primaries with shared info: Links them (older remains primary)
    """
    logger.debug(f"Identify request received: email={request.email}, phone={request.phoneNumber}")

    view = await service.reconcile(request.email, request.phoneNumber)

    logger.debug(f"Resolved to primary contact {view.primary_id}")
    return IdentifyResponse.from_view(view)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        workers=1
    )
