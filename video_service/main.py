"""FastAPI application entry point with lifecycle management."""

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from sqlalchemy.exc import SQLAlchemyError
import asyncio

from .config import settings
from .routes import limiter, router
from . import db
from .exceptions import DatabaseUnavailableError, InfrastructureError, MediaSigningError
from .logger import logger
from .middleware import (
    access_gate_middleware,
    graceful_shutdown_middleware,
    add_request_id_middleware,
    request_logging_middleware,
    security_headers_middleware,
    set_shutdown_manager,
)
from .monitoring import setup_monitoring
from .schemas import BLANK_FIELD_ERROR, ErrorCode

# ==================== Graceful Shutdown ====================


class GracefulShutdownManager:
    """Counts in-flight requests so shutdown can let them finish before the pool closes."""

    def __init__(self, shutdown_timeout: float | None = None):
        self.is_shutting_down = False
        self.active_requests = 0
        self.shutdown_timeout = (
            settings.GRACEFUL_SHUTDOWN_TIMEOUT if shutdown_timeout is None else shutdown_timeout
        )

    def request_started(self):
        if not self.is_shutting_down:
            self.active_requests += 1

    def request_finished(self):
        self.active_requests -= 1

    async def _drained(self):
        while self.active_requests > 0:
            await asyncio.sleep(0.1)

    async def initiate_shutdown(self):
        """Stop admitting requests, then wait up to ``shutdown_timeout`` for in-flight ones."""
        if self.is_shutting_down:
            return
        self.is_shutting_down = True
        logger.info(f"Graceful shutdown: draining {self.active_requests} in-flight request(s)")

        try:
            await asyncio.wait_for(self._drained(), timeout=self.shutdown_timeout)
        except asyncio.TimeoutError:
            logger.warning(
                f"Shutdown timeout ({self.shutdown_timeout}s) reached with "
                f"{self.active_requests} request(s) still active - forcing shutdown"
            )
            return

        logger.info("All in-flight requests finished")


shutdown_manager = GracefulShutdownManager()
set_shutdown_manager(shutdown_manager)

# ==================== Error Handlers ====================

INFRASTRUCTURE_MESSAGES = {
    DatabaseUnavailableError: "Database connection error",
    MediaSigningError: "Failed to generate upload auth parameters",
}


def _error_body(code: str, message: str, details: dict | None = None) -> dict:
    return {"detail": {"error": code, "message": message, "details": details or {}}}


def _is_missing(error: dict) -> bool:
    """Absent, blank and explicit null required values all count as missing."""
    if error.get("type") in ("missing", BLANK_FIELD_ERROR):
        return True
    return error.get("type") == "string_type" and error.get("input") is None


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Report malformed request bodies as 400 with a stable error code."""
    fields = []
    missing = []
    for error in exc.errors():
        field = ".".join(str(part) for part in error.get("loc", ()) if part != "body") or "body"
        fields.append({"field": field, "message": error.get("msg", "Invalid value")})
        if _is_missing(error):
            missing.append(field)

    if missing:
        code, message = ErrorCode.MISSING_FIELD, "Missing required fields"
    else:
        code, message = ErrorCode.INVALID_INPUT, "Invalid request"

    return JSONResponse(
        status_code=400,
        content=_error_body(code, message, {"missing": missing, "errors": fields}),
    )


async def infrastructure_exception_handler(request: Request, exc: Exception):
    """Log backing-service failures in full; tell the caller only that it failed."""
    logger.error(
        f"{request.method} {request.url.path} - infrastructure failure: {exc!r}",
        exc_info=exc,
    )
    message = INFRASTRUCTURE_MESSAGES.get(type(exc), "Internal Server Error")
    return JSONResponse(status_code=500, content=_error_body(ErrorCode.INTERNAL_ERROR, message))

# ==================== Application Lifecycle ====================


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan - handles startup and graceful shutdown."""
    logger.info(f"Starting {settings.APP_NAME} in {settings.APP_ENV} mode")

    if settings.DB_CREATE_TABLES:
        logger.info("Creating database tables (DB_CREATE_TABLES is set)")
        await db.database.create_all()
    else:
        logger.info("Database schema managed by Alembic migrations")

    logger.info(f"{settings.APP_NAME} started successfully - ready to accept requests")

    yield

    logger.info(f"Shutting down {settings.APP_NAME}...")
    await shutdown_manager.initiate_shutdown()
    await db.dispose_engine()
    logger.info(f"{settings.APP_NAME} shutdown complete")

# ==================== Application Setup ====================


app = FastAPI(title=settings.APP_NAME, lifespan=lifespan)

# Middleware registration (last registered = outermost layer): the access gate
# sits innermost so request ids, logging and security headers cover rejections too
app.middleware("http")(access_gate_middleware)
app.middleware("http")(security_headers_middleware)
app.middleware("http")(request_logging_middleware)
app.middleware("http")(add_request_id_middleware)
app.middleware("http")(graceful_shutdown_middleware)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# Error taxonomy
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(InfrastructureError, infrastructure_exception_handler)
app.add_exception_handler(SQLAlchemyError, infrastructure_exception_handler)

app.include_router(router)

# Setup Prometheus monitoring
setup_monitoring(app)
