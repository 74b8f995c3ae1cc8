"""HTTP middleware for access control, request handling, logging, and security."""

from enum import Enum
from urllib.parse import quote
from fastapi import Request
from fastapi.responses import JSONResponse, RedirectResponse, Response
import time
import uuid
from .auth import renew_session_token, should_renew, validate_session_token
from .config import settings
from .dependencies import extract_session_token
from .exceptions import SessionTokenError
from .logger import logger, request_id_var

# Import will be set by main.py to avoid circular dependency
shutdown_manager = None


def set_shutdown_manager(manager):
    """Set the shutdown manager instance (called from main.py)."""
    global shutdown_manager
    shutdown_manager = manager


# ==================== Session Cookies ====================

def set_session_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key=settings.SESSION_COOKIE_NAME,
        value=token,
        max_age=settings.SESSION_MAX_AGE_DAYS * 24 * 60 * 60,
        path="/",
        httponly=True,
        samesite="lax",
        secure=settings.APP_ENV == "production",
    )


def clear_session_cookie(response: Response) -> None:
    response.delete_cookie(
        key=settings.SESSION_COOKIE_NAME,
        path="/",
        httponly=True,
        samesite="lax",
        secure=settings.APP_ENV == "production",
    )


# ==================== Access Gate ====================


class GateState(str, Enum):
    """Where a request stands in the access gate."""
    UNCHECKED = "unchecked"
    PUBLIC = "public"
    AUTHORIZED = "authorized"
    REJECTED = "rejected"


# Never gated at all
STATIC_PATHS = frozenset({"/favicon.ico"})
STATIC_PREFIXES = ("/static/",)

# Allow-list: reachable without a session
PUBLIC_PATHS = frozenset({
    "/",
    "/login",
    "/register",
    "/health",
    "/metrics",
    "/docs",
    "/docs/oauth2-redirect",
    "/openapi.json",
})
PUBLIC_PREFIXES = ("/auth/",)
PUBLIC_READ_PREFIXES = ("/videos/",)
READ_METHODS = frozenset({"GET", "HEAD"})


def is_static_asset(path: str) -> bool:
    return path in STATIC_PATHS or path.startswith(STATIC_PREFIXES)


def classify_request(method: str, path: str) -> GateState:
    """PUBLIC for allow-listed routes, UNCHECKED for anything that needs a session."""
    if path in PUBLIC_PATHS or path.startswith(PUBLIC_PREFIXES):
        return GateState.PUBLIC
    if method.upper() in READ_METHODS and path.startswith(PUBLIC_READ_PREFIXES):
        return GateState.PUBLIC
    return GateState.UNCHECKED


def is_browser_navigation(request: Request) -> bool:
    """Page loads get a login redirect; API callers get a 401."""
    return (
        request.method in READ_METHODS
        and "text/html" in request.headers.get("accept", "")
    )


def reject_request(request: Request, error: SessionTokenError) -> Response:
    if is_browser_navigation(request):
        target = request.url.path
        if request.url.query:
            target = f"{target}?{request.url.query}"
        return RedirectResponse(
            url=f"{settings.LOGIN_PATH}?callbackUrl={quote(target, safe='')}",
            status_code=303,
        )
    return JSONResponse(
        status_code=401,
        content={
            "detail": {
                "error": error.code,
                "message": error.message,
                "details": {}
            }
        },
        headers={"WWW-Authenticate": "Bearer"},
    )


async def access_gate_middleware(request: Request, call_next):
    """Decide pass-through or rejection before any route handler runs."""
    path = request.url.path
    if is_static_asset(path):
        return await call_next(request)

    request.state.gate = GateState.UNCHECKED

    if classify_request(request.method, path) is GateState.PUBLIC:
        request.state.gate = GateState.PUBLIC
        return await call_next(request)

    token = extract_session_token(request)
    try:
        identity = validate_session_token(token)
    except SessionTokenError as e:
        request.state.gate = GateState.REJECTED
        logger.info(f"Access denied to {request.method} {path} - {e.code}")
        return reject_request(request, e)

    request.state.gate = GateState.AUTHORIZED
    request.state.identity = identity

    response = await call_next(request)

    # Rolling session: only cookie sessions are re-issued
    if token == request.cookies.get(settings.SESSION_COOKIE_NAME) and should_renew(identity):
        renewed_token, _ = renew_session_token(identity)
        set_session_cookie(response, renewed_token)
        logger.debug(f"Session renewed for user id={identity.user_id}")

    return response


# ==================== Graceful Shutdown Middleware ====================

async def graceful_shutdown_middleware(request: Request, call_next):
    """Count in-flight requests; refuse new ones with 503 once draining has begun."""
    if shutdown_manager is None:
        return await call_next(request)

    if shutdown_manager.is_shutting_down:
        logger.warning(f"Refusing {request.method} {request.url.path} - draining for shutdown")
        return JSONResponse(
            status_code=503,
            content={
                "error": "SERVICE_UNAVAILABLE",
                "message": "Service is shutting down - please retry with another instance"
            },
            headers={"Retry-After": "10"}
        )

    shutdown_manager.request_started()
    try:
        return await call_next(request)
    finally:
        shutdown_manager.request_finished()


# ==================== Request ID Middleware ====================

async def add_request_id_middleware(request: Request, call_next):
    """Tag the request (and every log record emitted while serving it) with an id.

    A caller-supplied ``X-Request-ID`` is kept so traces can span services.
    """
    request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
    request.state.request_id = request_id
    context_token = request_id_var.set(request_id)
    try:
        response = await call_next(request)
    finally:
        request_id_var.reset(context_token)

    response.headers["X-Request-ID"] = request_id
    return response


# ==================== Request Logging Middleware ====================

async def request_logging_middleware(request: Request, call_next):
    """Access log: one line in, one line out with status, gate outcome and duration."""
    started = time.perf_counter()
    logger.info(f"{request.method} {request.url.path} - received")

    try:
        response = await call_next(request)
    except Exception as e:
        logger.error(
            f"{request.method} {request.url.path} - unhandled {type(e).__name__} "
            f"after {time.perf_counter() - started:.3f}s",
            exc_info=True
        )
        raise

    gate = getattr(request.state, "gate", None)
    logger.info(
        f"{request.method} {request.url.path} - {response.status_code} "
        f"gate={gate.value if gate else 'static'} "
        f"in {time.perf_counter() - started:.3f}s"
    )
    return response


# ==================== Security Headers Middleware ====================

async def security_headers_middleware(request: Request, call_next):
    """Add security headers to all responses."""
    response = await call_next(request)

    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["X-XSS-Protection"] = "1; mode=block"

    # Enforce HTTPS in production
    if settings.APP_ENV == "production":
        response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"

    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"

    # Videos and thumbnails are served by the media CDN
    response.headers["Content-Security-Policy"] = (
        "default-src 'self'; "
        "script-src 'self' 'unsafe-inline' https://cdn.jsdelivr.net; "
        "style-src 'self' 'unsafe-inline' https://cdn.jsdelivr.net; "
        "img-src 'self' data: https://cdn.jsdelivr.net https://ik.imagekit.io; "
        "media-src 'self' https://ik.imagekit.io; "
        "connect-src 'self' https://upload.imagekit.io; "
        "font-src 'self' https://cdn.jsdelivr.net"
    )

    response.headers["Permissions-Policy"] = "geolocation=(), microphone=(), camera=()"

    return response
