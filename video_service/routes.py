# API route definitions (HTTP layer)
# Session, catalog and upload-grant ENDPOINTS; access control runs earlier in the gate

import os
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse, Response
from .schemas import (
    Identity,
    MessageResponse,
    RegisterResponse,
    Token,
    UploadAuthResponse,
    UserLogin,
    UserRegister,
    VideoCreate,
    VideoOut,
)
from .dependencies import get_current_identity
from .middleware import clear_session_cookie, set_session_cookie
from . import db
from . import media
from . import services
from .config import settings
from slowapi import Limiter
from slowapi.util import get_remote_address

limiter = Limiter(key_func=get_remote_address)

# Helper to conditionally apply rate limiting (skip in tests)
def conditional_limit(limit_string):
    """Apply rate limit only if not in test mode."""
    if os.getenv('TEST_MODE'):
        def decorator(func):
            return func
        return decorator
    return limiter.limit(limit_string)


router = APIRouter()

@router.get("/")
def root():
    return {"app": settings.APP_NAME, "env": settings.APP_ENV}


@router.get("/health")
async def health_check():
    """Health check endpoint for load balancers and monitoring.

    Returns:
        - 200 OK if the service and database are healthy
        - 503 Service Unavailable if the database is unreachable
    """
    health_status = {
        "status": "healthy",
        "service": settings.APP_NAME,
        "environment": settings.APP_ENV,
    }

    if await db.check_db_connection():
        health_status["database"] = "connected"
        return health_status

    health_status["status"] = "unhealthy"
    health_status["database"] = "disconnected"
    raise HTTPException(status_code=503, detail=health_status)


@router.get("/favicon.ico", include_in_schema=False)
async def favicon():
    return Response(status_code=204)


# ============================================================================
# Authentication Endpoints
# ============================================================================

@router.post("/register", response_model=RegisterResponse, status_code=201)
@conditional_limit(settings.RATE_LIMIT_AUTH)
async def register(user: UserRegister, request: Request):
    """Register a new user with email and password.

    Raises:
        400: Missing fields or email already registered
    """
    return await services.register_user(user)


@router.post("/login", response_model=Token)
@conditional_limit(settings.RATE_LIMIT_AUTH)
async def login(credentials: UserLogin, request: Request):
    """Authenticate a user, set the session cookie and return the token.

    Raises:
        401: Invalid credentials
    """
    token = await services.authenticate_user(credentials)
    response = JSONResponse(content=token.model_dump(mode="json"))
    set_session_cookie(response, token.access_token)
    return response


@router.post("/auth/logout", response_model=MessageResponse)
async def logout():
    """Drop the session cookie. Tokens are stateless and stay valid until they expire."""
    response = JSONResponse(content={"message": "Signed out"})
    clear_session_cookie(response)
    return response


@router.get("/auth/session", response_model=Identity)
async def current_session(identity: Identity = Depends(get_current_identity)):
    """Identity behind the current session token.

    Raises:
        401: Missing, invalid or expired session
    """
    return identity


# ============================================================================
# Video Catalog Endpoints
# ============================================================================

@router.get("/videos", response_model=list[VideoOut])
@conditional_limit(settings.RATE_LIMIT_READ)
async def list_videos(request: Request, identity: Identity = Depends(get_current_identity)):
    """List all videos, newest first."""
    return await services.list_videos()


@router.post("/videos", response_model=VideoOut, status_code=201)
@conditional_limit(settings.RATE_LIMIT_WRITE)
async def create_video(
    video: VideoCreate,
    request: Request,
    identity: Identity = Depends(get_current_identity),
):
    """Create a video record for a file already uploaded to the media CDN.

    Raises:
        400: A required field is missing or blank
    """
    return await services.create_video(video)


@router.get("/videos/{video_id}", response_model=VideoOut)
@conditional_limit(settings.RATE_LIMIT_READ)
async def get_video(video_id: int, request: Request):
    return await services.get_video(video_id)


# ============================================================================
# Upload Grant Endpoint
# ============================================================================

@router.get("/upload-auth", response_model=UploadAuthResponse)
@conditional_limit(settings.RATE_LIMIT_WRITE)
async def upload_auth(request: Request, identity: Identity = Depends(get_current_identity)):
    """Short-lived signed parameters for uploading straight to the media CDN.

    Raises:
        401: No valid session
        500: The grant could not be signed
    """
    return media.issue_upload_grant(identity)
