"""FastAPI dependencies for authentication and authorization."""

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from .auth import validate_session_token
from .config import settings
from .exceptions import SessionTokenError
from .schemas import Identity


# ==================== Token Extraction ====================

security = HTTPBearer(auto_error=False)


def extract_session_token(request: Request) -> str | None:
    """Session token from the Authorization header, falling back to the session cookie."""
    authorization = request.headers.get("Authorization", "")
    scheme, _, credentials = authorization.partition(" ")
    if scheme.lower() == "bearer" and credentials.strip():
        return credentials.strip()
    return request.cookies.get(settings.SESSION_COOKIE_NAME)


def unauthorized(error: SessionTokenError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={
            "error": error.code,
            "message": error.message,
            "details": {}
        },
        headers={"WWW-Authenticate": "Bearer"},
    )


# ==================== Authentication Dependencies ====================


async def get_current_identity(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> Identity:
    """Identity of the caller. Raises 401 if the session is missing, invalid or expired.

    Reuses the identity the access gate already validated; paths the gate lets
    through without a session are validated here.
    """
    identity = getattr(request.state, "identity", None)
    if identity is not None:
        return identity

    try:
        identity = validate_session_token(extract_session_token(request))
    except SessionTokenError as e:
        raise unauthorized(e) from e

    request.state.identity = identity
    return identity
