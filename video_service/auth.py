"""Password hashing and signed session tokens."""

from datetime import datetime, timedelta, timezone
from functools import lru_cache
from jose import ExpiredSignatureError, JWTError, jwt
import bcrypt
from .config import settings
from .exceptions import SessionTokenError
from .schemas import ErrorCode, Identity

BCRYPT_MAX_BYTES = 72


# ==================== Password Hashing ====================

def hash_password(password: str) -> str:
    """Hash a plain text password using bcrypt for secure storage."""
    # bcrypt requires bytes and returns bytes
    password_bytes = password.encode('utf-8')
    if len(password_bytes) > BCRYPT_MAX_BYTES:
        raise ValueError(f"Password must be at most {BCRYPT_MAX_BYTES} bytes")
    hashed = bcrypt.hashpw(password_bytes, bcrypt.gensalt())
    # Return as string for database storage
    return hashed.decode('utf-8')


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a plain text password against a bcrypt hash.

    This is the only comparison path; stored values are never compared as plaintext.
    """
    password_bytes = plain_password.encode('utf-8')
    if len(password_bytes) > BCRYPT_MAX_BYTES:
        # Could never have been registered
        return False
    try:
        return bcrypt.checkpw(password_bytes, hashed_password.encode('utf-8'))
    except ValueError:
        # Stored value is not a bcrypt hash
        return False


@lru_cache(maxsize=1)
def _dummy_hash() -> str:
    return hash_password("not-a-real-password")


def burn_password_check(plain_password: str) -> None:
    """Spend the same bcrypt work as a real check, for lookups that found no user."""
    verify_password(plain_password, _dummy_hash())


# ==================== JWT Token Management ====================

def create_access_token(data: dict, expires_delta: timedelta | None = None) -> str:
    """Create a JWT access token with optional expiration. Defaults to the session lifetime."""
    to_encode = data.copy()

    # Expiry counts from the issue time when the caller pins one
    issued_at = to_encode.setdefault("iat", datetime.now(timezone.utc))
    expire = issued_at + (expires_delta if expires_delta is not None else timedelta(days=settings.SESSION_MAX_AGE_DAYS))
    to_encode.update({"exp": expire})

    encoded_jwt = jwt.encode(to_encode, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)
    return encoded_jwt


def decode_access_token(token: str) -> dict:
    """Decode and verify a JWT token.

    Raises:
        SessionTokenError: SESSION_EXPIRED when past ``exp``, INVALID_SESSION otherwise
    """
    try:
        return jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except ExpiredSignatureError as e:
        raise SessionTokenError(ErrorCode.SESSION_EXPIRED, "Session has expired") from e
    except JWTError as e:
        raise SessionTokenError(ErrorCode.INVALID_SESSION, "Invalid session token") from e


# ==================== Sessions ====================

def issue_session_token(user_id: int, email: str) -> tuple[str, datetime]:
    """Sign a new session token for a user. Returns the token and its expiry."""
    issued_at = datetime.now(timezone.utc).replace(microsecond=0)
    expires_at = issued_at + timedelta(days=settings.SESSION_MAX_AGE_DAYS)
    token = create_access_token(
        {"sub": str(user_id), "email": email, "iat": issued_at},
        expires_delta=expires_at - issued_at,
    )
    return token, expires_at


def validate_session_token(token: str | None) -> Identity:
    """Reconstruct the caller's identity from a session token.

    Raises:
        SessionTokenError: missing, tampered, malformed or expired token
    """
    if not token:
        raise SessionTokenError(ErrorCode.UNAUTHORIZED, "Authentication required")

    payload = decode_access_token(token)

    sub = payload.get("sub")
    email = payload.get("email")
    iat = payload.get("iat")
    exp = payload.get("exp")
    if not sub or not isinstance(email, str) or iat is None or exp is None:
        raise SessionTokenError(ErrorCode.INVALID_SESSION, "Token payload is invalid")
    try:
        user_id = int(sub)
    except (TypeError, ValueError) as e:
        raise SessionTokenError(ErrorCode.INVALID_SESSION, "Token payload is invalid") from e

    return Identity(
        user_id=user_id,
        email=email,
        issued_at=datetime.fromtimestamp(iat, timezone.utc),
        expires_at=datetime.fromtimestamp(exp, timezone.utc),
    )


def should_renew(identity: Identity, now: datetime | None = None) -> bool:
    """True once a session is older than the update age and should get a fresh cookie."""
    now = now or datetime.now(timezone.utc)
    return now - identity.issued_at >= timedelta(hours=settings.SESSION_UPDATE_AGE_HOURS)


def renew_session_token(identity: Identity) -> tuple[str, datetime]:
    """Re-issue a still-valid session with a full lifetime from now."""
    return issue_session_token(identity.user_id, identity.email)
