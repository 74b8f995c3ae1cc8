"""Pydantic schemas for request/response validation and serialization."""

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic_core import PydanticCustomError
from datetime import datetime
from .config import settings


# ==================== Error Schemas ====================

class ErrorCode:
    """Centralized error codes for API responses."""
    MISSING_FIELD = "MISSING_FIELD"
    INVALID_INPUT = "INVALID_INPUT"
    DUPLICATE_EMAIL = "DUPLICATE_EMAIL"
    INVALID_CREDENTIALS = "INVALID_CREDENTIALS"
    UNAUTHORIZED = "UNAUTHORIZED"
    SESSION_EXPIRED = "SESSION_EXPIRED"
    INVALID_SESSION = "INVALID_SESSION"
    VIDEO_NOT_FOUND = "VIDEO_NOT_FOUND"
    INTERNAL_ERROR = "INTERNAL_ERROR"


# Validation error type used for required text fields that are present but blank
BLANK_FIELD_ERROR = "blank_field"


def _require_text(v: str) -> str:
    v = v.strip()
    if not v:
        raise PydanticCustomError(BLANK_FIELD_ERROR, "Field must not be blank")
    return v


# ==================== Authentication Schemas ====================

class UserRegister(BaseModel):
    """Schema for user registration with password."""
    email: str = Field(..., max_length=settings.USER_EMAIL_MAX_LENGTH, description="User's email address")
    password: str = Field(
        ...,
        min_length=settings.PASSWORD_MIN_LENGTH,
        max_length=settings.PASSWORD_MAX_LENGTH,
        description=f"User's password (min {settings.PASSWORD_MIN_LENGTH} characters)",
    )

    @field_validator('email')
    @classmethod
    def validate_email(cls, v: str) -> str:
        """Strip surrounding whitespace and require a local part and a domain.

        Case is kept: addresses are stored and matched exactly as given.
        """
        v = _require_text(v)
        local, sep, domain = v.partition("@")
        if not sep or not local or not domain or "@" in domain or " " in v:
            raise ValueError("Email must look like name@domain")
        return v

    @field_validator('password')
    @classmethod
    def validate_password_bytes(cls, v: str) -> str:
        """bcrypt works on bytes: multi-byte characters count against the limit more than once."""
        if len(v.encode('utf-8')) > settings.PASSWORD_MAX_LENGTH:
            raise ValueError(f"Password must be at most {settings.PASSWORD_MAX_LENGTH} bytes when UTF-8 encoded")
        return v


class UserLogin(BaseModel):
    """Schema for user login credentials."""
    email: str = Field(..., description="User's email address")
    password: str = Field(..., description="User's password")

    @field_validator('email', 'password')
    @classmethod
    def validate_present(cls, v: str) -> str:
        if not v.strip():
            raise PydanticCustomError(BLANK_FIELD_ERROR, "Email and password are required")
        return v

    @field_validator('email')
    @classmethod
    def strip_email(cls, v: str) -> str:
        return v.strip()


class RegisterResponse(BaseModel):
    message: str


class MessageResponse(BaseModel):
    message: str


class Token(BaseModel):
    """Session token response; the same token is also set as a cookie."""
    access_token: str
    token_type: str = "bearer"
    expires_at: datetime


class Identity(BaseModel):
    """Authenticated caller, reconstructed from a validated session token."""
    user_id: int
    email: str
    issued_at: datetime
    expires_at: datetime


# ==================== Video Schemas ====================

class TransformationIn(BaseModel):
    """Client-supplied transformation. Only quality is honoured; dimensions are fixed."""
    quality: int | None = Field(None, ge=1, le=100)


class Transformation(BaseModel):
    height: int
    width: int
    quality: int


class VideoCreate(BaseModel):
    """Schema for creating a video record after the file reached the media CDN."""
    title: str = Field(..., max_length=settings.VIDEO_TITLE_MAX_LENGTH)
    description: str
    video_url: str = Field(
        ...,
        max_length=settings.VIDEO_URL_MAX_LENGTH,
        validation_alias=AliasChoices("video_url", "videoUrl"),
    )
    thumbnail_url: str = Field(
        ...,
        max_length=settings.VIDEO_URL_MAX_LENGTH,
        validation_alias=AliasChoices("thumbnail_url", "thumbnailUrl"),
    )
    controls: bool | None = None
    transformation: TransformationIn | None = None

    @field_validator('title', 'description', 'video_url', 'thumbnail_url')
    @classmethod
    def validate_required_text(cls, v: str) -> str:
        return _require_text(v)


class VideoOut(BaseModel):
    """Video output schema."""
    id: int
    title: str
    description: str
    video_url: str
    thumbnail_url: str
    controls: bool
    transformation: Transformation
    created_at: datetime
    updated_at: datetime


# ==================== Upload Grant Schemas ====================

class UploadAuthParameters(BaseModel):
    """Signed parameters the client sends along with its direct upload."""
    token: str
    expire: int
    signature: str


class UploadAuthResponse(BaseModel):
    """Upload grant as sent to the client (camelCase on the wire)."""
    model_config = ConfigDict(populate_by_name=True)

    auth_parameters: UploadAuthParameters = Field(alias="authParameters")
    public_key: str = Field(alias="publicKey")
    upload_endpoint: str = Field(alias="uploadEndpoint")
