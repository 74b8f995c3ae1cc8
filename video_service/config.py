"""Configuration management and validation using Pydantic."""

import os
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator


class Settings(BaseSettings):
    """Application configuration settings loaded from environment variables or .env files."""

    @staticmethod
    def get_env_file() -> str | None:
        """Determine which .env file to load based on environment variables.

        Returns:
            None if SKIP_ENV_FILE is set (Docker/direct env vars)
            .env.{APP_ENV} file path otherwise (defaults to .env.dev)
        """
        if os.getenv("SKIP_ENV_FILE"):
            return None
        env = os.getenv("APP_ENV", "dev")
        env_file = f".env.{env}"
        if not os.path.exists(env_file):
            raise FileNotFoundError(
                f"Environment file '{env_file}' not found. "
                f"Create it, or set SKIP_ENV_FILE to read the process environment only."
            )
        return env_file

    model_config = SettingsConfigDict(
        env_file=get_env_file.__func__(),
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # ==================== Application Settings ====================
    APP_NAME: str = "Video Share Service"
    APP_ENV: str = "dev"
    DB_URL: str  # Required, defined in .env files
    DB_CREATE_TABLES: bool = False  # Create tables on startup instead of running Alembic

    # ==================== Database Connection Pooling ====================
    DB_POOL_SIZE: int = 10  # Persistent connections in pool
    DB_MAX_OVERFLOW: int = 5  # Additional connections beyond pool size
    DB_POOL_TIMEOUT: int = 30  # Seconds to wait for available connection
    DB_POOL_RECYCLE: int = 3600  # Recycle connections after 1 hour
    DB_QUERY_TIMEOUT: int = 60  # Query execution timeout (seconds)
    DB_CONNECT_TIMEOUT: int = 10  # Connection establishment timeout (seconds)

    # ==================== CORS Settings ====================
    CORS_ORIGINS: str = "http://localhost:3000"  # Comma-separated allowed origins

    # ==================== Field Validation ====================
    USER_EMAIL_MAX_LENGTH: int = 255
    PASSWORD_MIN_LENGTH: int = 8
    PASSWORD_MAX_LENGTH: int = 72  # bcrypt only looks at the first 72 bytes
    VIDEO_TITLE_MAX_LENGTH: int = 200
    VIDEO_URL_MAX_LENGTH: int = 2048

    # ==================== Session Tokens ====================
    JWT_SECRET_KEY: str  # Required, signs session tokens
    JWT_ALGORITHM: str = "HS256"
    SESSION_MAX_AGE_DAYS: int = 30
    SESSION_UPDATE_AGE_HOURS: int = 24  # Re-issue the cookie once a session is this old
    SESSION_COOKIE_NAME: str = "session_token"
    LOGIN_PATH: str = "/login"

    # ==================== Media Service (ImageKit) ====================
    MEDIA_PUBLIC_KEY: str  # Required
    MEDIA_PRIVATE_KEY: str  # Required
    MEDIA_URL_ENDPOINT: str = "https://ik.imagekit.io"  # Delivery endpoint, usually https://ik.imagekit.io/<imagekit_id>
    MEDIA_UPLOAD_ENDPOINT: str = "https://upload.imagekit.io/api/v1/files/upload"
    MEDIA_UPLOAD_GRANT_TTL: int = 1800  # Seconds; the media service rejects grants over one hour

    # ==================== Upload Limits ====================
    UPLOAD_MAX_BYTES: int = 500 * 1024 * 1024
    UPLOAD_ALLOWED_TYPES: str = "video/mp4,video/quicktime,video/webm,video/x-matroska"

    # ==================== Rate Limiting ====================
    RATE_LIMIT_AUTH: str = "10/minute"
    RATE_LIMIT_WRITE: str = "60/minute"
    RATE_LIMIT_READ: str = "100/minute"

    # ==================== Graceful Shutdown ====================
    GRACEFUL_SHUTDOWN_TIMEOUT: int = 30  # Max wait time for active requests (seconds)

    # ==================== Logging ====================
    LOG_LEVEL: str = "INFO"  # DEBUG, INFO, WARNING, ERROR, CRITICAL
    LOG_FILE: str | None = "app.log"  # Empty or None to disable file logging
    LOG_FORMAT: str = "console"  # "console" for dev, "json" for production

    @field_validator('DB_URL')
    @classmethod
    def validate_db_url(cls, v: str) -> str:
        """Validate that DB_URL is provided and points at a supported async driver."""
        if not v:
            raise ValueError("DB_URL is required but not provided in environment variables")
        if not v.startswith(("postgresql://", "postgresql+asyncpg://", "sqlite+aiosqlite://")):
            raise ValueError("DB_URL must be a PostgreSQL or sqlite+aiosqlite connection string")
        return v

    @field_validator('JWT_SECRET_KEY')
    @classmethod
    def validate_jwt_secret(cls, v: str) -> str:
        """Validate that JWT_SECRET_KEY is provided and sufficiently long."""
        if not v:
            raise ValueError("JWT_SECRET_KEY is required but not provided in environment variables")
        if len(v) < 32:
            raise ValueError("JWT_SECRET_KEY must be at least 32 characters long for security")
        return v

    @field_validator('MEDIA_PUBLIC_KEY', 'MEDIA_PRIVATE_KEY')
    @classmethod
    def validate_media_keys(cls, v: str) -> str:
        """Media service keys must be present; upload grants cannot be signed without them."""
        if not v or not v.strip():
            raise ValueError("Media service public and private keys are required")
        return v.strip()

    @field_validator('MEDIA_UPLOAD_GRANT_TTL')
    @classmethod
    def validate_grant_ttl(cls, v: int) -> int:
        if not 0 < v < 3600:
            raise ValueError("MEDIA_UPLOAD_GRANT_TTL must be between 1 and 3599 seconds")
        return v

    def get_cors_origins(self) -> list[str]:
        """Parse CORS_ORIGINS into a list of allowed origins."""
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

    def get_upload_allowed_types(self) -> list[str]:
        return [t.strip() for t in self.UPLOAD_ALLOWED_TYPES.split(",") if t.strip()]

settings = Settings()
