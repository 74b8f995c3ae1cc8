"""SQLAlchemy ORM models for database tables."""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, Text
from sqlalchemy.sql import func
from .db import Base
from .config import settings

DEFAULT_VIDEO_HEIGHT = 1920
DEFAULT_VIDEO_WIDTH = 1080
DEFAULT_VIDEO_QUALITY = 100


class User(Base):
    """User model mapped to 'users' table. Emails are stored and matched as given."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(settings.USER_EMAIL_MAX_LENGTH), nullable=False, unique=True, index=True)
    hashed_password = Column(String(255), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class Video(Base):
    """Video metadata mapped to 'videos' table. The file itself lives on the media CDN."""

    __tablename__ = "videos"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(settings.VIDEO_TITLE_MAX_LENGTH), nullable=False)
    description = Column(Text, nullable=False)
    video_url = Column(String(settings.VIDEO_URL_MAX_LENGTH), nullable=False)
    thumbnail_url = Column(String(settings.VIDEO_URL_MAX_LENGTH), nullable=False)
    controls = Column(Boolean, default=True, nullable=False)
    transformation_height = Column(Integer, default=DEFAULT_VIDEO_HEIGHT, nullable=False)
    transformation_width = Column(Integer, default=DEFAULT_VIDEO_WIDTH, nullable=False)
    transformation_quality = Column(Integer, default=DEFAULT_VIDEO_QUALITY, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )
