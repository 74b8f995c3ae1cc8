"""Database CRUD operations for users and videos."""

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from . import db
from .models import User, Video
from .logger import logger


# ==================== Users ====================


async def insert_user(email: str, hashed_password: str) -> User:
    """Insert a new user with hashed password. Raises ValueError on duplicate email."""
    async with db.database.session() as session:
        try:
            async with session.begin():
                user = User(email=email, hashed_password=hashed_password)
                session.add(user)
            await session.refresh(user) # To update ORM object
            return user
        except IntegrityError as e:
            await session.rollback()
            logger.debug(f"Duplicate email rejected: {email}")
            raise ValueError("duplicate email") from e


async def select_user_by_email(email: str) -> User | None:
    """Retrieve a user by exact (case-sensitive) email address."""
    async with db.database.session() as session:
        result = await session.execute(select(User).where(User.email == email))
        return result.scalars().first()


async def select_user(user_id: int) -> User | None:
    """Retrieve a user by ID."""
    async with db.database.session() as session:
        return await session.get(User, user_id)


# ==================== Videos ====================


async def insert_video(fields: dict) -> Video:
    """Insert a video record. ``fields`` must already carry server-side defaults."""
    async with db.database.session() as session:
        async with session.begin():
            video = Video(**fields)
            session.add(video)
        await session.refresh(video)
        return video


async def select_videos(limit: int | None = None) -> list[Video]:
    """All videos, newest first. Ties on created_at fall back to insertion order."""
    async with db.database.session() as session:
        query = select(Video).order_by(Video.created_at.desc(), Video.id.desc())
        if limit is not None:
            query = query.limit(limit)
        result = await session.execute(query)
        return list(result.scalars().all())


async def select_video(video_id: int) -> Video | None:
    """Retrieve a video by ID."""
    async with db.database.session() as session:
        return await session.get(Video, video_id)
