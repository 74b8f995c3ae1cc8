"""
Unit tests for database layer (CRUD operations).
Tests CRUD functions with a real SQLite database using test fixtures.
"""

import pytest

from video_service.auth import hash_password
from video_service.crud import (
    insert_user,
    insert_video,
    select_user,
    select_user_by_email,
    select_video,
    select_videos,
)


def video_fields(title: str = "Clip") -> dict:
    return {
        "title": title,
        "description": "A short clip",
        "video_url": f"https://ik.imagekit.io/demo/{title}.mp4",
        "thumbnail_url": f"https://ik.imagekit.io/demo/{title}.jpg",
        "controls": True,
        "transformation_height": 1920,
        "transformation_width": 1080,
        "transformation_quality": 100,
    }


@pytest.mark.asyncio
class TestUsers:
    """Test user CRUD functions."""

    async def test_insert_user_success(self, test_db):
        user = await insert_user("test@example.com", hash_password("password123"))

        assert user.id is not None
        assert user.email == "test@example.com"
        assert user.created_at is not None

    async def test_insert_user_duplicate_email(self, test_db):
        """Test that duplicate email raises ValueError."""
        await insert_user("test@example.com", "hash1")

        with pytest.raises(ValueError, match="duplicate email"):
            await insert_user("test@example.com", "hash2")

    async def test_emails_differing_in_case_are_distinct(self, test_db):
        first = await insert_user("Test@Example.com", "hash1")
        second = await insert_user("test@example.com", "hash2")

        assert first.id != second.id

    async def test_select_user_by_email_exact_match(self, test_db):
        await insert_user("Test@Example.com", "hash")

        assert (await select_user_by_email("Test@Example.com")) is not None
        assert (await select_user_by_email("test@example.com")) is None

    async def test_select_user(self, test_db):
        user = await insert_user("test@example.com", "hash")

        found = await select_user(user.id)

        assert found.email == "test@example.com"
        assert await select_user(99999) is None


@pytest.mark.asyncio
class TestVideos:
    """Test video CRUD functions."""

    async def test_insert_video(self, test_db):
        video = await insert_video(video_fields())

        assert video.id is not None
        assert video.controls is True
        assert video.created_at is not None
        assert video.updated_at is not None

    async def test_select_videos_empty(self, test_db):
        assert await select_videos() == []

    async def test_select_videos_newest_first(self, test_db):
        for title in ["a", "b", "c"]:
            await insert_video(video_fields(title))

        videos = await select_videos()

        assert [v.title for v in videos] == ["c", "b", "a"]

    async def test_select_videos_limit(self, test_db):
        for title in ["a", "b", "c"]:
            await insert_video(video_fields(title))

        videos = await select_videos(limit=2)

        assert [v.title for v in videos] == ["c", "b"]

    async def test_select_video(self, test_db):
        video = await insert_video(video_fields())

        assert (await select_video(video.id)).title == "Clip"
        assert await select_video(99999) is None
