"""
Pytest configuration and shared fixtures for testing.
Sets up an isolated database per test and an ASGI test client.
"""

import os

# Configure the app through the environment BEFORE any app imports
os.environ["TEST_MODE"] = "1"  # Disables rate limiting
os.environ["ENABLE_METRICS"] = "true"
os.environ["SKIP_ENV_FILE"] = "1"
os.environ.setdefault("APP_ENV", "test")
os.environ["DB_URL"] = "sqlite+aiosqlite:///./video_service_unused.db"  # Replaced per test
os.environ["JWT_SECRET_KEY"] = "test-secret-key-with-at-least-32-characters"
os.environ["MEDIA_PUBLIC_KEY"] = "public_test_key"
os.environ["MEDIA_PRIVATE_KEY"] = "private_test_key"
os.environ["LOG_FILE"] = ""

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from video_service.main import app
from video_service import db as app_db
from video_service.db import Database


@pytest_asyncio.fixture(scope="function")
async def test_db(tmp_path):
    """Point the app at a fresh SQLite database file for the duration of a test."""
    database = Database(url=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")

    original_database = app_db.database
    app_db.database = database

    await database.create_all()

    yield database

    app_db.database = original_database
    await database.drop_all()
    await database.dispose()


@pytest_asyncio.fixture(scope="function")
async def client(test_db):
    """Create a test HTTP client backed by the per-test database."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        timeout=30.0
    ) as ac:
        yield ac


@pytest.fixture
def sample_user():
    """Sample user credentials for testing."""
    return {
        "email": "test@example.com",
        "password": "password123"
    }


@pytest.fixture
def sample_video():
    """Video payload as the upload form sends it (camelCase URLs)."""
    return {
        "title": "Sunset timelapse",
        "description": "Ten minutes of sunset in ten seconds",
        "videoUrl": "https://ik.imagekit.io/demo/sunset.mp4",
        "thumbnailUrl": "https://ik.imagekit.io/demo/sunset.jpg",
    }


@pytest_asyncio.fixture
async def access_token(client, sample_user):
    """Register and sign in the sample user; returns the session token."""
    response = await client.post("/register", json=sample_user)
    assert response.status_code == 201
    response = await client.post("/login", json=sample_user)
    assert response.status_code == 200
    # Tests pass the token explicitly; don't let the cookie jar authenticate behind their back
    client.cookies.clear()
    return response.json()["access_token"]


@pytest.fixture
def auth_headers(access_token):
    return {"Authorization": f"Bearer {access_token}"}
