"""
Tests for the access gate middleware.
Route classification, rejection before handlers run, and rolling sessions.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, patch

import pytest
from httpx import AsyncClient

from video_service.auth import create_access_token
from video_service.config import settings
from video_service.middleware import GateState, classify_request, is_static_asset


def _token(iat: datetime, lifetime: timedelta, sub: str = "1", email: str = "test@example.com") -> str:
    return create_access_token({"sub": sub, "email": email, "iat": iat}, expires_delta=lifetime)


# ============================================================================
# Classification
# ============================================================================

class TestClassifyRequest:
    """Test the static allow-list."""

    @pytest.mark.parametrize("path", ["/", "/login", "/register", "/health", "/metrics"])
    def test_exact_public_paths(self, path):
        assert classify_request("GET", path) is GateState.PUBLIC
        assert classify_request("POST", path) is GateState.PUBLIC

    def test_auth_prefix_is_public(self):
        assert classify_request("POST", "/auth/logout") is GateState.PUBLIC
        assert classify_request("GET", "/auth/session") is GateState.PUBLIC

    def test_video_reads_are_public(self):
        assert classify_request("GET", "/videos/42") is GateState.PUBLIC
        assert classify_request("HEAD", "/videos/42") is GateState.PUBLIC

    def test_video_writes_under_prefix_need_session(self):
        assert classify_request("POST", "/videos/42") is GateState.UNCHECKED
        assert classify_request("DELETE", "/videos/42") is GateState.UNCHECKED

    def test_catalog_root_needs_session(self):
        """The allow-list covers /videos/<...>, not the /videos collection itself."""
        assert classify_request("GET", "/videos") is GateState.UNCHECKED
        assert classify_request("POST", "/videos") is GateState.UNCHECKED

    def test_other_paths_need_session(self):
        assert classify_request("GET", "/upload-auth") is GateState.UNCHECKED
        assert classify_request("GET", "/loginx") is GateState.UNCHECKED
        assert classify_request("GET", "/authority") is GateState.UNCHECKED

    def test_static_assets(self):
        assert is_static_asset("/favicon.ico")
        assert is_static_asset("/static/app.css")
        assert not is_static_asset("/videos")


# ============================================================================
# Rejection
# ============================================================================

@pytest.mark.asyncio
async def test_protected_path_without_token_never_reaches_handler(client: AsyncClient):
    """Test a request with no session is rejected before the handler runs."""
    with patch("video_service.services.list_videos", new_callable=AsyncMock, return_value=[]) as handler:
        response = await client.get("/videos")

    assert response.status_code == 401
    assert response.json()["detail"]["error"] == "UNAUTHORIZED"
    assert response.headers["WWW-Authenticate"] == "Bearer"
    handler.assert_not_called()


@pytest.mark.asyncio
async def test_expired_token_never_reaches_handler(client: AsyncClient):
    """Test an expired session is rejected with SESSION_EXPIRED."""
    expired = _token(datetime.now(timezone.utc) - timedelta(days=31), timedelta(days=30))

    with patch("video_service.services.create_video", new_callable=AsyncMock) as handler:
        response = await client.post(
            "/videos",
            json={"title": "t", "description": "d", "videoUrl": "v", "thumbnailUrl": "t"},
            headers={"Authorization": f"Bearer {expired}"},
        )

    assert response.status_code == 401
    assert response.json()["detail"]["error"] == "SESSION_EXPIRED"
    handler.assert_not_called()


@pytest.mark.asyncio
async def test_tampered_token_rejected(client: AsyncClient, access_token):
    """Test a token with a modified signature is rejected."""
    header, payload, signature = access_token.split(".")
    forged = f"{header}.{payload}.{signature[::-1]}"

    response = await client.get("/videos", headers={"Authorization": f"Bearer {forged}"})

    assert response.status_code == 401
    assert response.json()["detail"]["error"] == "INVALID_SESSION"


@pytest.mark.asyncio
async def test_garbage_cookie_rejected(client: AsyncClient):
    """Test a cookie that is not a token at all is rejected."""
    response = await client.get(
        "/upload-auth", headers={"Cookie": f"{settings.SESSION_COOKIE_NAME}=not-a-token"}
    )

    assert response.status_code == 401
    assert response.json()["detail"]["error"] == "INVALID_SESSION"


@pytest.mark.asyncio
async def test_browser_navigation_redirects_to_login(client: AsyncClient):
    """Test page loads without a session are sent to the login page."""
    response = await client.get("/videos?page=2", headers={"Accept": "text/html,application/xhtml+xml"})

    assert response.status_code == 303
    assert response.headers["location"] == "/login?callbackUrl=%2Fvideos%3Fpage%3D2"


@pytest.mark.asyncio
async def test_unknown_path_is_gated(client: AsyncClient):
    """Test paths outside the allow-list are rejected even when no route exists."""
    response = await client.get("/admin")

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_unknown_path_with_session_is_not_found(client: AsyncClient, auth_headers):
    """Test an authorized request to a missing route falls through to 404."""
    response = await client.get("/admin", headers=auth_headers)

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_static_asset_bypasses_gate(client: AsyncClient):
    """Test static assets are served without a session."""
    response = await client.get("/favicon.ico")

    assert response.status_code == 204


@pytest.mark.asyncio
async def test_public_video_read_without_session(client: AsyncClient):
    """Test the gate lets single-video reads through to the handler."""
    response = await client.get("/videos/1")

    assert response.status_code == 404
    assert response.json()["detail"]["error"] == "VIDEO_NOT_FOUND"


# ============================================================================
# Rolling sessions
# ============================================================================

@pytest.mark.asyncio
async def test_old_cookie_session_is_renewed(client: AsyncClient):
    """Test a cookie session older than the update age gets a fresh cookie."""
    old = _token(datetime.now(timezone.utc) - timedelta(days=2), timedelta(days=30))

    response = await client.get("/videos", headers={"Cookie": f"{settings.SESSION_COOKIE_NAME}={old}"})

    assert response.status_code == 200
    set_cookie = response.headers.get("set-cookie", "")
    assert set_cookie.startswith(f"{settings.SESSION_COOKIE_NAME}=")
    assert old not in set_cookie


@pytest.mark.asyncio
async def test_fresh_cookie_session_is_not_renewed(client: AsyncClient, access_token):
    """Test a recently issued session is left alone."""
    response = await client.get(
        "/videos", headers={"Cookie": f"{settings.SESSION_COOKIE_NAME}={access_token}"}
    )

    assert response.status_code == 200
    assert "set-cookie" not in response.headers


@pytest.mark.asyncio
async def test_bearer_session_is_not_renewed_as_cookie(client: AsyncClient):
    """Test header-based sessions never receive a cookie."""
    old = _token(datetime.now(timezone.utc) - timedelta(days=2), timedelta(days=30))

    response = await client.get("/videos", headers={"Authorization": f"Bearer {old}"})

    assert response.status_code == 200
    assert "set-cookie" not in response.headers
