"""
Tests for security headers middleware.
"""

import pytest
from httpx import AsyncClient


@pytest.mark.asyncio
async def test_security_headers_present(client: AsyncClient):
    """Test that all required security headers are present in responses."""
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.headers.get("X-Content-Type-Options") == "nosniff"
    assert response.headers.get("X-Frame-Options") == "DENY"
    assert response.headers.get("X-XSS-Protection") == "1; mode=block"
    assert response.headers.get("Referrer-Policy") == "strict-origin-when-cross-origin"
    assert "Content-Security-Policy" in response.headers
    assert "Permissions-Policy" in response.headers


@pytest.mark.asyncio
async def test_hsts_header_not_in_dev(client: AsyncClient):
    """Test that HSTS header is only set in production."""
    response = await client.get("/health")

    assert response.headers.get("Strict-Transport-Security") is None


@pytest.mark.asyncio
async def test_csp_allows_media_cdn(client: AsyncClient):
    """Test the CSP lets pages play CDN media and upload to it."""
    response = await client.get("/")

    csp = response.headers["Content-Security-Policy"]
    assert "default-src 'self'" in csp
    assert "https://ik.imagekit.io" in csp
    assert "connect-src 'self' https://upload.imagekit.io" in csp


@pytest.mark.asyncio
async def test_security_headers_on_gate_rejections(client: AsyncClient):
    """Test that rejected requests carry security headers and a request id."""
    response = await client.get("/videos")

    assert response.status_code == 401
    assert response.headers.get("X-Content-Type-Options") == "nosniff"
    assert response.headers.get("X-Frame-Options") == "DENY"
    assert "X-Request-ID" in response.headers


@pytest.mark.asyncio
async def test_security_headers_on_post_requests(client: AsyncClient):
    """Test that security headers are present on POST requests."""
    response = await client.post("/register", json={"email": "security-test@example.com"})

    assert response.status_code == 400
    assert response.headers["X-Frame-Options"] == "DENY"


@pytest.mark.asyncio
async def test_request_id_is_echoed(client: AsyncClient):
    """Test a caller-supplied request id is returned unchanged."""
    response = await client.get("/health", headers={"X-Request-ID": "trace-123"})

    assert response.headers["X-Request-ID"] == "trace-123"
