"""Tests for middleware — security headers, request IDs."""

import pytest

from conftest import register


@pytest.mark.asyncio
async def test_security_headers(client):
    r = await client.get("/")
    assert r.headers["X-Content-Type-Options"] == "nosniff"
    assert r.headers["X-Frame-Options"] == "DENY"
    assert r.headers["Referrer-Policy"] == "same-origin"


@pytest.mark.asyncio
async def test_signed_in_pages_not_cached(client):
    r = await client.get("/secrets")
    assert "Cache-Control" not in r.headers

    await register(client, "alice@example.com", "pw1")
    r = await client.get("/secrets")
    assert r.headers["Cache-Control"] == "no-store"


@pytest.mark.asyncio
async def test_request_id_generated(client):
    """Each request gets a unique X-Request-ID header."""
    r1 = await client.get("/health")
    r2 = await client.get("/health")
    assert r1.headers["X-Request-ID"] != r2.headers["X-Request-ID"]


@pytest.mark.asyncio
async def test_request_id_propagated(client):
    r = await client.get("/health", headers={"X-Request-ID": "test-trace-12345"})
    assert r.headers["X-Request-ID"] == "test-trace-12345"


@pytest.mark.asyncio
async def test_no_hsts_on_http(client):
    r = await client.get("/")
    assert "Strict-Transport-Security" not in r.headers
