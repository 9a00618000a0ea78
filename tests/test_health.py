"""Smoke tests for health and app wiring."""

from httpx import AsyncClient


async def test_health_returns_ok(client: AsyncClient) -> None:
    """GET /api/v1/health returns 200 and status ok."""
    response = await client.get("/api/v1/health")
    assert response.status_code == 200
    data = response.json()
    assert data.get("status") == "ok"
    assert data.get("version") == "1.0.0"


async def test_request_id_is_echoed(client: AsyncClient) -> None:
    response = await client.get("/api/v1/health", headers={"X-Request-ID": "abc-123"})
    assert response.headers["X-Request-ID"] == "abc-123"


async def test_unsafe_request_id_is_replaced(client: AsyncClient) -> None:
    """Values outside [A-Za-z0-9_-] are replaced with a generated id."""
    response = await client.get(
        "/api/v1/health", headers={"X-Request-ID": "bad id\nwith newline"}
    )
    assert response.headers["X-Request-ID"] != "bad id\nwith newline"
    assert len(response.headers["X-Request-ID"]) == 36


async def test_permission_levels_catalog(client: AsyncClient) -> None:
    """GET /api/v1/permission-levels is public and ordered lowest first."""
    response = await client.get("/api/v1/permission-levels")
    assert response.status_code == 200
    assert [(p["name"], p["level"]) for p in response.json()] == [
        ("view", 1),
        ("input", 2),
        ("approve", 3),
        ("manage", 4),
        ("admin", 5),
    ]
