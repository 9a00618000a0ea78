"""Tests for tenant endpoints (create, list, lookup, access introspection)."""

import pytest
from httpx import AsyncClient

from control_plane.application.dtos.user import UserIdentity

OWNER = UserIdentity(id="user-owner", email="owner@example.com", full_name="Olivia Owner")
OTHER = UserIdentity(id="user-other", email="other@example.com", full_name="Oscar Other")


async def _create(client: AsyncClient, auth, subdomain: str = "acme") -> dict:
    response = await client.post(
        "/api/v1/tenants",
        json={"name": "Acme Corp", "subdomain": subdomain, "emoji": "🚀"},
        headers=auth(OWNER),
    )
    assert response.status_code == 201, response.text
    return response.json()


async def test_create_tenant_requires_auth(client: AsyncClient) -> None:
    response = await client.post(
        "/api/v1/tenants", json={"name": "Acme Corp", "subdomain": "acme"}
    )
    assert response.status_code == 401
    assert response.json()["error"] == "UNAUTHENTICATED"
    assert response.headers["WWW-Authenticate"] == "Bearer"


async def test_invalid_token_is_unauthenticated(client: AsyncClient) -> None:
    response = await client.get(
        "/api/v1/tenants", headers={"Authorization": "Bearer not-a-jwt"}
    )
    assert response.status_code == 401


async def test_create_tenant_missing_body_returns_422(client: AsyncClient, auth) -> None:
    response = await client.post("/api/v1/tenants", json={}, headers=auth(OWNER))
    assert response.status_code == 422
    assert response.json()["error"] == "VALIDATION_ERROR"


@pytest.mark.parametrize(
    "payload",
    [
        {"name": "A", "subdomain": "acme"},
        {"name": "Acme", "subdomain": "ab"},
        {"name": "Acme", "subdomain": "acme_corp"},
        {"name": "Acme", "subdomain": "admin"},
        {"name": "Acme", "subdomain": "acme", "emoji": "abc"},
    ],
)
async def test_create_tenant_domain_validation_returns_400(
    client: AsyncClient, auth, payload: dict
) -> None:
    response = await client.post("/api/v1/tenants", json=payload, headers=auth(OWNER))
    assert response.status_code == 400
    assert response.json()["error"] == "VALIDATION_ERROR"


async def test_create_tenant_defaults_and_owner_access(client: AsyncClient, auth) -> None:
    response = await client.post(
        "/api/v1/tenants",
        json={"name": "Acme Corp", "subdomain": "Acme"},
        headers=auth(OWNER),
    )
    assert response.status_code == 201
    tenant = response.json()
    assert tenant["subdomain"] == "acme"
    assert tenant["emoji"] == "🏢"
    assert tenant["owner_id"] == OWNER.id
    assert tenant["subscription_status"] == "trial"

    access = await client.get(f"/api/v1/tenants/{tenant['id']}/access", headers=auth(OWNER))
    assert access.status_code == 200
    body = access.json()
    assert body["effective_level"] == 5
    assert body["source"] == "role"
    assert body["role"] == "owner"
    assert body["state"] == "active"
    assert all(body["permissions"].values())


async def test_duplicate_subdomain_returns_409(client: AsyncClient, auth) -> None:
    await _create(client, auth)
    response = await client.post(
        "/api/v1/tenants",
        json={"name": "Other", "subdomain": "acme"},
        headers=auth(OTHER),
    )
    assert response.status_code == 409
    assert response.json()["error"] == "TENANT_ALREADY_EXISTS"


async def test_list_my_tenants(client: AsyncClient, auth) -> None:
    tenant = await _create(client, auth)
    response = await client.get("/api/v1/tenants", headers=auth(OWNER))
    assert response.status_code == 200
    items = response.json()
    assert [(i["id"], i["role"]) for i in items] == [(tenant["id"], "owner")]

    other = await client.get("/api/v1/tenants", headers=auth(OTHER))
    assert other.json() == []


async def test_by_subdomain_is_public(client: AsyncClient, auth) -> None:
    tenant = await _create(client, auth)
    response = await client.get("/api/v1/tenants/by-subdomain/ACME")
    assert response.status_code == 200
    assert response.json()["id"] == tenant["id"]

    missing = await client.get("/api/v1/tenants/by-subdomain/nope")
    assert missing.status_code == 404


async def test_get_tenant_members_only(client: AsyncClient, auth) -> None:
    tenant = await _create(client, auth)
    ok = await client.get(f"/api/v1/tenants/{tenant['id']}", headers=auth(OWNER))
    assert ok.status_code == 200
    denied = await client.get(f"/api/v1/tenants/{tenant['id']}", headers=auth(OTHER))
    assert denied.status_code == 403


async def test_access_hides_tenant_existence(client: AsyncClient, auth) -> None:
    """Non-member and unknown tenant get the same 403."""
    tenant = await _create(client, auth)
    non_member = await client.get(
        f"/api/v1/tenants/{tenant['id']}/access", headers=auth(OTHER)
    )
    unknown = await client.get("/api/v1/tenants/does-not-exist/access", headers=auth(OTHER))
    assert non_member.status_code == unknown.status_code == 403
    assert non_member.json()["error"] == unknown.json()["error"] == "INSUFFICIENT_PERMISSION"


async def test_owner_updates_tenant(client: AsyncClient, auth) -> None:
    tenant = await _create(client, auth)
    response = await client.patch(
        f"/api/v1/tenants/{tenant['id']}",
        json={"name": "Acme Labs"},
        headers=auth(OWNER),
    )
    assert response.status_code == 200
    body = response.json()
    assert body["name"] == "Acme Labs"
    assert body["emoji"] == "🚀"
    assert body["subdomain"] == "acme"


async def test_update_tenant_validation(client: AsyncClient, auth) -> None:
    tenant = await _create(client, auth)
    empty = await client.patch(f"/api/v1/tenants/{tenant['id']}", json={}, headers=auth(OWNER))
    assert empty.status_code == 400
    bad_emoji = await client.patch(
        f"/api/v1/tenants/{tenant['id']}", json={"emoji": "abc"}, headers=auth(OWNER)
    )
    assert bad_emoji.status_code == 400


async def test_non_member_cannot_update_or_delete(client: AsyncClient, auth) -> None:
    tenant = await _create(client, auth)
    update = await client.patch(
        f"/api/v1/tenants/{tenant['id']}", json={"name": "Mine Now"}, headers=auth(OTHER)
    )
    delete = await client.delete(f"/api/v1/tenants/{tenant['id']}", headers=auth(OTHER))
    assert update.status_code == delete.status_code == 403


async def test_owner_deletes_tenant(client: AsyncClient, auth) -> None:
    tenant = await _create(client, auth)
    response = await client.delete(f"/api/v1/tenants/{tenant['id']}", headers=auth(OWNER))
    assert response.status_code == 204

    gone = await client.get(f"/api/v1/tenants/{tenant['id']}", headers=auth(OWNER))
    assert gone.status_code == 404
    mine = await client.get("/api/v1/tenants", headers=auth(OWNER))
    assert mine.json() == []
    lookup = await client.get("/api/v1/tenants/by-subdomain/acme")
    assert lookup.status_code == 404
