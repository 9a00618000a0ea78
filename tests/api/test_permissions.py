"""HTTP flows for explicit permission grants and their effect on access."""

import pytest
from httpx import AsyncClient

from control_plane.application.dtos.user import UserIdentity

OWNER = UserIdentity(id="user-owner", email="owner@example.com", full_name="Olivia Owner")


@pytest.fixture
async def setup(client: AsyncClient, auth) -> tuple[str, UserIdentity]:
    """Tenant with an active manager; returns (tenant_id, manager)."""
    created = await client.post(
        "/api/v1/tenants",
        json={"name": "Acme Corp", "subdomain": "acme"},
        headers=auth(OWNER),
    )
    tenant_id = created.json()["id"]
    added = await client.post(
        f"/api/v1/tenants/{tenant_id}/members",
        json={
            "email": "mgr@example.com",
            "full_name": "Max Manager",
            "role": "manager",
            "send_invitation": False,
        },
        headers=auth(OWNER),
    )
    assert added.status_code == 201, added.text
    return tenant_id, UserIdentity(id=added.json()["user_id"], email="mgr@example.com")


def _url(tenant_id: str, user_id: str, level: str | None = None) -> str:
    url = f"/api/v1/tenants/{tenant_id}/members/{user_id}/permissions"
    return f"{url}/{level}" if level else url


async def test_grant_overrides_role_then_revoke_restores(
    client: AsyncClient, auth, setup
) -> None:
    tenant_id, manager = setup

    granted = await client.post(
        _url(tenant_id, manager.id), json={"level": "view"}, headers=auth(OWNER)
    )
    assert granted.status_code == 201
    assert granted.json()["granted_by"] == OWNER.id

    access = (await client.get(f"/api/v1/tenants/{tenant_id}/access", headers=auth(manager))).json()
    assert access["effective_level"] == 1
    assert access["source"] == "explicit_grant"
    assert access["role"] == "manager"
    assert access["permissions"]["view"] is True
    assert access["permissions"]["input"] is False

    listed = await client.get(_url(tenant_id, manager.id), headers=auth(manager))
    assert [g["level"] for g in listed.json()] == ["view"]

    revoked = await client.delete(_url(tenant_id, manager.id, "view"), headers=auth(OWNER))
    assert revoked.status_code == 204
    access = (await client.get(f"/api/v1/tenants/{tenant_id}/access", headers=auth(manager))).json()
    assert access["effective_level"] == 4
    assert access["source"] == "role"


async def test_duplicate_grant_is_409(client: AsyncClient, auth, setup) -> None:
    tenant_id, manager = setup
    await client.post(_url(tenant_id, manager.id), json={"level": "approve"}, headers=auth(OWNER))
    again = await client.post(
        _url(tenant_id, manager.id), json={"level": "approve"}, headers=auth(OWNER)
    )
    assert again.status_code == 409
    assert again.json()["error"] == "PERMISSION_GRANT_EXISTS"


async def test_manager_cannot_grant_admin(client: AsyncClient, auth, setup) -> None:
    tenant_id, manager = setup
    response = await client.post(
        _url(tenant_id, OWNER.id), json={"level": "admin"}, headers=auth(manager)
    )
    assert response.status_code == 403


async def test_manager_cannot_lower_owner_with_grant(
    client: AsyncClient, auth, setup
) -> None:
    tenant_id, manager = setup
    response = await client.post(
        _url(tenant_id, OWNER.id), json={"level": "view"}, headers=auth(manager)
    )
    assert response.status_code == 403
    access = (await client.get(f"/api/v1/tenants/{tenant_id}/access", headers=auth(OWNER))).json()
    assert access["effective_level"] == 5
    assert access["source"] == "role"


async def test_unknown_level_is_422(client: AsyncClient, auth, setup) -> None:
    tenant_id, manager = setup
    response = await client.post(
        _url(tenant_id, manager.id), json={"level": "superuser"}, headers=auth(OWNER)
    )
    assert response.status_code == 422
    revoke = await client.delete(_url(tenant_id, manager.id, "superuser"), headers=auth(OWNER))
    assert revoke.status_code == 422


async def test_revoke_missing_grant_is_404(client: AsyncClient, auth, setup) -> None:
    tenant_id, manager = setup
    response = await client.delete(_url(tenant_id, manager.id, "view"), headers=auth(OWNER))
    assert response.status_code == 404


async def test_removal_drops_grants(client: AsyncClient, auth, setup, memory_db) -> None:
    tenant_id, manager = setup
    await client.post(_url(tenant_id, manager.id), json={"level": "input"}, headers=auth(OWNER))
    removed = await client.delete(
        f"/api/v1/tenants/{tenant_id}/members/{manager.id}", headers=auth(OWNER)
    )
    assert removed.status_code == 204
    assert memory_db.grants == {}
