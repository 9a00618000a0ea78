"""SQL repository integration tests. Require Postgres; changes are rolled back after each test."""

import pytest

from control_plane.application.dtos.user import UserIdentity
from control_plane.domain.entities.membership import MembershipEntity
from control_plane.domain.enums import PermissionLevel, Role
from control_plane.domain.exceptions import (
    InvariantViolationException,
    MembershipAlreadyExistsException,
    PermissionGrantAlreadyExistsException,
    TenantAlreadyExistsException,
)
from control_plane.infrastructure.persistence.repositories import (
    MembershipRepository,
    TenantRepository,
    UserRepository,
)
from control_plane.shared.utils.datetime import utc_now
from control_plane.shared.utils.generators import generate_cuid

pytestmark = pytest.mark.requires_db


async def _user(db_session, email: str) -> UserIdentity:
    return await UserRepository(db_session).save(
        UserIdentity(id=generate_cuid(), email=email, full_name=email.split("@")[0])
    )


async def _tenant(db_session, owner: UserIdentity, subdomain: str):
    return await TenantRepository(db_session).create_tenant_with_owner(
        name="Repo Test",
        subdomain=subdomain,
        emoji="🚀",
        owner_id=owner.id,
        created_at=utc_now(),
    )


async def test_create_tenant_with_owner(db_session) -> None:
    owner = await _user(db_session, "repo-owner@example.com")
    tenant = await _tenant(db_session, owner, "repo-test-create")

    repo = TenantRepository(db_session)
    assert (await repo.get_by_subdomain("REPO-TEST-CREATE")).id == tenant.id
    store = MembershipRepository(db_session)
    membership = await store.get_membership(tenant.id, owner.id)
    assert membership is not None
    assert membership.role == Role.OWNER
    assert not membership.is_pending
    assert await store.count_owners(tenant.id) == 1
    items = await repo.list_for_user(owner.id)
    assert [i.tenant.id for i in items] == [tenant.id]


async def test_duplicate_subdomain(db_session) -> None:
    owner = await _user(db_session, "repo-dup@example.com")
    await _tenant(db_session, owner, "repo-test-dup")
    with pytest.raises(TenantAlreadyExistsException):
        await _tenant(db_session, owner, "repo-test-dup")
    assert await TenantRepository(db_session).get_by_subdomain("repo-test-dup") is not None


async def test_owner_guard_and_accept(db_session) -> None:
    owner = await _user(db_session, "repo-guard@example.com")
    invitee = await _user(db_session, "repo-invitee@example.com")
    tenant = await _tenant(db_session, owner, "repo-test-guard")
    store = MembershipRepository(db_session)

    with pytest.raises(InvariantViolationException):
        await store.update_role(
            tenant.id, owner.id, expected_role=Role.OWNER, new_role=Role.MANAGER
        )
    with pytest.raises(InvariantViolationException):
        await store.delete_membership(tenant.id, owner.id, expected_role=Role.OWNER)

    invited = MembershipEntity.invited(
        id=generate_cuid(),
        tenant_id=tenant.id,
        user_id=invitee.id,
        role=Role.AUDITOR,
        invited_by=owner.id,
        now=utc_now(),
    )
    await store.create_membership(invited)
    with pytest.raises(MembershipAlreadyExistsException):
        await store.create_membership(invited)

    accepted = await store.mark_joined(tenant.id, invitee.id, utc_now())
    assert accepted is not None and not accepted.is_pending
    assert await store.mark_joined(tenant.id, invitee.id, utc_now()) is None


async def test_grants_follow_membership(db_session) -> None:
    owner = await _user(db_session, "repo-grant-owner@example.com")
    member = await _user(db_session, "repo-grant-member@example.com")
    tenant = await _tenant(db_session, owner, "repo-test-grants")
    store = MembershipRepository(db_session)
    await store.create_membership(
        MembershipEntity.joined(
            id=generate_cuid(),
            tenant_id=tenant.id,
            user_id=member.id,
            role=Role.OBSERVER,
            now=utc_now(),
        )
    )

    grant = await store.add_grant(tenant.id, member.id, PermissionLevel.APPROVE, owner.id)
    assert grant.level == PermissionLevel.APPROVE
    with pytest.raises(PermissionGrantAlreadyExistsException):
        await store.add_grant(tenant.id, member.id, PermissionLevel.APPROVE, owner.id)
    assert await store.get_explicit_levels(tenant.id, member.id) == [3]

    assert await store.delete_membership(tenant.id, member.id, expected_role=Role.OBSERVER)
    assert await store.get_explicit_levels(tenant.id, member.id) == []


async def test_user_save_upserts(db_session) -> None:
    users = UserRepository(db_session)
    saved = await users.save(
        UserIdentity(id="repo-u1", email="repo-u1@example.com", full_name="First")
    )
    merged = await users.save(UserIdentity(id="repo-u1", email="repo-u1@example.com"))
    assert saved.full_name == merged.full_name == "First"
    assert (await users.get_by_email("REPO-U1@example.com")).id == "repo-u1"
