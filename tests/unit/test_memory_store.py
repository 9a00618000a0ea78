"""Tests for the in-memory membership store, tenant repository and user directory."""

from datetime import timedelta

import pytest

from control_plane.application.dtos.user import UserIdentity
from control_plane.domain.entities.membership import MembershipEntity
from control_plane.domain.enums import PermissionLevel, Role
from control_plane.domain.exceptions import (
    ConflictException,
    InvariantViolationException,
    MembershipAlreadyExistsException,
    MembershipNotFoundException,
    PermissionGrantAlreadyExistsException,
)
from control_plane.shared.utils.datetime import utc_now


class TestMembershipStore:
    async def test_create_duplicate_raises(self, engine, owner) -> None:
        tenant = await engine.create_tenant(owner)
        duplicate = MembershipEntity.joined(
            id="dup", tenant_id=tenant.id, user_id=owner.id, role=Role.OBSERVER, now=utc_now()
        )
        with pytest.raises(MembershipAlreadyExistsException):
            await engine.store.create_membership(duplicate)

    async def test_mark_joined_only_from_pending(self, engine, owner) -> None:
        tenant = await engine.create_tenant(owner)
        invited = MembershipEntity.invited(
            id="m2",
            tenant_id=tenant.id,
            user_id="u2",
            role=Role.OBSERVER,
            invited_by=owner.id,
            now=utc_now(),
        )
        await engine.store.create_membership(invited)
        joined_at = utc_now() + timedelta(minutes=5)

        accepted = await engine.store.mark_joined(tenant.id, "u2", joined_at)
        assert accepted is not None and accepted.joined_at == joined_at
        assert await engine.store.mark_joined(tenant.id, "u2", joined_at) is None
        assert await engine.store.mark_joined(tenant.id, "missing", joined_at) is None

    async def test_update_role_guards(self, engine, owner, auditor) -> None:
        tenant = await engine.create_tenant(owner)
        await engine.add_member(tenant.id, auditor, Role.AUDITOR)

        with pytest.raises(ConflictException):
            await engine.store.update_role(
                tenant.id, auditor.id, expected_role=Role.MANAGER, new_role=Role.OBSERVER
            )
        with pytest.raises(MembershipNotFoundException):
            await engine.store.update_role(
                tenant.id, "missing", expected_role=Role.AUDITOR, new_role=Role.OBSERVER
            )
        with pytest.raises(InvariantViolationException):
            await engine.store.update_role(
                tenant.id, owner.id, expected_role=Role.OWNER, new_role=Role.MANAGER
            )

    async def test_delete_last_owner_rejected(self, engine, owner) -> None:
        tenant = await engine.create_tenant(owner)
        with pytest.raises(InvariantViolationException):
            await engine.store.delete_membership(tenant.id, owner.id, expected_role=Role.OWNER)
        assert await engine.store.count_owners(tenant.id) == 1

    async def test_delete_with_stale_role_returns_false(self, engine, owner, auditor) -> None:
        tenant = await engine.create_tenant(owner)
        await engine.add_member(tenant.id, auditor, Role.AUDITOR)
        assert not await engine.store.delete_membership(
            tenant.id, auditor.id, expected_role=Role.OBSERVER
        )
        assert await engine.store.delete_membership(
            tenant.id, auditor.id, expected_role=Role.AUDITOR
        )
        assert not await engine.store.delete_membership(
            tenant.id, auditor.id, expected_role=Role.AUDITOR
        )

    async def test_grants(self, engine, owner, auditor) -> None:
        tenant = await engine.create_tenant(owner)
        await engine.add_member(tenant.id, auditor, Role.AUDITOR)
        await engine.store.add_grant(tenant.id, auditor.id, PermissionLevel.VIEW, owner.id)
        await engine.store.add_grant(tenant.id, auditor.id, PermissionLevel.MANAGE, owner.id)

        with pytest.raises(PermissionGrantAlreadyExistsException):
            await engine.store.add_grant(tenant.id, auditor.id, PermissionLevel.VIEW, owner.id)
        assert sorted(await engine.store.get_explicit_levels(tenant.id, auditor.id)) == [1, 4]
        assert await engine.store.remove_grant(tenant.id, auditor.id, PermissionLevel.VIEW)
        assert not await engine.store.remove_grant(tenant.id, auditor.id, PermissionLevel.VIEW)
        assert await engine.store.get_explicit_levels(tenant.id, auditor.id) == [4]

    async def test_list_members_joins_profile(self, engine, owner, auditor) -> None:
        tenant = await engine.create_tenant(owner)
        await engine.add_member(tenant.id, auditor, Role.AUDITOR)
        members = {m.membership.user_id: m for m in await engine.store.list_members(tenant.id)}
        assert members[auditor.id].email == auditor.email
        assert members[auditor.id].full_name == auditor.full_name
        assert members[owner.id].membership.role == Role.OWNER


class TestUserDirectory:
    async def test_save_keeps_known_attributes(self, engine) -> None:
        await engine.users.save(
            UserIdentity(id="u1", email="u1@example.com", full_name="User One", avatar_url="a.png")
        )
        merged = await engine.users.save(UserIdentity(id="u1", email="u1@example.com"))
        assert merged.full_name == "User One"
        assert merged.avatar_url == "a.png"

    async def test_get_by_email_case_insensitive(self, engine) -> None:
        await engine.users.save(UserIdentity(id="u1", email="u1@example.com"))
        found = await engine.users.get_by_email("  U1@Example.COM")
        assert found is not None and found.id == "u1"

    async def test_delete_removes_memberships(self, engine, owner, auditor) -> None:
        tenant = await engine.create_tenant(owner)
        await engine.add_member(tenant.id, auditor, Role.AUDITOR)
        assert await engine.users.delete(auditor.id)
        assert await engine.store.get_membership(tenant.id, auditor.id) is None
        assert not await engine.users.delete(auditor.id)
