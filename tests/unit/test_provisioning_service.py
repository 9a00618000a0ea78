"""Unit tests for ProvisioningService (per-record commits, itemized results, validation)."""

from contextlib import asynccontextmanager

import pytest

from control_plane.application.dtos.membership import MemberInvite
from control_plane.application.dtos.provisioning import ProvisionRecord
from control_plane.domain.enums import ProvisionAction, Role
from control_plane.domain.exceptions import (
    InsufficientPermissionException,
    TenantNotFoundException,
    UnauthenticatedException,
    UpstreamFailureException,
    ValidationException,
)


def _records(*emails: str, role: Role = Role.OBSERVER) -> list[ProvisionRecord]:
    return [
        ProvisionRecord(email=email, full_name=email.split("@")[0].title(), role=role)
        for email in emails
    ]


async def test_mixed_batch_reports_each_action(engine, owner, auditor) -> None:
    tenant = await engine.create_tenant(owner)
    await engine.users.save(auditor)

    result = await engine.provisioning.bulk_provision(
        tenant_id=tenant.id,
        records=_records("fresh@example.com", auditor.email, owner.email),
        acting_user_id=owner.id,
    )

    assert [r.action for r in result.results] == [
        ProvisionAction.CREATED,
        ProvisionAction.ADDED_EXISTING,
        ProvisionAction.ALREADY_MEMBER,
    ]
    assert [r.email for r in result.results] == [
        "fresh@example.com",
        auditor.email,
        owner.email,
    ]
    s = result.summary
    assert (s.total, s.successful, s.failed) == (3, 3, 0)
    assert (s.created, s.added_existing, s.already_members) == (1, 1, 1)
    assert s.invitations_sent == 2
    assert result.message == "Processed 3 users: 3 successful, 0 failed"


async def test_failed_record_is_isolated_and_rolled_back(engine, owner) -> None:
    """Record 2's membership write fails: records 1 and 3 succeed, record 2's identity is deleted."""
    tenant = await engine.create_tenant(owner)
    original = engine.store.create_membership
    calls = 0

    async def flaky_create(membership):
        nonlocal calls
        calls += 1
        if calls == 2:
            raise RuntimeError("connection reset")
        return await original(membership)

    engine.store.create_membership = flaky_create

    result = await engine.provisioning.bulk_provision(
        tenant_id=tenant.id,
        records=_records("a@example.com", "b@example.com", "c@example.com"),
        acting_user_id=owner.id,
    )

    assert len(result.results) == 3
    first, second, third = result.results
    assert first.success and third.success
    assert not second.success
    assert second.error_code == "INTERNAL_ERROR"
    assert second.user_id is None
    emails = {s.identity.email for s in engine.identity.identities.values()}
    assert emails == {"a@example.com", "c@example.com"}
    assert await engine.users.get_by_email("b@example.com") is None
    assert result.summary.failed == 1


async def test_upstream_failure_is_itemized(engine, owner) -> None:
    tenant = await engine.create_tenant(owner)
    engine.identity.fail_create = True

    result = await engine.provisioning.bulk_provision(
        tenant_id=tenant.id,
        records=_records("a@example.com"),
        acting_user_id=owner.id,
    )
    assert result.results[0].success is False
    assert result.results[0].error_code == "UPSTREAM_FAILURE"


async def test_manager_owner_record_fails_alone(engine, owner, manager) -> None:
    """Per-record authorization failures do not abort the batch."""
    tenant = await engine.create_tenant(owner)
    await engine.add_member(tenant.id, manager, Role.MANAGER)
    records = [
        ProvisionRecord(email="boss@example.com", full_name="Boss", role=Role.OWNER),
        ProvisionRecord(email="staff@example.com", full_name="Staff", role=Role.AUDITOR),
    ]

    result = await engine.provisioning.bulk_provision(
        tenant_id=tenant.id, records=records, acting_user_id=manager.id
    )
    assert result.results[0].error_code == "INSUFFICIENT_PERMISSION"
    assert result.results[1].success


async def test_duplicate_emails_in_batch(engine, owner) -> None:
    tenant = await engine.create_tenant(owner)
    result = await engine.provisioning.bulk_provision(
        tenant_id=tenant.id,
        records=_records("dup@example.com", "DUP@example.com"),
        acting_user_id=owner.id,
    )
    assert result.results[0].action == ProvisionAction.CREATED
    assert result.results[1].action == ProvisionAction.ALREADY_MEMBER
    assert result.results[0].user_id == result.results[1].user_id


async def test_without_invitations_members_are_active(engine, owner) -> None:
    tenant = await engine.create_tenant(owner)
    result = await engine.provisioning.bulk_provision(
        tenant_id=tenant.id,
        records=_records("a@example.com"),
        acting_user_id=owner.id,
        send_invitations=False,
    )
    membership = await engine.store.get_membership(tenant.id, result.results[0].user_id)
    assert membership is not None and not membership.is_pending
    assert result.summary.invitations_sent == 0


class TestBatchContract:
    """Top-level violations raise before any record is processed."""

    async def test_unauthenticated(self, engine, owner) -> None:
        tenant = await engine.create_tenant(owner)
        with pytest.raises(UnauthenticatedException):
            await engine.provisioning.bulk_provision(
                tenant_id=tenant.id, records=_records("a@example.com"), acting_user_id=None
            )

    async def test_empty_batch(self, engine, owner) -> None:
        tenant = await engine.create_tenant(owner)
        with pytest.raises(ValidationException):
            await engine.provisioning.bulk_provision(
                tenant_id=tenant.id, records=[], acting_user_id=owner.id
            )

    async def test_oversized_batch(self, engine, owner) -> None:
        tenant = await engine.create_tenant(owner)
        records = _records(*[f"user{i}@example.com" for i in range(51)])
        with pytest.raises(ValidationException, match="Maximum 50"):
            await engine.provisioning.bulk_provision(
                tenant_id=tenant.id, records=records, acting_user_id=owner.id
            )
        assert engine.identity.identities == {}

    @pytest.mark.parametrize(
        ("record", "field"),
        [
            (ProvisionRecord(email="not-an-email", full_name="X", role=Role.OBSERVER), "email"),
            (ProvisionRecord(email="a@example.com", full_name="  ", role=Role.OBSERVER), "full_name"),
            (
                ProvisionRecord(
                    email="a@example.com",
                    full_name="X",
                    role=Role.OBSERVER,
                    temporary_password="short",
                ),
                "temporary_password",
            ),
        ],
    )
    async def test_malformed_record(self, engine, owner, record, field) -> None:
        tenant = await engine.create_tenant(owner)
        with pytest.raises(ValidationException) as exc_info:
            await engine.provisioning.bulk_provision(
                tenant_id=tenant.id,
                records=[*_records("ok@example.com"), record],
                acting_user_id=owner.id,
            )
        assert exc_info.value.details["field"] == f"records[1].{field}"
        assert engine.identity.identities == {}

    async def test_unknown_tenant(self, engine, owner) -> None:
        with pytest.raises(TenantNotFoundException):
            await engine.provisioning.bulk_provision(
                tenant_id="nope", records=_records("a@example.com"), acting_user_id=owner.id
            )

    async def test_auditor_denied(self, engine, owner, auditor) -> None:
        tenant = await engine.create_tenant(owner)
        await engine.add_member(tenant.id, auditor, Role.AUDITOR)
        with pytest.raises(InsufficientPermissionException):
            await engine.provisioning.bulk_provision(
                tenant_id=tenant.id, records=_records("a@example.com"), acting_user_id=auditor.id
            )


class TestCommitPerRecord:
    """Each member is committed on its own; invitations follow the commit."""

    async def test_invitation_sent_after_commit(self, engine, owner) -> None:
        tenant = await engine.create_tenant(owner)
        events: list[str] = []
        original_invite = engine.identity.send_invitation

        async def recording_invite(email, redirect_url, metadata):
            events.append("invite")
            await original_invite(email, redirect_url, metadata)

        @asynccontextmanager
        async def scope():
            yield engine.memberships
            events.append("commit")

        engine.identity.send_invitation = recording_invite
        engine.provisioning.membership_scope = scope

        outcome = await engine.provisioning.provision_member(
            tenant_id=tenant.id,
            invite=MemberInvite(
                email="new@example.com", full_name="New Person", role=Role.OBSERVER
            ),
            acting_user_id=owner.id,
        )

        assert outcome.action == ProvisionAction.CREATED
        assert outcome.invitation_sent is True
        assert events == ["commit", "invite"]

    async def test_commit_failure_discards_created_identity(self, engine, owner) -> None:
        tenant = await engine.create_tenant(owner)

        @asynccontextmanager
        async def failing_commit():
            yield engine.memberships
            raise RuntimeError("could not serialize access")

        engine.provisioning.membership_scope = failing_commit

        with pytest.raises(UpstreamFailureException) as exc_info:
            await engine.provisioning.provision_member(
                tenant_id=tenant.id,
                invite=MemberInvite(
                    email="new@example.com", full_name="New Person", role=Role.OBSERVER
                ),
                acting_user_id=owner.id,
            )
        assert exc_info.value.details["operation"] == "commit"
        assert engine.identity.identities == {}
        assert engine.identity.sent_invitations == []

    async def test_failed_commit_in_batch_is_isolated(self, engine, owner) -> None:
        """Record 2's commit fails: its identity is deleted and it gets no invitation."""
        tenant = await engine.create_tenant(owner)
        calls = 0

        @asynccontextmanager
        async def flaky_commit():
            nonlocal calls
            calls += 1
            yield engine.memberships
            if calls == 2:
                raise RuntimeError("connection reset")

        engine.provisioning.membership_scope = flaky_commit

        result = await engine.provisioning.bulk_provision(
            tenant_id=tenant.id,
            records=_records("a@example.com", "b@example.com", "c@example.com"),
            acting_user_id=owner.id,
        )

        first, second, third = result.results
        assert first.success and third.success
        assert not second.success
        assert second.error_code == "UPSTREAM_FAILURE"
        emails = {s.identity.email for s in engine.identity.identities.values()}
        assert emails == {"a@example.com", "c@example.com"}
        assert [i.email for i in engine.identity.sent_invitations] == [
            "a@example.com",
            "c@example.com",
        ]
        assert result.summary.invitations_sent == 2
