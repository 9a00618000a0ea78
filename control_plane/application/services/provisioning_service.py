"""Provisioning: add one user or a batch of (email, name, role) records to a tenant.

Every record is its own unit of work: MembershipService.invite_or_create_member
runs inside a membership scope (one transaction), and the record is
reported only after that transaction commits. If the commit fails after a
fresh identity was created, the identity is deleted (best effort).
Invitations are sent after the commit.

bulk_provision never raises for a per-record failure: it returns one
result per record plus a summary. It raises only for top-level contract
violations (unauthenticated caller, malformed batch, unknown tenant,
caller not owner/manager).
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from contextlib import AbstractAsyncContextManager

from control_plane.application.dtos.membership import InviteOutcome, MemberInvite
from control_plane.application.dtos.provisioning import (
    BulkProvisionResult,
    ProvisionRecord,
    ProvisionResult,
)
from control_plane.application.interfaces.repositories import ITenantRepository
from control_plane.application.services.membership_service import MembershipService
from control_plane.application.services.permission_evaluator import PermissionEvaluator
from control_plane.core.constants import STORE_SERVICE
from control_plane.domain.enums import MEMBER_ADMIN_ROLES, ProvisionAction, Role
from control_plane.domain.exceptions import (
    ControlPlaneException,
    TenantNotFoundException,
    UnauthenticatedException,
    UpstreamFailureException,
    ValidationException,
)
from control_plane.shared.telemetry.tracing import add_span_attributes, traced

logger = logging.getLogger(__name__)

MIN_TEMPORARY_PASSWORD_LENGTH = 8

# Opens one transaction and yields a MembershipService bound to it; commits on exit.
MembershipScope = Callable[[], AbstractAsyncContextManager[MembershipService]]


class ProvisioningService:
    """Drives the membership lifecycle over single users and bounded batches.

    Records run sequentially, each committed before the next starts, so two
    records for the same user are never processed concurrently; the second
    one reports ``already_member``.
    """

    def __init__(
        self,
        membership_scope: MembershipScope,
        tenant_repo: ITenantRepository,
        evaluator: PermissionEvaluator,
        max_batch_size: int = 50,
    ) -> None:
        self.membership_scope = membership_scope
        self.tenant_repo = tenant_repo
        self.evaluator = evaluator
        self.max_batch_size = max_batch_size

    @traced("provisioning.provision_member")
    async def provision_member(
        self,
        *,
        tenant_id: str,
        invite: MemberInvite,
        acting_user_id: str,
        send_invitation: bool = True,
    ) -> InviteOutcome:
        """Invite/create one member in its own transaction.

        The outcome is returned only after the commit; the invitation (if
        requested) is sent after it.

        Raises:
            ControlPlaneException: Any error of invite_or_create_member.
            UpstreamFailureException: The commit failed; a fresh identity
                created for this member has been deleted.
        """
        outcome: InviteOutcome | None = None
        memberships: MembershipService | None = None
        try:
            async with self.membership_scope() as memberships:
                outcome = await memberships.invite_or_create_member(
                    tenant_id=tenant_id,
                    invite=invite,
                    acting_user_id=acting_user_id,
                    send_invitation=send_invitation,
                    defer_delivery=True,
                )
        except Exception as e:
            if outcome is None or memberships is None:
                raise
            logger.error(
                "Commit failed for member %s in tenant %s (%s)",
                outcome.user_id,
                tenant_id,
                type(e).__name__,
            )
            if outcome.action == ProvisionAction.CREATED:
                await memberships.discard_identity(outcome.user_id)
            raise UpstreamFailureException(
                STORE_SERVICE, "commit", "Membership could not be saved"
            ) from e
        if send_invitation:
            outcome = await memberships.deliver_invitation(tenant_id, outcome)
        return outcome

    @traced("provisioning.bulk_provision")
    async def bulk_provision(
        self,
        *,
        tenant_id: str,
        records: Sequence[ProvisionRecord],
        acting_user_id: str | None,
        send_invitations: bool = True,
    ) -> BulkProvisionResult:
        """Provision every record and return itemized results in input order.

        Raises:
            UnauthenticatedException: No acting user.
            ValidationException: Empty, oversized or malformed batch.
            TenantNotFoundException: Unknown tenant.
            InsufficientPermissionException: Acting user is not owner/manager.
        """
        if not acting_user_id:
            raise UnauthenticatedException()
        self._validate_batch(records)
        if await self.tenant_repo.get_by_id(tenant_id) is None:
            raise TenantNotFoundException(tenant_id)
        await self.evaluator.require_role(
            acting_user_id, tenant_id, MEMBER_ADMIN_ROLES, action="bulk_provision"
        )

        results: list[ProvisionResult] = []
        for record in records:
            results.append(
                await self._provision_record(
                    tenant_id, record, acting_user_id, send_invitations
                )
            )

        result = BulkProvisionResult.from_results(results)
        add_span_attributes(
            total=result.summary.total, failed=result.summary.failed
        )
        logger.info("Bulk provisioning in tenant %s: %s", tenant_id, result.message)
        return result

    def _validate_batch(self, records: Sequence[ProvisionRecord]) -> None:
        if not records:
            raise ValidationException("At least one user is required", field="records")
        if len(records) > self.max_batch_size:
            raise ValidationException(
                f"Maximum {self.max_batch_size} users per batch", field="records"
            )
        for index, record in enumerate(records):
            email = (record.email or "").strip()
            if not email or "@" not in email:
                raise ValidationException(
                    "Invalid email address", field=f"records[{index}].email"
                )
            if not (record.full_name or "").strip():
                raise ValidationException(
                    "Full name is required", field=f"records[{index}].full_name"
                )
            if not isinstance(record.role, Role):
                raise ValidationException(
                    "Invalid role", field=f"records[{index}].role"
                )
            if (
                record.temporary_password is not None
                and len(record.temporary_password) < MIN_TEMPORARY_PASSWORD_LENGTH
            ):
                raise ValidationException(
                    f"Temporary password must be at least {MIN_TEMPORARY_PASSWORD_LENGTH} characters",
                    field=f"records[{index}].temporary_password",
                )

    async def _provision_record(
        self,
        tenant_id: str,
        record: ProvisionRecord,
        acting_user_id: str,
        send_invitations: bool,
    ) -> ProvisionResult:
        invite = MemberInvite(
            email=record.email,
            full_name=record.full_name.strip(),
            role=record.role,
            temporary_password=record.temporary_password,
        )
        try:
            outcome = await self.provision_member(
                tenant_id=tenant_id,
                invite=invite,
                acting_user_id=acting_user_id,
                send_invitation=send_invitations,
            )
        except ControlPlaneException as e:
            logger.warning(
                "Provisioning record failed in tenant %s: %s", tenant_id, e.error_code
            )
            return ProvisionResult(
                email=record.email,
                success=False,
                error=e.message,
                error_code=e.error_code,
            )
        except Exception:
            logger.exception("Unexpected error provisioning record in tenant %s", tenant_id)
            return ProvisionResult(
                email=record.email,
                success=False,
                error="Internal error",
                error_code="INTERNAL_ERROR",
            )
        return ProvisionResult(
            email=record.email,
            success=True,
            action=outcome.action,
            user_id=outcome.user_id,
            membership_id=outcome.membership.id,
            invitation_sent=outcome.invitation_sent,
        )
