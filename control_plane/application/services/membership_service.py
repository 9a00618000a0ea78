"""Membership lifecycle: invite/create, accept, role change, removal and explicit grants.

Every operation takes the acting user's id explicitly and authorizes it
before any mutation. Guarded writes are delegated to the membership store,
which performs the invariant check and the write atomically.

Creating a member for an email with no identity is a two-step saga across
systems: the identity provider creates the identity, then the store
creates the membership. If the second step fails, the fresh identity is
deleted (best effort; a failed rollback is logged, never raised over the
original error).
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import replace
from typing import TypeVar

from control_plane.application.dtos.membership import (
    InviteOutcome,
    MemberInvite,
    MemberResult,
)
from control_plane.application.dtos.permission import PermissionGrantResult
from control_plane.application.dtos.user import UserIdentity
from control_plane.application.interfaces.repositories import (
    IMembershipStore,
    ITenantRepository,
    IUserDirectory,
)
from control_plane.application.interfaces.services import IIdentityProvider
from control_plane.application.services.permission_evaluator import PermissionEvaluator
from control_plane.core.constants import IDENTITY_SERVICE
from control_plane.domain.entities.membership import MembershipEntity
from control_plane.domain.enums import (
    MEMBER_ADMIN_ROLES,
    PermissionLevel,
    ProvisionAction,
    Role,
)
from control_plane.domain.exceptions import (
    ConflictException,
    ControlPlaneException,
    ForbiddenException,
    InsufficientPermissionException,
    InvitationNotFoundException,
    MembershipAlreadyExistsException,
    MembershipNotFoundException,
    ResourceNotFoundException,
    TenantNotFoundException,
    UpstreamFailureException,
)
from control_plane.shared.telemetry.tracing import traced
from control_plane.shared.utils.datetime import utc_now
from control_plane.shared.utils.generators import generate_cuid

logger = logging.getLogger(__name__)

T = TypeVar("T")

ALL_ROLES = frozenset(Role)


class MembershipService:
    """Orchestrates the membership state machine with authorization checks."""

    def __init__(
        self,
        store: IMembershipStore,
        tenant_repo: ITenantRepository,
        user_directory: IUserDirectory,
        identity_provider: IIdentityProvider,
        evaluator: PermissionEvaluator,
        invitation_redirect_url: str,
        identity_timeout: float = 10.0,
    ) -> None:
        self.store = store
        self.tenant_repo = tenant_repo
        self.user_directory = user_directory
        self.identity_provider = identity_provider
        self.evaluator = evaluator
        self.invitation_redirect_url = invitation_redirect_url
        self.identity_timeout = identity_timeout

    # ---- Invite / create ----

    @traced("membership.invite_or_create")
    async def invite_or_create_member(
        self,
        *,
        tenant_id: str,
        invite: MemberInvite,
        acting_user_id: str,
        send_invitation: bool = True,
        defer_delivery: bool = False,
    ) -> InviteOutcome:
        """Add a user to the tenant, creating the identity first when needed.

        Idempotent: an existing membership is returned with action
        ALREADY_MEMBER instead of raising. The new membership is
        PENDING_INVITE when send_invitation is True, else ACTIVE. With
        defer_delivery the invitation is not sent; the caller sends it
        through deliver_invitation once the membership is committed.

        Raises:
            InsufficientPermissionException: Acting user is not owner/manager, or
                a manager tries to grant the owner role.
            ResourceNotFoundException: invite targets an unknown user_id.
            UpstreamFailureException: Identity creation failed or timed out
                (no membership is created).
        """
        acting = await self.evaluator.require_role(
            acting_user_id, tenant_id, MEMBER_ADMIN_ROLES, action="invite_member"
        )
        _require_owner_for_owner_rights(acting, invite.role, action="invite_member")

        identity = await self._find_identity(invite)
        if identity is not None:
            existing = await self.store.get_membership(tenant_id, identity.id)
            if existing is not None:
                logger.info(
                    "User %s is already a member of tenant %s", identity.id, tenant_id
                )
                return InviteOutcome(
                    membership=existing,
                    action=ProvisionAction.ALREADY_MEMBER,
                    identity=identity,
                )
            try:
                membership = await self.store.create_membership(
                    _new_membership(
                        tenant_id, identity.id, invite.role, acting_user_id, send_invitation
                    )
                )
            except MembershipAlreadyExistsException:
                # Lost a race with a concurrent add of the same user.
                current = await self.store.get_membership(tenant_id, identity.id)
                if current is None:
                    raise
                return InviteOutcome(
                    membership=current,
                    action=ProvisionAction.ALREADY_MEMBER,
                    identity=identity,
                )
            action = ProvisionAction.ADDED_EXISTING
        else:
            if invite.user_id and not invite.email:
                raise ResourceNotFoundException("identity", invite.user_id)
            identity = await self._create_identity(invite, send_invitation)
            membership = await self._attach_new_identity(
                tenant_id, identity, invite.role, acting_user_id, send_invitation
            )
            action = ProvisionAction.CREATED

        await self.evaluator.invalidate(identity.id, tenant_id)
        logger.info(
            "Membership %s: user=%s tenant=%s role=%s state=%s",
            action.value,
            identity.id,
            tenant_id,
            membership.role.value,
            membership.state.value,
        )
        outcome = InviteOutcome(membership=membership, action=action, identity=identity)
        if send_invitation and not defer_delivery:
            outcome = await self.deliver_invitation(tenant_id, outcome)
        return outcome

    async def deliver_invitation(
        self, tenant_id: str, outcome: InviteOutcome
    ) -> InviteOutcome:
        """Send the invitation for a new membership and record whether it went out."""
        if outcome.identity is None or outcome.action == ProvisionAction.ALREADY_MEMBER:
            return outcome
        sent = await self._deliver_invitation(
            tenant_id, outcome.identity, outcome.membership.role
        )
        return replace(outcome, invitation_sent=sent)

    async def _find_identity(self, invite: MemberInvite) -> UserIdentity | None:
        if invite.user_id:
            return await self.user_directory.get_by_id(invite.user_id)
        assert invite.email is not None
        return await self.user_directory.get_by_email(invite.email.strip().lower())

    async def _create_identity(
        self, invite: MemberInvite, send_invitation: bool
    ) -> UserIdentity:
        assert invite.email is not None
        metadata = {"full_name": invite.full_name} if invite.full_name else {}
        identity = await self._call_identity(
            "create_identity",
            lambda: self.identity_provider.create_identity(
                email=invite.email.strip().lower(),
                password=invite.temporary_password,
                email_confirm=not send_invitation,
                metadata=metadata,
            ),
        )
        if invite.full_name and not identity.full_name:
            identity = UserIdentity(
                id=identity.id,
                email=identity.email,
                full_name=invite.full_name,
                avatar_url=identity.avatar_url,
            )
        return identity

    async def _attach_new_identity(
        self,
        tenant_id: str,
        identity: UserIdentity,
        role: Role,
        acting_user_id: str,
        send_invitation: bool,
    ) -> MembershipEntity:
        """Second saga step: mirror the profile and create the membership, or roll back."""
        try:
            await self.user_directory.save(identity)
            return await self.store.create_membership(
                _new_membership(tenant_id, identity.id, role, acting_user_id, send_invitation)
            )
        except Exception as exc:
            logger.warning(
                "Membership creation failed for new identity %s in tenant %s (%s); rolling back",
                identity.id,
                tenant_id,
                type(exc).__name__,
            )
            await self._rollback_identity(identity)
            raise

    async def _rollback_identity(self, identity: UserIdentity) -> None:
        """Best-effort compensation: remove the profile mirror and the identity."""
        try:
            await self.user_directory.delete(identity.id)
        except Exception:
            logger.exception(
                "Rollback: failed to delete profile mirror for identity %s", identity.id
            )
        await self.discard_identity(identity.id)

    async def discard_identity(self, user_id: str) -> None:
        """Best-effort delete of a fresh identity whose membership was not saved.

        A failed delete is logged, never raised.
        """
        try:
            await self._call_identity(
                "delete_identity",
                lambda: self.identity_provider.delete_identity(user_id),
            )
        except UpstreamFailureException:
            logger.exception(
                "Rollback failed: identity %s could not be deleted and is orphaned",
                user_id,
            )
            return
        logger.info("Rollback: deleted identity %s", user_id)

    async def _deliver_invitation(
        self, tenant_id: str, identity: UserIdentity, role: Role
    ) -> bool:
        """Send the invitation email; delivery failure is logged, not raised."""
        metadata = {
            "full_name": identity.full_name,
            "tenant_id": tenant_id,
            "role": role.value,
        }
        try:
            await self._call_identity(
                "send_invitation",
                lambda: self.identity_provider.send_invitation(
                    email=identity.email,
                    redirect_url=self.invitation_redirect_url,
                    metadata=metadata,
                ),
            )
        except UpstreamFailureException:
            logger.warning(
                "Invitation delivery failed for user %s in tenant %s",
                identity.id,
                tenant_id,
            )
            return False
        return True

    async def _call_identity(self, operation: str, call: Callable[[], Awaitable[T]]) -> T:
        """Run an identity-provider call under a timeout; wrap every failure."""
        try:
            async with asyncio.timeout(self.identity_timeout):
                return await call()
        except ControlPlaneException:
            raise
        except TimeoutError as e:
            logger.warning("Identity provider timed out during %s", operation)
            raise UpstreamFailureException(
                IDENTITY_SERVICE,
                operation,
                f"Identity provider did not respond during {operation}",
            ) from e
        except Exception as e:
            logger.warning(
                "Identity provider failed during %s: %s", operation, type(e).__name__
            )
            raise UpstreamFailureException(IDENTITY_SERVICE, operation) from e

    # ---- Accept ----

    @traced("membership.accept_invitation")
    async def accept_invitation(self, *, tenant_id: str, user_id: str) -> MembershipEntity:
        """Transition PENDING_INVITE -> ACTIVE for the caller's own membership.

        Raises InvitationNotFoundException when there is no pending invite
        (including when the membership is already active).
        """
        membership = await self.store.mark_joined(tenant_id, user_id, utc_now())
        if membership is None:
            raise InvitationNotFoundException(tenant_id, user_id)
        await self.evaluator.invalidate(user_id, tenant_id)
        logger.info("Invitation accepted: user=%s tenant=%s", user_id, tenant_id)
        return membership

    # ---- Role change ----

    @traced("membership.update_role")
    async def update_role(
        self,
        *,
        tenant_id: str,
        target_user_id: str,
        new_role: Role,
        acting_user_id: str,
    ) -> MembershipEntity:
        """Change a member's role.

        Only owners may assign the owner role or modify an owner. The store
        rejects any change that would leave the tenant without an owner
        (InvariantViolationException).
        """
        acting = await self.evaluator.require_role(
            acting_user_id, tenant_id, MEMBER_ADMIN_ROLES, action="update_role"
        )
        target = await self.store.get_membership(tenant_id, target_user_id)
        if target is None:
            raise MembershipNotFoundException(tenant_id, target_user_id)
        _require_owner_for_owner_rights(acting, new_role, action="update_role")
        _require_owner_for_owner_rights(acting, target.role, action="update_role")
        if target.role == new_role:
            return target

        updated = await self.store.update_role(
            tenant_id, target_user_id, expected_role=target.role, new_role=new_role
        )
        await self.evaluator.invalidate(target_user_id, tenant_id)
        logger.info(
            "Role changed: tenant=%s user=%s %s -> %s by %s",
            tenant_id,
            target_user_id,
            target.role.value,
            new_role.value,
            acting_user_id,
        )
        return updated

    # ---- Removal ----

    @traced("membership.remove_member")
    async def remove_member(
        self, *, tenant_id: str, target_user_id: str, acting_user_id: str
    ) -> None:
        """Delete a membership (and its explicit grants).

        Owners cannot be removed through this path, and nobody can remove
        themselves (ForbiddenException).
        """
        await self.evaluator.require_role(
            acting_user_id, tenant_id, MEMBER_ADMIN_ROLES, action="remove_member"
        )
        if target_user_id == acting_user_id:
            raise ForbiddenException(
                "You cannot remove yourself from the tenant", reason="self_removal"
            )
        target = await self.store.get_membership(tenant_id, target_user_id)
        if target is None:
            raise MembershipNotFoundException(tenant_id, target_user_id)
        if target.is_owner:
            raise ForbiddenException(
                "Owners cannot be removed from the tenant", reason="owner_removal"
            )

        deleted = await self.store.delete_membership(
            tenant_id, target_user_id, expected_role=target.role
        )
        if not deleted:
            if await self.store.get_membership(tenant_id, target_user_id) is None:
                raise MembershipNotFoundException(tenant_id, target_user_id)
            raise ConflictException(
                "Membership changed concurrently; retry the removal",
                details={"tenant_id": tenant_id, "user_id": target_user_id},
            )
        await self.evaluator.invalidate(target_user_id, tenant_id)
        logger.info(
            "Member removed: tenant=%s user=%s by %s",
            tenant_id,
            target_user_id,
            acting_user_id,
        )

    # ---- Listing ----

    async def list_members(
        self, *, tenant_id: str, acting_user_id: str
    ) -> list[MemberResult]:
        """Return members with identity attributes. Any member may list.

        Raises TenantNotFoundException or InsufficientPermissionException;
        the HTTP layer reports both the same way.
        """
        if await self.tenant_repo.get_by_id(tenant_id) is None:
            logger.info("list_members: tenant %s does not exist", tenant_id)
            raise TenantNotFoundException(tenant_id)
        await self.evaluator.require_role(
            acting_user_id, tenant_id, ALL_ROLES, action="list_members"
        )
        return await self.store.list_members(tenant_id)

    # ---- Explicit grants ----

    @traced("membership.grant_permission")
    async def grant_permission(
        self,
        *,
        tenant_id: str,
        target_user_id: str,
        level: PermissionLevel,
        acting_user_id: str,
    ) -> PermissionGrantResult:
        """Grant an explicit permission level to a member.

        The acting user must be owner or manager and may not grant above their
        own effective level. Only an owner may grant ``admin`` or change the
        grants of an owner membership.
        """
        acting = await self.evaluator.require_role(
            acting_user_id, tenant_id, MEMBER_ADMIN_ROLES, action="grant_permission"
        )
        if level == PermissionLevel.ADMIN and not acting.is_owner:
            raise InsufficientPermissionException(
                action="grant_permission", required="owner"
            )
        await self.evaluator.require_level(
            acting_user_id, tenant_id, level, action="grant_permission"
        )
        target = await self.store.get_membership(tenant_id, target_user_id)
        if target is None:
            raise MembershipNotFoundException(tenant_id, target_user_id)
        _require_owner_for_owner_rights(acting, target.role, action="grant_permission")

        grant = await self.store.add_grant(
            tenant_id, target_user_id, level, granted_by=acting_user_id
        )
        await self.evaluator.invalidate(target_user_id, tenant_id)
        logger.info(
            "Permission granted: tenant=%s user=%s level=%s by %s",
            tenant_id,
            target_user_id,
            level.value,
            acting_user_id,
        )
        return grant

    @traced("membership.revoke_permission")
    async def revoke_permission(
        self,
        *,
        tenant_id: str,
        target_user_id: str,
        level: PermissionLevel,
        acting_user_id: str,
    ) -> None:
        """Revoke an explicit permission level. Same authority rules as granting."""
        acting = await self.evaluator.require_role(
            acting_user_id, tenant_id, MEMBER_ADMIN_ROLES, action="revoke_permission"
        )
        if level == PermissionLevel.ADMIN and not acting.is_owner:
            raise InsufficientPermissionException(
                action="revoke_permission", required="owner"
            )
        await self.evaluator.require_level(
            acting_user_id, tenant_id, level, action="revoke_permission"
        )
        target = await self.store.get_membership(tenant_id, target_user_id)
        if target is None:
            raise MembershipNotFoundException(tenant_id, target_user_id)
        _require_owner_for_owner_rights(acting, target.role, action="revoke_permission")
        removed = await self.store.remove_grant(tenant_id, target_user_id, level)
        if not removed:
            raise ResourceNotFoundException(
                "permission_grant", f"{target_user_id}:{level.value}"
            )
        await self.evaluator.invalidate(target_user_id, tenant_id)
        logger.info(
            "Permission revoked: tenant=%s user=%s level=%s by %s",
            tenant_id,
            target_user_id,
            level.value,
            acting_user_id,
        )

    async def list_grants(
        self, *, tenant_id: str, target_user_id: str, acting_user_id: str
    ) -> list[PermissionGrantResult]:
        """Return explicit grants of a member; the caller must be a member."""
        await self.evaluator.require_role(
            acting_user_id, tenant_id, ALL_ROLES, action="list_grants"
        )
        return await self.store.list_grants(tenant_id, target_user_id)


def _require_owner_for_owner_rights(
    acting: MembershipEntity, role: Role, action: str
) -> None:
    """Only owners may grant the owner role or act on an owner membership."""
    if role == Role.OWNER and not acting.is_owner:
        raise InsufficientPermissionException(action=action, required="owner")


def _new_membership(
    tenant_id: str,
    user_id: str,
    role: Role,
    acting_user_id: str,
    send_invitation: bool,
) -> MembershipEntity:
    now = utc_now()
    if send_invitation:
        return MembershipEntity.invited(
            id=generate_cuid(),
            tenant_id=tenant_id,
            user_id=user_id,
            role=role,
            invited_by=acting_user_id,
            now=now,
        )
    return MembershipEntity.joined(
        id=generate_cuid(), tenant_id=tenant_id, user_id=user_id, role=role, now=now
    )
