"""Tenant application service: bootstrap (tenant + owner), lookups, owner-only settings."""

from __future__ import annotations

import logging

from control_plane.application.dtos.tenant import TenantResult, UserTenantResult
from control_plane.application.dtos.user import UserIdentity
from control_plane.application.interfaces.repositories import (
    ITenantRepository,
    IUserDirectory,
)
from control_plane.application.services.permission_evaluator import PermissionEvaluator
from control_plane.domain.enums import OWNER_ROLES, Role
from control_plane.domain.exceptions import (
    TenantAlreadyExistsException,
    TenantNotFoundException,
    UnauthenticatedException,
    ValidationException,
)
from control_plane.domain.value_objects.core import Subdomain, TenantEmoji, TenantName
from control_plane.shared.telemetry.tracing import traced
from control_plane.shared.utils.datetime import utc_now

logger = logging.getLogger(__name__)


class TenantService:
    """Creates tenants with their bootstrap owner and serves tenant lookups."""

    def __init__(
        self,
        tenant_repo: ITenantRepository,
        user_directory: IUserDirectory,
        evaluator: PermissionEvaluator,
    ) -> None:
        self.tenant_repo = tenant_repo
        self.user_directory = user_directory
        self.evaluator = evaluator

    @traced("tenant.create")
    async def create_tenant(
        self,
        *,
        name: str,
        subdomain: str,
        emoji: str,
        acting_user: UserIdentity | None,
    ) -> TenantResult:
        """Create a tenant and make the acting user its owner, atomically.

        The owner membership is ACTIVE immediately (joined_at set,
        invited_at null).

        Raises:
            UnauthenticatedException: No acting user.
            ValidationException: Invalid name, subdomain or emoji.
            TenantAlreadyExistsException: Subdomain is taken.
        """
        if acting_user is None:
            raise UnauthenticatedException()
        tenant_name = _validated(TenantName, name, "name")
        tenant_subdomain = _validated(Subdomain, subdomain, "subdomain")
        tenant_emoji = _validated(TenantEmoji, emoji, "emoji")

        if await self.tenant_repo.get_by_subdomain(tenant_subdomain.value) is not None:
            raise TenantAlreadyExistsException(tenant_subdomain.value)

        await self.user_directory.save(acting_user)
        tenant = await self.tenant_repo.create_tenant_with_owner(
            name=tenant_name.value,
            subdomain=tenant_subdomain.value,
            emoji=tenant_emoji.value,
            owner_id=acting_user.id,
            created_at=utc_now(),
        )
        await self.evaluator.invalidate(acting_user.id, tenant.id)
        logger.info(
            "Tenant created: id=%s subdomain=%s owner=%s",
            tenant.id,
            tenant.subdomain,
            acting_user.id,
        )
        return tenant

    async def get_tenant(self, *, tenant_id: str, acting_user_id: str) -> TenantResult:
        """Return tenant details; the caller must be a member."""
        tenant = await self.tenant_repo.get_by_id(tenant_id)
        if tenant is None:
            raise TenantNotFoundException(tenant_id)
        await self.evaluator.require_role(
            acting_user_id, tenant_id, frozenset(Role), action="get_tenant"
        )
        return tenant

    async def get_by_subdomain(self, subdomain: str) -> TenantResult | None:
        """Return the tenant for a subdomain (case-insensitive), or None."""
        return await self.tenant_repo.get_by_subdomain(subdomain.strip().lower())

    async def list_user_tenants(self, *, user_id: str) -> list[UserTenantResult]:
        """Return the tenants the user belongs to, newest first."""
        return await self.tenant_repo.list_for_user(user_id)

    @traced("tenant.update")
    async def update_tenant(
        self,
        *,
        tenant_id: str,
        acting_user_id: str,
        name: str | None = None,
        emoji: str | None = None,
    ) -> TenantResult:
        """Rename the tenant or change its emoji. Owners only; the subdomain never changes.

        Raises:
            TenantNotFoundException: Unknown tenant.
            InsufficientPermissionException: Acting user is not an owner.
            ValidationException: Nothing to change, or invalid name or emoji.
        """
        await self._require_owner(tenant_id, acting_user_id, "update_tenant")
        if name is None and emoji is None:
            raise ValidationException("Updates are required")
        new_name = _validated(TenantName, name, "name").value if name is not None else None
        new_emoji = (
            _validated(TenantEmoji, emoji, "emoji").value if emoji is not None else None
        )
        tenant = await self.tenant_repo.update_tenant(
            tenant_id, name=new_name, emoji=new_emoji
        )
        if tenant is None:
            raise TenantNotFoundException(tenant_id)
        logger.info("Tenant updated: id=%s by=%s", tenant_id, acting_user_id)
        return tenant

    @traced("tenant.delete")
    async def delete_tenant(self, *, tenant_id: str, acting_user_id: str) -> None:
        """Delete the tenant with all its memberships and grants. Owners only."""
        await self._require_owner(tenant_id, acting_user_id, "delete_tenant")
        removed = await self.tenant_repo.delete_tenant(tenant_id)
        for user_id in removed:
            await self.evaluator.invalidate(user_id, tenant_id)
        logger.info(
            "Tenant deleted: id=%s by=%s members=%d",
            tenant_id,
            acting_user_id,
            len(removed),
        )

    async def _require_owner(
        self, tenant_id: str, acting_user_id: str, action: str
    ) -> None:
        if await self.tenant_repo.get_by_id(tenant_id) is None:
            raise TenantNotFoundException(tenant_id)
        await self.evaluator.require_role(
            acting_user_id, tenant_id, OWNER_ROLES, action=action
        )


def _validated(value_object: type, raw: str, field: str):
    """Build a value object, converting ValueError into ValidationException."""
    try:
        return value_object(raw)
    except ValueError as e:
        raise ValidationException(str(e), field=field) from e
