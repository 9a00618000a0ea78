"""Tenant repository. Returns application DTOs."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from control_plane.application.dtos.tenant import TenantResult, UserTenantResult
from control_plane.domain.enums import Role, SubscriptionStatus
from control_plane.domain.exceptions import TenantAlreadyExistsException
from control_plane.infrastructure.persistence.models.membership import TenantUser
from control_plane.infrastructure.persistence.models.tenant import Tenant
from control_plane.infrastructure.persistence.repositories.membership_repo import (
    ensure_permission_levels,
)
from control_plane.shared.utils.datetime import ensure_utc
from control_plane.shared.utils.generators import generate_cuid


def _tenant_to_result(t: Tenant) -> TenantResult:
    """Map ORM Tenant to application TenantResult."""
    return TenantResult(
        id=t.id,
        name=t.name,
        subdomain=t.subdomain,
        emoji=t.emoji,
        owner_id=t.owner_id,
        created_at=ensure_utc(t.created_at),
        subscription_status=SubscriptionStatus(t.subscription_status),
        subscription_plan=t.subscription_plan,
    )


class TenantRepository:
    """ITenantRepository over SQLAlchemy."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def create_tenant_with_owner(
        self,
        *,
        name: str,
        subdomain: str,
        emoji: str,
        owner_id: str,
        created_at: datetime,
    ) -> TenantResult:
        """Insert tenant and owner membership in one savepoint.

        Raises TenantAlreadyExistsException on unique constraint violation (subdomain).
        """
        tenant = Tenant(
            id=generate_cuid(),
            name=name,
            subdomain=subdomain,
            emoji=emoji,
            owner_id=owner_id,
            subscription_status=SubscriptionStatus.TRIAL.value,
            created_at=created_at,
            updated_at=created_at,
        )
        try:
            async with self.db.begin_nested():
                self.db.add(tenant)
                await self.db.flush()
                self.db.add(
                    TenantUser(
                        tenant_id=tenant.id,
                        user_id=owner_id,
                        role=Role.OWNER.value,
                        joined_at=created_at,
                        created_at=created_at,
                    )
                )
                await self.db.flush()
        except IntegrityError:
            raise TenantAlreadyExistsException(subdomain) from None
        await ensure_permission_levels(self.db)
        return _tenant_to_result(tenant)

    async def get_by_id(self, tenant_id: str) -> TenantResult | None:
        result = await self.db.execute(select(Tenant).where(Tenant.id == tenant_id))
        tenant = result.scalar_one_or_none()
        return _tenant_to_result(tenant) if tenant else None

    async def get_by_subdomain(self, subdomain: str) -> TenantResult | None:
        result = await self.db.execute(
            select(Tenant).where(Tenant.subdomain == subdomain.lower())
        )
        tenant = result.scalar_one_or_none()
        return _tenant_to_result(tenant) if tenant else None

    async def list_for_user(self, user_id: str) -> list[UserTenantResult]:
        result = await self.db.execute(
            select(Tenant, TenantUser)
            .join(TenantUser, TenantUser.tenant_id == Tenant.id)
            .where(TenantUser.user_id == user_id)
            .order_by(Tenant.created_at.desc())
        )
        return [
            UserTenantResult(
                tenant=_tenant_to_result(tenant),
                role=Role(membership.role),
                joined_at=ensure_utc(membership.joined_at),
            )
            for tenant, membership in result.all()
        ]

    async def update_tenant(
        self,
        tenant_id: str,
        *,
        name: str | None = None,
        emoji: str | None = None,
    ) -> TenantResult | None:
        result = await self.db.execute(select(Tenant).where(Tenant.id == tenant_id))
        tenant = result.scalar_one_or_none()
        if tenant is None:
            return None
        if name is not None:
            tenant.name = name
        if emoji is not None:
            tenant.emoji = emoji
        await self.db.flush()
        await self.db.refresh(tenant)
        return _tenant_to_result(tenant)

    async def delete_tenant(self, tenant_id: str) -> list[str]:
        """Delete the tenant row; memberships and grants go with it (ON DELETE CASCADE)."""
        members = await self.db.execute(
            select(TenantUser.user_id).where(TenantUser.tenant_id == tenant_id)
        )
        user_ids = list(members.scalars().all())
        await self.db.execute(delete(Tenant).where(Tenant.id == tenant_id))
        await self.db.flush()
        return user_ids
