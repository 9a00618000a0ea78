"""Membership repository: tenant_user rows and explicit user_permission grants.

Guarded writes lock the tenant's owner rows (SELECT ... FOR UPDATE) before
checking the owner count, so concurrent demotions or removals of owners
in the same tenant are serialized by the database.
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import delete, func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from control_plane.application.dtos.membership import MemberResult
from control_plane.application.dtos.permission import PermissionGrantResult
from control_plane.domain.entities.membership import MembershipEntity
from control_plane.domain.enums import PermissionLevel, Role
from control_plane.domain.exceptions import (
    ConflictException,
    InvariantViolationException,
    MembershipAlreadyExistsException,
    MembershipNotFoundException,
    PermissionGrantAlreadyExistsException,
)
from control_plane.infrastructure.persistence.models.membership import TenantUser
from control_plane.infrastructure.persistence.models.permission import (
    PermissionLevelModel,
    UserPermission,
)
from control_plane.infrastructure.persistence.models.user import AppUser
from control_plane.shared.utils.datetime import ensure_utc

logger = logging.getLogger(__name__)


def _membership_to_entity(row: TenantUser) -> MembershipEntity:
    """Map ORM TenantUser to the domain MembershipEntity."""
    return MembershipEntity(
        id=row.id,
        tenant_id=row.tenant_id,
        user_id=row.user_id,
        role=Role(row.role),
        invited_by=row.invited_by,
        invited_at=ensure_utc(row.invited_at),
        joined_at=ensure_utc(row.joined_at),
        created_at=ensure_utc(row.created_at),
    )


def _grant_to_result(grant: UserPermission, level: PermissionLevelModel) -> PermissionGrantResult:
    return PermissionGrantResult(
        id=grant.id,
        tenant_id=grant.tenant_id,
        user_id=grant.user_id,
        level=PermissionLevel(level.name),
        granted_by=grant.granted_by,
        granted_at=ensure_utc(grant.granted_at),
    )


async def ensure_permission_levels(db: AsyncSession) -> None:
    """Seed the permission_level catalog from PermissionLevel (idempotent)."""
    stmt = pg_insert(PermissionLevelModel).values(
        [
            {"name": p.value, "description": p.description, "level": p.level}
            for p in PermissionLevel
        ]
    )
    await db.execute(stmt.on_conflict_do_nothing(index_elements=["name"]))


class MembershipRepository:
    """IMembershipStore over SQLAlchemy. Runs inside the request transaction."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def _lock_owner_rows(self, tenant_id: str) -> int:
        """Lock the tenant's owner rows for this transaction; return their count."""
        result = await self.db.execute(
            select(TenantUser.id)
            .where(TenantUser.tenant_id == tenant_id, TenantUser.role == Role.OWNER.value)
            .with_for_update()
        )
        return len(result.scalars().all())

    async def _get_row(
        self, tenant_id: str, user_id: str, *, for_update: bool = False
    ) -> TenantUser | None:
        stmt = select(TenantUser).where(
            TenantUser.tenant_id == tenant_id, TenantUser.user_id == user_id
        )
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_membership(
        self, tenant_id: str, user_id: str
    ) -> MembershipEntity | None:
        row = await self._get_row(tenant_id, user_id)
        return _membership_to_entity(row) if row else None

    async def list_members(self, tenant_id: str) -> list[MemberResult]:
        result = await self.db.execute(
            select(TenantUser, AppUser)
            .outerjoin(AppUser, AppUser.id == TenantUser.user_id)
            .where(TenantUser.tenant_id == tenant_id)
            .order_by(TenantUser.created_at.desc())
        )
        return [
            MemberResult(
                membership=_membership_to_entity(row),
                email=user.email if user else "",
                full_name=user.full_name if user else None,
                avatar_url=user.avatar_url if user else None,
            )
            for row, user in result.all()
        ]

    async def create_membership(self, membership: MembershipEntity) -> MembershipEntity:
        """Insert a membership. Raises MembershipAlreadyExistsException on duplicate pair."""
        row = TenantUser(
            id=membership.id,
            tenant_id=membership.tenant_id,
            user_id=membership.user_id,
            role=membership.role.value,
            invited_by=membership.invited_by,
            invited_at=membership.invited_at,
            joined_at=membership.joined_at,
            created_at=membership.created_at,
        )
        try:
            async with self.db.begin_nested():
                self.db.add(row)
                await self.db.flush()
        except IntegrityError:
            raise MembershipAlreadyExistsException(
                membership.tenant_id, membership.user_id
            ) from None
        return membership

    async def mark_joined(
        self, tenant_id: str, user_id: str, joined_at: datetime
    ) -> MembershipEntity | None:
        """Conditional UPDATE: only a row with joined_at still null is accepted."""
        result = await self.db.execute(
            update(TenantUser)
            .where(
                TenantUser.tenant_id == tenant_id,
                TenantUser.user_id == user_id,
                TenantUser.joined_at.is_(None),
            )
            .values(joined_at=joined_at)
            .returning(TenantUser)
            .execution_options(synchronize_session=False)
        )
        row = result.scalar_one_or_none()
        return _membership_to_entity(row) if row else None

    async def update_role(
        self,
        tenant_id: str,
        user_id: str,
        expected_role: Role,
        new_role: Role,
    ) -> MembershipEntity:
        owners = await self._lock_owner_rows(tenant_id)
        row = await self._get_row(tenant_id, user_id, for_update=True)
        if row is None:
            raise MembershipNotFoundException(tenant_id, user_id)
        if row.role != expected_role.value:
            raise ConflictException(
                "Membership role changed concurrently; retry the update",
                details={"tenant_id": tenant_id, "user_id": user_id},
            )
        if row.role == Role.OWNER.value and new_role != Role.OWNER and owners <= 1:
            raise InvariantViolationException(
                "Tenant must keep at least one owner",
                invariant="at_least_one_owner",
                tenant_id=tenant_id,
            )
        row.role = new_role.value
        await self.db.flush()
        return _membership_to_entity(row)

    async def delete_membership(
        self, tenant_id: str, user_id: str, expected_role: Role
    ) -> bool:
        owners = await self._lock_owner_rows(tenant_id)
        row = await self._get_row(tenant_id, user_id, for_update=True)
        if row is None or row.role != expected_role.value:
            return False
        if row.role == Role.OWNER.value and owners <= 1:
            raise InvariantViolationException(
                "Tenant must keep at least one owner",
                invariant="at_least_one_owner",
                tenant_id=tenant_id,
            )
        await self.db.execute(
            delete(UserPermission).where(
                UserPermission.tenant_id == tenant_id, UserPermission.user_id == user_id
            )
        )
        await self.db.delete(row)
        await self.db.flush()
        return True

    async def count_owners(self, tenant_id: str) -> int:
        result = await self.db.execute(
            select(func.count())
            .select_from(TenantUser)
            .where(TenantUser.tenant_id == tenant_id, TenantUser.role == Role.OWNER.value)
        )
        return int(result.scalar_one())

    async def get_explicit_levels(self, tenant_id: str, user_id: str) -> list[int]:
        result = await self.db.execute(
            select(PermissionLevelModel.level)
            .join(UserPermission, UserPermission.permission_level_id == PermissionLevelModel.id)
            .where(UserPermission.tenant_id == tenant_id, UserPermission.user_id == user_id)
        )
        return [int(level) for level in result.scalars().all()]

    async def list_grants(
        self, tenant_id: str, user_id: str
    ) -> list[PermissionGrantResult]:
        result = await self.db.execute(
            select(UserPermission, PermissionLevelModel)
            .join(
                PermissionLevelModel,
                PermissionLevelModel.id == UserPermission.permission_level_id,
            )
            .where(UserPermission.tenant_id == tenant_id, UserPermission.user_id == user_id)
            .order_by(PermissionLevelModel.level.desc())
        )
        return [_grant_to_result(grant, level) for grant, level in result.all()]

    async def _get_level_row(self, level: PermissionLevel) -> PermissionLevelModel:
        stmt = select(PermissionLevelModel).where(PermissionLevelModel.name == level.value)
        row = (await self.db.execute(stmt)).scalar_one_or_none()
        if row is None:
            await ensure_permission_levels(self.db)
            row = (await self.db.execute(stmt)).scalar_one()
        return row

    async def add_grant(
        self,
        tenant_id: str,
        user_id: str,
        level: PermissionLevel,
        granted_by: str,
    ) -> PermissionGrantResult:
        level_row = await self._get_level_row(level)
        grant = UserPermission(
            tenant_id=tenant_id,
            user_id=user_id,
            permission_level_id=level_row.id,
            granted_by=granted_by,
        )
        try:
            async with self.db.begin_nested():
                self.db.add(grant)
                await self.db.flush()
        except IntegrityError:
            raise PermissionGrantAlreadyExistsException(
                tenant_id, user_id, level.value
            ) from None
        await self.db.refresh(grant)
        return _grant_to_result(grant, level_row)

    async def remove_grant(
        self, tenant_id: str, user_id: str, level: PermissionLevel
    ) -> bool:
        level_ids = select(PermissionLevelModel.id).where(
            PermissionLevelModel.name == level.value
        )
        result = await self.db.execute(
            delete(UserPermission).where(
                UserPermission.tenant_id == tenant_id,
                UserPermission.user_id == user_id,
                UserPermission.permission_level_id.in_(level_ids),
            )
        )
        return (result.rowcount or 0) > 0
