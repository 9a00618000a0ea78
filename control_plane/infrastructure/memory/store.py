"""In-memory implementations of the membership store, tenant repository and user directory.

Used when DATABASE_BACKEND=memory (local runs) and as the store in tests.
All repositories share one InMemoryDatabase; every guarded write holds
its asyncio.Lock so check-then-write sequences are atomic within the
process, matching the transactional guarantees of the SQL repositories.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field, replace
from datetime import datetime

from control_plane.application.dtos.membership import MemberResult
from control_plane.application.dtos.permission import PermissionGrantResult
from control_plane.application.dtos.tenant import TenantResult, UserTenantResult
from control_plane.application.dtos.user import UserIdentity
from control_plane.domain.entities.membership import MembershipEntity
from control_plane.domain.enums import PermissionLevel, Role
from control_plane.domain.exceptions import (
    ConflictException,
    InvariantViolationException,
    MembershipAlreadyExistsException,
    MembershipNotFoundException,
    PermissionGrantAlreadyExistsException,
    TenantAlreadyExistsException,
)
from control_plane.shared.utils.datetime import utc_now
from control_plane.shared.utils.generators import generate_cuid

MembershipKey = tuple[str, str]


@dataclass
class InMemoryDatabase:
    """Process-local state shared by the in-memory repositories."""

    tenants: dict[str, TenantResult] = field(default_factory=dict)
    users: dict[str, UserIdentity] = field(default_factory=dict)
    memberships: dict[MembershipKey, MembershipEntity] = field(default_factory=dict)
    grants: dict[tuple[str, str, PermissionLevel], PermissionGrantResult] = field(
        default_factory=dict
    )
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    def count_owners(self, tenant_id: str) -> int:
        return sum(
            1
            for (t_id, _), m in self.memberships.items()
            if t_id == tenant_id and m.role == Role.OWNER
        )


class InMemoryMembershipStore:
    """IMembershipStore over InMemoryDatabase."""

    def __init__(self, db: InMemoryDatabase) -> None:
        self.db = db

    async def get_membership(
        self, tenant_id: str, user_id: str
    ) -> MembershipEntity | None:
        return self.db.memberships.get((tenant_id, user_id))

    async def list_members(self, tenant_id: str) -> list[MemberResult]:
        members = [
            m for (t_id, _), m in self.db.memberships.items() if t_id == tenant_id
        ]
        members.sort(key=lambda m: m.created_at, reverse=True)
        results = []
        for m in members:
            user = self.db.users.get(m.user_id)
            results.append(
                MemberResult(
                    membership=m,
                    email=user.email if user else "",
                    full_name=user.full_name if user else None,
                    avatar_url=user.avatar_url if user else None,
                )
            )
        return results

    async def create_membership(self, membership: MembershipEntity) -> MembershipEntity:
        key = (membership.tenant_id, membership.user_id)
        async with self.db.lock:
            if key in self.db.memberships:
                raise MembershipAlreadyExistsException(*key)
            self.db.memberships[key] = membership
        return membership

    async def mark_joined(
        self, tenant_id: str, user_id: str, joined_at: datetime
    ) -> MembershipEntity | None:
        key = (tenant_id, user_id)
        async with self.db.lock:
            current = self.db.memberships.get(key)
            if current is None or not current.is_pending:
                return None
            accepted = current.accept(joined_at)
            self.db.memberships[key] = accepted
        return accepted

    async def update_role(
        self,
        tenant_id: str,
        user_id: str,
        expected_role: Role,
        new_role: Role,
    ) -> MembershipEntity:
        key = (tenant_id, user_id)
        async with self.db.lock:
            current = self.db.memberships.get(key)
            if current is None:
                raise MembershipNotFoundException(tenant_id, user_id)
            if current.role != expected_role:
                raise ConflictException(
                    "Membership role changed concurrently; retry the update",
                    details={"tenant_id": tenant_id, "user_id": user_id},
                )
            if (
                current.role == Role.OWNER
                and new_role != Role.OWNER
                and self.db.count_owners(tenant_id) <= 1
            ):
                raise InvariantViolationException(
                    "Tenant must keep at least one owner",
                    invariant="at_least_one_owner",
                    tenant_id=tenant_id,
                )
            updated = current.with_role(new_role)
            self.db.memberships[key] = updated
        return updated

    async def delete_membership(
        self, tenant_id: str, user_id: str, expected_role: Role
    ) -> bool:
        key = (tenant_id, user_id)
        async with self.db.lock:
            current = self.db.memberships.get(key)
            if current is None or current.role != expected_role:
                return False
            if current.role == Role.OWNER and self.db.count_owners(tenant_id) <= 1:
                raise InvariantViolationException(
                    "Tenant must keep at least one owner",
                    invariant="at_least_one_owner",
                    tenant_id=tenant_id,
                )
            del self.db.memberships[key]
            for grant_key in [
                k for k in self.db.grants if k[0] == tenant_id and k[1] == user_id
            ]:
                del self.db.grants[grant_key]
        return True

    async def count_owners(self, tenant_id: str) -> int:
        return self.db.count_owners(tenant_id)

    async def get_explicit_levels(self, tenant_id: str, user_id: str) -> list[int]:
        return [
            g.level.level
            for (t_id, u_id, _), g in self.db.grants.items()
            if t_id == tenant_id and u_id == user_id
        ]

    async def list_grants(
        self, tenant_id: str, user_id: str
    ) -> list[PermissionGrantResult]:
        grants = [
            g
            for (t_id, u_id, _), g in self.db.grants.items()
            if t_id == tenant_id and u_id == user_id
        ]
        return sorted(grants, key=lambda g: g.level.level, reverse=True)

    async def add_grant(
        self,
        tenant_id: str,
        user_id: str,
        level: PermissionLevel,
        granted_by: str,
    ) -> PermissionGrantResult:
        key = (tenant_id, user_id, level)
        async with self.db.lock:
            if key in self.db.grants:
                raise PermissionGrantAlreadyExistsException(tenant_id, user_id, level.value)
            grant = PermissionGrantResult(
                id=generate_cuid(),
                tenant_id=tenant_id,
                user_id=user_id,
                level=level,
                granted_by=granted_by,
                granted_at=utc_now(),
            )
            self.db.grants[key] = grant
        return grant

    async def remove_grant(
        self, tenant_id: str, user_id: str, level: PermissionLevel
    ) -> bool:
        async with self.db.lock:
            return self.db.grants.pop((tenant_id, user_id, level), None) is not None


class InMemoryTenantRepository:
    """ITenantRepository over InMemoryDatabase."""

    def __init__(self, db: InMemoryDatabase) -> None:
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
        async with self.db.lock:
            if any(t.subdomain == subdomain for t in self.db.tenants.values()):
                raise TenantAlreadyExistsException(subdomain)
            tenant = TenantResult(
                id=generate_cuid(),
                name=name,
                subdomain=subdomain,
                emoji=emoji,
                owner_id=owner_id,
                created_at=created_at,
            )
            self.db.tenants[tenant.id] = tenant
            self.db.memberships[(tenant.id, owner_id)] = MembershipEntity.joined(
                id=generate_cuid(),
                tenant_id=tenant.id,
                user_id=owner_id,
                role=Role.OWNER,
                now=created_at,
            )
        return tenant

    async def get_by_id(self, tenant_id: str) -> TenantResult | None:
        return self.db.tenants.get(tenant_id)

    async def get_by_subdomain(self, subdomain: str) -> TenantResult | None:
        wanted = subdomain.lower()
        return next(
            (t for t in self.db.tenants.values() if t.subdomain == wanted), None
        )

    async def list_for_user(self, user_id: str) -> list[UserTenantResult]:
        results = [
            UserTenantResult(
                tenant=self.db.tenants[t_id], role=m.role, joined_at=m.joined_at
            )
            for (t_id, u_id), m in self.db.memberships.items()
            if u_id == user_id and t_id in self.db.tenants
        ]
        results.sort(key=lambda r: r.tenant.created_at, reverse=True)
        return results

    async def update_tenant(
        self,
        tenant_id: str,
        *,
        name: str | None = None,
        emoji: str | None = None,
    ) -> TenantResult | None:
        async with self.db.lock:
            tenant = self.db.tenants.get(tenant_id)
            if tenant is None:
                return None
            changes = {}
            if name is not None:
                changes["name"] = name
            if emoji is not None:
                changes["emoji"] = emoji
            tenant = replace(tenant, **changes)
            self.db.tenants[tenant_id] = tenant
        return tenant

    async def delete_tenant(self, tenant_id: str) -> list[str]:
        async with self.db.lock:
            if self.db.tenants.pop(tenant_id, None) is None:
                return []
            user_ids = [u_id for (t_id, u_id) in self.db.memberships if t_id == tenant_id]
            for user_id in user_ids:
                del self.db.memberships[(tenant_id, user_id)]
            for key in [k for k in self.db.grants if k[0] == tenant_id]:
                del self.db.grants[key]
        return user_ids


class InMemoryUserDirectory:
    """IUserDirectory over InMemoryDatabase."""

    def __init__(self, db: InMemoryDatabase) -> None:
        self.db = db

    async def get_by_email(self, email: str) -> UserIdentity | None:
        wanted = email.strip().lower()
        return next(
            (u for u in self.db.users.values() if u.email.lower() == wanted), None
        )

    async def get_by_id(self, user_id: str) -> UserIdentity | None:
        return self.db.users.get(user_id)

    async def save(self, identity: UserIdentity) -> UserIdentity:
        async with self.db.lock:
            existing = self.db.users.get(identity.id)
            if existing is not None:
                identity = replace(
                    identity,
                    full_name=identity.full_name or existing.full_name,
                    avatar_url=identity.avatar_url or existing.avatar_url,
                )
            self.db.users[identity.id] = identity
        return identity

    async def delete(self, user_id: str) -> bool:
        async with self.db.lock:
            if self.db.users.pop(user_id, None) is None:
                return False
            for key in [k for k in self.db.memberships if k[1] == user_id]:
                del self.db.memberships[key]
        return True
