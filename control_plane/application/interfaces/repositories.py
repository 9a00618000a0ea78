"""Repository interfaces (ports) for the application layer.

Protocols define contracts that infrastructure implementations must fulfill
(SQLAlchemy repositories and the in-memory store). All types reference
domain entities or application DTOs only; no infrastructure imports.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Protocol

from control_plane.domain.enums import PermissionLevel, Role

if TYPE_CHECKING:
    from control_plane.application.dtos.membership import MemberResult
    from control_plane.application.dtos.permission import PermissionGrantResult
    from control_plane.application.dtos.tenant import TenantResult, UserTenantResult
    from control_plane.application.dtos.user import UserIdentity
    from control_plane.domain.entities.membership import MembershipEntity


class IMembershipStore(Protocol):
    """Protocol for membership rows and explicit permission grants.

    Every mutating method is atomic with respect to concurrent mutations
    on the same (tenant_id, user_id) pair. Guarded writes take the role
    the caller authorized against (expected_role) and only apply when the
    row still holds it.
    """

    async def get_membership(
        self, tenant_id: str, user_id: str
    ) -> MembershipEntity | None:
        """Return the membership for the pair, or None."""

    async def list_members(self, tenant_id: str) -> list[MemberResult]:
        """Return memberships joined to identity attributes (newest first)."""

    async def create_membership(self, membership: MembershipEntity) -> MembershipEntity:
        """Insert a membership. Raises MembershipAlreadyExistsException on duplicate pair."""

    async def mark_joined(
        self, tenant_id: str, user_id: str, joined_at: datetime
    ) -> MembershipEntity | None:
        """Set joined_at only where it is null; return the row, or None if no pending invite."""

    async def update_role(
        self,
        tenant_id: str,
        user_id: str,
        expected_role: Role,
        new_role: Role,
    ) -> MembershipEntity:
        """Change the role if the row still holds expected_role.

        Raises:
            InvariantViolationException: If the tenant would be left without an owner.
            ConflictException: If the row changed concurrently.
            MembershipNotFoundException: If the row no longer exists.
        """

    async def delete_membership(
        self, tenant_id: str, user_id: str, expected_role: Role
    ) -> bool:
        """Delete the membership (and its explicit grants) if it still holds expected_role.

        Returns False when no row matched. Raises InvariantViolationException
        when deleting would leave the tenant without an owner.
        """

    async def count_owners(self, tenant_id: str) -> int:
        """Return the number of owner memberships in the tenant."""

    async def get_explicit_levels(self, tenant_id: str, user_id: str) -> list[int]:
        """Return the levels of all explicit grants for the pair."""

    async def list_grants(
        self, tenant_id: str, user_id: str
    ) -> list[PermissionGrantResult]:
        """Return explicit grants for the pair (highest level first)."""

    async def add_grant(
        self,
        tenant_id: str,
        user_id: str,
        level: PermissionLevel,
        granted_by: str,
    ) -> PermissionGrantResult:
        """Persist an explicit grant. Raises PermissionGrantAlreadyExistsException on duplicate."""

    async def remove_grant(
        self, tenant_id: str, user_id: str, level: PermissionLevel
    ) -> bool:
        """Delete an explicit grant. Returns False when it did not exist."""


class ITenantRepository(Protocol):
    """Protocol for tenant persistence."""

    async def create_tenant_with_owner(
        self,
        *,
        name: str,
        subdomain: str,
        emoji: str,
        owner_id: str,
        created_at: datetime,
    ) -> TenantResult:
        """Atomically insert the tenant and its bootstrap owner membership.

        Raises TenantAlreadyExistsException when the subdomain is taken.
        """

    async def get_by_id(self, tenant_id: str) -> TenantResult | None:
        """Return tenant by ID."""

    async def get_by_subdomain(self, subdomain: str) -> TenantResult | None:
        """Return tenant by (lowercased) subdomain."""

    async def list_for_user(self, user_id: str) -> list[UserTenantResult]:
        """Return tenants the user is a member of, with the user's role (newest first)."""

    async def update_tenant(
        self,
        tenant_id: str,
        *,
        name: str | None = None,
        emoji: str | None = None,
    ) -> TenantResult | None:
        """Change name and/or emoji (None leaves a field as is); None if the tenant is gone."""

    async def delete_tenant(self, tenant_id: str) -> list[str]:
        """Delete the tenant with its memberships and grants; return the removed member ids."""


class IUserDirectory(Protocol):
    """Protocol for the local mirror of identity-provider users (email index, profiles)."""

    async def get_by_email(self, email: str) -> UserIdentity | None:
        """Return the identity with this email (case-insensitive), or None."""

    async def get_by_id(self, user_id: str) -> UserIdentity | None:
        """Return the identity with this id, or None."""

    async def save(self, identity: UserIdentity) -> UserIdentity:
        """Insert or update the profile mirror for an identity."""

    async def delete(self, user_id: str) -> bool:
        """Delete the profile mirror (used when rolling back a fresh identity)."""
