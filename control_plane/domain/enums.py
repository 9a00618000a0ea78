"""Domain enumerations for the tenant control plane.

Roles and permission levels form two independent linear scales. A role
implies a level through ROLE_LEVELS; a permission level may also be
granted explicitly per user and tenant.
"""

from enum import Enum


class Role(str, Enum):
    """Tenant role, totally ordered by level (owner > manager > auditor > observer).

    Level 3 is unassigned: no role maps to it, so the
    ``approve`` permission level is only reachable through an explicit grant.
    """

    OWNER = "owner"
    MANAGER = "manager"
    AUDITOR = "auditor"
    OBSERVER = "observer"

    @property
    def level(self) -> int:
        """Integer capability level implied by this role."""
        return ROLE_LEVELS[self]

    @classmethod
    def values(cls) -> list[str]:
        """Return all valid role values as strings (e.g. for check constraints)."""
        return [role.value for role in cls]


ROLE_LEVELS: dict[Role, int] = {
    Role.OWNER: 5,
    Role.MANAGER: 4,
    Role.AUDITOR: 2,
    Role.OBSERVER: 1,
}

# Roles allowed to invite, change roles, remove members and grant permissions
MEMBER_ADMIN_ROLES: frozenset[Role] = frozenset({Role.OWNER, Role.MANAGER})
# Roles allowed to rename or delete the tenant
OWNER_ROLES: frozenset[Role] = frozenset({Role.OWNER})


class PermissionLevel(str, Enum):
    """Named capability level, independent of role.

    A role satisfies a permission iff ``role.level >= permission.level``.
    """

    VIEW = "view"
    INPUT = "input"
    APPROVE = "approve"
    MANAGE = "manage"
    ADMIN = "admin"

    @property
    def level(self) -> int:
        return PERMISSION_LEVELS[self]

    @property
    def description(self) -> str:
        return _PERMISSION_DESCRIPTIONS[self]

    @classmethod
    def values(cls) -> list[str]:
        return [p.value for p in cls]


PERMISSION_LEVELS: dict[PermissionLevel, int] = {
    PermissionLevel.VIEW: 1,
    PermissionLevel.INPUT: 2,
    PermissionLevel.APPROVE: 3,
    PermissionLevel.MANAGE: 4,
    PermissionLevel.ADMIN: 5,
}

_PERMISSION_DESCRIPTIONS: dict[PermissionLevel, str] = {
    PermissionLevel.VIEW: "Read-only access to tenant data",
    PermissionLevel.INPUT: "Create and edit records",
    PermissionLevel.APPROVE: "Approve submitted records",
    PermissionLevel.MANAGE: "Manage members and tenant configuration",
    PermissionLevel.ADMIN: "Full administrative control",
}


class MembershipState(str, Enum):
    """Stored lifecycle state of a membership. Removal is row absence, not a state."""

    PENDING_INVITE = "pending_invite"
    ACTIVE = "active"


class ProvisionAction(str, Enum):
    """Outcome of adding one user to a tenant (single or bulk)."""

    CREATED = "created"
    ADDED_EXISTING = "added_existing"
    ALREADY_MEMBER = "already_member"


class SubscriptionStatus(str, Enum):
    """Tenant subscription status (informational; not used for authorization)."""

    TRIAL = "trial"
    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELED = "canceled"

    @classmethod
    def values(cls) -> list[str]:
        return [s.value for s in cls]
