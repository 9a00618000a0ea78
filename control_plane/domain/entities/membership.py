"""Membership domain entity.

Binds one user to one tenant with exactly one role. The lifecycle is
PENDING_INVITE -> ACTIVE (on acceptance); removal deletes the row, so
REMOVED is never stored.
"""

from dataclasses import dataclass, replace
from datetime import datetime

from control_plane.domain.enums import MembershipState, Role
from control_plane.domain.exceptions import ValidationException


@dataclass(frozen=True)
class MembershipEntity:
    """Domain entity for a tenant membership (tenant_user row).

    Invariant at creation: an invited membership has invited_at set and
    joined_at null; a directly added membership has joined_at set and
    invited_at null. After acceptance both are set.
    """

    id: str
    tenant_id: str
    user_id: str
    role: Role
    invited_by: str | None
    invited_at: datetime | None
    joined_at: datetime | None
    created_at: datetime

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        """Validate membership rules. Raises ValidationException if invalid."""
        if not self.tenant_id:
            raise ValidationException("Tenant ID is required", field="tenant_id")
        if not self.user_id:
            raise ValidationException("User ID is required", field="user_id")
        if self.invited_at is None and self.joined_at is None:
            raise ValidationException(
                "Membership must be either invited or joined", field="joined_at"
            )

    @classmethod
    def invited(
        cls,
        *,
        id: str,
        tenant_id: str,
        user_id: str,
        role: Role,
        invited_by: str,
        now: datetime,
    ) -> "MembershipEntity":
        """Build a membership created through the invitation flow (PENDING_INVITE)."""
        return cls(
            id=id,
            tenant_id=tenant_id,
            user_id=user_id,
            role=role,
            invited_by=invited_by,
            invited_at=now,
            joined_at=None,
            created_at=now,
        )

    @classmethod
    def joined(
        cls,
        *,
        id: str,
        tenant_id: str,
        user_id: str,
        role: Role,
        now: datetime,
    ) -> "MembershipEntity":
        """Build a membership added directly (owner bootstrap or direct add): ACTIVE."""
        return cls(
            id=id,
            tenant_id=tenant_id,
            user_id=user_id,
            role=role,
            invited_by=None,
            invited_at=None,
            joined_at=now,
            created_at=now,
        )

    @property
    def state(self) -> MembershipState:
        if self.joined_at is None:
            return MembershipState.PENDING_INVITE
        return MembershipState.ACTIVE

    @property
    def is_pending(self) -> bool:
        return self.state == MembershipState.PENDING_INVITE

    @property
    def is_owner(self) -> bool:
        return self.role == Role.OWNER

    def accept(self, now: datetime) -> "MembershipEntity":
        """Return the accepted (ACTIVE) membership.

        Raises:
            ValueError: If the membership is already active.
        """
        if not self.is_pending:
            raise ValueError("Membership is already active")
        return replace(self, joined_at=now)

    def with_role(self, role: Role) -> "MembershipEntity":
        """Return a copy with a new role; the lifecycle state is unchanged."""
        return replace(self, role=role)
