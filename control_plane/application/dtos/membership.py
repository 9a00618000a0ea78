"""DTOs for membership lifecycle use cases."""

from dataclasses import dataclass

from control_plane.application.dtos.user import UserIdentity
from control_plane.domain.entities.membership import MembershipEntity
from control_plane.domain.enums import ProvisionAction, Role


@dataclass(frozen=True)
class MemberResult:
    """Membership joined to identity attributes (member listing)."""

    membership: MembershipEntity
    email: str
    full_name: str | None
    avatar_url: str | None


@dataclass(frozen=True)
class MemberInvite:
    """Target of an invite/create: an email (existing or new identity) or a known user id."""

    email: str | None
    role: Role
    full_name: str | None = None
    user_id: str | None = None
    temporary_password: str | None = None

    def __post_init__(self) -> None:
        if not self.email and not self.user_id:
            raise ValueError("MemberInvite requires email or user_id")


@dataclass(frozen=True)
class InviteOutcome:
    """Result of invite_or_create_member.

    invitation_sent is False when no invitation was requested or delivered
    yet, when the user was already a member, or when delivery failed
    (logged, not raised).
    """

    membership: MembershipEntity
    action: ProvisionAction
    invitation_sent: bool = False
    identity: UserIdentity | None = None

    @property
    def user_id(self) -> str:
        return self.membership.user_id
