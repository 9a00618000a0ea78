"""Access value objects: how a user's effective level in a tenant was derived.

A user's level comes from exactly one source: the maximum explicit grant
when any exist, otherwise the membership role, otherwise nothing. The
sources are modeled as a tagged union resolved in one place
(resolve_access) so callers never re-implement the fallback.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Literal

from control_plane.domain.enums import Role


@dataclass(frozen=True)
class RoleDerivedAccess:
    """Level implied by the membership role (no explicit grants exist)."""

    role: Role
    kind: Literal["role"] = "role"

    @property
    def level(self) -> int:
        return self.role.level


@dataclass(frozen=True)
class ExplicitGrantAccess:
    """Level taken from the highest explicit grant; the role is ignored."""

    level: int
    kind: Literal["explicit_grant"] = "explicit_grant"


@dataclass(frozen=True)
class NoAccess:
    """No membership and no grants."""

    kind: Literal["none"] = "none"

    @property
    def level(self) -> int:
        return 0


Access = RoleDerivedAccess | ExplicitGrantAccess | NoAccess


def resolve_access(role: Role | None, explicit_levels: Iterable[int]) -> Access:
    """Resolve the access source for a (user, tenant) pair.

    Role and explicit grants are never summed: when at least one grant
    exists its maximum wins, even if the role alone would be higher.

    Args:
        role: Membership role, or None when the user is not a member.
        explicit_levels: Levels of all explicit grants for the pair.

    Returns:
        ExplicitGrantAccess, RoleDerivedAccess or NoAccess.
    """
    highest = max(explicit_levels, default=0)
    if highest > 0:
        return ExplicitGrantAccess(level=highest)
    if role is not None:
        return RoleDerivedAccess(role=role)
    return NoAccess()
