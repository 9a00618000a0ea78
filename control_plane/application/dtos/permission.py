"""DTOs for permission levels, explicit grants and access introspection."""

from dataclasses import dataclass
from datetime import datetime

from control_plane.domain.enums import MembershipState, PermissionLevel, Role


@dataclass(frozen=True)
class PermissionGrantResult:
    """An explicit per-user permission grant in a tenant."""

    id: str
    tenant_id: str
    user_id: str
    level: PermissionLevel
    granted_by: str | None
    granted_at: datetime


@dataclass(frozen=True)
class AccessResult:
    """A user's effective access in a tenant and where it came from."""

    tenant_id: str
    user_id: str
    effective_level: int
    source: str
    role: Role | None
    state: MembershipState | None

    def allows(self, permission: PermissionLevel) -> bool:
        return self.effective_level >= permission.level
