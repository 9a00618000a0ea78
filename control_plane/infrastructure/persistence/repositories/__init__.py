"""SQLAlchemy repositories implementing the application ports."""

from control_plane.infrastructure.persistence.repositories.membership_repo import (
    MembershipRepository,
    ensure_permission_levels,
)
from control_plane.infrastructure.persistence.repositories.tenant_repo import (
    TenantRepository,
)
from control_plane.infrastructure.persistence.repositories.user_repo import (
    UserRepository,
)

__all__ = [
    "MembershipRepository",
    "TenantRepository",
    "UserRepository",
    "ensure_permission_levels",
]
