"""Persistence models: ORM entities and mixins."""

from control_plane.infrastructure.persistence.models.membership import TenantUser
from control_plane.infrastructure.persistence.models.mixins import (
    CuidMixin,
    TenantMixin,
    TimestampMixin,
)
from control_plane.infrastructure.persistence.models.permission import (
    PermissionLevelModel,
    UserPermission,
)
from control_plane.infrastructure.persistence.models.tenant import Tenant
from control_plane.infrastructure.persistence.models.user import AppUser

__all__ = [
    "AppUser",
    "CuidMixin",
    "PermissionLevelModel",
    "Tenant",
    "TenantMixin",
    "TenantUser",
    "TimestampMixin",
    "UserPermission",
]
