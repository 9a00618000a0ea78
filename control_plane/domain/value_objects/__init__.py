"""Domain value objects (immutable, self-validating)."""

from control_plane.domain.value_objects.access import (
    Access,
    ExplicitGrantAccess,
    NoAccess,
    RoleDerivedAccess,
    resolve_access,
)
from control_plane.domain.value_objects.core import Subdomain, TenantEmoji, TenantName

__all__ = [
    "Access",
    "ExplicitGrantAccess",
    "NoAccess",
    "RoleDerivedAccess",
    "resolve_access",
    "Subdomain",
    "TenantEmoji",
    "TenantName",
]
