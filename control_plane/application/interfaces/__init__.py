"""Application ports (Protocols): repositories and external services."""

from control_plane.application.interfaces.repositories import (
    IMembershipStore,
    ITenantRepository,
    IUserDirectory,
)
from control_plane.application.interfaces.services import ICacheService, IIdentityProvider

__all__ = [
    "IMembershipStore",
    "ITenantRepository",
    "IUserDirectory",
    "ICacheService",
    "IIdentityProvider",
]
