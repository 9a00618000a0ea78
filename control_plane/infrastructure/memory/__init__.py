"""In-process backends (DATABASE_BACKEND=memory, IDENTITY_BACKEND=memory)."""

from control_plane.infrastructure.memory.identity_provider import InMemoryIdentityProvider
from control_plane.infrastructure.memory.store import (
    InMemoryDatabase,
    InMemoryMembershipStore,
    InMemoryTenantRepository,
    InMemoryUserDirectory,
)

__all__ = [
    "InMemoryDatabase",
    "InMemoryIdentityProvider",
    "InMemoryMembershipStore",
    "InMemoryTenantRepository",
    "InMemoryUserDirectory",
]
