"""Service interfaces (ports) for the application layer.

Protocols for external collaborators: the identity provider and the
optional cache.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from control_plane.application.dtos.user import UserIdentity


class IIdentityProvider(Protocol):
    """Protocol for the external identity provider.

    Failures surface as UpstreamFailureException; callers never inspect
    the underlying transport error.
    """

    async def get_current_user(self, access_token: str) -> UserIdentity | None:
        """Resolve the caller from an access token; None when missing or invalid."""

    async def create_identity(
        self,
        email: str,
        password: str | None,
        email_confirm: bool,
        metadata: dict[str, Any],
    ) -> UserIdentity:
        """Create a new identity (password generated when None)."""

    async def delete_identity(self, user_id: str) -> None:
        """Delete an identity. Deleting an absent identity is not an error."""

    async def send_invitation(
        self, email: str, redirect_url: str, metadata: dict[str, Any]
    ) -> None:
        """Deliver an invitation email through the provider."""


class ICacheService(Protocol):
    """Protocol for cache (e.g. Redis): get, set, delete."""

    def is_available(self) -> bool:
        """Return True if cache is connected and usable."""

    async def get(self, key: str) -> Any:
        """Return cached value or None."""

    async def set(self, key: str, value: Any, ttl: int = 300) -> bool:
        """Store value with TTL; return True on success."""

    async def delete(self, key: str) -> bool:
        """Remove key; return True if deleted."""
