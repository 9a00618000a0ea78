"""Identity provider adapters."""

from control_plane.infrastructure.external.identity.http_identity_provider import (
    HttpIdentityProvider,
)

__all__ = ["HttpIdentityProvider"]
