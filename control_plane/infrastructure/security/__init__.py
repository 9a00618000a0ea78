"""Security: access-token verification."""

from control_plane.infrastructure.security.jwt import (
    create_access_token,
    identity_from_token,
    verify_token,
)

__all__ = ["create_access_token", "identity_from_token", "verify_token"]
