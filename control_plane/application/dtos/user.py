"""DTOs for user identities (no dependency on ORM)."""

from dataclasses import dataclass


@dataclass(frozen=True)
class UserIdentity:
    """Identity issued by the identity provider, mirrored in the user directory."""

    id: str
    email: str
    full_name: str | None = None
    avatar_url: str | None = None
