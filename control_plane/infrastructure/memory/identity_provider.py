"""In-process identity provider for local runs and tests."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from control_plane.application.dtos.user import UserIdentity
from control_plane.core.constants import IDENTITY_SERVICE
from control_plane.domain.exceptions import UpstreamFailureException
from control_plane.infrastructure.security.jwt import identity_from_token
from control_plane.shared.utils.generators import generate_cuid, generate_temporary_password


@dataclass
class SentInvitation:
    email: str
    redirect_url: str
    metadata: dict[str, Any]


@dataclass
class StoredIdentity:
    identity: UserIdentity
    password: str
    email_confirmed: bool


class InMemoryIdentityProvider:
    """IIdentityProvider keeping identities in a dict.

    Failure switches (fail_create, fail_delete, fail_invite) make the
    provider raise UpstreamFailureException for that operation.
    """

    def __init__(self) -> None:
        self.identities: dict[str, StoredIdentity] = {}
        self.sent_invitations: list[SentInvitation] = []
        self.fail_create = False
        self.fail_delete = False
        self.fail_invite = False

    async def get_current_user(self, access_token: str) -> UserIdentity | None:
        if not access_token:
            return None
        return identity_from_token(access_token)

    async def create_identity(
        self,
        email: str,
        password: str | None,
        email_confirm: bool,
        metadata: dict[str, Any],
    ) -> UserIdentity:
        if self.fail_create:
            raise UpstreamFailureException(IDENTITY_SERVICE, "create_identity")
        normalized = email.strip().lower()
        if any(s.identity.email == normalized for s in self.identities.values()):
            raise UpstreamFailureException(
                IDENTITY_SERVICE,
                "create_identity",
                "A user with this email address has already been registered",
            )
        identity = UserIdentity(
            id=generate_cuid(),
            email=normalized,
            full_name=metadata.get("full_name"),
            avatar_url=metadata.get("avatar_url"),
        )
        self.identities[identity.id] = StoredIdentity(
            identity=identity,
            password=password or generate_temporary_password(),
            email_confirmed=email_confirm,
        )
        return identity

    async def delete_identity(self, user_id: str) -> None:
        if self.fail_delete:
            raise UpstreamFailureException(IDENTITY_SERVICE, "delete_identity")
        self.identities.pop(user_id, None)

    async def send_invitation(
        self, email: str, redirect_url: str, metadata: dict[str, Any]
    ) -> None:
        if self.fail_invite:
            raise UpstreamFailureException(IDENTITY_SERVICE, "send_invitation")
        self.sent_invitations.append(
            SentInvitation(email=email, redirect_url=redirect_url, metadata=metadata)
        )
