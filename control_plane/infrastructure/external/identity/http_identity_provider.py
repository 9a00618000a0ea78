"""Identity provider client for a GoTrue-compatible admin API.

Access tokens are verified locally (shared secret); identity creation,
deletion and invitations go over HTTP with the service key. All calls
use httpx.AsyncClient so they do not block the event loop.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any

import httpx

from control_plane.application.dtos.user import UserIdentity
from control_plane.core.constants import IDENTITY_SERVICE
from control_plane.domain.exceptions import UpstreamFailureException
from control_plane.infrastructure.security.jwt import identity_from_token
from control_plane.shared.telemetry.logging import get_logger
from control_plane.shared.utils.generators import generate_temporary_password

logger = get_logger(__name__)


class HttpIdentityProvider:
    """IIdentityProvider over the provider's REST admin endpoints."""

    def __init__(
        self,
        *,
        base_url: str,
        service_key: str,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._service_key = service_key
        self._shared_http = http_client
        self._timeout = timeout

    @asynccontextmanager
    async def _http_cm(self):
        """Yield shared HTTP client or a short-lived one (connection reuse when shared)."""
        if self._shared_http is not None:
            yield self._shared_http
            return
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            yield client

    def _headers(self) -> dict[str, str]:
        return {
            "apikey": self._service_key,
            "Authorization": f"Bearer {self._service_key}",
            "Content-Type": "application/json",
        }

    async def _request(
        self,
        operation: str,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | None = None,
        params: dict[str, str] | None = None,
        allow_not_found: bool = False,
    ) -> dict[str, Any]:
        url = f"{self._base_url}/{path.lstrip('/')}"
        try:
            async with self._http_cm() as client:
                response = await client.request(
                    method,
                    url,
                    headers=self._headers(),
                    json=json,
                    params=params,
                    timeout=self._timeout,
                )
        except httpx.HTTPError as e:
            logger.warning("Identity provider unreachable during %s: %s", operation, e)
            raise UpstreamFailureException(IDENTITY_SERVICE, operation) from e

        if response.status_code == 404 and allow_not_found:
            return {}
        if response.status_code >= 400:
            logger.warning(
                "Identity provider rejected %s: status=%s", operation, response.status_code
            )
            raise UpstreamFailureException(
                IDENTITY_SERVICE,
                operation,
                _error_message(response) or f"Identity provider returned {response.status_code}",
            )
        if not response.content:
            return {}
        return response.json()

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
        """Create an identity through the admin API.

        A random password is generated when none is given; the user sets
        their own through the invitation link.
        """
        body = {
            "email": email,
            "password": password or generate_temporary_password(),
            "email_confirm": email_confirm,
            "user_metadata": metadata,
        }
        data = await self._request("create_identity", "POST", "admin/users", json=body)
        user = data.get("user", data)
        if not user.get("id"):
            raise UpstreamFailureException(
                IDENTITY_SERVICE, "create_identity", "Identity provider returned no user id"
            )
        user_metadata = user.get("user_metadata") or {}
        logger.info("Identity created: id=%s", user["id"])
        return UserIdentity(
            id=str(user["id"]),
            email=str(user.get("email") or email),
            full_name=user_metadata.get("full_name") or metadata.get("full_name"),
            avatar_url=user_metadata.get("avatar_url"),
        )

    async def delete_identity(self, user_id: str) -> None:
        await self._request(
            "delete_identity", "DELETE", f"admin/users/{user_id}", allow_not_found=True
        )
        logger.info("Identity deleted: id=%s", user_id)

    async def send_invitation(
        self, email: str, redirect_url: str, metadata: dict[str, Any]
    ) -> None:
        await self._request(
            "send_invitation",
            "POST",
            "invite",
            json={"email": email, "data": metadata},
            params={"redirect_to": redirect_url},
        )


def _error_message(response: httpx.Response) -> str | None:
    try:
        payload = response.json()
    except ValueError:
        return None
    if not isinstance(payload, dict):
        return None
    for key in ("msg", "message", "error_description", "error"):
        value = payload.get(key)
        if isinstance(value, str) and value:
            return value
    return None
