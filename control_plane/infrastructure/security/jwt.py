"""Access-token verification for identity-provider issued JWTs.

Tokens are signed by the identity provider with the shared SECRET_KEY and
verified locally (no round-trip per request). create_access_token mints
compatible tokens for local development and tests.
"""

from datetime import UTC, datetime, timedelta
from typing import Any, cast

from jose import JWTError, jwt

from control_plane.application.dtos.user import UserIdentity
from control_plane.core.config import get_settings


def create_access_token(
    data: dict[str, Any],
    expires_delta: timedelta | None = None,
) -> str:
    """Create a JWT access token with the given claims.

    Args:
        data: Claims to encode (sub, email, user_metadata, ...).
        expires_delta: Optional TTL; else uses settings.access_token_expire_minutes.

    Returns:
        Encoded JWT string.
    """
    settings = get_settings()
    to_encode = data.copy()
    if expires_delta is None:
        expires_delta = timedelta(minutes=settings.access_token_expire_minutes)
    to_encode["exp"] = datetime.now(UTC) + expires_delta
    if settings.jwt_audience and "aud" not in to_encode:
        to_encode["aud"] = settings.jwt_audience
    encoded = jwt.encode(
        to_encode,
        settings.secret_key.get_secret_value(),
        algorithm=settings.algorithm,
    )
    return cast(str, encoded)


def verify_token(token: str) -> dict[str, Any]:
    """Verify and decode a JWT. Returns the payload.

    Enforces presence of exp and sub, and the audience when configured.

    Raises:
        ValueError: If the token is invalid, expired, or missing required claims.
    """
    settings = get_settings()
    try:
        payload = jwt.decode(
            token,
            settings.secret_key.get_secret_value(),
            algorithms=[settings.algorithm],
            audience=settings.jwt_audience,
            options={
                "require_exp": True,
                "require_sub": True,
                "verify_aud": settings.jwt_audience is not None,
            },
        )
    except JWTError as e:
        raise ValueError(f"Invalid token: {e!s}") from e
    if not payload.get("sub"):
        raise ValueError("Token missing required claim: sub")
    return payload


def identity_from_token(token: str) -> UserIdentity | None:
    """Return the caller identity carried by a valid token, or None."""
    try:
        payload = verify_token(token)
    except ValueError:
        return None
    metadata = payload.get("user_metadata") or {}
    return UserIdentity(
        id=str(payload["sub"]),
        email=str(payload.get("email") or ""),
        full_name=metadata.get("full_name"),
        avatar_url=metadata.get("avatar_url"),
    )
