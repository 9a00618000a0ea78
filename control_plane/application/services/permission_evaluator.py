"""Permission evaluator: role levels, effective levels and authorization checks.

Effective level = max explicit grant if any exist, else the membership
role's level, else 0. Absence of membership is a valid "no access"
answer, never an exception. Results may be cached (Redis) per
(tenant, user); every membership or grant mutation invalidates the key.
Inside a transaction the keys are collected and dropped only after the
commit (drop_cached_levels).
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from control_plane.application.dtos.permission import AccessResult
from control_plane.application.interfaces.repositories import IMembershipStore
from control_plane.application.interfaces.services import ICacheService
from control_plane.core.constants import CACHE_KEY_SEP, CACHE_PREFIX_ACCESS
from control_plane.domain.entities.membership import MembershipEntity
from control_plane.domain.enums import PermissionLevel, Role
from control_plane.domain.exceptions import InsufficientPermissionException
from control_plane.domain.value_objects.access import Access, resolve_access

logger = logging.getLogger(__name__)


def level_of(role: Role) -> int:
    """Integer level implied by a role (owner=5, manager=4, auditor=2, observer=1)."""
    return role.level


def access_key(tenant_id: str, user_id: str) -> str:
    """Cache key for a user's effective level in a tenant."""
    for value in (tenant_id, user_id):
        if CACHE_KEY_SEP in value:
            raise ValueError(f"Cache key component must not contain {CACHE_KEY_SEP!r}")
    return f"{CACHE_PREFIX_ACCESS}{CACHE_KEY_SEP}{tenant_id}{CACHE_KEY_SEP}{user_id}"


async def drop_cached_levels(cache: ICacheService | None, keys: set[str]) -> None:
    """Delete the given access keys from the cache and clear the set."""
    if cache is None or not keys or not cache.is_available():
        keys.clear()
        return
    for key in sorted(keys):
        await cache.delete(key)
    keys.clear()


def _required_level(required: int | PermissionLevel) -> int:
    if isinstance(required, PermissionLevel):
        return required.level
    return required


class PermissionEvaluator:
    """Answers "may this user do X in this tenant" from the membership store.

    Read-only: no method mutates the store.
    """

    def __init__(
        self,
        store: IMembershipStore,
        cache: ICacheService | None = None,
        cache_ttl: int = 300,
        deferred_invalidations: set[str] | None = None,
    ) -> None:
        self.store = store
        self.cache = cache
        self.cache_ttl = cache_ttl
        self.deferred_invalidations = deferred_invalidations

    async def _load(
        self, user_id: str, tenant_id: str
    ) -> tuple[MembershipEntity | None, Access]:
        membership = await self.store.get_membership(tenant_id, user_id)
        explicit_levels = await self.store.get_explicit_levels(tenant_id, user_id)
        role = membership.role if membership is not None else None
        return membership, resolve_access(role, explicit_levels)

    async def resolve(self, user_id: str, tenant_id: str) -> Access:
        """Return the access source (explicit grant, role, or none) for the pair."""
        _, access = await self._load(user_id, tenant_id)
        return access

    async def effective_level(self, user_id: str, tenant_id: str) -> int:
        """Return the user's effective level in the tenant (0 when no access)."""
        if self.cache and self.cache.is_available():
            cached = await self.cache.get(access_key(tenant_id, user_id))
            if cached is not None:
                return int(cached)
        level = (await self.resolve(user_id, tenant_id)).level
        if self.cache and self.cache.is_available():
            await self.cache.set(access_key(tenant_id, user_id), level, ttl=self.cache_ttl)
        return level

    async def describe_access(self, user_id: str, tenant_id: str) -> AccessResult:
        """Return effective level plus its source, role and membership state (uncached)."""
        membership, access = await self._load(user_id, tenant_id)
        return AccessResult(
            tenant_id=tenant_id,
            user_id=user_id,
            effective_level=access.level,
            source=access.kind,
            role=membership.role if membership is not None else None,
            state=membership.state if membership is not None else None,
        )

    async def authorize(
        self, user_id: str, tenant_id: str, required_level: int | PermissionLevel
    ) -> bool:
        """Return True if effective_level >= required_level."""
        level = await self.effective_level(user_id, tenant_id)
        return level >= _required_level(required_level)

    async def authorize_role(
        self, user_id: str, tenant_id: str, one_of: Iterable[Role]
    ) -> bool:
        """Return True if the user has a membership whose role is in one_of."""
        membership = await self.store.get_membership(tenant_id, user_id)
        return membership is not None and membership.role in set(one_of)

    async def require_level(
        self,
        user_id: str,
        tenant_id: str,
        required_level: int | PermissionLevel,
        action: str,
    ) -> int:
        """Return the effective level or raise InsufficientPermissionException.

        Reads the store directly (never the cache): level checks gate mutations.
        """
        level = (await self.resolve(user_id, tenant_id)).level
        needed = _required_level(required_level)
        if level < needed:
            logger.warning(
                "Authorization denied: tenant=%s user=%s action=%s level=%s required=%s",
                tenant_id,
                user_id,
                action,
                level,
                needed,
            )
            raise InsufficientPermissionException(
                action=action, required=f"level>={needed}"
            )
        return level

    async def require_role(
        self,
        user_id: str,
        tenant_id: str,
        one_of: Iterable[Role],
        action: str,
    ) -> MembershipEntity:
        """Return the acting membership or raise InsufficientPermissionException.

        Reads the store directly (never the cache): role checks gate mutations.
        """
        allowed = set(one_of)
        membership = await self.store.get_membership(tenant_id, user_id)
        if membership is None or membership.role not in allowed:
            logger.warning(
                "Authorization denied: tenant=%s user=%s action=%s role=%s",
                tenant_id,
                user_id,
                action,
                membership.role.value if membership else None,
            )
            required = " or ".join(sorted(r.value for r in allowed))
            raise InsufficientPermissionException(action=action, required=required)
        return membership

    async def invalidate(self, user_id: str, tenant_id: str) -> None:
        """Drop the cached level for one (tenant, user) pair.

        With deferred_invalidations set, the key is only recorded; the owner
        of the transaction drops it after committing.
        """
        key = access_key(tenant_id, user_id)
        if self.deferred_invalidations is not None:
            self.deferred_invalidations.add(key)
            return
        if self.cache and self.cache.is_available():
            await self.cache.delete(key)
