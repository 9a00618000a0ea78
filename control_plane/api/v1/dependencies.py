"""Presentation-layer dependency injection (composition root).

Provides FastAPI Depends() for the request session, repositories, the
identity provider and the application services. Routes depend only on
these dependencies, not on infrastructure directly.

When database_backend is 'postgres', repositories use SQLAlchemy on one
transactional session per request. When it is 'memory', they share a
process-wide InMemoryDatabase. identity_backend switches between the
HTTP identity provider and the in-memory one the same way.

Access-cache invalidations recorded during a transaction are dropped
after it ends. Member provisioning gets a membership scope instead of the
request session: one committed transaction per added member.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, AsyncIterator
from contextlib import asynccontextmanager
from typing import Annotated

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from control_plane.application.dtos.user import UserIdentity
from control_plane.application.interfaces.repositories import (
    IMembershipStore,
    ITenantRepository,
    IUserDirectory,
)
from control_plane.application.interfaces.services import ICacheService, IIdentityProvider
from control_plane.application.services import (
    MembershipService,
    PermissionEvaluator,
    ProvisioningService,
    TenantService,
    drop_cached_levels,
)
from control_plane.application.services.provisioning_service import MembershipScope
from control_plane.core.config import get_settings
from control_plane.domain.exceptions import UnauthenticatedException
from control_plane.infrastructure.external.identity import HttpIdentityProvider
from control_plane.infrastructure.memory import (
    InMemoryDatabase,
    InMemoryIdentityProvider,
    InMemoryMembershipStore,
    InMemoryTenantRepository,
    InMemoryUserDirectory,
)
from control_plane.infrastructure.persistence.database import transaction_scope
from control_plane.infrastructure.persistence.repositories import (
    MembershipRepository,
    TenantRepository,
    UserRepository,
)

_http_bearer = HTTPBearer(auto_error=False)

# Process-wide state for the memory backends (created on first use).
_memory_database: InMemoryDatabase | None = None
_memory_identity_provider: InMemoryIdentityProvider | None = None


def get_memory_database() -> InMemoryDatabase:
    """Shared InMemoryDatabase for DATABASE_BACKEND=memory."""
    global _memory_database
    if _memory_database is None:
        _memory_database = InMemoryDatabase()
    return _memory_database


def get_memory_identity_provider() -> InMemoryIdentityProvider:
    """Shared InMemoryIdentityProvider for IDENTITY_BACKEND=memory."""
    global _memory_identity_provider
    if _memory_identity_provider is None:
        _memory_identity_provider = InMemoryIdentityProvider()
    return _memory_identity_provider


def reset_memory_backends() -> None:
    """Drop the memory backends' state (tests)."""
    global _memory_database, _memory_identity_provider
    _memory_database = None
    _memory_identity_provider = None


# ---- Session and repositories ----


def get_cache(request: Request) -> ICacheService | None:
    """Redis cache set up by the lifespan, or None when disabled."""
    return getattr(request.app.state, "cache", None)


def get_pending_invalidations(request: Request) -> set[str]:
    """Access-cache keys to drop once the request transaction has ended."""
    pending = getattr(request.state, "pending_invalidations", None)
    if pending is None:
        pending = set()
        request.state.pending_invalidations = pending
    return pending


async def get_session(request: Request) -> AsyncGenerator[AsyncSession | None, None]:
    """Transactional session for postgres; None for the memory backend.

    Commits when the route returns, rolls back when it raises. Cached
    access levels invalidated by the request are dropped afterwards.
    """
    pending = get_pending_invalidations(request)
    try:
        if get_settings().database_backend == "memory":
            yield None
        else:
            async with transaction_scope() as session:
                yield session
    finally:
        await drop_cached_levels(get_cache(request), pending)


SessionDep = Annotated[AsyncSession | None, Depends(get_session)]


def get_membership_store(session: SessionDep) -> IMembershipStore:
    if session is None:
        return InMemoryMembershipStore(get_memory_database())
    return MembershipRepository(session)


def get_tenant_repo(session: SessionDep) -> ITenantRepository:
    if session is None:
        return InMemoryTenantRepository(get_memory_database())
    return TenantRepository(session)


def get_user_directory(session: SessionDep) -> IUserDirectory:
    if session is None:
        return InMemoryUserDirectory(get_memory_database())
    return UserRepository(session)


def get_identity_provider(request: Request) -> IIdentityProvider:
    """Identity provider for the configured backend (shared HTTP client when available)."""
    settings = get_settings()
    if settings.identity_backend == "memory":
        return get_memory_identity_provider()
    return HttpIdentityProvider(
        base_url=settings.identity_url,
        service_key=settings.identity_service_key.get_secret_value(),
        http_client=getattr(request.app.state, "identity_http_client", None),
        timeout=settings.identity_timeout_seconds,
    )


# ---- Application services ----


def get_permission_evaluator(
    store: Annotated[IMembershipStore, Depends(get_membership_store)],
    cache: Annotated[ICacheService | None, Depends(get_cache)],
    pending: Annotated[set[str], Depends(get_pending_invalidations)],
) -> PermissionEvaluator:
    return PermissionEvaluator(
        store,
        cache=cache,
        cache_ttl=get_settings().cache_ttl_permissions,
        deferred_invalidations=pending,
    )


def _build_membership_service(
    store: IMembershipStore,
    tenant_repo: ITenantRepository,
    user_directory: IUserDirectory,
    identity_provider: IIdentityProvider,
    evaluator: PermissionEvaluator,
) -> MembershipService:
    settings = get_settings()
    return MembershipService(
        store=store,
        tenant_repo=tenant_repo,
        user_directory=user_directory,
        identity_provider=identity_provider,
        evaluator=evaluator,
        invitation_redirect_url=settings.invitation_redirect_url,
        identity_timeout=settings.identity_timeout_seconds,
    )


def get_membership_service(
    store: Annotated[IMembershipStore, Depends(get_membership_store)],
    tenant_repo: Annotated[ITenantRepository, Depends(get_tenant_repo)],
    user_directory: Annotated[IUserDirectory, Depends(get_user_directory)],
    identity_provider: Annotated[IIdentityProvider, Depends(get_identity_provider)],
    evaluator: Annotated[PermissionEvaluator, Depends(get_permission_evaluator)],
) -> MembershipService:
    return _build_membership_service(
        store, tenant_repo, user_directory, identity_provider, evaluator
    )


def get_membership_scope(
    identity_provider: Annotated[IIdentityProvider, Depends(get_identity_provider)],
    cache: Annotated[ICacheService | None, Depends(get_cache)],
) -> MembershipScope:
    """Factory of MembershipServices that each commit on their own.

    Leaving the scope commits (postgres) and then drops the access-cache
    keys the service invalidated; an exception rolls the unit back.
    """
    settings = get_settings()

    @asynccontextmanager
    async def scope() -> AsyncIterator[MembershipService]:
        pending: set[str] = set()
        try:
            if settings.database_backend == "memory":
                db = get_memory_database()
                store: IMembershipStore = InMemoryMembershipStore(db)
                evaluator = PermissionEvaluator(
                    store,
                    cache=cache,
                    cache_ttl=settings.cache_ttl_permissions,
                    deferred_invalidations=pending,
                )
                yield _build_membership_service(
                    store,
                    InMemoryTenantRepository(db),
                    InMemoryUserDirectory(db),
                    identity_provider,
                    evaluator,
                )
            else:
                async with transaction_scope() as session:
                    store = MembershipRepository(session)
                    evaluator = PermissionEvaluator(
                        store,
                        cache=cache,
                        cache_ttl=settings.cache_ttl_permissions,
                        deferred_invalidations=pending,
                    )
                    yield _build_membership_service(
                        store,
                        TenantRepository(session),
                        UserRepository(session),
                        identity_provider,
                        evaluator,
                    )
        finally:
            await drop_cached_levels(cache, pending)

    return scope


def get_provisioning_service(
    membership_scope: Annotated[MembershipScope, Depends(get_membership_scope)],
    tenant_repo: Annotated[ITenantRepository, Depends(get_tenant_repo)],
    evaluator: Annotated[PermissionEvaluator, Depends(get_permission_evaluator)],
) -> ProvisioningService:
    return ProvisioningService(
        membership_scope=membership_scope,
        tenant_repo=tenant_repo,
        evaluator=evaluator,
        max_batch_size=get_settings().bulk_max_batch_size,
    )


def get_tenant_service(
    tenant_repo: Annotated[ITenantRepository, Depends(get_tenant_repo)],
    user_directory: Annotated[IUserDirectory, Depends(get_user_directory)],
    evaluator: Annotated[PermissionEvaluator, Depends(get_permission_evaluator)],
) -> TenantService:
    return TenantService(tenant_repo, user_directory, evaluator)


# ---- Authentication ----


async def get_current_user_optional(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(_http_bearer)],
    identity_provider: Annotated[IIdentityProvider, Depends(get_identity_provider)],
) -> UserIdentity | None:
    """Return the caller from the bearer token if present and valid; else None."""
    if not credentials:
        return None
    return await identity_provider.get_current_user(credentials.credentials)


async def get_current_user(
    current_user: Annotated[UserIdentity | None, Depends(get_current_user_optional)],
) -> UserIdentity:
    """Return the caller; raise UnauthenticatedException (401) if missing or invalid."""
    if current_user is None:
        raise UnauthenticatedException()
    return current_user


CurrentUser = Annotated[UserIdentity, Depends(get_current_user)]
