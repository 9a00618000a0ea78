"""Pytest configuration and fixtures for the control plane.

Tests run against the memory backends (no Postgres, Redis or identity
provider needed): the environment below is set before any settings are
loaded. HTTP tests use control_plane.main:app through httpx ASGITransport.
"""

import os

os.environ["DATABASE_BACKEND"] = "memory"
os.environ["IDENTITY_BACKEND"] = "memory"
os.environ["SECRET_KEY"] = "test-secret-key-not-for-production"
os.environ["REDIS_ENABLED"] = "false"
os.environ["TELEMETRY_ENABLED"] = "false"

from contextlib import asynccontextmanager  # noqa: E402
from dataclasses import dataclass  # noqa: E402

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402

from control_plane.core.config import get_settings  # noqa: E402

get_settings.cache_clear()

from control_plane.api.v1.dependencies import (  # noqa: E402
    get_memory_database,
    get_memory_identity_provider,
    reset_memory_backends,
)
from control_plane.application.dtos.tenant import TenantResult  # noqa: E402
from control_plane.application.dtos.user import UserIdentity  # noqa: E402
from control_plane.application.services import (  # noqa: E402
    MembershipService,
    PermissionEvaluator,
    ProvisioningService,
    TenantService,
)
from control_plane.core.limiter import limiter  # noqa: E402
from control_plane.domain.enums import Role  # noqa: E402
from control_plane.domain.entities.membership import MembershipEntity  # noqa: E402
from control_plane.infrastructure.memory import (  # noqa: E402
    InMemoryDatabase,
    InMemoryIdentityProvider,
    InMemoryMembershipStore,
    InMemoryTenantRepository,
    InMemoryUserDirectory,
)
from control_plane.infrastructure.security.jwt import create_access_token  # noqa: E402
from control_plane.main import app  # noqa: E402
from control_plane.shared.utils.datetime import utc_now  # noqa: E402

# Functional tests run without rate limits.
limiter.enabled = False

REDIRECT_URL = "http://localhost:3000/auth/callback"


@dataclass
class Engine:
    """Services wired to one in-memory database and identity provider."""

    db: InMemoryDatabase
    identity: InMemoryIdentityProvider
    store: InMemoryMembershipStore
    tenants: InMemoryTenantRepository
    users: InMemoryUserDirectory
    evaluator: PermissionEvaluator
    memberships: MembershipService
    provisioning: ProvisioningService
    tenant_service: TenantService

    async def create_tenant(
        self, owner: UserIdentity, subdomain: str = "acme"
    ) -> TenantResult:
        return await self.tenant_service.create_tenant(
            name="Acme Corp", subdomain=subdomain, emoji="🏢", acting_user=owner
        )

    async def add_member(
        self, tenant_id: str, user: UserIdentity, role: Role
    ) -> MembershipEntity:
        """Seed an ACTIVE membership directly in the store (bypasses authorization)."""
        await self.users.save(user)
        return await self.store.create_membership(
            MembershipEntity.joined(
                id=f"m-{user.id}",
                tenant_id=tenant_id,
                user_id=user.id,
                role=role,
                now=utc_now(),
            )
        )


@pytest.fixture
def engine() -> Engine:
    """Application services over fresh memory backends."""
    db = InMemoryDatabase()
    identity = InMemoryIdentityProvider()
    store = InMemoryMembershipStore(db)
    tenants = InMemoryTenantRepository(db)
    users = InMemoryUserDirectory(db)
    evaluator = PermissionEvaluator(store)
    memberships = MembershipService(
        store=store,
        tenant_repo=tenants,
        user_directory=users,
        identity_provider=identity,
        evaluator=evaluator,
        invitation_redirect_url=REDIRECT_URL,
        identity_timeout=1.0,
    )

    @asynccontextmanager
    async def membership_scope():
        yield memberships

    return Engine(
        db=db,
        identity=identity,
        store=store,
        tenants=tenants,
        users=users,
        evaluator=evaluator,
        memberships=memberships,
        provisioning=ProvisioningService(
            membership_scope, tenants, evaluator, max_batch_size=50
        ),
        tenant_service=TenantService(tenants, users, evaluator),
    )


@pytest.fixture
def owner() -> UserIdentity:
    return UserIdentity(id="user-owner", email="owner@example.com", full_name="Olivia Owner")


@pytest.fixture
def manager() -> UserIdentity:
    return UserIdentity(id="user-manager", email="manager@example.com", full_name="Max Manager")


@pytest.fixture
def auditor() -> UserIdentity:
    return UserIdentity(id="user-auditor", email="auditor@example.com", full_name="Ada Auditor")


# ---- HTTP ----


@pytest.fixture(autouse=True)
def _reset_memory_backends():
    """Each test starts with empty process-wide memory backends."""
    reset_memory_backends()
    yield
    reset_memory_backends()


@pytest.fixture
async def client() -> AsyncClient:
    """Async HTTP client against the FastAPI app (ASGI)."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


def auth_headers(user: UserIdentity) -> dict[str, str]:
    """Bearer headers carrying a token for user (same shape the identity provider issues)."""
    token = create_access_token(
        {
            "sub": user.id,
            "email": user.email,
            "user_metadata": {"full_name": user.full_name},
        }
    )
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def auth():
    """auth(user) -> bearer headers for that user."""
    return auth_headers


@pytest.fixture
def memory_identity() -> InMemoryIdentityProvider:
    """The identity provider the app uses for this test."""
    return get_memory_identity_provider()


@pytest.fixture
def memory_db() -> InMemoryDatabase:
    """The database the app uses for this test."""
    return get_memory_database()
