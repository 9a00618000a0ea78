"""DTOs for tenant use cases (no dependency on ORM)."""

from dataclasses import dataclass
from datetime import datetime

from control_plane.domain.enums import Role, SubscriptionStatus


@dataclass(frozen=True)
class TenantResult:
    """Tenant read-model (result of create_tenant_with_owner, get_by_id, get_by_subdomain)."""

    id: str
    name: str
    subdomain: str
    emoji: str
    owner_id: str
    created_at: datetime
    subscription_status: SubscriptionStatus = SubscriptionStatus.TRIAL
    subscription_plan: str | None = None


@dataclass(frozen=True)
class UserTenantResult:
    """A tenant the user belongs to, with the user's role in it."""

    tenant: TenantResult
    role: Role
    joined_at: datetime | None
