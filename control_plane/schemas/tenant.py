"""Tenant API schemas."""

from datetime import datetime

from pydantic import BaseModel, Field

from control_plane.application.dtos.tenant import TenantResult, UserTenantResult
from control_plane.domain.enums import Role, SubscriptionStatus


class TenantCreateRequest(BaseModel):
    """Request body for creating a tenant; the caller becomes its owner.

    Name, subdomain and emoji rules are enforced by the service (400 with
    the offending field on violation). Subdomain is lowercased.
    """

    name: str = Field(..., max_length=255, description="Display name (2-100 chars after trim)")
    subdomain: str = Field(
        ...,
        max_length=255,
        description="Unique slug: 3-63 chars of a-z, 0-9 and single inner hyphens",
    )
    emoji: str = Field(default="🏢", max_length=32, description="Tenant emoji")


class TenantUpdateRequest(BaseModel):
    """Request body for changing tenant settings. Omitted fields stay as they are."""

    name: str | None = Field(default=None, max_length=255)
    emoji: str | None = Field(default=None, max_length=32)


class TenantResponse(BaseModel):
    """Tenant in API responses."""

    id: str
    name: str
    subdomain: str
    emoji: str
    owner_id: str
    subscription_status: SubscriptionStatus
    subscription_plan: str | None = None
    created_at: datetime

    @classmethod
    def from_result(cls, tenant: TenantResult) -> "TenantResponse":
        return cls(
            id=tenant.id,
            name=tenant.name,
            subdomain=tenant.subdomain,
            emoji=tenant.emoji,
            owner_id=tenant.owner_id,
            subscription_status=tenant.subscription_status,
            subscription_plan=tenant.subscription_plan,
            created_at=tenant.created_at,
        )


class UserTenantResponse(TenantResponse):
    """A tenant of the current user, with the user's role in it."""

    role: Role
    joined_at: datetime | None = None

    @classmethod
    def from_user_tenant(cls, item: UserTenantResult) -> "UserTenantResponse":
        base = TenantResponse.from_result(item.tenant).model_dump()
        return cls(**base, role=item.role, joined_at=item.joined_at)
