"""Permission level, explicit grant and access API schemas."""

from datetime import datetime

from pydantic import BaseModel

from control_plane.application.dtos.permission import AccessResult, PermissionGrantResult
from control_plane.domain.enums import MembershipState, PermissionLevel, Role


class PermissionLevelResponse(BaseModel):
    name: PermissionLevel
    level: int
    description: str


class PermissionGrantRequest(BaseModel):
    """Request body for granting an explicit permission level."""

    level: PermissionLevel


class PermissionGrantResponse(BaseModel):
    id: str
    tenant_id: str
    user_id: str
    level: PermissionLevel
    granted_by: str | None = None
    granted_at: datetime

    @classmethod
    def from_result(cls, grant: PermissionGrantResult) -> "PermissionGrantResponse":
        return cls(
            id=grant.id,
            tenant_id=grant.tenant_id,
            user_id=grant.user_id,
            level=grant.level,
            granted_by=grant.granted_by,
            granted_at=grant.granted_at,
        )


class AccessResponse(BaseModel):
    """The caller's effective access in a tenant, with per-level booleans."""

    tenant_id: str
    user_id: str
    effective_level: int
    source: str
    role: Role | None = None
    state: MembershipState | None = None
    permissions: dict[str, bool]

    @classmethod
    def from_result(cls, access: AccessResult) -> "AccessResponse":
        return cls(
            tenant_id=access.tenant_id,
            user_id=access.user_id,
            effective_level=access.effective_level,
            source=access.source,
            role=access.role,
            state=access.state,
            permissions={p.value: access.allows(p) for p in PermissionLevel},
        )
