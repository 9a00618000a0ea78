"""Permission API: level catalog and explicit per-member grants."""

from typing import Annotated

from fastapi import APIRouter, Depends, Request, Response

from control_plane.api.v1.dependencies import CurrentUser, get_membership_service
from control_plane.application.services import MembershipService
from control_plane.core.limiter import limit_writes
from control_plane.domain.enums import PermissionLevel
from control_plane.schemas.permission import (
    PermissionGrantRequest,
    PermissionGrantResponse,
    PermissionLevelResponse,
)

router = APIRouter()

MembershipServiceDep = Annotated[MembershipService, Depends(get_membership_service)]


@router.get("/permission-levels", response_model=list[PermissionLevelResponse])
async def list_permission_levels():
    """Catalog of permission levels, lowest first."""
    return [
        PermissionLevelResponse(name=p, level=p.level, description=p.description)
        for p in sorted(PermissionLevel, key=lambda p: p.level)
    ]


@router.get(
    "/tenants/{tenant_id}/members/{user_id}/permissions",
    response_model=list[PermissionGrantResponse],
)
async def list_member_permissions(
    tenant_id: str,
    user_id: str,
    current_user: CurrentUser,
    membership_svc: MembershipServiceDep,
):
    """Explicit grants of a member, highest level first."""
    grants = await membership_svc.list_grants(
        tenant_id=tenant_id, target_user_id=user_id, acting_user_id=current_user.id
    )
    return [PermissionGrantResponse.from_result(g) for g in grants]


@router.post(
    "/tenants/{tenant_id}/members/{user_id}/permissions",
    response_model=PermissionGrantResponse,
    status_code=201,
)
@limit_writes
async def grant_permission(
    request: Request,
    tenant_id: str,
    user_id: str,
    body: PermissionGrantRequest,
    current_user: CurrentUser,
    membership_svc: MembershipServiceDep,
):
    """Grant an explicit permission level to a member."""
    grant = await membership_svc.grant_permission(
        tenant_id=tenant_id,
        target_user_id=user_id,
        level=body.level,
        acting_user_id=current_user.id,
    )
    return PermissionGrantResponse.from_result(grant)


@router.delete(
    "/tenants/{tenant_id}/members/{user_id}/permissions/{level}", status_code=204
)
@limit_writes
async def revoke_permission(
    request: Request,
    tenant_id: str,
    user_id: str,
    level: PermissionLevel,
    current_user: CurrentUser,
    membership_svc: MembershipServiceDep,
) -> Response:
    """Revoke an explicit permission level from a member."""
    await membership_svc.revoke_permission(
        tenant_id=tenant_id,
        target_user_id=user_id,
        level=level,
        acting_user_id=current_user.id,
    )
    return Response(status_code=204)
