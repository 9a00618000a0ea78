"""Tenant API: thin routes delegating to TenantService and PermissionEvaluator."""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Request, Response

from control_plane.api.v1.dependencies import (
    CurrentUser,
    get_permission_evaluator,
    get_tenant_service,
)
from control_plane.application.services import PermissionEvaluator, TenantService
from control_plane.core.limiter import limit_create_tenant, limit_writes
from control_plane.domain.enums import Role
from control_plane.domain.exceptions import (
    InsufficientPermissionException,
    TenantNotFoundException,
)
from control_plane.schemas.permission import AccessResponse
from control_plane.schemas.tenant import (
    TenantCreateRequest,
    TenantResponse,
    TenantUpdateRequest,
    UserTenantResponse,
)

router = APIRouter()

TenantServiceDep = Annotated[TenantService, Depends(get_tenant_service)]


@router.post("", response_model=TenantResponse, status_code=201)
@limit_create_tenant
async def create_tenant(
    request: Request,
    body: TenantCreateRequest,
    current_user: CurrentUser,
    tenant_svc: TenantServiceDep,
):
    """Create a tenant; the caller becomes its owner (active immediately)."""
    tenant = await tenant_svc.create_tenant(
        name=body.name,
        subdomain=body.subdomain,
        emoji=body.emoji,
        acting_user=current_user,
    )
    return TenantResponse.from_result(tenant)


@router.get("", response_model=list[UserTenantResponse])
async def list_my_tenants(current_user: CurrentUser, tenant_svc: TenantServiceDep):
    """Tenants the caller belongs to (pending invitations included), newest first."""
    items = await tenant_svc.list_user_tenants(user_id=current_user.id)
    return [UserTenantResponse.from_user_tenant(item) for item in items]


@router.get("/by-subdomain/{subdomain}", response_model=TenantResponse)
async def get_tenant_by_subdomain(subdomain: str, tenant_svc: TenantServiceDep):
    """Resolve a subdomain to its tenant. Public: used for subdomain routing."""
    tenant = await tenant_svc.get_by_subdomain(subdomain)
    if tenant is None:
        raise HTTPException(status_code=404, detail="Tenant not found")
    return TenantResponse.from_result(tenant)


@router.get("/{tenant_id}", response_model=TenantResponse)
async def get_tenant(tenant_id: str, current_user: CurrentUser, tenant_svc: TenantServiceDep):
    """Tenant details; members only."""
    tenant = await tenant_svc.get_tenant(tenant_id=tenant_id, acting_user_id=current_user.id)
    return TenantResponse.from_result(tenant)


@router.patch("/{tenant_id}", response_model=TenantResponse)
@limit_writes
async def update_tenant(
    request: Request,
    tenant_id: str,
    body: TenantUpdateRequest,
    current_user: CurrentUser,
    tenant_svc: TenantServiceDep,
):
    """Rename the tenant or change its emoji; owners only."""
    tenant = await tenant_svc.update_tenant(
        tenant_id=tenant_id,
        acting_user_id=current_user.id,
        name=body.name,
        emoji=body.emoji,
    )
    return TenantResponse.from_result(tenant)


@router.delete("/{tenant_id}", status_code=204)
@limit_writes
async def delete_tenant(
    request: Request,
    tenant_id: str,
    current_user: CurrentUser,
    tenant_svc: TenantServiceDep,
) -> Response:
    """Delete the tenant with its memberships and grants; owners only."""
    await tenant_svc.delete_tenant(tenant_id=tenant_id, acting_user_id=current_user.id)
    return Response(status_code=204)


@router.get("/{tenant_id}/access", response_model=AccessResponse)
async def get_my_access(
    tenant_id: str,
    current_user: CurrentUser,
    tenant_svc: TenantServiceDep,
    evaluator: Annotated[PermissionEvaluator, Depends(get_permission_evaluator)],
):
    """The caller's effective level in the tenant and what it allows.

    Non-members and unknown tenants get the same 403.
    """
    try:
        await tenant_svc.get_tenant(tenant_id=tenant_id, acting_user_id=current_user.id)
    except TenantNotFoundException:
        raise InsufficientPermissionException(
            action="get_access", required=" or ".join(Role.values())
        ) from None
    access = await evaluator.describe_access(current_user.id, tenant_id)
    return AccessResponse.from_result(access)
