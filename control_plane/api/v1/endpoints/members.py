"""Membership API: invite/create, bulk provisioning, acceptance, role change, removal."""

from typing import Annotated

from fastapi import APIRouter, Depends, Request, Response

from control_plane.api.v1.dependencies import (
    CurrentUser,
    get_membership_service,
    get_provisioning_service,
)
from control_plane.application.dtos.membership import MemberInvite
from control_plane.application.dtos.provisioning import ProvisionRecord
from control_plane.application.services import MembershipService, ProvisioningService
from control_plane.core.limiter import limit_writes
from control_plane.domain.enums import ProvisionAction, Role
from control_plane.domain.exceptions import (
    InsufficientPermissionException,
    TenantNotFoundException,
)
from control_plane.schemas.membership import (
    BulkProvisionRequest,
    BulkProvisionResponse,
    MemberCreateRequest,
    MemberCreateResponse,
    MemberResponse,
    MembershipResponse,
    RoleUpdateRequest,
)

router = APIRouter()

MembershipServiceDep = Annotated[MembershipService, Depends(get_membership_service)]
ProvisioningServiceDep = Annotated[ProvisioningService, Depends(get_provisioning_service)]


@router.get("/{tenant_id}/members", response_model=list[MemberResponse])
async def list_members(
    tenant_id: str, current_user: CurrentUser, membership_svc: MembershipServiceDep
):
    """Members of the tenant with identity attributes. Any member may list.

    Unknown tenant and non-member get the same 403.
    """
    try:
        members = await membership_svc.list_members(
            tenant_id=tenant_id, acting_user_id=current_user.id
        )
    except TenantNotFoundException:
        raise InsufficientPermissionException(
            action="list_members", required=" or ".join(Role.values())
        ) from None
    return [MemberResponse.from_result(m) for m in members]


@router.post("/{tenant_id}/members", response_model=MemberCreateResponse, status_code=201)
@limit_writes
async def add_member(
    request: Request,
    response: Response,
    tenant_id: str,
    body: MemberCreateRequest,
    current_user: CurrentUser,
    provisioning_svc: ProvisioningServiceDep,
):
    """Add one user (creating the identity when needed). 200 when already a member.

    The membership is committed before the invitation is sent.
    """
    outcome = await provisioning_svc.provision_member(
        tenant_id=tenant_id,
        invite=MemberInvite(
            email=str(body.email),
            full_name=body.full_name.strip(),
            role=body.role,
            temporary_password=(
                body.temporary_password.get_secret_value()
                if body.temporary_password is not None
                else None
            ),
        ),
        acting_user_id=current_user.id,
        send_invitation=body.send_invitation,
    )
    if outcome.action == ProvisionAction.ALREADY_MEMBER:
        response.status_code = 200
    return MemberCreateResponse.from_outcome(outcome)


@router.post("/{tenant_id}/members/bulk", response_model=BulkProvisionResponse)
@limit_writes
async def bulk_provision(
    request: Request,
    tenant_id: str,
    body: BulkProvisionRequest,
    current_user: CurrentUser,
    provisioning_svc: ProvisioningServiceDep,
):
    """Provision a batch of users. Per-user failures are itemized, never raised.

    Unknown tenant and non-member get the same 403.
    """
    records = [
        ProvisionRecord(
            email=str(u.email),
            full_name=u.full_name,
            role=u.role,
            temporary_password=(
                u.temporary_password.get_secret_value()
                if u.temporary_password is not None
                else None
            ),
        )
        for u in body.users
    ]
    try:
        result = await provisioning_svc.bulk_provision(
            tenant_id=tenant_id,
            records=records,
            acting_user_id=current_user.id,
            send_invitations=body.send_invitations,
        )
    except TenantNotFoundException:
        raise InsufficientPermissionException(
            action="bulk_provision", required=" or ".join(Role.values())
        ) from None
    return BulkProvisionResponse.from_result(result)


@router.post("/{tenant_id}/invitation/accept", response_model=MembershipResponse)
@limit_writes
async def accept_invitation(
    request: Request,
    tenant_id: str,
    current_user: CurrentUser,
    membership_svc: MembershipServiceDep,
):
    """Accept the caller's pending invitation to the tenant."""
    membership = await membership_svc.accept_invitation(
        tenant_id=tenant_id, user_id=current_user.id
    )
    return MembershipResponse.from_entity(membership)


@router.patch("/{tenant_id}/members/{user_id}", response_model=MembershipResponse)
@limit_writes
async def update_member_role(
    request: Request,
    tenant_id: str,
    user_id: str,
    body: RoleUpdateRequest,
    current_user: CurrentUser,
    membership_svc: MembershipServiceDep,
):
    """Change a member's role."""
    membership = await membership_svc.update_role(
        tenant_id=tenant_id,
        target_user_id=user_id,
        new_role=body.role,
        acting_user_id=current_user.id,
    )
    return MembershipResponse.from_entity(membership)


@router.delete("/{tenant_id}/members/{user_id}", status_code=204)
@limit_writes
async def remove_member(
    request: Request,
    tenant_id: str,
    user_id: str,
    current_user: CurrentUser,
    membership_svc: MembershipServiceDep,
) -> Response:
    """Remove a member (and their explicit grants) from the tenant."""
    await membership_svc.remove_member(
        tenant_id=tenant_id, target_user_id=user_id, acting_user_id=current_user.id
    )
    return Response(status_code=204)
