"""Membership and bulk provisioning API schemas."""

from datetime import datetime

from pydantic import BaseModel, EmailStr, Field, SecretStr, field_validator

from control_plane.application.dtos.membership import InviteOutcome, MemberResult
from control_plane.application.dtos.provisioning import BulkProvisionResult
from control_plane.core.config import get_settings
from control_plane.domain.entities.membership import MembershipEntity
from control_plane.domain.enums import MembershipState, ProvisionAction, Role

MIN_PASSWORD_LENGTH = 8


def _check_password(v: SecretStr | None) -> SecretStr | None:
    if v is not None and len(v.get_secret_value()) < MIN_PASSWORD_LENGTH:
        raise ValueError(
            f"temporary_password must be at least {MIN_PASSWORD_LENGTH} characters"
        )
    return v


class MembershipResponse(BaseModel):
    """A membership row."""

    id: str
    tenant_id: str
    user_id: str
    role: Role
    state: MembershipState
    invited_by: str | None = None
    invited_at: datetime | None = None
    joined_at: datetime | None = None
    created_at: datetime

    @classmethod
    def from_entity(cls, m: MembershipEntity) -> "MembershipResponse":
        return cls(
            id=m.id,
            tenant_id=m.tenant_id,
            user_id=m.user_id,
            role=m.role,
            state=m.state,
            invited_by=m.invited_by,
            invited_at=m.invited_at,
            joined_at=m.joined_at,
            created_at=m.created_at,
        )


class MemberResponse(MembershipResponse):
    """A membership with the member's identity attributes."""

    email: str
    full_name: str | None = None
    avatar_url: str | None = None

    @classmethod
    def from_result(cls, member: MemberResult) -> "MemberResponse":
        base = MembershipResponse.from_entity(member.membership).model_dump()
        return cls(
            **base,
            email=member.email,
            full_name=member.full_name,
            avatar_url=member.avatar_url,
        )


class MemberCreateRequest(BaseModel):
    """Request body for adding one user to a tenant (invite or direct add)."""

    email: EmailStr
    full_name: str = Field(..., min_length=1, max_length=200)
    role: Role
    send_invitation: bool = Field(
        default=True,
        description="Send an invitation email; the membership stays pending until accepted",
    )
    temporary_password: SecretStr | None = Field(
        default=None, description="Optional initial password for a new identity (min 8 chars)"
    )

    @field_validator("temporary_password")
    @classmethod
    def validate_password_length(cls, v: SecretStr | None) -> SecretStr | None:
        return _check_password(v)


class MemberCreateResponse(BaseModel):
    """Outcome of adding one user."""

    action: ProvisionAction
    user_id: str
    invitation_sent: bool
    membership: MembershipResponse

    @classmethod
    def from_outcome(cls, outcome: InviteOutcome) -> "MemberCreateResponse":
        return cls(
            action=outcome.action,
            user_id=outcome.user_id,
            invitation_sent=outcome.invitation_sent,
            membership=MembershipResponse.from_entity(outcome.membership),
        )


class RoleUpdateRequest(BaseModel):
    """Request body for changing a member's role."""

    role: Role


class BulkUserItem(BaseModel):
    """One user in a bulk provisioning request."""

    email: EmailStr
    full_name: str = Field(..., min_length=1, max_length=200)
    role: Role
    temporary_password: SecretStr | None = None

    @field_validator("temporary_password")
    @classmethod
    def validate_password_length(cls, v: SecretStr | None) -> SecretStr | None:
        return _check_password(v)


class BulkProvisionRequest(BaseModel):
    """Request body for bulk provisioning (1..bulk_max_batch_size users)."""

    users: list[BulkUserItem] = Field(..., min_length=1)
    send_invitations: bool = True

    @field_validator("users")
    @classmethod
    def validate_batch_size(cls, v: list[BulkUserItem]) -> list[BulkUserItem]:
        limit = get_settings().bulk_max_batch_size
        if len(v) > limit:
            raise ValueError(f"Maximum {limit} users per batch")
        return v


class BulkProvisionResultItem(BaseModel):
    email: str
    success: bool
    action: ProvisionAction | None = None
    user_id: str | None = None
    membership_id: str | None = None
    invitation_sent: bool = False
    error: str | None = None
    error_code: str | None = None


class BulkProvisionSummary(BaseModel):
    total: int
    successful: int
    failed: int
    created: int
    added_existing: int
    already_members: int
    invitations_sent: int


class BulkProvisionResponse(BaseModel):
    """Itemized results (input order) plus summary. Always 200 once the batch is accepted."""

    message: str
    results: list[BulkProvisionResultItem]
    summary: BulkProvisionSummary

    @classmethod
    def from_result(cls, result: BulkProvisionResult) -> "BulkProvisionResponse":
        s = result.summary
        return cls(
            message=result.message,
            results=[
                BulkProvisionResultItem(
                    email=r.email,
                    success=r.success,
                    action=r.action,
                    user_id=r.user_id,
                    membership_id=r.membership_id,
                    invitation_sent=r.invitation_sent,
                    error=r.error,
                    error_code=r.error_code,
                )
                for r in result.results
            ],
            summary=BulkProvisionSummary(
                total=s.total,
                successful=s.successful,
                failed=s.failed,
                created=s.created,
                added_existing=s.added_existing,
                already_members=s.already_members,
                invitations_sent=s.invitations_sent,
            ),
        )
