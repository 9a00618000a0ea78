"""Tests for the domain exception taxonomy and its HTTP status mapping."""

import pytest

from control_plane.core.exception_handlers import status_for
from control_plane.domain.exceptions import (
    ConflictException,
    ControlPlaneException,
    ForbiddenException,
    InsufficientPermissionException,
    InvariantViolationException,
    InvitationNotFoundException,
    MembershipAlreadyExistsException,
    MembershipNotFoundException,
    PermissionGrantAlreadyExistsException,
    ResourceNotFoundException,
    SqlNotConfiguredException,
    TenantAlreadyExistsException,
    TenantNotFoundException,
    UnauthenticatedException,
    UpstreamFailureException,
    ValidationException,
)


def test_base_defaults_error_code_to_class_name() -> None:
    exc = ControlPlaneException("boom")
    assert exc.error_code == "ControlPlaneException"
    assert exc.to_dict() == {
        "error": "ControlPlaneException",
        "message": "boom",
        "details": {},
    }


def test_insufficient_permission_builds_message() -> None:
    exc = InsufficientPermissionException(action="update_role", required="owner")
    assert exc.message == "Insufficient permission: update_role requires owner"
    assert exc.details == {"action": "update_role", "required": "owner"}


def test_invariant_violation_carries_context() -> None:
    exc = InvariantViolationException(
        "Tenant must keep at least one owner",
        invariant="at_least_one_owner",
        tenant_id="t1",
    )
    assert exc.details == {"invariant": "at_least_one_owner", "tenant_id": "t1"}


def test_conflict_subclasses() -> None:
    for exc in (
        MembershipAlreadyExistsException("t1", "u1"),
        PermissionGrantAlreadyExistsException("t1", "u1", "view"),
        TenantAlreadyExistsException("acme"),
    ):
        assert isinstance(exc, ConflictException)


@pytest.mark.parametrize(
    ("exc", "status"),
    [
        (ValidationException("bad", field="x"), 400),
        (UnauthenticatedException(), 401),
        (InsufficientPermissionException(), 403),
        (ForbiddenException("no", reason="self_removal"), 403),
        (ResourceNotFoundException("identity", "u1"), 404),
        (TenantNotFoundException("t1"), 404),
        (MembershipNotFoundException("t1", "u1"), 404),
        (InvitationNotFoundException("t1", "u1"), 404),
        (InvariantViolationException("x", invariant="at_least_one_owner"), 409),
        (TenantAlreadyExistsException("acme"), 409),
        (ConflictException("x", error_code="EMAIL_ALREADY_LINKED"), 409),
        (UpstreamFailureException("identity_provider", "create_identity"), 502),
        (SqlNotConfiguredException(), 503),
        (ControlPlaneException("unknown"), 400),
    ],
)
def test_status_for(exc: ControlPlaneException, status: int) -> None:
    assert status_for(exc) == status
