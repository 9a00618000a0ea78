"""Domain exceptions for the tenant control plane.

Defines domain-level exceptions that represent authorization failures and
business rule violations. These exceptions are independent of
infrastructure concerns. The presentation layer maps them to HTTP
responses in exception handlers (see control_plane.core.exception_handlers).
"""

from typing import Any


class ControlPlaneException(Exception):
    """Base exception for all control plane errors.

    All custom exceptions inherit from this class so callers can handle
    the whole taxonomy in one place. Presentation layer maps these to
    HTTP responses using message, error_code, and details.

    Attributes:
        message: Human-readable error description.
        error_code: Machine-readable error code.
        details: Additional error context (e.g. tenant_id, user_id).
    """

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize the exception.

        Args:
            message: Human-readable error description.
            error_code: Optional machine-readable code; defaults to class name.
            details: Optional dict of extra context.
        """
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Return a serializable representation for API error bodies."""
        return {
            "error": self.error_code,
            "message": self.message,
            "details": self.details,
        }


class ValidationException(ControlPlaneException):
    """Raised when input validation fails (e.g. invalid subdomain or batch size)."""

    def __init__(self, message: str, field: str | None = None) -> None:
        """Initialize with message and optional field name.

        Args:
            message: Description of the validation failure.
            field: Optional field or attribute that failed validation.
        """
        details = {"field": field} if field else {}
        super().__init__(message, "VALIDATION_ERROR", details)


class UnauthenticatedException(ControlPlaneException):
    """Raised when there is no caller identity (missing or invalid token)."""

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(message, "UNAUTHENTICATED")


class InsufficientPermissionException(ControlPlaneException):
    """Raised when the acting user's role or level is too low for the action."""

    def __init__(
        self,
        action: str | None = None,
        required: str | None = None,
        message: str = "Insufficient permission",
    ) -> None:
        """Initialize with the attempted action and the requirement that failed.

        Args:
            action: Action that was attempted (e.g. 'update_role').
            required: Human-readable requirement (e.g. 'owner', 'level>=4').
            message: Human-readable message; built from action/required when both given.
        """
        if action and required:
            message = f"Insufficient permission: {action} requires {required}"
        details: dict[str, Any] = {}
        if action:
            details["action"] = action
        if required:
            details["required"] = required
        super().__init__(message, "INSUFFICIENT_PERMISSION", details)


class ForbiddenException(ControlPlaneException):
    """Raised when an action is structurally disallowed regardless of level.

    Examples: removing an owner through the member-removal path, removing
    yourself.
    """

    def __init__(self, message: str, reason: str | None = None) -> None:
        details = {"reason": reason} if reason else {}
        super().__init__(message, "FORBIDDEN", details)


class InvariantViolationException(ControlPlaneException):
    """Raised when a change would break a data invariant (e.g. zero owners)."""

    def __init__(self, message: str, invariant: str, **context: Any) -> None:
        super().__init__(
            message,
            "INVARIANT_VIOLATION",
            {"invariant": invariant, **context},
        )


class ResourceNotFoundException(ControlPlaneException):
    """Raised when a requested resource does not exist."""

    def __init__(self, resource_type: str, resource_id: str) -> None:
        """Initialize with resource type and identifier.

        Args:
            resource_type: Kind of resource (e.g. 'membership', 'identity').
            resource_id: Identifier that was not found.
        """
        super().__init__(
            f"{resource_type} not found: {resource_id}",
            "RESOURCE_NOT_FOUND",
            {"resource_type": resource_type, "resource_id": resource_id},
        )


class TenantNotFoundException(ControlPlaneException):
    """Raised when a requested tenant is not found."""

    def __init__(self, tenant_id: str) -> None:
        super().__init__(
            f"Tenant not found: {tenant_id}",
            "TENANT_NOT_FOUND",
            {"tenant_id": tenant_id},
        )


class MembershipNotFoundException(ControlPlaneException):
    """Raised when a user has no membership in the tenant."""

    def __init__(self, tenant_id: str, user_id: str) -> None:
        super().__init__(
            f"User {user_id} is not a member of tenant {tenant_id}",
            "MEMBERSHIP_NOT_FOUND",
            {"tenant_id": tenant_id, "user_id": user_id},
        )


class InvitationNotFoundException(ControlPlaneException):
    """Raised when accepting an invitation that is not pending."""

    def __init__(self, tenant_id: str, user_id: str) -> None:
        super().__init__(
            "No pending invitation for this user in this tenant",
            "INVITATION_NOT_FOUND",
            {"tenant_id": tenant_id, "user_id": user_id},
        )


class ConflictException(ControlPlaneException):
    """Raised when a write collides with existing or concurrently changed state."""

    def __init__(
        self,
        message: str,
        error_code: str = "CONFLICT",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, error_code, details)


class MembershipAlreadyExistsException(ConflictException):
    """Raised by stores when (tenant_id, user_id) already has a membership."""

    def __init__(self, tenant_id: str, user_id: str) -> None:
        super().__init__(
            "User is already a member of this tenant",
            "MEMBERSHIP_ALREADY_EXISTS",
            {"tenant_id": tenant_id, "user_id": user_id},
        )


class PermissionGrantAlreadyExistsException(ConflictException):
    """Raised when the same explicit permission level is granted twice."""

    def __init__(self, tenant_id: str, user_id: str, level: str) -> None:
        super().__init__(
            f"Permission '{level}' already granted to user",
            "PERMISSION_GRANT_EXISTS",
            {"tenant_id": tenant_id, "user_id": user_id, "level": level},
        )


class TenantAlreadyExistsException(ConflictException):
    """Raised when creating a tenant whose subdomain is taken."""

    def __init__(self, subdomain: str) -> None:
        super().__init__(
            f"Tenant with subdomain '{subdomain}' already exists",
            "TENANT_ALREADY_EXISTS",
            {"subdomain": subdomain},
        )


class UpstreamFailureException(ControlPlaneException):
    """Raised when an external collaborator (identity provider, store) fails.

    The original error is chained via ``raise ... from`` and never inspected
    by engine logic.
    """

    def __init__(self, service: str, operation: str, message: str | None = None) -> None:
        super().__init__(
            message or f"{service} failed during {operation}",
            "UPSTREAM_FAILURE",
            {"service": service, "operation": operation},
        )


class SqlNotConfiguredException(ControlPlaneException):
    """Raised when a SQL session is requested but database_backend is not 'postgres'."""

    def __init__(self) -> None:
        super().__init__(
            "SQL database is not configured (set DATABASE_BACKEND=postgres and DATABASE_URL)",
            "SQL_NOT_CONFIGURED",
        )
