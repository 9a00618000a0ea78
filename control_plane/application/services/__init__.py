"""Application services: permission evaluation, membership lifecycle, provisioning, tenants."""

from control_plane.application.services.membership_service import MembershipService
from control_plane.application.services.permission_evaluator import (
    PermissionEvaluator,
    drop_cached_levels,
    level_of,
)
from control_plane.application.services.provisioning_service import ProvisioningService
from control_plane.application.services.tenant_service import TenantService

__all__ = [
    "MembershipService",
    "PermissionEvaluator",
    "ProvisioningService",
    "TenantService",
    "drop_cached_levels",
    "level_of",
]
