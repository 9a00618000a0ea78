"""API v1 router aggregation.

Includes all endpoint modules with consistent prefix and tags. All routes
use dependencies from control_plane.api.v1.dependencies (no manual
repo/service construction).
"""

from fastapi import APIRouter

from control_plane.api.v1.endpoints import health, members, permissions, tenants

api_router = APIRouter()

api_router.include_router(health.router, prefix="/health", tags=["health"])
api_router.include_router(tenants.router, prefix="/tenants", tags=["tenants"])
api_router.include_router(members.router, prefix="/tenants", tags=["members"])
api_router.include_router(permissions.router, tags=["permissions"])
