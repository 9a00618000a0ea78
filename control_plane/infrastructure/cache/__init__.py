"""Redis cache for effective access levels."""

from control_plane.infrastructure.cache.redis_cache import CacheService

__all__ = ["CacheService"]
