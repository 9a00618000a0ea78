"""Core constants: cache key prefixes and shared literal values."""

# Cache key prefixes (used with :tenant_id:user_id)
CACHE_PREFIX_ACCESS = "access"

# Delimiter for composite keys
CACHE_KEY_SEP = ":"

# Identity-provider name (logging and UpstreamFailure details)
IDENTITY_SERVICE = "identity_provider"

# Membership store name in UpstreamFailure details (failed commits)
STORE_SERVICE = "membership_store"
