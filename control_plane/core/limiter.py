"""Rate limiter instance for SlowAPI.

Shared so both main (app.state.limiter) and route modules can use the
same instance without circular imports. Central limit strings and
decorators keep rate limits in one place.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

limiter = Limiter(key_func=get_remote_address)

CREATE_TENANT_LIMIT = "5/minute"
WRITE_ENDPOINT_LIMIT = "120/minute"

limit_create_tenant = limiter.limit(CREATE_TENANT_LIMIT)
limit_writes = limiter.limit(WRITE_ENDPOINT_LIMIT)
