from slowapi import Limiter
from slowapi.util import get_remote_address
from starlette.requests import Request

from portal.core import context
from portal.core.settings import settings


def rate_limit_key(request: Request) -> str:
    """Throttle per user once the token is verified, per client address before that."""
    actor_id = context.current().actor_id
    if actor_id != "-":
        return f"user:{actor_id}"
    return f"ip:{get_remote_address(request)}"


limiter = Limiter(
    key_func=rate_limit_key,
    default_limits=[f"{settings.rate_limit_per_minute}/minute"],
    storage_uri=settings.rate_limit_storage_uri,
)

__all__ = ["limiter", "rate_limit_key"]
