"""Rate limiting for alert sends using slowapi.

Requests are keyed by the token subject when one is presented, so a
device that changes networks mid-escalation keeps a single budget.
Anonymous requests fall back to the client address. The default limit
leaves room for a full escalation (one call per tier) plus retries.
"""

from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from starlette.requests import Request
from starlette.responses import JSONResponse

from src.config import settings
from src.core.security import decode_access_token


def _client_address(request: Request) -> str:
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        # Leftmost entry is the originating device
        return forwarded_for.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def alert_sender_key(request: Request) -> str:
    """Limiter key: ``user:<sub>`` for a valid token, else ``ip:<address>``."""
    token = request.cookies.get(settings.jwt_cookie_name)
    if not token:
        auth_header = request.headers.get("Authorization", "")
        if auth_header.startswith("Bearer "):
            token = auth_header[7:]
    payload = decode_access_token(token) if token else None
    if payload and payload.get("sub"):
        return f"user:{payload['sub']}"
    return f"ip:{_client_address(request)}"


limiter = Limiter(
    key_func=alert_sender_key,
    storage_uri=settings.rate_limit_storage_uri,
    enabled=not settings.testing,
)


async def rate_limit_exceeded_handler(
    request: Request, exc: RateLimitExceeded
) -> JSONResponse:
    """429 with the limit that was hit, telling the device to call directly."""
    return JSONResponse(
        status_code=429,
        content={
            "detail": f"Too many alert requests ({exc.detail}). "
            "Call emergency services directly."
        },
    )
