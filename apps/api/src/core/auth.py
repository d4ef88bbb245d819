"""Authentication dependency.

Accepts the auth service's session cookie or an ``Authorization: Bearer``
token and resolves it to an active User.
"""

from typing import Annotated

from fastapi import Cookie, Depends, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.config import settings
from src.core.security import TokenData, decode_access_token
from src.database import get_db
from src.logging_config import get_logger
from src.models.user import User

logger = get_logger(__name__)


async def get_current_user(
    request: Request,
    session_token: Annotated[str | None, Cookie(alias=settings.jwt_cookie_name)] = None,
    db: AsyncSession = Depends(get_db),
) -> User:
    """Extract and validate the current user.

    Raises:
        HTTPException 401: If no valid credentials are found or the account
            is disabled
        HTTPException 503: If the account store cannot be reached
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Not authenticated",
        headers={"WWW-Authenticate": "Bearer"},
    )

    if not session_token:
        auth_header = request.headers.get("Authorization")
        if auth_header and auth_header.startswith("Bearer "):
            session_token = auth_header[7:]

    if not session_token:
        raise credentials_exception

    payload = decode_access_token(session_token)
    if payload is None:
        raise credentials_exception

    try:
        token_data = TokenData(payload)
    except (KeyError, ValueError):
        raise credentials_exception  # noqa: B904

    try:
        result = await db.execute(select(User).where(User.id == token_data.user_id))
    except SQLAlchemyError as exc:
        logger.error("User lookup failed", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Account store unavailable",
        ) from exc
    user = result.scalar_one_or_none()
    if user is None:
        logger.warning("Token for unknown user", user_id=str(token_data.user_id))
        raise credentials_exception
    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User account is disabled",
        )
    return user


CurrentUser = Annotated[User, Depends(get_current_user)]
