"""FastAPI dependencies for database, authentication, clock and notifications."""

from typing import AsyncGenerator, Optional

import jwt
from fastapi import Depends, Header
from jwt import PyJWTError
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.member import Member
from ..schemas.member import TokenClaims
from ..services.member_service import MemberService
from ..services.notification_service import OutingNotifier, get_dispatcher
from .clock import Clock, utc_now
from .config import settings
from .database import get_async_session
from .exceptions import AuthenticationError


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Database dependency that provides async database sessions.

    Yields:
        AsyncSession: Database session
    """
    async for session in get_async_session():
        yield session


def get_clock() -> Clock:
    """Reference clock for services; overridden in tests."""
    return utc_now


def get_notifier() -> OutingNotifier:
    """Notifier bound to the process-wide email dispatcher."""
    return OutingNotifier(get_dispatcher())


async def get_token_claims(
    authorization: Optional[str] = Header(None, alias="Authorization")
) -> TokenClaims:
    """
    Validate the Bearer token and return its claims.

    Raises:
        AuthenticationError: If the token is missing, malformed, expired or forged
    """
    if not authorization:
        raise AuthenticationError(detail="Authorization header missing")

    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise AuthenticationError(detail="Invalid authorization header format")

    try:
        payload = jwt.decode(
            token.strip(),
            settings.bearer_token_secret,
            algorithms=["HS256"],
            options={"require": ["exp", "sub"]}
        )
    except PyJWTError as e:
        raise AuthenticationError(detail=f"Token validation failed: {str(e)}") from e

    try:
        return TokenClaims.model_validate(payload)
    except PydanticValidationError as e:
        raise AuthenticationError(detail="Invalid token payload") from e


async def get_current_member(
    claims: TokenClaims = Depends(get_token_claims),
    db: AsyncSession = Depends(get_db)
) -> Member:
    """Resolve the acting member, creating or refreshing their profile from the token."""
    return await MemberService(db).sync_member(claims)


# Define dependencies to avoid B008 linting errors
DatabaseSession = Depends(get_db)
CurrentMember = Depends(get_current_member)
ClockDependency = Depends(get_clock)
NotifierDependency = Depends(get_notifier)
