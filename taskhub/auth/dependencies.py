from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError
from loguru import logger
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from taskhub.accounts.enums import UserRole
from taskhub.accounts.models import Organization, User
from taskhub.auth import security
from taskhub.db.dependencies import get_db_session
from taskhub.settings import settings
from taskhub.utils import Forbidden, Unauthorized

# The token is read from the session cookie first; the bearer header is
# accepted for API clients.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)


@dataclass
class RequestContext:
    """Who is acting, and inside which organization."""

    user: User
    organization_id: Optional[int]
    is_impersonating: bool = False

    @property
    def is_super_admin(self) -> bool:
        return self.user.role == UserRole.SUPER_ADMIN

    @property
    def has_admin_privileges(self) -> bool:
        return self.user.role in (UserRole.ADMIN, UserRole.SUPER_ADMIN)

    @property
    def is_employee(self) -> bool:
        return not self.has_admin_privileges


async def resolve_context(session: AsyncSession, token: Optional[str]) -> RequestContext:
    """
    Turn a session token into a ``RequestContext``.

    Impersonation tokens resolve to the super admin who holds them, scoped to
    the organization named in the token.
    """
    if not token:
        raise Unauthorized("Not authorized. Please log in.")
    try:
        claims = security.decode_token(token)
    except (JWTError, ValidationError):
        raise Unauthorized("Invalid or expired token. Please log in again.")

    user = await session.get(User, claims.sub)
    if user is None or user.is_deleted:
        raise Unauthorized("User no longer exists. Please log in again.")
    if not user.is_active:
        raise Unauthorized("Your account has been deactivated.")
    if user.refresh_token_param != claims.rtp:
        raise Unauthorized("Session has been revoked. Please log in again.")

    if claims.imp:
        if user.role != UserRole.SUPER_ADMIN or claims.org is None:
            raise Unauthorized("Invalid or expired token. Please log in again.")
        logger.info(
            "Impersonation active: {} in organization {}", user.email, claims.org
        )
        return RequestContext(
            user=user, organization_id=claims.org, is_impersonating=True
        )

    if user.role != UserRole.SUPER_ADMIN and user.organization_id is not None:
        organization = await session.get(Organization, user.organization_id)
        if organization is None or not organization.is_active:
            raise Forbidden("Your organization has been deactivated.")

    return RequestContext(user=user, organization_id=user.organization_id)


async def get_request_context(
    request: Request,
    bearer_token: Optional[str] = Depends(oauth2_scheme),
    session: AsyncSession = Depends(get_db_session),
) -> RequestContext:
    """Dependency resolving the caller from the session cookie or bearer token."""
    token = request.cookies.get(settings.cookie_name) or bearer_token
    try:
        return await resolve_context(session, token)
    except Unauthorized as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e),
            headers={"WWW-Authenticate": "Bearer"},
        )
    except Forbidden as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))


async def get_current_user_db(
    ctx: RequestContext = Depends(get_request_context),
) -> User:
    """Dependency returning the authenticated SQLAlchemy ``User``."""
    return ctx.user
