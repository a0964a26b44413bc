from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from taskhub.accounts import services as accounts
from taskhub.accounts.enums import UserRole
from taskhub.accounts.models import Organization, User
from taskhub.admin.enums import AuditAction
from taskhub.admin.services import ClientInfo, record_audit
from taskhub.auth import security
from taskhub.auth.dependencies import RequestContext
from taskhub.settings import settings
from taskhub.utils import Conflict, Forbidden, NotFound, ServiceError, Unauthorized, utcnow

SUPER_ADMIN_HOME = "/super-admin"


@dataclass
class AuthSession:
    """A freshly issued session."""

    user: User
    organization: Optional[Organization]
    token: str
    is_impersonating: bool = False

    @property
    def redirect_to(self) -> str:
        if self.organization is not None:
            return f"/{self.organization.slug}/dashboard"
        return SUPER_ADMIN_HOME


async def signup(
    session: AsyncSession,
    *,
    company_name: str,
    admin_name: str,
    admin_email: str,
    password: str,
    client: Optional[ClientInfo] = None,
) -> AuthSession:
    """Create an organization together with its first admin."""
    if await accounts.get_user_by_email(session, admin_email):
        raise Conflict("Email already registered.")

    organization = await accounts.create_organization(session, name=company_name)
    admin = await accounts.create_user(
        session,
        organization_id=organization.id,
        name=admin_name,
        email=admin_email,
        password=password,
        role=UserRole.ADMIN,
    )
    admin.last_login = utcnow()
    await record_audit(
        session,
        user_id=admin.id,
        action=AuditAction.ORGANIZATION_CREATED,
        target_organization_id=organization.id,
        payload={"name": organization.name, "slug": organization.slug},
        client=client,
    )
    logger.info("Organization {} signed up", organization.slug)
    return AuthSession(
        user=admin,
        organization=organization,
        token=security.create_access_token(admin),
    )


async def authenticate(session: AsyncSession, email: str, password: str) -> User:
    user = await accounts.get_user_by_email(session, email)
    if user is None or not security.verify_password(password, user.password_hash):
        raise Unauthorized("Invalid email or password.")
    if user.is_deleted or not user.is_active:
        raise Unauthorized("Your account has been deactivated.")
    return user


async def login(session: AsyncSession, *, email: str, password: str) -> AuthSession:
    user = await authenticate(session, email, password)

    organization = await accounts.get_organization(session, user.organization_id)
    if user.role != UserRole.SUPER_ADMIN:
        if organization is None or not organization.is_active:
            raise Forbidden("Your organization has been deactivated.")

    user.last_login = utcnow()
    await session.flush()
    logger.info("User {} logged in", user.email)
    return AuthSession(
        user=user,
        organization=organization,
        token=security.create_access_token(user),
    )


async def super_admin_login(session: AsyncSession, *, email: str, password: str) -> AuthSession:
    if email.strip().lower() != settings.super_admin_email.lower():
        raise Unauthorized("Invalid credentials.")
    user = await authenticate(session, email, password)
    if user.role != UserRole.SUPER_ADMIN:
        raise Unauthorized("Invalid credentials.")

    user.last_login = utcnow()
    await session.flush()
    logger.info("Super admin {} logged in", user.email)
    return AuthSession(user=user, organization=None, token=security.create_access_token(user))


async def impersonate(
    session: AsyncSession,
    ctx: RequestContext,
    organization_id: int,
    *,
    client: Optional[ClientInfo] = None,
) -> AuthSession:
    """Let a super admin act as an admin inside ``organization_id``."""
    if not ctx.is_super_admin:
        raise Forbidden("Super admin privileges required")
    organization = await session.get(Organization, organization_id)
    if organization is None:
        raise NotFound("Organization not found.")

    await record_audit(
        session,
        user_id=ctx.user.id,
        action=AuditAction.IMPERSONATION_START,
        target_organization_id=organization.id,
        payload={"organization": organization.name},
        client=client,
    )
    logger.warning(
        "Super admin {} started impersonating {}", ctx.user.email, organization.slug
    )
    return AuthSession(
        user=ctx.user,
        organization=organization,
        token=security.create_impersonation_token(ctx.user, organization.id),
        is_impersonating=True,
    )


async def exit_impersonation(
    session: AsyncSession,
    ctx: RequestContext,
    *,
    client: Optional[ClientInfo] = None,
) -> AuthSession:
    if not ctx.is_impersonating:
        raise ServiceError("Not currently impersonating.")

    await record_audit(
        session,
        user_id=ctx.user.id,
        action=AuditAction.IMPERSONATION_END,
        target_organization_id=ctx.organization_id,
        client=client,
    )
    logger.info("Super admin {} stopped impersonating", ctx.user.email)
    return AuthSession(
        user=ctx.user,
        organization=None,
        token=security.create_access_token(ctx.user),
    )
