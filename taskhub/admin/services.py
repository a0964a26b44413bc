from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

from fastapi import Request
from loguru import logger
from sqlalchemy import case, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from taskhub.accounts.enums import UserRole
from taskhub.accounts.models import Organization, User
from taskhub.admin.enums import AuditAction
from taskhub.admin.models import AuditLog
from taskhub.utils import _get_or_404


@dataclass
class ClientInfo:
    """Where an audited request came from."""

    ip_address: Optional[str] = None
    user_agent: Optional[str] = None

    @classmethod
    def from_request(cls, request: Request) -> "ClientInfo":
        return cls(
            ip_address=request.client.host if request.client else None,
            user_agent=request.headers.get("user-agent"),
        )


async def record_audit(
    session: AsyncSession,
    *,
    user_id: int,
    action: AuditAction,
    target_organization_id: Optional[int] = None,
    target_user_id: Optional[int] = None,
    payload: Optional[Dict[str, Any]] = None,
    client: Optional[ClientInfo] = None,
) -> AuditLog:
    client = client or ClientInfo()
    entry = AuditLog(
        user_id=user_id,
        action=action,
        target_organization_id=target_organization_id,
        target_user_id=target_user_id,
        payload=payload or {},
        ip_address=client.ip_address,
        user_agent=client.user_agent,
    )
    session.add(entry)
    await session.flush()
    logger.info("Audit {} by user {}", action.value, user_id)
    return entry


async def list_organizations(
    session: AsyncSession,
    *,
    search: Optional[str] = None,
    is_active: Optional[bool] = None,
) -> List[Tuple[Organization, int, int]]:
    """Organizations, newest first, with their active admin and employee counts."""
    admin_count = func.coalesce(
        func.sum(case((User.role == UserRole.ADMIN, 1), else_=0)), 0
    )
    employee_count = func.coalesce(
        func.sum(case((User.role == UserRole.EMPLOYEE, 1), else_=0)), 0
    )
    stmt = (
        select(Organization, admin_count, employee_count)
        .outerjoin(
            User,
            (User.organization_id == Organization.id)
            & User.is_active.is_(True)
            & User.is_deleted.is_(False),
        )
        .group_by(Organization.id)
        .order_by(Organization.created_at.desc(), Organization.id.desc())
    )
    if search:
        stmt = stmt.where(
            or_(
                Organization.name.icontains(search, autoescape=True),
                Organization.slug.icontains(search, autoescape=True),
            )
        )
    if is_active is not None:
        stmt = stmt.where(Organization.is_active.is_(is_active))
    result = await session.execute(stmt)
    return [(org, int(admins), int(employees)) for org, admins, employees in result.all()]


async def get_organization(
    session: AsyncSession, organization_id: int
) -> Tuple[Organization, Sequence[User]]:
    organization = await _get_or_404(session, Organization, organization_id)
    stmt = (
        select(User)
        .where(
            User.organization_id == organization_id,
            User.is_active.is_(True),
            User.is_deleted.is_(False),
        )
        .order_by(User.created_at.desc(), User.id.desc())
    )
    result = await session.execute(stmt)
    return organization, result.scalars().all()


async def toggle_organization_status(
    session: AsyncSession,
    organization_id: int,
    *,
    actor: User,
    client: Optional[ClientInfo] = None,
) -> Organization:
    organization = await _get_or_404(session, Organization, organization_id)
    organization.is_active = not organization.is_active
    await record_audit(
        session,
        user_id=actor.id,
        action=(
            AuditAction.ORGANIZATION_ENABLED
            if organization.is_active
            else AuditAction.ORGANIZATION_DISABLED
        ),
        target_organization_id=organization.id,
        client=client,
    )
    await session.refresh(organization)
    logger.info(
        "Organization {} is now {}",
        organization.slug,
        "active" if organization.is_active else "disabled",
    )
    return organization


async def list_audit_logs(
    session: AsyncSession,
    *,
    action: Optional[AuditAction] = None,
    user_id: Optional[int] = None,
    organization_id: Optional[int] = None,
    limit: int = 100,
) -> Sequence[AuditLog]:
    stmt = select(AuditLog).order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
    if action is not None:
        stmt = stmt.where(AuditLog.action == action)
    if user_id is not None:
        stmt = stmt.where(AuditLog.user_id == user_id)
    if organization_id is not None:
        stmt = stmt.where(AuditLog.target_organization_id == organization_id)
    result = await session.execute(
        stmt.limit(limit).execution_options(populate_existing=True)
    )
    return result.scalars().all()
