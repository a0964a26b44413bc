from __future__ import annotations

import re
import secrets
import string
from typing import Optional, Sequence

from loguru import logger
from sqlalchemy import case, delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from taskhub.accounts.enums import UserRole
from taskhub.accounts.models import Organization, PushToken, User
from taskhub.accounts.schemas import EmployeeStats, NotificationSettingsUpdate
from taskhub.admin.enums import AuditAction
from taskhub.admin.services import ClientInfo, record_audit
from taskhub.auth import security
from taskhub.task_manager.enums import TaskStatus
from taskhub.task_manager.models import Task, TaskAssignment
from taskhub.utils import Conflict, Forbidden, NotFound, ServiceError, Unauthorized

_SLUG_ALPHABET = string.ascii_lowercase + string.digits


def slugify(name: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")
    return slug or "org"


async def create_organization(session: AsyncSession, *, name: str) -> Organization:
    """Create an organization with a unique ``<name>-<suffix>`` slug."""
    base = slugify(name)
    while True:
        suffix = "".join(secrets.choice(_SLUG_ALPHABET) for _ in range(4))
        slug = f"{base}-{suffix}"
        exists = await session.execute(
            select(Organization.id).where(Organization.slug == slug)
        )
        if exists.first() is None:
            break

    organization = Organization(name=name.strip(), slug=slug, is_active=True)
    session.add(organization)
    await session.flush()
    return organization


async def get_organization(
    session: AsyncSession, organization_id: Optional[int]
) -> Optional[Organization]:
    if organization_id is None:
        return None
    return await session.get(Organization, organization_id)


async def get_user_by_email(session: AsyncSession, email: str) -> Optional[User]:
    stmt = select(User).where(User.email == email.strip().lower())
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def create_user(
    session: AsyncSession,
    *,
    organization_id: Optional[int],
    name: str,
    email: str,
    password: str,
    role: UserRole = UserRole.EMPLOYEE,
) -> User:
    if await get_user_by_email(session, email):
        raise Conflict("Email already registered.")

    user = User(
        organization_id=organization_id,
        role=role,
        email=email.strip().lower(),
        password_hash=security.hash_password(password),
        name=name.strip(),
    )
    session.add(user)
    await session.flush()
    await session.refresh(user)
    return user


def _org_users(organization_id: int):
    return select(User).where(
        User.organization_id == organization_id,
        User.is_deleted.is_(False),
    )


async def list_employees(session: AsyncSession, organization_id: int) -> Sequence[User]:
    stmt = _org_users(organization_id).where(User.is_active.is_(True)).order_by(
        User.created_at.desc(), User.id.desc()
    )
    result = await session.execute(stmt)
    return result.scalars().all()


async def get_employee(session: AsyncSession, organization_id: int, user_id: int) -> User:
    stmt = _org_users(organization_id).where(User.id == user_id)
    user = (await session.execute(stmt)).scalar_one_or_none()
    if user is None:
        raise NotFound("User not found.")
    return user


async def _active_admin_count(session: AsyncSession, organization_id: int) -> int:
    stmt = select(func.count(User.id)).where(
        User.organization_id == organization_id,
        User.role == UserRole.ADMIN,
        User.is_active.is_(True),
        User.is_deleted.is_(False),
    )
    return (await session.execute(stmt)).scalar_one()


async def _ensure_not_last_admin(
    session: AsyncSession, organization_id: int, user: User
) -> None:
    if user.role == UserRole.ADMIN and user.is_active:
        if await _active_admin_count(session, organization_id) <= 1:
            raise ServiceError("Cannot remove the last admin of the organization.")


async def create_employee(
    session: AsyncSession,
    organization_id: int,
    *,
    actor: User,
    name: str,
    email: str,
    password: str,
    role: UserRole = UserRole.EMPLOYEE,
    client: Optional[ClientInfo] = None,
) -> User:
    if role == UserRole.SUPER_ADMIN:
        raise ServiceError("Role must be EMPLOYEE or ADMIN.")
    user = await create_user(
        session,
        organization_id=organization_id,
        name=name,
        email=email,
        password=password,
        role=role,
    )
    await record_audit(
        session,
        user_id=actor.id,
        action=AuditAction.USER_CREATED,
        target_organization_id=organization_id,
        target_user_id=user.id,
        payload={"email": user.email, "role": user.role.value},
        client=client,
    )
    logger.info("User {} created in organization {}", user.email, organization_id)
    return user


async def update_employee(
    session: AsyncSession,
    organization_id: int,
    user_id: int,
    *,
    name: Optional[str] = None,
    email: Optional[str] = None,
    role: Optional[UserRole] = None,
    password: Optional[str] = None,
    is_active: Optional[bool] = None,
) -> User:
    user = await get_employee(session, organization_id, user_id)

    if role == UserRole.SUPER_ADMIN:
        raise ServiceError("Role must be EMPLOYEE or ADMIN.")
    if (role is not None and role != user.role) or is_active is False:
        await _ensure_not_last_admin(session, organization_id, user)

    if email is not None and email.strip().lower() != user.email:
        if await get_user_by_email(session, email):
            raise Conflict("Email already registered.")
        user.email = email.strip().lower()
    if name is not None:
        user.name = name.strip()
    if role is not None:
        user.role = role
    if is_active is not None:
        user.is_active = is_active
    if password is not None:
        user.password_hash = security.hash_password(password)
        user.refresh_token_param += 1

    await session.flush()
    await session.refresh(user)
    return user


async def delete_employee(
    session: AsyncSession,
    organization_id: int,
    user_id: int,
    *,
    actor: User,
    client: Optional[ClientInfo] = None,
) -> None:
    """Soft delete: the account is deactivated and hidden, its tasks stay."""
    user = await get_employee(session, organization_id, user_id)
    await _ensure_not_last_admin(session, organization_id, user)

    user.is_active = False
    user.is_deleted = True
    user.refresh_token_param += 1
    await record_audit(
        session,
        user_id=actor.id,
        action=AuditAction.USER_DELETED,
        target_organization_id=organization_id,
        target_user_id=user.id,
        payload={"email": user.email},
        client=client,
    )
    await session.flush()
    logger.info("User {} deleted from organization {}", user.email, organization_id)


async def get_employee_stats(
    session: AsyncSession, organization_id: int, user_id: int
) -> EmployeeStats:
    await get_employee(session, organization_id, user_id)

    def count_status(status: TaskStatus):
        return func.coalesce(
            func.sum(case((TaskAssignment.status == status, 1), else_=0)), 0
        )

    stmt = (
        select(
            func.count(TaskAssignment.id),
            count_status(TaskStatus.COMPLETED),
            count_status(TaskStatus.IN_PROGRESS),
            count_status(TaskStatus.OVERDUE),
        )
        .join(Task, Task.id == TaskAssignment.task_id)
        .where(
            TaskAssignment.employee_id == user_id,
            Task.organization_id == organization_id,
            Task.is_deleted.is_(False),
        )
    )
    total, completed, in_progress, overdue = (await session.execute(stmt)).one()
    return EmployeeStats(
        total=total,
        completed=completed,
        in_progress=in_progress,
        overdue=overdue,
        completion_rate=round(completed * 100 / total) if total else 0,
    )


async def update_profile(
    session: AsyncSession,
    user: User,
    *,
    name: Optional[str] = None,
    notification_settings: Optional[NotificationSettingsUpdate] = None,
) -> User:
    if name is not None:
        user.name = name.strip()
    if notification_settings is not None:
        changes = notification_settings.model_dump(exclude_unset=True, exclude_none=True)
        for field, value in changes.items():
            setattr(user, field, value)
    await session.flush()
    await session.refresh(user)
    return user


async def change_password(
    session: AsyncSession,
    user: User,
    *,
    current_password: str,
    new_password: str,
    client: Optional[ClientInfo] = None,
) -> User:
    if not security.verify_password(current_password, user.password_hash):
        raise Unauthorized("Current password is incorrect.")
    if len(new_password) < 8:
        raise ServiceError("Password must be at least 8 characters.")

    user.password_hash = security.hash_password(new_password)
    user.refresh_token_param += 1
    await record_audit(
        session,
        user_id=user.id,
        action=AuditAction.PASSWORD_CHANGED,
        target_organization_id=user.organization_id,
        target_user_id=user.id,
        client=client,
    )
    await session.flush()
    await session.refresh(user)
    return user


async def force_change_password(
    session: AsyncSession,
    organization_id: int,
    user_id: int,
    *,
    actor: User,
    new_password: str,
    client: Optional[ClientInfo] = None,
) -> User:
    """A super admin resets the password of a user in the organization they impersonate."""
    if actor.role != UserRole.SUPER_ADMIN:
        raise Forbidden("Only a super admin can force a password change.")
    user = await get_employee(session, organization_id, user_id)

    user.password_hash = security.hash_password(new_password)
    user.refresh_token_param += 1
    await record_audit(
        session,
        user_id=actor.id,
        action=AuditAction.PASSWORD_FORCE_CHANGED,
        target_organization_id=organization_id,
        target_user_id=user.id,
        client=client,
    )
    await session.flush()
    await session.refresh(user)
    logger.warning("Password of {} force-changed by {}", user.email, actor.email)
    return user


async def register_push_token(session: AsyncSession, user: User, token: str) -> None:
    stmt = select(PushToken.id).where(
        PushToken.user_id == user.id, PushToken.token == token
    )
    if (await session.execute(stmt)).first() is None:
        session.add(PushToken(user_id=user.id, token=token))
        await session.flush()


async def remove_push_token(session: AsyncSession, user: User, token: str) -> None:
    await session.execute(
        delete(PushToken).where(PushToken.user_id == user.id, PushToken.token == token)
    )
