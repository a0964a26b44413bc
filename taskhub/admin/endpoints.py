from typing import List, Optional

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from taskhub.accounts.schemas import OrganizationOut, UserOut
from taskhub.admin import services
from taskhub.admin.enums import AuditAction
from taskhub.admin.schemas import AuditLogOut, OrganizationDetail, OrganizationSummary
from taskhub.auth.dependencies import RequestContext
from taskhub.auth.permissions import require_super_admin
from taskhub.db.dependencies import get_db_session
from taskhub.utils import translate_service_errors

router = APIRouter()


@router.get("/organizations", response_model=List[OrganizationSummary])
@translate_service_errors
async def list_organizations(
    search: Optional[str] = None,
    is_active: Optional[bool] = None,
    ctx: RequestContext = Depends(require_super_admin),
    session: AsyncSession = Depends(get_db_session),
):
    rows = await services.list_organizations(session, search=search, is_active=is_active)
    return [
        OrganizationSummary(
            **OrganizationOut.model_validate(org).model_dump(),
            created_at=org.created_at,
            admin_count=admins,
            employee_count=employees,
        )
        for org, admins, employees in rows
    ]


@router.get("/organizations/{organization_id}", response_model=OrganizationDetail)
@translate_service_errors
async def get_organization(
    organization_id: int,
    ctx: RequestContext = Depends(require_super_admin),
    session: AsyncSession = Depends(get_db_session),
):
    organization, users = await services.get_organization(session, organization_id)
    return OrganizationDetail(
        organization=OrganizationOut.model_validate(organization),
        users=[UserOut.model_validate(u) for u in users],
    )


@router.patch("/organizations/{organization_id}/toggle-status", response_model=OrganizationOut)
@translate_service_errors
async def toggle_organization_status(
    organization_id: int,
    request: Request,
    ctx: RequestContext = Depends(require_super_admin),
    session: AsyncSession = Depends(get_db_session),
):
    """Enable or disable an organization. Its members are locked out while disabled."""
    return await services.toggle_organization_status(
        session,
        organization_id,
        actor=ctx.user,
        client=services.ClientInfo.from_request(request),
    )


@router.get("/audit-logs", response_model=List[AuditLogOut])
@translate_service_errors
async def list_audit_logs(
    action: Optional[AuditAction] = None,
    user_id: Optional[int] = None,
    organization_id: Optional[int] = None,
    ctx: RequestContext = Depends(require_super_admin),
    session: AsyncSession = Depends(get_db_session),
):
    return await services.list_audit_logs(
        session, action=action, user_id=user_id, organization_id=organization_id
    )
