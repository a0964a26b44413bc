from typing import List

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from taskhub.accounts import services
from taskhub.accounts.schemas import (
    ChangePasswordIn,
    EmployeeCreate,
    EmployeeStats,
    EmployeeUpdate,
    ForceChangePasswordIn,
    ProfileOut,
    ProfileUpdate,
    UserOut,
)
from taskhub.admin.services import ClientInfo
from taskhub.auth.dependencies import RequestContext, get_request_context
from taskhub.auth.permissions import require_admin, require_impersonation
from taskhub.auth.schemas import PushTokenIn
from taskhub.db.dependencies import get_db_session
from taskhub.utils import translate_service_errors

router = APIRouter()


# -----------------------
# Own profile
# -----------------------
@router.get("/profile", response_model=ProfileOut)
async def get_profile(ctx: RequestContext = Depends(get_request_context)):
    return ctx.user


@router.patch("/profile", response_model=ProfileOut)
@translate_service_errors
async def update_profile(
    payload: ProfileUpdate,
    ctx: RequestContext = Depends(get_request_context),
    session: AsyncSession = Depends(get_db_session),
):
    return await services.update_profile(
        session,
        ctx.user,
        name=payload.name,
        notification_settings=payload.notification_settings,
    )


@router.post("/change-password", status_code=status.HTTP_204_NO_CONTENT)
@translate_service_errors
async def change_password(
    payload: ChangePasswordIn,
    request: Request,
    ctx: RequestContext = Depends(get_request_context),
    session: AsyncSession = Depends(get_db_session),
):
    """Change your own password. Every other session is signed out."""
    await services.change_password(
        session,
        ctx.user,
        current_password=payload.current_password,
        new_password=payload.new_password,
        client=ClientInfo.from_request(request),
    )


@router.post("/force-change-password", response_model=UserOut)
@translate_service_errors
async def force_change_password(
    payload: ForceChangePasswordIn,
    request: Request,
    ctx: RequestContext = Depends(require_impersonation),
    session: AsyncSession = Depends(get_db_session),
):
    """Reset a user's password from inside an impersonation session."""
    return await services.force_change_password(
        session,
        ctx.organization_id,
        payload.user_id,
        actor=ctx.user,
        new_password=payload.new_password,
        client=ClientInfo.from_request(request),
    )


@router.post("/fcm-token", status_code=status.HTTP_204_NO_CONTENT)
@translate_service_errors
async def register_fcm_token(
    payload: PushTokenIn,
    ctx: RequestContext = Depends(get_request_context),
    session: AsyncSession = Depends(get_db_session),
):
    await services.register_push_token(session, ctx.user, payload.token)


@router.delete("/fcm-token", status_code=status.HTTP_204_NO_CONTENT)
@translate_service_errors
async def remove_fcm_token(
    payload: PushTokenIn,
    ctx: RequestContext = Depends(get_request_context),
    session: AsyncSession = Depends(get_db_session),
):
    await services.remove_push_token(session, ctx.user, payload.token)


# -----------------------
# Organization members (admin)
# -----------------------
@router.get("", response_model=List[UserOut])
@translate_service_errors
async def list_employees(
    ctx: RequestContext = Depends(require_admin),
    session: AsyncSession = Depends(get_db_session),
):
    return await services.list_employees(session, ctx.organization_id)


@router.post("", response_model=UserOut, status_code=status.HTTP_201_CREATED)
@translate_service_errors
async def create_employee(
    payload: EmployeeCreate,
    request: Request,
    ctx: RequestContext = Depends(require_admin),
    session: AsyncSession = Depends(get_db_session),
):
    return await services.create_employee(
        session,
        ctx.organization_id,
        actor=ctx.user,
        name=payload.name,
        email=str(payload.email),
        password=payload.password,
        role=payload.role,
        client=ClientInfo.from_request(request),
    )


@router.get("/{user_id}", response_model=UserOut)
@translate_service_errors
async def get_employee(
    user_id: int,
    ctx: RequestContext = Depends(require_admin),
    session: AsyncSession = Depends(get_db_session),
):
    return await services.get_employee(session, ctx.organization_id, user_id)


@router.get("/{user_id}/stats", response_model=EmployeeStats)
@translate_service_errors
async def get_employee_stats(
    user_id: int,
    ctx: RequestContext = Depends(require_admin),
    session: AsyncSession = Depends(get_db_session),
):
    return await services.get_employee_stats(session, ctx.organization_id, user_id)


@router.patch("/{user_id}", response_model=UserOut)
@translate_service_errors
async def update_employee(
    user_id: int,
    payload: EmployeeUpdate,
    ctx: RequestContext = Depends(require_admin),
    session: AsyncSession = Depends(get_db_session),
):
    data = payload.model_dump(exclude_unset=True)
    if "email" in data and data["email"] is not None:
        data["email"] = str(data["email"])
    return await services.update_employee(session, ctx.organization_id, user_id, **data)


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
@translate_service_errors
async def delete_employee(
    user_id: int,
    request: Request,
    ctx: RequestContext = Depends(require_admin),
    session: AsyncSession = Depends(get_db_session),
):
    await services.delete_employee(
        session,
        ctx.organization_id,
        user_id,
        actor=ctx.user,
        client=ClientInfo.from_request(request),
    )
