from fastapi import APIRouter, Depends, Request, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from taskhub.accounts import services as accounts
from taskhub.accounts.schemas import OrganizationOut, UserOut
from taskhub.admin.services import ClientInfo
from taskhub.auth import security, services
from taskhub.auth.dependencies import RequestContext, get_request_context
from taskhub.auth.permissions import require_super_admin
from taskhub.auth.schemas import (
    AuthOut,
    CompanySignup,
    ImpersonateIn,
    LoginIn,
    MeOut,
)
from taskhub.db.dependencies import get_db_session
from taskhub.settings import settings
from taskhub.utils import translate_service_errors

router = APIRouter()


def _set_session_cookie(response: Response, issued: services.AuthSession) -> None:
    response.set_cookie(
        key=settings.cookie_name,
        value=issued.token,
        max_age=security.token_max_age(issued.is_impersonating),
        httponly=True,
        secure=settings.cookie_secure,
        samesite=settings.cookie_samesite,
        path="/",
    )


def _auth_out(response: Response, issued: services.AuthSession) -> AuthOut:
    _set_session_cookie(response, issued)
    return AuthOut(
        user=UserOut.model_validate(issued.user),
        organization=(
            OrganizationOut.model_validate(issued.organization)
            if issued.organization is not None
            else None
        ),
        token=issued.token,
        redirect_to=issued.redirect_to,
        is_impersonating=issued.is_impersonating,
    )


@router.post("/signup", response_model=AuthOut, status_code=status.HTTP_201_CREATED)
@translate_service_errors
async def company_signup(
    payload: CompanySignup,
    request: Request,
    response: Response,
    session: AsyncSession = Depends(get_db_session),
):
    """Self-service signup: creates the organization and its first admin."""
    issued = await services.signup(
        session,
        company_name=payload.company_name,
        admin_name=payload.admin_name,
        admin_email=str(payload.admin_email),
        password=payload.password,
        client=ClientInfo.from_request(request),
    )
    return _auth_out(response, issued)


@router.post("/login", response_model=AuthOut)
@translate_service_errors
async def login(
    payload: LoginIn,
    response: Response,
    session: AsyncSession = Depends(get_db_session),
):
    issued = await services.login(
        session, email=str(payload.email), password=payload.password
    )
    return _auth_out(response, issued)


@router.post("/super-admin/login", response_model=AuthOut)
@translate_service_errors
async def super_admin_login(
    payload: LoginIn,
    response: Response,
    session: AsyncSession = Depends(get_db_session),
):
    issued = await services.super_admin_login(
        session, email=str(payload.email), password=payload.password
    )
    return _auth_out(response, issued)


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout():
    response = Response(status_code=status.HTTP_204_NO_CONTENT)
    response.delete_cookie(
        key=settings.cookie_name,
        path="/",
        secure=settings.cookie_secure,
        httponly=True,
        samesite=settings.cookie_samesite,
    )
    return response


@router.get("/me", response_model=MeOut)
@translate_service_errors
async def me(
    ctx: RequestContext = Depends(get_request_context),
    session: AsyncSession = Depends(get_db_session),
):
    organization = await accounts.get_organization(session, ctx.organization_id)
    return MeOut(
        user=UserOut.model_validate(ctx.user),
        organization=(
            OrganizationOut.model_validate(organization) if organization else None
        ),
        is_impersonating=ctx.is_impersonating,
        has_admin_privileges=ctx.has_admin_privileges,
    )


@router.post("/impersonate", response_model=AuthOut)
@translate_service_errors
async def impersonate(
    payload: ImpersonateIn,
    request: Request,
    response: Response,
    ctx: RequestContext = Depends(require_super_admin),
    session: AsyncSession = Depends(get_db_session),
):
    """Start acting as an admin of another organization."""
    issued = await services.impersonate(
        session,
        ctx,
        payload.organization_id,
        client=ClientInfo.from_request(request),
    )
    return _auth_out(response, issued)


@router.post("/exit-impersonation", response_model=AuthOut)
@translate_service_errors
async def exit_impersonation(
    request: Request,
    response: Response,
    ctx: RequestContext = Depends(get_request_context),
    session: AsyncSession = Depends(get_db_session),
):
    issued = await services.exit_impersonation(
        session, ctx, client=ClientInfo.from_request(request)
    )
    return _auth_out(response, issued)

