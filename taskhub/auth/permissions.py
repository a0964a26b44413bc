from fastapi import Depends, HTTPException, status

from taskhub.accounts.enums import UserRole
from taskhub.accounts.models import User
from taskhub.auth.dependencies import RequestContext, get_request_context


class PermissionChecker:
    """Base class for permission checking"""

    @staticmethod
    def is_super_admin(user: User) -> bool:
        """Check if user is super admin"""
        return user.role == UserRole.SUPER_ADMIN

    @staticmethod
    def is_admin(user: User) -> bool:
        """Check if user is admin or super admin"""
        return user.role in [UserRole.SUPER_ADMIN, UserRole.ADMIN]

    @staticmethod
    def check_org_context(ctx: RequestContext) -> int:
        """
        Return the organization the request acts in.

        A super admin only has one while impersonating.
        """
        if ctx.organization_id is None:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Organization context is missing.",
            )
        return ctx.organization_id


def require_org_context(
    ctx: RequestContext = Depends(get_request_context),
) -> RequestContext:
    """Dependency for every organization-scoped route"""
    PermissionChecker.check_org_context(ctx)
    return ctx


def require_admin(ctx: RequestContext = Depends(require_org_context)) -> RequestContext:
    """Dependency to require admin privileges inside an organization"""
    if not PermissionChecker.is_admin(ctx.user):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin privileges required",
        )
    return ctx


def require_super_admin(
    ctx: RequestContext = Depends(get_request_context),
) -> RequestContext:
    """Dependency to require super admin role"""
    if not PermissionChecker.is_super_admin(ctx.user):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Super admin privileges required",
        )
    return ctx


def require_impersonation(
    ctx: RequestContext = Depends(require_super_admin),
) -> RequestContext:
    """Dependency for actions only a super admin acting inside an organization may take"""
    if not ctx.is_impersonating:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="This action requires an active impersonation session",
        )
    return ctx
