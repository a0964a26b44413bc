from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, EmailStr, Field

from taskhub.accounts.schemas import OrganizationOut, UserOut


class TokenClaims(BaseModel):
    sub: int
    rtp: int = 0
    imp: bool = False
    org: Optional[int] = None


class CompanySignup(BaseModel):
    company_name: str = Field(..., min_length=1, max_length=100)
    admin_name: str = Field(..., min_length=1, max_length=50)
    admin_email: EmailStr
    password: str = Field(..., min_length=8)


class LoginIn(BaseModel):
    email: EmailStr
    password: str


class AuthOut(BaseModel):
    """Returned by every call that starts a session."""
    user: UserOut
    organization: Optional[OrganizationOut] = None
    token: str
    token_type: str = "bearer"
    redirect_to: str
    is_impersonating: bool = False


class MeOut(BaseModel):
    user: UserOut
    organization: Optional[OrganizationOut] = None
    is_impersonating: bool
    has_admin_privileges: bool


class ImpersonateIn(BaseModel):
    organization_id: int


class PushTokenIn(BaseModel):
    token: str = Field(..., min_length=1, max_length=512)
