from __future__ import annotations

from datetime import timedelta
from typing import Any, Dict

from jose import jwt
from passlib.context import CryptContext

from taskhub.accounts.models import User
from taskhub.auth.schemas import TokenClaims
from taskhub.settings import settings
from taskhub.utils import utcnow

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, password_hash: str) -> bool:
    return pwd_context.verify(plain_password, password_hash)


def _encode(claims: Dict[str, Any], expires_delta: timedelta) -> str:
    to_encode = dict(claims)
    to_encode["exp"] = utcnow() + expires_delta
    return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def create_access_token(user: User) -> str:
    """A regular session token for ``user``."""
    return _encode(
        {"sub": str(user.id), "rtp": user.refresh_token_param},
        timedelta(minutes=settings.access_token_expire_minutes),
    )


def create_impersonation_token(super_admin: User, organization_id: int) -> str:
    """A short-lived token letting ``super_admin`` act inside ``organization_id``."""
    return _encode(
        {
            "sub": str(super_admin.id),
            "rtp": super_admin.refresh_token_param,
            "imp": True,
            "org": organization_id,
        },
        timedelta(minutes=settings.impersonation_token_expire_minutes),
    )


def decode_token(token: str) -> TokenClaims:
    """
    Decode and validate a session token.

    Raises ``jose.JWTError`` or ``pydantic.ValidationError`` on a bad token.
    """
    payload = jwt.decode(
        token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm]
    )
    return TokenClaims.model_validate(payload)


def token_max_age(impersonation: bool = False) -> int:
    minutes = (
        settings.impersonation_token_expire_minutes
        if impersonation
        else settings.access_token_expire_minutes
    )
    return minutes * 60
