import asyncio
import sys

from loguru import logger

from taskhub.accounts import services as accounts
from taskhub.accounts.enums import UserRole
from taskhub.db.models import load_all_models
from taskhub.db.session_factory import AsyncSessionFactory
from taskhub.log import configure_logging
from taskhub.settings import settings


async def main() -> int:
    """
    Create the platform super admin from TASKHUB_SUPER_ADMIN_* settings.

    Does nothing when the account already exists.
    """
    if not settings.super_admin_password:
        logger.error("TASKHUB_SUPER_ADMIN_PASSWORD is not set")
        return 1

    async with AsyncSessionFactory() as session:
        existing = await accounts.get_user_by_email(session, settings.super_admin_email)
        if existing is not None:
            logger.info("Super admin {} already exists", existing.email)
            return 0

        user = await accounts.create_user(
            session,
            organization_id=None,
            name=settings.super_admin_name,
            email=settings.super_admin_email,
            password=settings.super_admin_password,
            role=UserRole.SUPER_ADMIN,
        )
        await session.commit()
        logger.info("Super admin {} created", user.email)
    return 0


if __name__ == "__main__":
    # python -m taskhub.runners.init_super_admin
    configure_logging()
    load_all_models()
    sys.exit(asyncio.run(main()))
