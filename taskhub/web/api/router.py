from fastapi.routing import APIRouter

from taskhub.accounts import endpoints as accounts
from taskhub.admin import endpoints as admin
from taskhub.auth import endpoints as auth
from taskhub.buckets import endpoints as buckets
from taskhub.notifications import endpoints as notifications
from taskhub.task_manager import endpoints as tasks
from taskhub.web.api import monitoring

api_router = APIRouter()
api_router.include_router(monitoring.router)
api_router.include_router(auth.router, prefix="/auth", tags=["authentication"])
api_router.include_router(accounts.router, prefix="/users", tags=["users"])
api_router.include_router(tasks.router, prefix="/tasks", tags=["tasks"])
api_router.include_router(buckets.router, prefix="/buckets", tags=["buckets"])
api_router.include_router(
    notifications.router, prefix="/notifications", tags=["notifications"]
)
api_router.include_router(admin.router, prefix="/super-admin", tags=["super-admin"])
