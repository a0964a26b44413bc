"""API for checking project status."""
from taskhub.web.api.monitoring.views import router

__all__ = ["router"]
