from typing import List, Optional

from sqlalchemy.sql.elements import ColumnElement

from taskhub.auth.dependencies import RequestContext
from taskhub.task_manager.models import Task, TaskAssignment
from taskhub.utils import Forbidden


class TaskPermissions:
    """
    Task visibility for the three identity modes.

    Admins and impersonating super admins see every task of the organization;
    employees only the tasks assigned to them.
    """

    @staticmethod
    def scope(ctx: RequestContext) -> List[ColumnElement[bool]]:
        """WHERE clauses limiting a Task query to what ``ctx`` may see."""
        clauses: List[ColumnElement[bool]] = [
            Task.organization_id == ctx.organization_id,
            Task.is_deleted.is_(False),
        ]
        if ctx.is_employee:
            clauses.append(
                Task.assignments.any(TaskAssignment.employee_id == ctx.user.id)
            )
        return clauses

    @staticmethod
    def can_view(ctx: RequestContext, task: Task) -> bool:
        if task.is_deleted or task.organization_id != ctx.organization_id:
            return False
        return ctx.has_admin_privileges or task.assignment_for(ctx.user.id) is not None

    @staticmethod
    def viewer_id(ctx: RequestContext) -> Optional[int]:
        """The id assignee data is filtered to when rendering, None for admins."""
        return ctx.user.id if ctx.is_employee else None

    @staticmethod
    def own_assignment(ctx: RequestContext, task: Task) -> TaskAssignment:
        assignment = task.assignment_for(ctx.user.id)
        if assignment is None:
            raise Forbidden("You are not assigned to this task.")
        return assignment

    @staticmethod
    def ensure_admin(ctx: RequestContext) -> None:
        if not ctx.has_admin_privileges:
            raise Forbidden("Admin privileges required")
