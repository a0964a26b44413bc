from enum import Enum


class NotificationType(str, Enum):
    TASK_ASSIGNED = "TASK_ASSIGNED"
    TASK_UPDATED = "TASK_UPDATED"
    TASK_OVERDUE = "TASK_OVERDUE"
    TASK_COMPLETED = "TASK_COMPLETED"
    TASK_COMMENT = "TASK_COMMENT"


PUSH_TITLES = {
    NotificationType.TASK_ASSIGNED: "📋 New Task Assigned",
    NotificationType.TASK_UPDATED: "🔄 Task Updated",
    NotificationType.TASK_COMPLETED: "✅ Task Completed",
    NotificationType.TASK_OVERDUE: "⚠️ Task Overdue",
    NotificationType.TASK_COMMENT: "💬 New Comment",
}
