"""Notification texts for task events."""
from taskhub.task_manager.enums import Priority, TaskStatus
from taskhub.task_manager.models import Task

PRIORITY_EMOJI = {
    Priority.HIGH: "🔴",
    Priority.MEDIUM: "🟡",
    Priority.LOW: "🟢",
}

STATUS_EMOJI = {
    TaskStatus.PENDING: "⏳",
    TaskStatus.ACCEPTED: "👍",
    TaskStatus.IN_PROGRESS: "🚀",
    TaskStatus.SUBMITTED: "📤",
    TaskStatus.COMPLETED: "✅",
    TaskStatus.REJECTED: "↩️",
    TaskStatus.OVERDUE: "⚠️",
}


def status_label(status: TaskStatus) -> str:
    return status.value.replace("_", " ")


def assigned(task: Task, assigner_name: str) -> str:
    return f'{PRIORITY_EMOJI[task.priority]} {assigner_name} assigned you: "{task.title}"'


def status_changed(task: Task, updater_name: str, status: TaskStatus) -> str:
    return (
        f"{STATUS_EMOJI[status]} {updater_name} changed "
        f'"{task.title}" status to {status_label(status)}'
    )


def accepted(task: Task, employee_name: str) -> str:
    return f"{employee_name} accepted task: {task.title}"


def started(task: Task, employee_name: str) -> str:
    return f"{employee_name} started working on: {task.title}"


def submitted(task: Task, employee_name: str) -> str:
    return f"{employee_name} submitted task: {task.title}"


def completed(task: Task) -> str:
    return f'Your task "{task.title}" was approved and completed!'


def rejected(task: Task) -> str:
    return f'Your task "{task.title}" needs revision. Check feedback.'


def commented(task: Task, author_name: str, message: str) -> str:
    preview = message if len(message) <= 50 else message[:50] + "..."
    return f'{author_name} commented on "{task.title}": {preview}'


def overdue_for_assignee(task: Task) -> str:
    return f'⚠️ Task is overdue: "{task.title}" - Please complete it urgently!'


def overdue_for_admin(task: Task, assignee_names: str) -> str:
    return f'⚠️ Task overdue: "{task.title}" - Assigned to: {assignee_names}'
