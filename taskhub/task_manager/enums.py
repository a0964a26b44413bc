from enum import Enum


class TaskStatus(str, Enum):
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    IN_PROGRESS = "IN_PROGRESS"
    SUBMITTED = "SUBMITTED"
    COMPLETED = "COMPLETED"
    REJECTED = "REJECTED"
    OVERDUE = "OVERDUE"


class Priority(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class TaskAction(str, Enum):
    """Edges of the per-assignee workflow."""
    ACCEPT = "accept"  # assignee
    START = "start"  # assignee
    SUBMIT = "submit"  # assignee
    COMPLETE = "complete"  # admin review
    REJECT = "reject"  # admin review
    MARK_OVERDUE = "mark_overdue"  # overdue sweep
