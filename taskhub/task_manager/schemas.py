from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from taskhub.accounts.schemas import UserBrief
from taskhub.task_manager.enums import Priority, TaskStatus
from taskhub.task_manager.models import Task, TimeTrackingMixin

_TRACKED_FIELDS = (
    "accepted_at",
    "started_at",
    "submitted_at",
    "completed_at",
    "time_spent_minutes",
    "submission_note",
    "admin_feedback",
)


def _tracking(source: Optional[TimeTrackingMixin]) -> dict:
    if source is None:
        return {}
    return {field: getattr(source, field) for field in _TRACKED_FIELDS}


class TaskCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=2000)
    priority: Priority = Priority.MEDIUM
    due_date: Optional[datetime] = None
    assigned_to: List[int] = Field(..., min_length=1)
    bucket_id: Optional[int] = None

    @field_validator("title")
    @classmethod
    def title_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Title is required.")
        return value.strip()


class TaskUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=2000)
    priority: Optional[Priority] = None
    status: Optional[TaskStatus] = None
    due_date: Optional[datetime] = None
    assigned_to: Optional[List[int]] = Field(None, min_length=1)
    bucket_id: Optional[int] = None


class SubmitIn(BaseModel):
    submission_note: Optional[str] = Field(None, max_length=2000)


class ReviewIn(BaseModel):
    employee_id: Optional[int] = None
    admin_feedback: Optional[str] = Field(None, max_length=2000)


class CommentIn(BaseModel):
    message: str = Field(..., max_length=500)

    @field_validator("message")
    @classmethod
    def message_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Comment message is required.")
        return value.strip()


class TimeTrackingOut(BaseModel):
    accepted_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    submitted_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    time_spent_minutes: Optional[int] = None


class EmployeeStatusOut(TimeTrackingOut):
    employee_id: int
    employee_name: str
    status: TaskStatus
    submission_note: Optional[str] = None
    admin_feedback: Optional[str] = None


class AttachmentOut(BaseModel):
    id: int
    file_name: str
    file_url: str
    file_type: Optional[str]
    size_bytes: int
    uploaded_by: int
    created_at: datetime

    model_config = {"from_attributes": True}


class CommentOut(BaseModel):
    id: int
    author: UserBrief
    message: str
    created_at: datetime

    model_config = {"from_attributes": True}


class TaskOut(TimeTrackingOut):
    id: int
    organization_id: int
    title: str
    description: Optional[str]
    priority: Priority
    status: TaskStatus
    due_date: Optional[datetime]
    bucket_id: Optional[int]
    creator: UserBrief
    assignees: List[UserBrief]
    employee_status: List[EmployeeStatusOut]
    # the viewer's own sub-status, set for assignees
    my_status: Optional[TaskStatus] = None
    submission_note: Optional[str] = None
    admin_feedback: Optional[str] = None
    attachments: List[AttachmentOut] = []
    comments: List[CommentOut] = []
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_task(cls, task: Task, viewer_id: Optional[int] = None) -> "TaskOut":
        """
        Render ``task``. With ``viewer_id`` (an employee viewing), the
        assignee data, notes, feedback and time tracking all come from the
        viewer's own assignment.
        """
        assignments = list(task.assignments)
        my_status = None
        # the task-level copies hold whichever assignee acted last
        personal: Optional[TimeTrackingMixin] = task
        if viewer_id is not None:
            assignments = [a for a in assignments if a.employee_id == viewer_id]
            own = assignments[0] if assignments else None
            my_status = own.status if own else None
            personal = own

        return cls(
            id=task.id,
            organization_id=task.organization_id,
            title=task.title,
            description=task.description,
            priority=task.priority,
            status=task.status,
            due_date=task.due_date,
            bucket_id=task.bucket_id,
            creator=UserBrief.model_validate(task.creator),
            assignees=[UserBrief.model_validate(a.employee) for a in assignments],
            employee_status=[
                EmployeeStatusOut(
                    employee_id=a.employee_id,
                    employee_name=a.employee.name,
                    status=a.status,
                    **_tracking(a),
                )
                for a in assignments
            ],
            my_status=my_status,
            **_tracking(personal),
            attachments=[AttachmentOut.model_validate(a) for a in task.attachments],
            comments=[CommentOut.model_validate(c) for c in task.comments],
            created_at=task.created_at,
            updated_at=task.updated_at,
        )


class TaskStats(BaseModel):
    total: int = 0
    pending: int = 0
    accepted: int = 0
    in_progress: int = 0
    submitted: int = 0
    completed: int = 0
    rejected: int = 0
    overdue: int = 0
