from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import Mapped, Relationship, mapped_column, relationship

from taskhub.accounts.models import User
from taskhub.db.base import Base
from taskhub.task_manager.enums import Priority, TaskStatus


class TimeTrackingMixin:
    """Workflow timestamps shared by a task and each of its assignments."""

    accepted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    submitted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    time_spent_minutes: Mapped[Optional[int]] = mapped_column(Integer)
    submission_note: Mapped[Optional[str]] = mapped_column(Text)
    admin_feedback: Mapped[Optional[str]] = mapped_column(Text)


class Task(TimeTrackingMixin, Base):
    __tablename__ = "tasks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    organization_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("organizations.id"), nullable=False, index=True,
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(String(2000))
    priority: Mapped[Priority] = mapped_column(
        SQLEnum(Priority), default=Priority.MEDIUM, nullable=False
    )
    # aggregate of the assignment statuses, see lifecycle.aggregate_status
    status: Mapped[TaskStatus] = mapped_column(
        SQLEnum(TaskStatus), default=TaskStatus.PENDING, nullable=False, index=True
    )
    due_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), index=True)
    created_by: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id"), nullable=False,
    )
    bucket_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("buckets.id"), nullable=True, index=True,
    )
    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # relationships
    creator: Relationship[User] = relationship(
        "User", foreign_keys=[created_by], lazy="selectin",
    )
    assignments: Relationship[List["TaskAssignment"]] = relationship(
        "TaskAssignment",
        back_populates="task",
        cascade="all,delete-orphan",
        order_by="TaskAssignment.id",
        lazy="selectin",
    )
    attachments: Relationship[List["TaskAttachment"]] = relationship(
        "TaskAttachment",
        back_populates="task",
        cascade="all,delete-orphan",
        order_by="TaskAttachment.id",
        lazy="selectin",
    )
    comments: Relationship[List["TaskComment"]] = relationship(
        "TaskComment",
        back_populates="task",
        cascade="all,delete-orphan",
        order_by="TaskComment.id",
        lazy="selectin",
    )

    def assignment_for(self, user_id: int) -> Optional["TaskAssignment"]:
        for assignment in self.assignments:
            if assignment.employee_id == user_id:
                return assignment
        return None

    @property
    def assignee_ids(self) -> List[int]:
        return [a.employee_id for a in self.assignments]


class TaskAssignment(TimeTrackingMixin, Base):
    """One employee's own progress on a multi-assigned task."""

    __tablename__ = "task_assignments"
    __table_args__ = (UniqueConstraint("task_id", "employee_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    task_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    employee_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id"), nullable=False, index=True,
    )
    status: Mapped[TaskStatus] = mapped_column(
        SQLEnum(TaskStatus), default=TaskStatus.PENDING, nullable=False
    )

    task: Relationship[Task] = relationship("Task", back_populates="assignments")
    employee: Relationship[User] = relationship("User", lazy="selectin")


class TaskAttachment(Base):
    __tablename__ = "task_attachments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    task_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    uploaded_by: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id"), nullable=False,
    )
    file_name: Mapped[str] = mapped_column(String(255), nullable=False)
    stored_name: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    file_type: Mapped[Optional[str]] = mapped_column(String(100))
    size_bytes: Mapped[int] = mapped_column(Integer, nullable=False)

    task: Relationship[Task] = relationship("Task", back_populates="attachments")

    @property
    def file_url(self) -> str:
        return f"/api/tasks/{self.task_id}/attachments/{self.id}"


class TaskComment(Base):
    __tablename__ = "task_comments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    task_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    author_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id"), nullable=False,
    )
    message: Mapped[str] = mapped_column(String(500), nullable=False)

    task: Relationship[Task] = relationship("Task", back_populates="comments")
    author: Relationship[User] = relationship("User", lazy="selectin")
