from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, EmailStr, Field

from taskhub.accounts.enums import UserRole


class OrganizationOut(BaseModel):
    id: int
    name: str
    slug: str
    is_active: bool

    model_config = {"from_attributes": True}


class NotificationSettings(BaseModel):
    email_notifications: bool = True
    push_notifications: bool = True
    notify_task_assigned: bool = True
    notify_task_updated: bool = True
    notify_task_completed: bool = True

    model_config = {"from_attributes": True}


class NotificationSettingsUpdate(BaseModel):
    """Only the flags sent are changed."""

    email_notifications: Optional[bool] = None
    push_notifications: Optional[bool] = None
    notify_task_assigned: Optional[bool] = None
    notify_task_updated: Optional[bool] = None
    notify_task_completed: Optional[bool] = None


class UserOut(BaseModel):
    id: int
    organization_id: Optional[int]
    role: UserRole
    email: str
    name: str
    is_active: bool
    last_login: Optional[datetime] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class UserBrief(BaseModel):
    id: int
    name: str
    email: str

    model_config = {"from_attributes": True}


class ProfileOut(UserOut):
    notification_settings: NotificationSettings


class EmployeeCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=50)
    email: EmailStr
    password: str = Field(..., min_length=8)
    role: UserRole = UserRole.EMPLOYEE


class EmployeeUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=50)
    email: Optional[EmailStr] = None
    role: Optional[UserRole] = None
    password: Optional[str] = Field(None, min_length=8)
    is_active: Optional[bool] = None


class ProfileUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=50)
    notification_settings: Optional[NotificationSettingsUpdate] = None


class ChangePasswordIn(BaseModel):
    current_password: str
    new_password: str = Field(..., min_length=8)


class ForceChangePasswordIn(BaseModel):
    user_id: int
    new_password: str = Field(..., min_length=8)


class EmployeeStats(BaseModel):
    total: int
    completed: int
    in_progress: int
    overdue: int
    completion_rate: int
