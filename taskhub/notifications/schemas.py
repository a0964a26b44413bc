from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from taskhub.notifications.enums import NotificationType


class NotificationOut(BaseModel):
    id: int
    user_id: int
    organization_id: Optional[int]
    type: NotificationType
    message: str
    task_id: Optional[int]
    payload: Dict[str, Any]
    is_read: bool
    read_at: Optional[datetime]
    created_at: datetime

    model_config = {"from_attributes": True}


class NotificationList(BaseModel):
    notifications: List[NotificationOut]
    unread_count: int


class ClearedOut(BaseModel):
    count: int
