from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from taskhub.accounts.schemas import OrganizationOut, UserBrief, UserOut
from taskhub.admin.enums import AuditAction


class OrganizationSummary(OrganizationOut):
    created_at: datetime
    admin_count: int = 0
    employee_count: int = 0


class OrganizationDetail(BaseModel):
    organization: OrganizationOut
    users: List[UserOut]


class AuditLogOut(BaseModel):
    id: int
    user_id: int
    user: Optional[UserBrief] = None
    action: AuditAction
    target_organization_id: Optional[int]
    target_user_id: Optional[int]
    payload: Dict[str, Any]
    ip_address: Optional[str]
    user_agent: Optional[str]
    created_at: datetime

    model_config = {"from_attributes": True}
