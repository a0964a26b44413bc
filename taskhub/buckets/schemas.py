from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field, field_validator


class BucketIn(BaseModel):
    name: str = Field(..., max_length=100)

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Bucket name is required.")
        return value.strip()


class BucketOut(BaseModel):
    id: int
    organization_id: int
    name: str
    created_by: int
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class BucketStats(BaseModel):
    total: int
    completed: int
    in_progress: int
    completion_rate: int
