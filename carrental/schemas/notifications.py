from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class NotificationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    kind: str
    channel: str
    title: str
    message: str
    status: str
    priority: str
    is_read: bool
    read_at: datetime | None
    meta: dict
    created_at: datetime


class UnreadCountOut(BaseModel):
    unread: int


class SystemMessageIn(BaseModel):
    user_id: int
    title: str = Field(..., min_length=1, max_length=200)
    message: str = Field(..., min_length=1, max_length=1000)
    priority: Literal["low", "medium", "high", "urgent"] = "medium"
