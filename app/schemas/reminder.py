from datetime import datetime
from typing import Any, Dict, Optional

from uuid import UUID

from pydantic import BaseModel


class ReminderSettingsUpdate(BaseModel):
    enabled: Optional[bool] = None

    reminder1_delay: Optional[int] = None
    reminder2_delay: Optional[int] = None
    reminder3_delay: Optional[int] = None

    reminder1_enabled: Optional[bool] = None
    reminder2_enabled: Optional[bool] = None
    reminder3_enabled: Optional[bool] = None


class ReminderSettingsOut(BaseModel):
    enabled: bool

    reminder1_delay: int
    reminder2_delay: int
    reminder3_delay: int

    reminder1_enabled: bool
    reminder2_enabled: bool
    reminder3_enabled: bool

    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ReminderEventOut(BaseModel):
    id: UUID
    order_id: str
    customer_id: Optional[UUID] = None

    slot_number: int
    trigger: str
    scheduled_at: datetime
    status: str

    template_data: Optional[Dict[str, Any]] = None

    attempts: int
    last_error: Optional[str] = None

    sent_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ReminderStatsOut(BaseModel):
    pending: int
    sent: int
    cancelled: int
    failed: int
