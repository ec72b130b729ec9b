from datetime import datetime
from typing import Optional

from uuid import UUID

from pydantic import BaseModel


class CustomerCreate(BaseModel):
    name: Optional[str] = None
    phone: Optional[str] = None
    whatsapp_number: Optional[str] = None


class CustomerUpdate(BaseModel):
    name: Optional[str] = None
    phone: Optional[str] = None
    whatsapp_number: Optional[str] = None


class CustomerOut(BaseModel):
    id: UUID

    name: Optional[str] = None
    phone: Optional[str] = None
    whatsapp_number: Optional[str] = None

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True
