from datetime import datetime
from decimal import Decimal
from typing import Optional

from uuid import UUID

from pydantic import BaseModel, Field


class OrderCreated(BaseModel):
    orderId: str
    customerId: Optional[UUID] = None
    createdAt: datetime

    # used to render the reminder templates
    orderNumber: Optional[str] = None
    orderTotal: Optional[Decimal] = None
    customerName: Optional[str] = None


class OrderPaid(BaseModel):
    orderId: str


class OrderCancelled(BaseModel):
    orderId: str


class OrderCompleted(BaseModel):
    orderId: str
    customerId: UUID
    total: Decimal = Field(ge=0)
