from datetime import datetime
from typing import List, Optional

from uuid import UUID

from pydantic import BaseModel


class LoyaltyAccountOut(BaseModel):
    id: UUID
    customer_id: UUID

    points: int
    lifetime_points: int
    total_redeemed: int
    tier: str

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class LoyaltyTransactionOut(BaseModel):
    id: UUID
    loyalty_account_id: UUID

    points: int
    type: str

    description: Optional[str] = None
    order_id: Optional[str] = None

    balance_after: int
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class PaginationMeta(BaseModel):
    page: int
    pageSize: int
    total: int
    totalPages: int


class LoyaltyHistoryOut(BaseModel):
    items: List[LoyaltyTransactionOut]
    pagination: PaginationMeta


class PointsAdjustment(BaseModel):
    points: int
    reason: str
