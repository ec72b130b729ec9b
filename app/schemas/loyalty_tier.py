from datetime import datetime
from typing import Optional

from uuid import UUID

from pydantic import BaseModel, Field, field_validator


def _normalize_key(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip().upper()
    if not value:
        raise ValueError("key must not be blank")
    return value


class LoyaltyTierCreate(BaseModel):
    key: str = Field(max_length=50)
    name: str = Field(min_length=1, max_length=200)

    min_lifetime_points: int = Field(ge=0)
    rank: int = Field(ge=0)

    active: bool = True

    normalize_key = field_validator("key")(_normalize_key)


class LoyaltyTierUpdate(BaseModel):
    key: Optional[str] = Field(default=None, max_length=50)
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)

    min_lifetime_points: Optional[int] = Field(default=None, ge=0)
    rank: Optional[int] = Field(default=None, ge=0)

    active: Optional[bool] = None

    normalize_key = field_validator("key")(_normalize_key)


class LoyaltyTierOut(BaseModel):
    id: UUID

    key: str
    name: str

    min_lifetime_points: int
    rank: int

    active: bool

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True
