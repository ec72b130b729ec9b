import uuid

from sqlalchemy import Boolean, CheckConstraint, Column, Integer, String, TIMESTAMP, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func

from app.db import Base


class LoyaltyTier(Base):
    """Configured tier threshold; the compiled-in table applies while none is active."""

    __tablename__ = "loyalty_tiers"

    __table_args__ = (
        UniqueConstraint("key", name="uq_loyalty_tiers_key"),
        UniqueConstraint("rank", name="uq_loyalty_tiers_rank"),
        UniqueConstraint("min_lifetime_points", name="uq_loyalty_tiers_min_lifetime_points"),
        CheckConstraint("rank >= 0", name="ck_loyalty_tiers_rank_nonnegative"),
        CheckConstraint("min_lifetime_points >= 0", name="ck_loyalty_tiers_min_nonnegative"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)

    key = Column(String(50), nullable=False)  # BRONZE / SILVER / ...
    name = Column(String(200), nullable=False)

    # reached once lifetime_points >= min_lifetime_points
    min_lifetime_points = Column(Integer, nullable=False)
    rank = Column(Integer, nullable=False)  # 0 = entry tier

    active = Column(Boolean, default=True)

    created_at = Column(TIMESTAMP, server_default=func.now())
    updated_at = Column(TIMESTAMP, server_default=func.now(), onupdate=func.now())
