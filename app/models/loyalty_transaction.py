import uuid
from sqlalchemy import Column, Integer, String, TIMESTAMP, ForeignKey, Index
from sqlalchemy.dialects.postgresql import UUID
from app.clock import utcnow
from app.db import Base


class LoyaltyTransaction(Base):
    __tablename__ = "loyalty_transactions"

    __table_args__ = (
        Index("ix_loyalty_transactions_account_created", "loyalty_account_id", "created_at"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)

    loyalty_account_id = Column(UUID(as_uuid=True), ForeignKey("loyalty_accounts.id"), nullable=False)

    points = Column(Integer, nullable=False)  # signed delta
    type = Column(String(20), nullable=False)  # EARNED / REDEEMED / EXPIRED / BONUS / REFUND

    description = Column(String(500))
    order_id = Column(String(100))  # correlation only

    balance_after = Column(Integer, nullable=False)

    created_at = Column(TIMESTAMP, nullable=False, default=utcnow)
