import uuid

from sqlalchemy import Column, ForeignKey, Index, Integer, JSON, String, TIMESTAMP, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func

from app.db import Base


class ReminderEvent(Base):
    __tablename__ = "reminder_events"

    __table_args__ = (
        UniqueConstraint("order_id", "slot_number", name="uq_reminder_events_order_slot"),
        Index("ix_reminder_events_status_scheduled_at", "status", "scheduled_at"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)

    order_id = Column(String(100), nullable=False, index=True)
    customer_id = Column(UUID(as_uuid=True), ForeignKey("customers.id"), nullable=True)

    slot_number = Column(Integer, nullable=False)  # 1 / 2 / 3
    trigger = Column(String(50), nullable=False)  # PAYMENT_REMINDER_1 ...

    scheduled_at = Column(TIMESTAMP, nullable=False)

    status = Column(String(20), nullable=False, default="PENDING")
    # PENDING | SENT | CANCELLED | FAILED

    template_data = Column(JSON, nullable=True)

    attempts = Column(Integer, nullable=False, default=0)
    last_error = Column(String(2000), nullable=True)

    locked_at = Column(TIMESTAMP, nullable=True)
    locked_by = Column(String(100), nullable=True)

    sent_at = Column(TIMESTAMP, nullable=True)
    cancelled_at = Column(TIMESTAMP, nullable=True)

    created_at = Column(TIMESTAMP, server_default=func.now())
