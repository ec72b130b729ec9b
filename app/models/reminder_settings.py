from sqlalchemy import Boolean, Column, Integer, String, TIMESTAMP
from sqlalchemy.sql import func

from app.db import Base


class ReminderSettings(Base):
    __tablename__ = "reminder_settings"

    # singleton row
    id = Column(String(20), primary_key=True, default="default")

    enabled = Column(Boolean, nullable=False, default=True)

    reminder1_delay = Column(Integer, nullable=False, default=24)
    reminder2_delay = Column(Integer, nullable=False, default=72)
    reminder3_delay = Column(Integer, nullable=False, default=120)

    reminder1_enabled = Column(Boolean, nullable=False, default=True)
    reminder2_enabled = Column(Boolean, nullable=False, default=True)
    reminder3_enabled = Column(Boolean, nullable=False, default=True)

    updated_at = Column(TIMESTAMP, server_default=func.now(), onupdate=func.now())

    def slot(self, slot_number: int) -> tuple[bool, int]:
        return (
            bool(getattr(self, f"reminder{slot_number}_enabled")),
            int(getattr(self, f"reminder{slot_number}_delay")),
        )
