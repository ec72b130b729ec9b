from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.db import get_db
from app.schemas.reminder import (
    ReminderEventOut,
    ReminderSettingsOut,
    ReminderSettingsUpdate,
    ReminderStatsOut,
)
from app.services.notification_gateway import get_notification_gateway
from app.services.reminder_runner import process_due_reminders
from app.services.reminder_service import list_reminders, reminder_stats
from app.services.reminder_settings_service import get_reminder_settings, update_reminder_settings


router = APIRouter(prefix="/admin/reminders", tags=["admin-reminders"])


@router.get("/settings")
def read_settings(db: Session = Depends(get_db)):
    settings = get_reminder_settings(db)
    return {
        "settings": ReminderSettingsOut.model_validate(settings),
        "stats": reminder_stats(db),
    }


@router.put("/settings", response_model=ReminderSettingsOut)
def write_settings(payload: ReminderSettingsUpdate, db: Session = Depends(get_db)):
    return update_reminder_settings(db, **payload.model_dump(exclude_unset=True))


@router.get("/stats", response_model=ReminderStatsOut)
def read_stats(db: Session = Depends(get_db)):
    return reminder_stats(db)


@router.get("", response_model=list[ReminderEventOut])
def list_payment_reminders(
    orderId: str | None = None,
    status: str | None = None,
    limit: int = 50,
    offset: int = 0,
    db: Session = Depends(get_db),
):
    return list_reminders(db, order_id=orderId, status=status, limit=limit, offset=offset)


@router.post("/process")
def process_reminders(
    db: Session = Depends(get_db),
    gateway=Depends(get_notification_gateway),
):
    stats = process_due_reminders(db, gateway)
    return {
        "claimed": stats.claimed,
        "sent": stats.sent,
        "retried": stats.retried,
        "failed": stats.failed,
        "skipped": stats.skipped,
    }
