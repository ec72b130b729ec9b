from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from datetime import datetime

from sqlalchemy.orm import Session

from app.clock import utcnow
from app.config import (
    LOG_LEVEL,
    REMINDER_BATCH_SIZE,
    REMINDER_LOCK_TTL_SECONDS,
    REMINDER_MAX_ATTEMPTS,
    REMINDER_WORKER_ID,
)
from app.db import SessionLocal
from app.models.customer import Customer  # noqa: F401  (registers the customers table for the FK)
from app.services.notification_gateway import get_notification_gateway
from app.services.reminder_service import claim_due_reminders, dispatch, record_dispatch_error, renew_lease


logger = logging.getLogger(__name__)


@dataclass
class ReminderRunStats:
    claimed: int = 0
    sent: int = 0
    retried: int = 0
    failed: int = 0
    skipped: int = 0


def process_due_reminders(
    db: Session,
    gateway,
    *,
    now: datetime | None = None,
    worker_id: str | None = None,
    batch_size: int = REMINDER_BATCH_SIZE,
    lock_ttl_seconds: int = REMINDER_LOCK_TTL_SECONDS,
    max_attempts: int = REMINDER_MAX_ATTEMPTS,
) -> ReminderRunStats:
    """
    One scheduler pass, meant to be triggered by an external cron. Each
    reminder is handled on its own: an error on one never stops the batch.
    """
    started = utcnow()
    now = now or started
    worker_id = worker_id or REMINDER_WORKER_ID

    events = claim_due_reminders(
        db,
        now=now,
        worker_id=worker_id,
        batch_size=batch_size,
        lock_ttl_seconds=lock_ttl_seconds,
    )
    stats = ReminderRunStats(claimed=len(events))
    if events:
        logger.info("claimed due payment reminders", extra={"count": len(events), "now": now.isoformat()})

    for event in events:
        # the lease clock restarts per reminder, not per batch
        if not renew_lease(db, event, worker_id=worker_id, now=now + (utcnow() - started)):
            logger.info(
                "payment reminder lease lost; skipping",
                extra={"reminder_id": str(event.id), "order_id": event.order_id, "worker_id": worker_id},
            )
            stats.skipped += 1
            continue

        try:
            status = dispatch(db, event, gateway, now=now, max_attempts=max_attempts)
        except Exception as e:
            db.rollback()
            logger.exception(
                "payment reminder dispatch crashed",
                extra={"reminder_id": str(event.id), "order_id": event.order_id},
            )
            status = record_dispatch_error(db, event, str(e), max_attempts=max_attempts)

        if status == "SENT":
            stats.sent += 1
        elif status == "PENDING":
            stats.retried += 1
        elif status == "FAILED":
            stats.failed += 1
        else:
            stats.skipped += 1

    logger.info("payment reminder pass finished", extra={"worker_id": worker_id, **asdict(stats)})
    return stats


def main():
    logging.basicConfig(level=LOG_LEVEL)

    db = SessionLocal()
    try:
        stats = process_due_reminders(db, get_notification_gateway())
    finally:
        db.close()

    print(asdict(stats))


if __name__ == "__main__":
    main()
