from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.clock import utcnow
from app.config import NOTIFICATION_TEST_PHONE, REMINDER_MAX_ATTEMPTS
from app.errors import AccountNotFoundError, DispatchFailure
from app.models.reminder_event import ReminderEvent
from app.models.reminder_settings import ReminderSettings
from app.services.contact_service import get_customer, recipient_phone


logger = logging.getLogger(__name__)

SLOTS = (1, 2, 3)
STATUSES = ("PENDING", "SENT", "CANCELLED", "FAILED")


def trigger_for_slot(slot_number: int) -> str:
    return f"PAYMENT_REMINDER_{slot_number}"


def _to_utc_naive(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def _template_data(order) -> dict:
    data = {
        "order_id": order.orderId,
        "order_number": order.orderNumber or order.orderId,
    }
    if order.orderTotal is not None:
        data["order_total"] = f"{round(order.orderTotal)} CFA"
    if order.customerName:
        data["customer_name"] = order.customerName
    return data


def _events_for_order(db: Session, order_id: str) -> list[ReminderEvent]:
    return (
        db.query(ReminderEvent)
        .filter(ReminderEvent.order_id == order_id)
        .order_by(ReminderEvent.slot_number.asc())
        .all()
    )


# ============================================================
# SCHEDULE
# ============================================================
def schedule_for_order(db: Session, order, settings: ReminderSettings) -> list[ReminderEvent]:
    """
    Creates one PENDING reminder per enabled slot, due at
    order.createdAt + slot delay. Re-delivering the same order reuses the
    reminders already stored for it.
    """
    if not settings.enabled:
        logger.info("payment reminders disabled; nothing scheduled", extra={"order_id": order.orderId})
        return []

    if order.customerId is not None and get_customer(db, order.customerId) is None:
        raise AccountNotFoundError(f"Customer not found: {order.customerId}")

    created_at = _to_utc_naive(order.createdAt)
    existing = {e.slot_number: e for e in _events_for_order(db, order.orderId)}
    template_data = _template_data(order)

    events = []
    new_events = []
    for slot_number in SLOTS:
        enabled, delay_hours = settings.slot(slot_number)
        if not enabled:
            continue
        if slot_number in existing:
            events.append(existing[slot_number])
            continue

        event = ReminderEvent(
            order_id=order.orderId,
            customer_id=order.customerId,
            slot_number=slot_number,
            trigger=trigger_for_slot(slot_number),
            scheduled_at=created_at + timedelta(hours=delay_hours),
            status="PENDING",
            template_data=template_data,
            attempts=0,
        )
        db.add(event)
        events.append(event)
        new_events.append(event)

    if not new_events:
        return events

    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        enabled_slots = {s for s in SLOTS if settings.slot(s)[0]}
        stored = [e for e in _events_for_order(db, order.orderId) if e.slot_number in enabled_slots]
        if {e.slot_number for e in stored} != enabled_slots:
            # not a concurrent delivery of the same OrderCreated
            raise
        logger.info("payment reminders already scheduled", extra={"order_id": order.orderId})
        return stored

    for event in events:
        db.refresh(event)

    logger.info(
        "payment reminders scheduled",
        extra={
            "order_id": order.orderId,
            "count": len(new_events),
            "scheduled_at": [e.scheduled_at.isoformat() for e in new_events],
        },
    )
    return events


# ============================================================
# CANCEL
# ============================================================
def cancel_for_order(db: Session, order_id: str, now: datetime | None = None) -> int:
    now = now or utcnow()

    count = (
        db.query(ReminderEvent)
        .filter(ReminderEvent.order_id == order_id)
        .filter(ReminderEvent.status == "PENDING")
        .update(
            {
                ReminderEvent.status: "CANCELLED",
                ReminderEvent.cancelled_at: now,
                ReminderEvent.locked_at: None,
                ReminderEvent.locked_by: None,
            },
            synchronize_session=False,
        )
    )
    db.commit()

    if count:
        logger.info("payment reminders cancelled", extra={"order_id": order_id, "count": count})
    return int(count)


# ============================================================
# DUE / CLAIM
# ============================================================
def due_reminders(db: Session, now: datetime) -> list[ReminderEvent]:
    return (
        db.query(ReminderEvent)
        .filter(ReminderEvent.status == "PENDING")
        .filter(ReminderEvent.scheduled_at <= now)
        .order_by(ReminderEvent.scheduled_at.asc(), ReminderEvent.slot_number.asc())
        .all()
    )


def claim_due_reminders(
    db: Session,
    *,
    now: datetime,
    worker_id: str,
    batch_size: int,
    lock_ttl_seconds: int,
) -> list[ReminderEvent]:
    lock_expired_before = now - timedelta(seconds=int(lock_ttl_seconds))

    events = (
        db.query(ReminderEvent)
        .filter(ReminderEvent.status == "PENDING")
        .filter(ReminderEvent.scheduled_at <= now)
        .filter(or_(ReminderEvent.locked_at.is_(None), ReminderEvent.locked_at < lock_expired_before))
        .order_by(ReminderEvent.scheduled_at.asc(), ReminderEvent.slot_number.asc())
        .with_for_update(skip_locked=True)
        .limit(batch_size)
        .all()
    )
    for event in events:
        event.locked_at = now
        event.locked_by = worker_id

    db.commit()
    return events


def renew_lease(db: Session, event: ReminderEvent, *, worker_id: str, now: datetime) -> bool:
    """
    Restarts the lease clock right before a send. False when another worker
    reclaimed the reminder after this lease expired, or it left PENDING.
    """
    renewed = (
        db.query(ReminderEvent)
        .filter(ReminderEvent.id == event.id)
        .filter(ReminderEvent.status == "PENDING")
        .filter(ReminderEvent.locked_by == worker_id)
        .update({ReminderEvent.locked_at: now}, synchronize_session=False)
    )
    db.commit()
    return bool(renewed)


# ============================================================
# DISPATCH
# ============================================================
def _record_failure(db: Session, event: ReminderEvent, error: str, max_attempts: int) -> str:
    attempts = int(event.attempts or 0) + 1
    new_status = "FAILED" if attempts >= max_attempts else "PENDING"

    updated = (
        db.query(ReminderEvent)
        .filter(ReminderEvent.id == event.id)
        .filter(ReminderEvent.status == "PENDING")
        .update(
            {
                ReminderEvent.status: new_status,
                ReminderEvent.attempts: attempts,
                ReminderEvent.last_error: error[:2000],
                ReminderEvent.locked_at: None,
                ReminderEvent.locked_by: None,
            },
            synchronize_session=False,
        )
    )
    db.commit()
    db.refresh(event)

    if not updated:
        return event.status

    logger.warning(
        "payment reminder dispatch failed",
        extra={
            "reminder_id": str(event.id),
            "order_id": event.order_id,
            "trigger": event.trigger,
            "attempts": attempts,
            "max_attempts": max_attempts,
            "status": new_status,
            "error": error,
        },
    )
    return new_status


def record_dispatch_error(
    db: Session,
    event: ReminderEvent,
    error: str,
    *,
    max_attempts: int = REMINDER_MAX_ATTEMPTS,
) -> str:
    return _record_failure(db, event, error, max_attempts)


def dispatch(
    db: Session,
    event: ReminderEvent,
    gateway,
    *,
    now: datetime | None = None,
    max_attempts: int = REMINDER_MAX_ATTEMPTS,
) -> str:
    """
    Sends one reminder over every configured channel. At least one accepted
    channel marks the reminder SENT; otherwise it stays PENDING for the next
    pass until max_attempts is reached, then becomes FAILED. Status changes
    only apply while the reminder is still PENDING, so a reminder cancelled
    mid-flight keeps its CANCELLED state.
    """
    now = now or utcnow()

    if event.status != "PENDING":
        return event.status

    try:
        customer = get_customer(db, event.customer_id) if event.customer_id else None
        phone = NOTIFICATION_TEST_PHONE or recipient_phone(customer)
        if not phone:
            raise DispatchFailure("Recipient phone number not found")

        data = dict(event.template_data or {})
        data.setdefault("order_id", event.order_id)
        if customer and customer.name:
            data.setdefault("customer_name", customer.name)

        channels = gateway.send(event.trigger, phone, data)
        if not any((channels or {}).values()):
            raise DispatchFailure("All notification channels failed", channels)
    except DispatchFailure as e:
        return _record_failure(db, event, str(e), max_attempts)

    updated = (
        db.query(ReminderEvent)
        .filter(ReminderEvent.id == event.id)
        .filter(ReminderEvent.status == "PENDING")
        .update(
            {
                ReminderEvent.status: "SENT",
                ReminderEvent.sent_at: now,
                ReminderEvent.attempts: int(event.attempts or 0) + 1,
                ReminderEvent.last_error: None,
                ReminderEvent.locked_at: None,
                ReminderEvent.locked_by: None,
            },
            synchronize_session=False,
        )
    )
    db.commit()
    db.refresh(event)

    if not updated:
        logger.info(
            "payment reminder no longer pending; keeping terminal state",
            extra={"reminder_id": str(event.id), "order_id": event.order_id, "status": event.status},
        )
        return event.status

    logger.info(
        "payment reminder sent",
        extra={
            "reminder_id": str(event.id),
            "order_id": event.order_id,
            "trigger": event.trigger,
            "channels": channels,
        },
    )
    return "SENT"


# ============================================================
# STATS / LISTING
# ============================================================
def reminder_stats(db: Session) -> dict:
    rows = (
        db.query(ReminderEvent.status, func.count(ReminderEvent.id))
        .group_by(ReminderEvent.status)
        .all()
    )
    counts = {status: int(count) for status, count in rows}
    return {s.lower(): counts.get(s, 0) for s in STATUSES}


def list_reminders(
    db: Session,
    *,
    order_id: str | None = None,
    status: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> list[ReminderEvent]:
    q = db.query(ReminderEvent)
    if order_id:
        q = q.filter(ReminderEvent.order_id == order_id)
    if status:
        q = q.filter(ReminderEvent.status == status.upper())

    limit = max(1, min(limit, 200))
    offset = max(0, offset)

    return (
        q.order_by(ReminderEvent.scheduled_at.asc(), ReminderEvent.slot_number.asc())
        .offset(offset)
        .limit(limit)
        .all()
    )
