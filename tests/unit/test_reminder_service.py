import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy.exc import IntegrityError

from app.errors import AccountNotFoundError
from app.models.reminder_event import ReminderEvent
from app.schemas.order_event import OrderCreated
from app.services import reminder_service
from app.services.reminder_service import (
    cancel_for_order,
    claim_due_reminders,
    dispatch,
    due_reminders,
    reminder_stats,
    renew_lease,
    schedule_for_order,
)
from app.services.reminder_settings_service import get_reminder_settings, update_reminder_settings

T0 = datetime(2026, 3, 1, 10, 0, 0)


def _order(order_id="ORD-1", customer_id=None, created_at=T0, **extra):
    return OrderCreated(
        orderId=order_id,
        customerId=customer_id,
        createdAt=created_at,
        orderNumber=extra.get("orderNumber", "CMD-0001"),
        orderTotal=extra.get("orderTotal", Decimal("15000")),
        customerName=extra.get("customerName"),
    )


@pytest.fixture
def settings(db):
    return get_reminder_settings(db)


@pytest.fixture
def customer(make_customer):
    return make_customer(name="Fatou Ndiaye", phone="+221 77 123 45 67")


def test_default_settings_schedule_three_reminders(db, settings, customer):
    events = schedule_for_order(db, _order(customer_id=customer.id), settings)

    assert [e.slot_number for e in events] == [1, 2, 3]
    assert [e.status for e in events] == ["PENDING"] * 3
    assert [e.scheduled_at for e in events] == [
        T0 + timedelta(hours=24),
        T0 + timedelta(hours=72),
        T0 + timedelta(hours=120),
    ]
    assert [e.trigger for e in events] == ["PAYMENT_REMINDER_1", "PAYMENT_REMINDER_2", "PAYMENT_REMINDER_3"]
    assert events[0].template_data["order_number"] == "CMD-0001"
    assert events[0].template_data["order_total"] == "15000 CFA"


def test_aware_created_at_is_stored_as_utc(db, settings):
    created_at = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone(timedelta(hours=2)))

    events = schedule_for_order(db, _order(created_at=created_at), settings)

    assert events[0].scheduled_at == T0 + timedelta(hours=24)


def test_disabled_slot_is_skipped(db, settings):
    update_reminder_settings(db, reminder2_enabled=False)

    events = schedule_for_order(db, _order(), get_reminder_settings(db))

    assert [e.slot_number for e in events] == [1, 3]


def test_disabled_feature_schedules_nothing(db, settings):
    update_reminder_settings(db, enabled=False)

    assert schedule_for_order(db, _order(), get_reminder_settings(db)) == []
    assert db.query(ReminderEvent).count() == 0


def test_redelivered_order_created_reuses_reminders(db, settings):
    first = schedule_for_order(db, _order(), settings)
    second = schedule_for_order(db, _order(), settings)

    assert {e.id for e in first} == {e.id for e in second}
    assert db.query(ReminderEvent).count() == 3


def test_payment_before_first_reminder_cancels_everything(db, settings, customer):
    schedule_for_order(db, _order(customer_id=customer.id), settings)

    cancelled = cancel_for_order(db, "ORD-1", now=T0 + timedelta(hours=10))

    assert cancelled == 3
    assert reminder_stats(db) == {"pending": 0, "sent": 0, "cancelled": 3, "failed": 0}
    assert due_reminders(db, T0 + timedelta(days=30)) == []


def test_cancel_is_idempotent_and_keeps_sent_reminders(db, settings, customer, fake_gateway):
    schedule_for_order(db, _order(customer_id=customer.id), settings)
    [first] = due_reminders(db, T0 + timedelta(hours=24))
    assert dispatch(db, first, fake_gateway) == "SENT"

    assert cancel_for_order(db, "ORD-1") == 2
    assert cancel_for_order(db, "ORD-1") == 0
    assert cancel_for_order(db, "UNKNOWN") == 0

    assert reminder_stats(db) == {"pending": 0, "sent": 1, "cancelled": 2, "failed": 0}


def test_due_reminders_ordered_by_due_time(db, settings):
    schedule_for_order(db, _order("ORD-A", created_at=T0), settings)
    schedule_for_order(db, _order("ORD-B", created_at=T0 - timedelta(hours=30)), settings)

    due = due_reminders(db, T0 + timedelta(hours=72))

    assert [(e.order_id, e.slot_number) for e in due] == [
        ("ORD-B", 1),
        ("ORD-A", 1),
        ("ORD-B", 2),
        ("ORD-A", 2),
    ]
    assert all(e.scheduled_at <= T0 + timedelta(hours=72) for e in due)


def test_claim_leases_reminders_to_one_worker(db, settings):
    schedule_for_order(db, _order(), settings)
    now = T0 + timedelta(hours=200)

    claimed = claim_due_reminders(db, now=now, worker_id="w1", batch_size=10, lock_ttl_seconds=600)
    assert len(claimed) == 3
    assert {e.locked_by for e in claimed} == {"w1"}

    assert claim_due_reminders(db, now=now, worker_id="w2", batch_size=10, lock_ttl_seconds=600) == []

    later = now + timedelta(seconds=601)
    reclaimed = claim_due_reminders(db, now=later, worker_id="w2", batch_size=2, lock_ttl_seconds=600)
    assert len(reclaimed) == 2
    assert {e.locked_by for e in reclaimed} == {"w2"}


def test_dispatch_sends_to_customer_phone(db, settings, customer, fake_gateway):
    schedule_for_order(db, _order(customer_id=customer.id), settings)
    [event] = due_reminders(db, T0 + timedelta(hours=24))

    status = dispatch(db, event, fake_gateway, now=T0 + timedelta(hours=24, minutes=1))

    assert status == "SENT"
    assert event.status == "SENT"
    assert event.attempts == 1
    assert event.sent_at == T0 + timedelta(hours=24, minutes=1)
    trigger, phone, data = fake_gateway.calls[0]
    assert trigger == "PAYMENT_REMINDER_1"
    assert phone == "+221771234567"
    assert data["customer_name"] == "Fatou Ndiaye"

    # terminal: a second dispatch does not send again
    assert dispatch(db, event, fake_gateway) == "SENT"
    assert len(fake_gateway.calls) == 1


def test_whatsapp_number_is_preferred(db, settings, make_customer, fake_gateway):
    customer = make_customer(phone="770000000", whatsapp_number="+221 78 999 99 99")
    schedule_for_order(db, _order(customer_id=customer.id), settings)
    [event] = due_reminders(db, T0 + timedelta(hours=24))

    dispatch(db, event, fake_gateway)

    assert fake_gateway.calls[0][1] == "+221789999999"


def test_one_successful_channel_is_enough(db, settings, customer, make_gateway):
    gateway = make_gateway(outcome={"SMS": False, "WHATSAPP": True})
    schedule_for_order(db, _order(customer_id=customer.id), settings)
    [event] = due_reminders(db, T0 + timedelta(hours=24))

    assert dispatch(db, event, gateway) == "SENT"


def test_failed_dispatch_retries_then_gives_up(db, settings, customer, failing_gateway):
    schedule_for_order(db, _order(customer_id=customer.id), settings)
    [event] = due_reminders(db, T0 + timedelta(hours=24))

    assert dispatch(db, event, failing_gateway, max_attempts=3) == "PENDING"
    assert event.attempts == 1
    assert "All notification channels failed" in event.last_error

    assert dispatch(db, event, failing_gateway, max_attempts=3) == "PENDING"
    assert dispatch(db, event, failing_gateway, max_attempts=3) == "FAILED"
    assert event.attempts == 3

    assert dispatch(db, event, failing_gateway, max_attempts=3) == "FAILED"
    assert len(failing_gateway.calls) == 3
    assert reminder_stats(db)["failed"] == 1


def test_missing_phone_is_a_dispatch_failure(db, settings, fake_gateway):
    schedule_for_order(db, _order(customer_id=None), settings)
    [event] = due_reminders(db, T0 + timedelta(hours=24))

    assert dispatch(db, event, fake_gateway) == "PENDING"
    assert event.last_error == "Recipient phone number not found"
    assert fake_gateway.calls == []


def test_cancel_during_send_keeps_cancelled_state(db, settings, customer):
    schedule_for_order(db, _order(customer_id=customer.id), settings)
    [event] = due_reminders(db, T0 + timedelta(hours=24))

    class CancellingGateway:
        def send(self, trigger, recipient_phone, template_data):
            # order paid while the message was in flight
            db.query(ReminderEvent).filter(ReminderEvent.order_id == "ORD-1").update(
                {ReminderEvent.status: "CANCELLED"}, synchronize_session=False
            )
            return {"SMS": True, "WHATSAPP": True}

    status = dispatch(db, event, CancellingGateway())

    assert status == "CANCELLED"
    assert event.status == "CANCELLED"
    assert event.sent_at is None
    assert reminder_stats(db)["sent"] == 0


def test_settings_update_is_not_retroactive(db, settings):
    [old_first, *_] = schedule_for_order(db, _order("ORD-OLD"), settings)

    update_reminder_settings(db, reminder1_delay=48)
    [new_first, *_] = schedule_for_order(db, _order("ORD-NEW"), get_reminder_settings(db))

    db.refresh(old_first)
    assert old_first.scheduled_at == T0 + timedelta(hours=24)
    assert new_first.scheduled_at == T0 + timedelta(hours=48)


def test_unknown_customer_is_rejected_before_scheduling(db, settings):
    with pytest.raises(AccountNotFoundError):
        schedule_for_order(db, _order(customer_id=uuid.uuid4()), settings)

    assert db.query(ReminderEvent).count() == 0


def test_integrity_error_other_than_a_duplicate_delivery_is_raised(sqlite_foreign_keys, db, settings, monkeypatch):
    # customer removed between the lookup and the insert
    monkeypatch.setattr(reminder_service, "get_customer", lambda db, customer_id: object())

    with pytest.raises(IntegrityError):
        schedule_for_order(db, _order(customer_id=uuid.uuid4()), settings)

    assert db.query(ReminderEvent).count() == 0


def test_concurrent_duplicate_delivery_returns_stored_reminders(db, session_factory, settings, monkeypatch):
    other = session_factory()
    try:
        winner = schedule_for_order(other, _order(), get_reminder_settings(other))
    finally:
        other.close()

    # this delivery looked up the order before the other one committed
    stored_events = reminder_service._events_for_order
    reads = []

    def first_read_empty(db, order_id):
        reads.append(order_id)
        return [] if len(reads) == 1 else stored_events(db, order_id)

    monkeypatch.setattr(reminder_service, "_events_for_order", first_read_empty)

    events = schedule_for_order(db, _order(), settings)

    assert {e.id for e in events} == {e.id for e in winner}
    assert db.query(ReminderEvent).count() == 3


def test_lease_renewal_only_for_the_current_holder(db, settings):
    schedule_for_order(db, _order(), settings)
    now = T0 + timedelta(hours=30)

    [event] = claim_due_reminders(db, now=now, worker_id="w1", batch_size=1, lock_ttl_seconds=600)
    assert renew_lease(db, event, worker_id="w1", now=now + timedelta(seconds=500)) is True

    # renewed at +500s, so still held at +700s
    held = claim_due_reminders(
        db, now=now + timedelta(seconds=700), worker_id="w2", batch_size=1, lock_ttl_seconds=600
    )
    assert held == []

    [taken] = claim_due_reminders(
        db, now=now + timedelta(seconds=1101), worker_id="w2", batch_size=1, lock_ttl_seconds=600
    )
    assert taken.id == event.id
    assert renew_lease(db, event, worker_id="w1", now=now + timedelta(seconds=1102)) is False
    assert renew_lease(db, taken, worker_id="w2", now=now + timedelta(seconds=1102)) is True
