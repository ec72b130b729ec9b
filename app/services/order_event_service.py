import logging

from sqlalchemy.orm import Session

from app.schemas.order_event import OrderCancelled, OrderCompleted, OrderCreated, OrderPaid
from app.services.loyalty_service import earn_from_order_total
from app.services.reminder_service import cancel_for_order, schedule_for_order
from app.services.reminder_settings_service import get_reminder_settings


logger = logging.getLogger(__name__)


def on_order_created(db: Session, event: OrderCreated):
    # settings are loaded per event: updates only affect orders created afterwards
    settings = get_reminder_settings(db)
    return schedule_for_order(db, event, settings)


def on_order_paid(db: Session, event: OrderPaid) -> int:
    return cancel_for_order(db, event.orderId)


def on_order_cancelled(db: Session, event: OrderCancelled) -> int:
    return cancel_for_order(db, event.orderId)


def on_order_completed(db: Session, event: OrderCompleted):
    transaction = earn_from_order_total(db, event.customerId, event.total, event.orderId)
    if transaction is None:
        logger.info(
            "order total below one loyalty point; nothing earned",
            extra={"order_id": event.orderId, "total": str(event.total)},
        )
    return transaction
