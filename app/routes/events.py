from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.db import get_db
from app.schemas.order_event import OrderCancelled, OrderCompleted, OrderCreated, OrderPaid
from app.services.order_event_service import (
    on_order_cancelled,
    on_order_completed,
    on_order_created,
    on_order_paid,
)

router = APIRouter(prefix="/events", tags=["events"])


@router.post("/order-created")
def order_created(event: OrderCreated, db: Session = Depends(get_db)):
    reminders = on_order_created(db, event)
    return {
        "orderId": event.orderId,
        "scheduled": len(reminders),
        "reminders": [
            {
                "id": str(r.id),
                "slotNumber": r.slot_number,
                "scheduledAt": r.scheduled_at,
                "status": r.status,
            }
            for r in reminders
        ],
    }


@router.post("/order-paid")
def order_paid(event: OrderPaid, db: Session = Depends(get_db)):
    return {"orderId": event.orderId, "cancelled": on_order_paid(db, event)}


@router.post("/order-cancelled")
def order_cancelled(event: OrderCancelled, db: Session = Depends(get_db)):
    return {"orderId": event.orderId, "cancelled": on_order_cancelled(db, event)}


@router.post("/order-completed")
def order_completed(event: OrderCompleted, db: Session = Depends(get_db)):
    transaction = on_order_completed(db, event)
    return {
        "orderId": event.orderId,
        "transactionId": (str(transaction.id) if transaction else None),
        "points": (transaction.points if transaction else 0),
    }
