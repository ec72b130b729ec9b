import logging

from sqlalchemy.orm import Session

from app.models.customer import Customer
from app.models.loyalty_account import LoyaltyAccount
from app.services.loyalty_status_service import load_tier_table, tier_for


logger = logging.getLogger(__name__)


def _normalize_phone(value: str | None) -> str | None:
    v = (value or "").strip()
    if not v:
        return None
    return "".join(ch for ch in v if ch.isdigit() or ch == "+")


def get_customer(db: Session, customer_id):
    return db.query(Customer).filter(Customer.id == customer_id).first()


def get_loyalty_account(db: Session, customer_id):
    return db.query(LoyaltyAccount).filter(LoyaltyAccount.customer_id == customer_id).first()


def ensure_loyalty_account(db: Session, customer: Customer) -> LoyaltyAccount:
    account = get_loyalty_account(db, customer.id)
    if account:
        return account

    account = LoyaltyAccount(
        customer_id=customer.id,
        points=0,
        lifetime_points=0,
        total_redeemed=0,
        tier=tier_for(0, load_tier_table(db)),
    )
    db.add(account)
    db.flush()
    return account


def create_customer(db: Session, payload: dict | None = None) -> Customer:
    """
    Crée le client et son compte fidélité dans la même unité de travail.
    L'appelant est responsable du commit.
    """
    payload = payload or {}

    customer = Customer(
        name=(payload.get("name") or None),
        phone=_normalize_phone(payload.get("phone")),
        whatsapp_number=_normalize_phone(payload.get("whatsapp_number")),
    )
    db.add(customer)
    db.flush()

    ensure_loyalty_account(db, customer)

    logger.info("customer created", extra={"customer_id": str(customer.id)})
    return customer


def update_customer(db: Session, customer: Customer, payload: dict) -> Customer:
    if "name" in payload and payload["name"] is not None:
        customer.name = payload["name"]
    if "phone" in payload and payload["phone"] is not None:
        customer.phone = _normalize_phone(payload["phone"])
    if "whatsapp_number" in payload and payload["whatsapp_number"] is not None:
        customer.whatsapp_number = _normalize_phone(payload["whatsapp_number"])
    db.flush()
    return customer


def recipient_phone(customer: Customer | None) -> str | None:
    if not customer:
        return None
    return customer.whatsapp_number or customer.phone
