from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from app.db import get_db
from app.schemas.loyalty import LoyaltyAccountOut, LoyaltyTransactionOut, PointsAdjustment
from app.services.contact_service import ensure_loyalty_account, get_customer
from app.services.loyalty_service import account_stats, award, get_account, list_accounts, verify_account


router = APIRouter(prefix="/admin/loyalty", tags=["admin-loyalty"])


@router.get("/accounts")
def list_loyalty_accounts(
    tier: str | None = None,
    limit: int = 100,
    offset: int = 0,
    db: Session = Depends(get_db),
):
    accounts = list_accounts(db, tier=tier, limit=limit, offset=offset)
    return {
        "accounts": [LoyaltyAccountOut.model_validate(a) for a in accounts],
        "stats": account_stats(db),
    }


@router.post("/accounts/{customer_id}/adjust", response_model=LoyaltyTransactionOut)
def adjust_points(
    customer_id: UUID,
    payload: PointsAdjustment,
    db: Session = Depends(get_db),
):
    if not payload.reason or not payload.reason.strip():
        raise HTTPException(status_code=400, detail="reason is required")

    customer = get_customer(db, customer_id)
    if not customer:
        raise HTTPException(status_code=404, detail="Customer not found")
    ensure_loyalty_account(db, customer)

    type_ = "BONUS" if payload.points > 0 else "REDEEMED"
    return award(db, customer_id, payload.points, type_, description=payload.reason.strip())


@router.get("/accounts/{customer_id}", response_model=LoyaltyAccountOut)
def read_loyalty_account(customer_id: UUID, db: Session = Depends(get_db)):
    return get_account(db, customer_id)


@router.get("/accounts/{customer_id}/verify")
def verify_loyalty_account(customer_id: UUID, db: Session = Depends(get_db)):
    return verify_account(db, customer_id)
