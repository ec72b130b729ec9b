from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from app.db import get_db
from app.schemas.customer import CustomerCreate, CustomerOut, CustomerUpdate
from app.schemas.loyalty import LoyaltyHistoryOut
from app.services.contact_service import create_customer, get_customer, update_customer
from app.services.loyalty_service import get_account, history, progress_to_next_tier
from app.services.loyalty_status_service import load_tier_table


router = APIRouter(prefix="/customers", tags=["customers"])


def _get_customer_or_404(db: Session, customer_id: UUID):
    customer = get_customer(db, customer_id)
    if not customer:
        raise HTTPException(status_code=404, detail="Customer not found")
    return customer


@router.post("", response_model=CustomerOut)
def create(payload: CustomerCreate, db: Session = Depends(get_db)):
    customer = create_customer(db, payload.model_dump())
    db.commit()
    db.refresh(customer)
    return customer


@router.get("/{customer_id}", response_model=CustomerOut)
def read(customer_id: UUID, db: Session = Depends(get_db)):
    return _get_customer_or_404(db, customer_id)


@router.patch("/{customer_id}", response_model=CustomerOut)
def update(customer_id: UUID, payload: CustomerUpdate, db: Session = Depends(get_db)):
    customer = _get_customer_or_404(db, customer_id)
    update_customer(db, customer, payload.model_dump(exclude_unset=True))
    db.commit()
    db.refresh(customer)
    return customer


@router.get("/{customer_id}/loyalty")
def get_customer_loyalty(customer_id: UUID, db: Session = Depends(get_db)):
    _get_customer_or_404(db, customer_id)
    account = get_account(db, customer_id)
    tiers = load_tier_table(db)
    progress = progress_to_next_tier(account, tiers)

    return {
        "customerId": str(customer_id),
        "points": int(account.points),
        "lifetimePoints": int(account.lifetime_points),
        "totalRedeemed": int(account.total_redeemed),
        "tier": account.tier,
        "nextTier": progress["nextTier"],
        "pointsToNextTier": progress["pointsRemaining"],
        "tiers": [
            {
                "key": t.key,
                "name": t.name,
                "rank": t.rank,
                "minLifetimePoints": t.min_lifetime_points,
            }
            for t in tiers
        ],
    }


@router.get("/{customer_id}/loyalty/history", response_model=LoyaltyHistoryOut)
def get_customer_loyalty_history(
    customer_id: UUID,
    page: int = 1,
    pageSize: int = 20,
    db: Session = Depends(get_db),
):
    _get_customer_or_404(db, customer_id)
    items, meta = history(db, customer_id, page=page, page_size=pageSize)
    return {"items": items, "pagination": meta}
