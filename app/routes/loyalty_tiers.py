from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from app.db import get_db
from app.schemas.loyalty_tier import LoyaltyTierCreate, LoyaltyTierOut, LoyaltyTierUpdate
from app.services.loyalty_status_service import (
    create_tier,
    delete_tier,
    get_tier,
    list_tiers,
    recompute_tiers,
    update_tier,
)


router = APIRouter(prefix="/admin/loyalty-tiers", tags=["admin-loyalty-tiers"])


def _get_tier_or_404(db: Session, tier_id: UUID):
    tier = get_tier(db, tier_id)
    if not tier:
        raise HTTPException(status_code=404, detail="Tier not found")
    return tier


@router.get("", response_model=list[LoyaltyTierOut])
def list_loyalty_tiers(active: bool | None = None, db: Session = Depends(get_db)):
    return list_tiers(db, active=active)


@router.post("", response_model=LoyaltyTierOut)
def create_loyalty_tier(payload: LoyaltyTierCreate, db: Session = Depends(get_db)):
    return create_tier(db, payload.model_dump())


@router.get("/{tier_id}", response_model=LoyaltyTierOut)
def get_loyalty_tier(tier_id: UUID, db: Session = Depends(get_db)):
    return _get_tier_or_404(db, tier_id)


@router.patch("/{tier_id}", response_model=LoyaltyTierOut)
def update_loyalty_tier(tier_id: UUID, payload: LoyaltyTierUpdate, db: Session = Depends(get_db)):
    tier = _get_tier_or_404(db, tier_id)
    return update_tier(db, tier, payload.model_dump(exclude_unset=True))


@router.delete("/{tier_id}")
def delete_loyalty_tier(tier_id: UUID, db: Session = Depends(get_db)):
    delete_tier(db, _get_tier_or_404(db, tier_id))
    return {"deleted": True}


# Existing accounts keep their cached tier until recomputed
@router.post("/recompute-accounts")
def recompute_accounts_tier(db: Session = Depends(get_db)):
    return recompute_tiers(db)
