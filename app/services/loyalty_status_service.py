from dataclasses import dataclass
import logging

from sqlalchemy.orm import Session

from app.config import DEFAULT_TIER_TABLE
from app.errors import ValidationError
from app.models.loyalty_account import LoyaltyAccount
from app.models.loyalty_tier import LoyaltyTier


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TierThreshold:
    key: str
    name: str
    min_lifetime_points: int
    rank: int


DEFAULT_TIERS = tuple(TierThreshold(*row) for row in DEFAULT_TIER_TABLE)


def load_tier_table(db: Session) -> list[TierThreshold]:
    """
    Active tiers ordered by rank; falls back to the compiled-in table
    when nothing is configured.
    """
    rows = (
        db.query(LoyaltyTier)
        .filter(LoyaltyTier.active.is_(True))
        .order_by(LoyaltyTier.rank.asc(), LoyaltyTier.min_lifetime_points.asc())
        .all()
    )
    if not rows:
        return list(DEFAULT_TIERS)

    return [
        TierThreshold(
            key=r.key,
            name=r.name,
            min_lifetime_points=int(r.min_lifetime_points),
            rank=int(r.rank),
        )
        for r in rows
    ]


def _ordered(tiers) -> list[TierThreshold]:
    ordered = sorted(tiers or DEFAULT_TIERS, key=lambda t: (t.min_lifetime_points, t.rank))
    if not ordered:
        raise ValidationError("Tier table is empty")
    return ordered


def tier_for(lifetime_points: int, tiers=DEFAULT_TIERS) -> str:
    points = int(lifetime_points or 0)
    if points < 0:
        raise ValidationError("lifetime_points must be >= 0")

    ordered = _ordered(tiers)
    # the lowest tier also covers anything below its floor
    current = ordered[0]
    for t in ordered[1:]:
        if t.min_lifetime_points > points:
            break
        current = t
    return current.key


def tier_rank(tier_key: str, tiers=DEFAULT_TIERS) -> int:
    for t in tiers or DEFAULT_TIERS:
        if t.key == tier_key:
            return int(t.rank)
    return 0


def next_tier_progress(lifetime_points: int, tiers=DEFAULT_TIERS) -> dict:
    points = int(lifetime_points or 0)
    ordered = _ordered(tiers)
    current_key = tier_for(points, ordered)

    idx = next(i for i, t in enumerate(ordered) if t.key == current_key)
    if idx + 1 >= len(ordered):
        return {"nextTier": None, "pointsRemaining": 0}

    nxt = ordered[idx + 1]
    return {
        "nextTier": nxt.key,
        "pointsRemaining": max(0, nxt.min_lifetime_points - points),
    }


def _check_unique(tiers) -> None:
    if len({t.key for t in tiers}) != len(tiers):
        raise ValidationError("Tier key already exists")
    if len({t.rank for t in tiers}) != len(tiers):
        raise ValidationError("Tier rank already exists")
    if len({t.min_lifetime_points for t in tiers}) != len(tiers):
        raise ValidationError("Tier min_lifetime_points already exists")


def validate_tier_table(tiers: list[TierThreshold]) -> None:
    """
    Keeps tier_for total and monotonic: a rank-0 tier starting at 0,
    unique ranks/minimums/keys, and minimums strictly increasing with rank.
    """
    if not tiers:
        return

    for t in tiers:
        if t.rank < 0:
            raise ValidationError("rank must be >= 0")
        if t.min_lifetime_points < 0:
            raise ValidationError("min_lifetime_points must be >= 0")
        if t.rank == 0 and t.min_lifetime_points != 0:
            raise ValidationError("rank=0 tier must have min_lifetime_points=0")

    _check_unique(tiers)

    by_rank = sorted(tiers, key=lambda t: t.rank)
    if by_rank[0].min_lifetime_points != 0:
        raise ValidationError("Invalid tiers configuration: the lowest rank must start at 0 points")
    for prev, cur in zip(by_rank, by_rank[1:]):
        if cur.min_lifetime_points <= prev.min_lifetime_points:
            raise ValidationError(
                "Invalid tiers configuration: min_lifetime_points must strictly increase as rank increases"
            )


# ============================================================
# Recalcul des statuts après modification des paliers
# ============================================================
def recompute_tiers(db: Session) -> dict:
    tiers = load_tier_table(db)

    accounts = db.query(LoyaltyAccount).all()
    updated = 0
    for account in accounts:
        new_tier = tier_for(account.lifetime_points, tiers)
        if account.tier != new_tier:
            logger.info(
                "loyalty tier recomputed",
                extra={
                    "customer_id": str(account.customer_id),
                    "from_tier": account.tier,
                    "to_tier": new_tier,
                },
            )
            account.tier = new_tier
            updated += 1
    db.commit()

    return {"accounts": len(accounts), "updated": updated}


# ============================================================
# Administration des paliers
# ============================================================
def _as_threshold(tier: LoyaltyTier) -> TierThreshold:
    return TierThreshold(tier.key, tier.name, int(tier.min_lifetime_points), int(tier.rank))


def _check_configured_table(
    db: Session,
    *,
    replace_id=None,
    candidate: TierThreshold | None = None,
    candidate_active: bool = True,
) -> None:
    """
    Keys, ranks and minimums are unique over every row; the structural
    rules apply to the rows that stay active, which is what tier_for sees.
    """
    rows = [t for t in db.query(LoyaltyTier).all() if t.id != replace_id]
    every = [_as_threshold(t) for t in rows]
    active = [_as_threshold(t) for t in rows if t.active]
    if candidate is not None:
        every.append(candidate)
        if candidate_active:
            active.append(candidate)

    _check_unique(every)
    validate_tier_table(active)


def list_tiers(db: Session, active: bool | None = None) -> list[LoyaltyTier]:
    q = db.query(LoyaltyTier)
    if active is not None:
        q = q.filter(LoyaltyTier.active.is_(active))
    return q.order_by(LoyaltyTier.rank.asc()).all()


def get_tier(db: Session, tier_id) -> LoyaltyTier | None:
    return db.query(LoyaltyTier).filter(LoyaltyTier.id == tier_id).first()


def create_tier(db: Session, data: dict) -> LoyaltyTier:
    tier = LoyaltyTier(**data)
    _check_configured_table(db, candidate=_as_threshold(tier), candidate_active=bool(data.get("active", True)))

    db.add(tier)
    db.commit()
    db.refresh(tier)

    logger.info("loyalty tier created", extra={"key": tier.key, "rank": tier.rank})
    return tier


def update_tier(db: Session, tier: LoyaltyTier, changes: dict) -> LoyaltyTier:
    changes = {k: v for k, v in changes.items() if v is not None}
    candidate = TierThreshold(
        key=changes.get("key", tier.key),
        name=changes.get("name", tier.name),
        min_lifetime_points=int(changes.get("min_lifetime_points", tier.min_lifetime_points)),
        rank=int(changes.get("rank", tier.rank)),
    )
    _check_configured_table(
        db,
        replace_id=tier.id,
        candidate=candidate,
        candidate_active=bool(changes.get("active", tier.active)),
    )

    for k, v in changes.items():
        setattr(tier, k, v)
    db.commit()
    db.refresh(tier)
    return tier


def delete_tier(db: Session, tier: LoyaltyTier) -> None:
    # the remaining rows must still form a valid table
    _check_configured_table(db, replace_id=tier.id)

    key = tier.key
    db.delete(tier)
    db.commit()
    logger.info("loyalty tier deleted", extra={"key": key})
