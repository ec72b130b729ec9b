import logging
import math
from decimal import Decimal, InvalidOperation

from sqlalchemy import func
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from app.config import LOYALTY_AWARD_MAX_RETRIES, LOYALTY_CURRENCY_UNITS_PER_POINT
from app.errors import (
    AccountNotFoundError,
    ConcurrencyConflict,
    InsufficientBalanceError,
    LoyaltyEngineError,
    ValidationError,
)
from app.models.loyalty_account import LoyaltyAccount
from app.models.loyalty_transaction import LoyaltyTransaction
from app.services.loyalty_status_service import (
    DEFAULT_TIERS,
    load_tier_table,
    next_tier_progress,
    tier_for,
)


logger = logging.getLogger(__name__)


# +1: credit (points must be > 0), -1: debit (points must be < 0)
SIGN_BY_TYPE = {
    "EARNED": 1,
    "BONUS": 1,
    "REFUND": 1,
    "REDEEMED": -1,
    "EXPIRED": -1,
}

MAX_HISTORY_PAGE_SIZE = 100


def _validate_award(points, type_: str) -> tuple[int, str]:
    type_ = (type_ or "").strip().upper()
    if type_ not in SIGN_BY_TYPE:
        raise ValidationError(f"Unknown loyalty transaction type: {type_ or None}")

    if isinstance(points, bool):
        raise ValidationError("points must be an integer")
    try:
        points_i = int(points)
    except (TypeError, ValueError):
        raise ValidationError("points must be an integer")
    if points_i != points:
        raise ValidationError("points must be an integer")

    if points_i == 0:
        raise ValidationError("points must be non-zero")

    expected = SIGN_BY_TYPE[type_]
    if (points_i > 0 and expected < 0) or (points_i < 0 and expected > 0):
        sign = "positive" if expected > 0 else "negative"
        raise ValidationError(f"{type_} transactions require {sign} points (got {points_i})")

    return points_i, type_


def _lock_account(db: Session, customer_id) -> LoyaltyAccount | None:
    return (
        db.query(LoyaltyAccount)
        .filter(LoyaltyAccount.customer_id == customer_id)
        .with_for_update()
        .first()
    )


def get_account(db: Session, customer_id) -> LoyaltyAccount:
    account = db.query(LoyaltyAccount).filter(LoyaltyAccount.customer_id == customer_id).first()
    if not account:
        raise AccountNotFoundError(f"Loyalty account not found for customer {customer_id}")
    return account


def _earned_for_order(db: Session, account_id, order_id: str):
    return (
        db.query(LoyaltyTransaction)
        .filter(LoyaltyTransaction.loyalty_account_id == account_id)
        .filter(LoyaltyTransaction.order_id == order_id)
        .filter(LoyaltyTransaction.type == "EARNED")
        .first()
    )


def _apply_award(db: Session, customer_id, points: int, type_: str, description, order_id):
    # 🔹 sécuriser le compte attaché à la session
    account = _lock_account(db, customer_id)
    if not account:
        raise AccountNotFoundError(f"Loyalty account not found for customer {customer_id}")

    if type_ == "EARNED" and order_id:
        # re-checked under the row lock: concurrent deliveries of one order credit once
        existing = _earned_for_order(db, account.id, order_id)
        if existing:
            return account, existing, account.tier, False

    current = int(account.points or 0)
    if current + points < 0:
        raise InsufficientBalanceError(balance=current, requested=-points)

    tiers = load_tier_table(db)

    transaction = LoyaltyTransaction(
        loyalty_account_id=account.id,
        points=points,
        type=type_,
        description=description,
        order_id=order_id,
        balance_after=current + points,
    )
    db.add(transaction)

    account.points = current + points
    if points > 0:
        account.lifetime_points = int(account.lifetime_points or 0) + points
    else:
        account.total_redeemed = int(account.total_redeemed or 0) - points

    old_tier = account.tier
    account.tier = tier_for(account.lifetime_points, tiers)

    db.flush()

    return account, transaction, old_tier, True


# ============================================================
# AWARD / REDEEM
# ============================================================
def award(
    db: Session,
    customer_id,
    points: int,
    type: str,
    description: str | None = None,
    order_id: str | None = None,
    *,
    max_retries: int | None = None,
) -> LoyaltyTransaction:
    """
    Appends one ledger entry and updates the cached account projection
    (points, lifetime_points, total_redeemed, tier) in the same commit.

    Raises ValidationError on a sign/type mismatch, InsufficientBalanceError
    when a debit exceeds the balance, ConcurrencyConflict when the account
    version kept moving under us for every retry.
    """
    points, type_ = _validate_award(points, type)
    attempts = max(1, int(max_retries or LOYALTY_AWARD_MAX_RETRIES))

    for attempt in range(1, attempts + 1):
        try:
            account, transaction, old_tier, created = _apply_award(
                db, customer_id, points, type_, description, order_id
            )
            db.commit()
        except StaleDataError:
            db.rollback()
            logger.warning(
                "loyalty account version conflict; retrying",
                extra={"customer_id": str(customer_id), "attempt": attempt, "max_attempts": attempts},
            )
            continue
        except LoyaltyEngineError:
            db.rollback()
            raise

        if not created:
            logger.info(
                "order already credited",
                extra={"customer_id": str(customer_id), "order_id": order_id, "transaction_id": str(transaction.id)},
            )
            return transaction

        logger.info(
            "loyalty points applied",
            extra={
                "customer_id": str(customer_id),
                "points": points,
                "type": type_,
                "order_id": order_id,
                "balance": account.points,
                "lifetime_points": account.lifetime_points,
            },
        )
        if old_tier != account.tier:
            logger.info(
                "loyalty tier changed",
                extra={"customer_id": str(customer_id), "from_tier": old_tier, "to_tier": account.tier},
            )
        return transaction

    raise ConcurrencyConflict(
        f"Loyalty account for customer {customer_id} was modified concurrently ({attempts} attempts)"
    )


def points_for_order_total(order_total) -> int:
    try:
        total = Decimal(str(order_total))
    except (InvalidOperation, ValueError):
        raise ValidationError("order total must be a number")
    if not total.is_finite() or total < 0:
        raise ValidationError("order total must be >= 0")

    return int(total // Decimal(LOYALTY_CURRENCY_UNITS_PER_POINT))


def earn_from_order_total(db: Session, customer_id, order_total, order_id: str):
    existing = (
        db.query(LoyaltyTransaction)
        .join(LoyaltyAccount, LoyaltyAccount.id == LoyaltyTransaction.loyalty_account_id)
        .filter(LoyaltyAccount.customer_id == customer_id)
        .filter(LoyaltyTransaction.order_id == order_id)
        .filter(LoyaltyTransaction.type == "EARNED")
        .first()
    )
    if existing:
        return existing

    points = points_for_order_total(order_total)
    if points <= 0:
        return None

    return award(
        db,
        customer_id,
        points,
        "EARNED",
        description=f"Points earned on order {order_id}",
        order_id=order_id,
    )


# ============================================================
# READ MODELS
# ============================================================
def history(db: Session, customer_id, page: int = 1, page_size: int = 20):
    account = get_account(db, customer_id)

    page = max(1, int(page or 1))
    page_size = max(1, min(int(page_size or 20), MAX_HISTORY_PAGE_SIZE))

    q = db.query(LoyaltyTransaction).filter(LoyaltyTransaction.loyalty_account_id == account.id)

    total = q.count()
    items = (
        q.order_by(LoyaltyTransaction.created_at.desc(), LoyaltyTransaction.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
        .all()
    )

    meta = {
        "page": page,
        "pageSize": page_size,
        "total": total,
        "totalPages": math.ceil(total / page_size) if total else 0,
    }
    return items, meta


def progress_to_next_tier(account: LoyaltyAccount, tiers=DEFAULT_TIERS) -> dict:
    return next_tier_progress(account.lifetime_points, tiers)


def rebuild_from_ledger(transactions, tiers=DEFAULT_TIERS) -> dict:
    points = 0
    lifetime_points = 0
    total_redeemed = 0
    for tx in transactions:
        delta = int(tx.points)
        points += delta
        if delta > 0:
            lifetime_points += delta
        else:
            total_redeemed -= delta

    return {
        "points": points,
        "lifetime_points": lifetime_points,
        "total_redeemed": total_redeemed,
        "tier": tier_for(lifetime_points, tiers),
    }


def verify_account(db: Session, customer_id) -> dict:
    account = get_account(db, customer_id)
    tiers = load_tier_table(db)

    transactions = (
        db.query(LoyaltyTransaction)
        .filter(LoyaltyTransaction.loyalty_account_id == account.id)
        .order_by(LoyaltyTransaction.created_at.asc(), LoyaltyTransaction.id.asc())
        .all()
    )
    ledger = rebuild_from_ledger(transactions, tiers)
    cached = {
        "points": int(account.points),
        "lifetime_points": int(account.lifetime_points),
        "total_redeemed": int(account.total_redeemed),
        "tier": account.tier,
    }

    consistent = cached == ledger
    if not consistent:
        logger.warning(
            "loyalty account diverges from ledger",
            extra={"customer_id": str(customer_id), "cached": cached, "ledger": ledger},
        )

    return {
        "customerId": str(customer_id),
        "consistent": consistent,
        "transactions": len(transactions),
        "cached": cached,
        "ledger": ledger,
    }


def list_accounts(db: Session, tier: str | None = None, limit: int = 100, offset: int = 0):
    q = db.query(LoyaltyAccount)
    if tier:
        q = q.filter(LoyaltyAccount.tier == tier.upper())

    limit = max(1, min(limit, 500))
    offset = max(0, offset)

    return q.order_by(LoyaltyAccount.points.desc()).offset(offset).limit(limit).all()


def account_stats(db: Session) -> dict:
    total_accounts = db.query(func.count(LoyaltyAccount.id)).scalar()
    total_points = db.query(func.coalesce(func.sum(LoyaltyAccount.points), 0)).scalar()
    by_tier = (
        db.query(LoyaltyAccount.tier, func.count(LoyaltyAccount.id))
        .group_by(LoyaltyAccount.tier)
        .all()
    )
    return {
        "totalAccounts": int(total_accounts or 0),
        "totalPoints": int(total_points or 0),
        "byTier": {tier: int(count) for tier, count in by_tier},
    }
