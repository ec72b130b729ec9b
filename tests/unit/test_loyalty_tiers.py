import pytest

from app.errors import ValidationError
from app.models.loyalty_tier import LoyaltyTier
from app.services.contact_service import get_loyalty_account
from app.services.loyalty_service import award
from app.services.loyalty_status_service import (
    DEFAULT_TIERS,
    TierThreshold,
    create_tier,
    delete_tier,
    list_tiers,
    load_tier_table,
    next_tier_progress,
    recompute_tiers,
    tier_for,
    tier_rank,
    update_tier,
    validate_tier_table,
)


@pytest.mark.parametrize(
    "lifetime_points, expected",
    [
        (0, "BRONZE"),
        (999, "BRONZE"),
        (1000, "SILVER"),
        (2499, "SILVER"),
        (2500, "GOLD"),
        (4999, "GOLD"),
        (5000, "PLATINUM"),
        (10_000_000, "PLATINUM"),
    ],
)
def test_tier_for_default_table(lifetime_points, expected):
    assert tier_for(lifetime_points) == expected


def test_tier_for_is_monotonic():
    ranks = [tier_rank(tier_for(p)) for p in range(0, 6001, 7)]
    assert ranks == sorted(ranks)


def test_tier_for_rejects_negative_points():
    with pytest.raises(ValidationError):
        tier_for(-1)


def test_next_tier_progress_between_tiers():
    assert next_tier_progress(2000) == {"nextTier": "GOLD", "pointsRemaining": 500}
    assert next_tier_progress(5000) == {"nextTier": None, "pointsRemaining": 0}


def test_default_table_is_valid():
    validate_tier_table(list(DEFAULT_TIERS))


@pytest.mark.parametrize(
    "tiers",
    [
        [TierThreshold("BASE", "Base", 10, 0)],
        [TierThreshold("A", "A", 0, 0), TierThreshold("B", "B", 0, 1)],
        [TierThreshold("A", "A", 0, 0), TierThreshold("A", "Again", 100, 1)],
        [TierThreshold("A", "A", 0, 0), TierThreshold("B", "B", 100, 0)],
        [TierThreshold("A", "A", 0, 0), TierThreshold("B", "B", 500, 1), TierThreshold("C", "C", 200, 2)],
        [TierThreshold("A", "A", 0, 0), TierThreshold("B", "B", -5, 1)],
        [TierThreshold("B", "B", 100, 1)],
    ],
)
def test_validate_tier_table_rejects_broken_tables(tiers):
    with pytest.raises(ValidationError):
        validate_tier_table(tiers)


def test_load_tier_table_falls_back_to_defaults(db):
    assert load_tier_table(db) == list(DEFAULT_TIERS)


def test_configured_tiers_drive_recompute(db, make_customer):
    customer = make_customer()
    award(db, customer.id, 600, "EARNED")
    assert get_loyalty_account(db, customer.id).tier == "BRONZE"

    db.add_all(
        [
            LoyaltyTier(key="MEMBER", name="Member", min_lifetime_points=0, rank=0, active=True),
            LoyaltyTier(key="VIP", name="VIP", min_lifetime_points=500, rank=1, active=True),
        ]
    )
    db.commit()

    result = recompute_tiers(db)

    assert result == {"accounts": 1, "updated": 1}
    assert get_loyalty_account(db, customer.id).tier == "VIP"


def test_tier_administration_keeps_table_valid(db):
    member = create_tier(db, {"key": "MEMBER", "name": "Member", "min_lifetime_points": 0, "rank": 0})
    vip = create_tier(db, {"key": "VIP", "name": "VIP", "min_lifetime_points": 800, "rank": 1})

    with pytest.raises(ValidationError):
        update_tier(db, vip, {"min_lifetime_points": 0})

    with pytest.raises(ValidationError):
        delete_tier(db, member)

    update_tier(db, vip, {"min_lifetime_points": 900, "name": None})
    assert [t.min_lifetime_points for t in list_tiers(db)] == [0, 900]

    delete_tier(db, vip)
    assert [t.key for t in list_tiers(db)] == ["MEMBER"]


def test_entry_tier_cannot_be_deactivated_under_higher_tiers(db, make_customer):
    customer = make_customer()
    bronze = create_tier(db, {"key": "BRONZE", "name": "Bronze", "min_lifetime_points": 0, "rank": 0})
    silver = create_tier(db, {"key": "SILVER", "name": "Silver", "min_lifetime_points": 1000, "rank": 1})

    with pytest.raises(ValidationError):
        update_tier(db, bronze, {"active": False})

    recompute_tiers(db)
    assert [t.key for t in load_tier_table(db)] == ["BRONZE", "SILVER"]
    assert tier_for(0, load_tier_table(db)) == "BRONZE"
    assert get_loyalty_account(db, customer.id).tier == "BRONZE"

    # the top tier may be switched off; an inactive row still reserves its key and rank
    update_tier(db, silver, {"active": False})
    assert [t.key for t in load_tier_table(db)] == ["BRONZE"]
    with pytest.raises(ValidationError):
        create_tier(db, {"key": "GOLD", "name": "Gold", "min_lifetime_points": 2500, "rank": 1})


def test_inactive_tier_is_not_held_to_the_active_ordering(db):
    create_tier(db, {"key": "BRONZE", "name": "Bronze", "min_lifetime_points": 0, "rank": 0})
    create_tier(db, {"key": "SILVER", "name": "Silver", "min_lifetime_points": 1000, "rank": 1})

    with pytest.raises(ValidationError):
        create_tier(db, {"key": "LEGACY", "name": "Legacy", "min_lifetime_points": 500, "rank": 2})

    legacy = create_tier(
        db, {"key": "LEGACY", "name": "Legacy", "min_lifetime_points": 500, "rank": 2, "active": False}
    )

    assert legacy.active is False
    assert [t.key for t in load_tier_table(db)] == ["BRONZE", "SILVER"]

    with pytest.raises(ValidationError):
        update_tier(db, legacy, {"active": True})
