"""Unit tests for referral tiers and campaign multipliers."""

import uuid
from datetime import date
from decimal import Decimal

import pytest
from services.ledger_service import tasks
from services.ledger_service.errors import DomainConflict, InvalidArgument, NotFound
from services.ledger_service.models import ReferralStatus, SubscriptionStatus
from services.ledger_service.services import referral_service
from services.ledger_service.services.settings_provider import (
    REFERRAL_TIERS,
    SettingsProvider,
)
from tests.factories import (
    InvestorFactory,
    ReferralCampaignFactory,
    ReferralFactory,
    SubscriptionFactory,
)

OFF_CAMPAIGN = date(2024, 6, 1)


async def _referrer(db, *, completed=0, snapshot=None, **sub_overrides):
    investor = InvestorFactory.create()
    subscription = SubscriptionFactory.create(
        investor_id=investor.id, config_snapshot=snapshot or {}, **sub_overrides
    )
    db.add_all([investor, subscription])
    for _ in range(completed):
        referee = InvestorFactory.create()
        db.add(referee)
        db.add(ReferralFactory.create(referrer_id=investor.id, referee_id=referee.id))
    await db.commit()
    return investor, subscription


# ---------------------------------------------------------------------------
# Tier table
# ---------------------------------------------------------------------------


@pytest.mark.unit
def test_parse_tier_table():
    config = referral_service.parse_tier_table("0:1.0, 3:1.5,5:2.0,")

    assert [(t.min_referrals, t.multiplier) for t in config.tiers] == [
        (0, Decimal("1.0")),
        (3, Decimal("1.5")),
        (5, Decimal("2.0")),
    ]


@pytest.mark.unit
def test_parse_tier_table_accepts_tier_dicts():
    config = referral_service.parse_tier_table(
        [{"min_referrals": 2, "multiplier": "1.25"}]
    )

    assert config.tiers[0].multiplier == Decimal("1.25")


@pytest.mark.unit
@pytest.mark.parametrize("raw", ["3-1.5", "three:1.5", "3:x", "3:-1"])
def test_parse_tier_table_rejects_garbage(raw):
    with pytest.raises(InvalidArgument):
        referral_service.parse_tier_table(raw)


# ---------------------------------------------------------------------------
# Multiplier recalculation
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
@pytest.mark.parametrize(
    "completed,expected",
    [(0, "1.0"), (2, "1.0"), (3, "1.5"), (5, "2.0"), (11, "2.5")],
)
async def test_platform_tiers(db_session, completed, expected):
    investor, subscription = await _referrer(db_session, completed=completed)

    result = await referral_service.recalculate_bonus_multiplier(
        db_session, investor.id, today=OFF_CAMPAIGN
    )

    assert result == {subscription.id: Decimal(expected)}
    await db_session.refresh(subscription)
    assert subscription.bonus_multiplier == Decimal(expected)


@pytest.mark.asyncio
@pytest.mark.unit
async def test_pending_referrals_do_not_count(db_session):
    investor, _ = await _referrer(db_session, completed=2)
    referee = InvestorFactory.create()
    db_session.add(referee)
    db_session.add(
        ReferralFactory.create(
            referrer_id=investor.id,
            referee_id=referee.id,
            status=ReferralStatus.PENDING,
            completed_at=None,
        )
    )
    await db_session.commit()

    assert await referral_service.count_completed_referrals(db_session, investor.id) == 2


@pytest.mark.asyncio
@pytest.mark.unit
async def test_snapshot_tiers_override_platform_tiers(db_session):
    snapshot = {"referral": {"tiers": [{"min_referrals": 1, "multiplier": "3.0"}]}}
    investor, subscription = await _referrer(db_session, completed=1, snapshot=snapshot)

    result = await referral_service.recalculate_bonus_multiplier(
        db_session, investor.id, today=OFF_CAMPAIGN
    )

    assert result[subscription.id] == Decimal("3.0")


@pytest.mark.asyncio
@pytest.mark.unit
async def test_platform_tiers_come_from_settings(db_session):
    investor, subscription = await _referrer(db_session, completed=1)
    await SettingsProvider(db_session).set(REFERRAL_TIERS, "0:1.0,1:1.1")

    result = await referral_service.recalculate_bonus_multiplier(
        db_session, investor.id, today=OFF_CAMPAIGN
    )

    assert result[subscription.id] == Decimal("1.1")


@pytest.mark.asyncio
@pytest.mark.unit
async def test_campaign_supersedes_tiers(db_session):
    investor, subscription = await _referrer(db_session, completed=5)
    db_session.add_all(
        [
            ReferralCampaignFactory.create(multiplier=Decimal("3.00")),
            ReferralCampaignFactory.create(name="Weaker", multiplier=Decimal("1.20")),
        ]
    )
    await db_session.commit()

    during = await referral_service.recalculate_bonus_multiplier(
        db_session, investor.id, today=date(2024, 10, 20)
    )
    after = await referral_service.recalculate_bonus_multiplier(
        db_session, investor.id, today=date(2024, 11, 16)
    )

    assert during[subscription.id] == Decimal("3.00")
    assert after[subscription.id] == Decimal("2.0")


@pytest.mark.asyncio
@pytest.mark.unit
async def test_inactive_subscriptions_untouched(db_session):
    investor, cancelled = await _referrer(
        db_session, completed=3, status=SubscriptionStatus.CANCELLED
    )

    result = await referral_service.recalculate_bonus_multiplier(
        db_session, investor.id, today=OFF_CAMPAIGN
    )

    assert result == {}
    await db_session.refresh(cancelled)
    assert cancelled.bonus_multiplier == Decimal("1.00")


# ---------------------------------------------------------------------------
# Completing referrals
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_complete_referral_promotes_tier(db_session):
    investor, subscription = await _referrer(db_session, completed=2)
    referee = InvestorFactory.create()
    pending = ReferralFactory.create(
        referrer_id=investor.id,
        referee_id=referee.id,
        status=ReferralStatus.PENDING,
        completed_at=None,
    )
    db_session.add_all([referee, pending])
    await db_session.commit()

    referral = await referral_service.complete_referral(
        db_session, pending.id, today=OFF_CAMPAIGN
    )

    assert referral.status == ReferralStatus.COMPLETED
    assert referral.completed_at is not None
    await db_session.refresh(subscription)
    assert subscription.bonus_multiplier == Decimal("1.5")

    with pytest.raises(DomainConflict):
        await referral_service.complete_referral(db_session, pending.id)


@pytest.mark.asyncio
@pytest.mark.unit
async def test_complete_unknown_referral(db_session):
    with pytest.raises(NotFound):
        await referral_service.complete_referral(db_session, uuid.uuid4())


@pytest.mark.asyncio
@pytest.mark.unit
async def test_refresh_job_covers_active_investors(db_session, session_factory):
    _, promoted = await _referrer(db_session, completed=3)
    await _referrer(db_session)
    await _referrer(db_session, completed=5, status=SubscriptionStatus.PAUSED)

    count = await tasks.refresh_referral_multipliers(session_factory=session_factory)

    assert count == 2
    await db_session.refresh(promoted)
    assert promoted.bonus_multiplier == Decimal("1.5")
