"""Unit tests for birthday, anniversary, festival and event milestone bonuses."""

from datetime import date

import pytest
from services.ledger_service import tasks
from services.ledger_service.models import BonusType, PaymentStatus, ReferralStatus
from services.ledger_service.schemas.plan_config import (
    CelebrationConfig,
    CelebrationMilestone,
)
from services.ledger_service.services import celebration_service
from services.ledger_service.services.settings_provider import (
    BONUS_CELEBRATION_ENABLED,
    SettingsProvider,
)
from tests.factories import (
    FestivalEventFactory,
    InvestorFactory,
    PaymentFactory,
    ReferralFactory,
    SubscriptionFactory,
    WalletFactory,
)

CELEBRATION = {
    "celebration": {"birthday_amount_paise": 10000, "anniversary_amount_paise": 20000}
}


async def _member(db, *, dob=None, start=date(2023, 6, 1), blocked=False, **sub_kw):
    investor = InvestorFactory.create(
        date_of_birth=dob, is_blocked=blocked, risk_score=80 if blocked else 0
    )
    wallet = WalletFactory.create(investor_id=investor.id)
    subscription = SubscriptionFactory.create(
        investor_id=investor.id,
        start_date=start,
        config_snapshot=sub_kw.pop("config_snapshot", CELEBRATION),
        **sub_kw,
    )
    db.add_all([investor, wallet, subscription])
    await db.commit()
    return investor, wallet, subscription


# ---------------------------------------------------------------------------
# Pure award selection
# ---------------------------------------------------------------------------


@pytest.mark.unit
def test_no_awards_on_ordinary_day():
    investor = InvestorFactory.create(date_of_birth=date(1990, 3, 5))
    subscription = SubscriptionFactory.create(start_date=date(2022, 7, 9))

    awards = celebration_service.celebration_awards(
        subscription=subscription,
        investor=investor,
        config=None,
        festivals=[],
        today=date(2024, 1, 2),
    )

    assert awards == []


@pytest.mark.unit
def test_leap_day_birthday_falls_on_feb_28():
    investor = InvestorFactory.create(date_of_birth=date(1992, 2, 29))
    subscription = SubscriptionFactory.create(start_date=date(2024, 1, 15))
    config = CelebrationConfig(birthday_amount_paise=10000)

    (award,) = celebration_service.celebration_awards(
        subscription=subscription,
        investor=investor,
        config=config,
        festivals=[],
        today=date(2023, 2, 28),
    )

    assert award.award_key == f"celebration:birthday:{subscription.id}:2023"
    assert award.amount.amount_paise == 10000


@pytest.mark.unit
def test_first_day_of_subscription_is_not_an_anniversary():
    investor = InvestorFactory.create()
    subscription = SubscriptionFactory.create(start_date=date(2024, 6, 1))

    awards = celebration_service.celebration_awards(
        subscription=subscription,
        investor=investor,
        config=CelebrationConfig(anniversary_amount_paise=20000),
        festivals=[],
        today=date(2024, 6, 1),
    )

    assert awards == []


# ---------------------------------------------------------------------------
# Batch processing
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_birthday_and_anniversary_credited(db_session):
    _, wallet, _ = await _member(db_session, dob=date(1990, 6, 1))

    bonuses = await celebration_service.process_celebration_bonuses(
        db_session, today=date(2024, 6, 1)
    )

    assert sorted(b.details["kind"] for b in bonuses) == ["anniversary", "birthday"]
    assert all(b.bonus_type == BonusType.CELEBRATION for b in bonuses)
    await db_session.refresh(wallet)
    assert wallet.balance_paise == 30000


@pytest.mark.asyncio
@pytest.mark.unit
async def test_anniversary_scales_with_years(db_session):
    _, wallet, _ = await _member(db_session, start=date(2021, 6, 1))

    (bonus,) = await celebration_service.process_celebration_bonuses(
        db_session, today=date(2024, 6, 1)
    )

    assert bonus.details == {"kind": "anniversary", "years": 3}
    assert bonus.amount_paise == 60000
    assert bonus.base_amount_paise == 20000


@pytest.mark.asyncio
@pytest.mark.unit
async def test_festival_amount_by_plan(db_session):
    db_session.add(FestivalEventFactory.create())
    await db_session.commit()
    _, gold_wallet, _ = await _member(db_session, config_snapshot={})
    _, silver_wallet, _ = await _member(
        db_session, config_snapshot={}, plan_slug="silver-monthly"
    )

    bonuses = await celebration_service.process_celebration_bonuses(
        db_session, today=date(2024, 11, 1)
    )

    assert len(bonuses) == 1
    assert bonuses[0].award_key.startswith("celebration:festival:diwali:2024-11-01:")
    await db_session.refresh(gold_wallet)
    await db_session.refresh(silver_wallet)
    assert gold_wallet.balance_paise == 25000
    assert silver_wallet.balance_paise == 0


@pytest.mark.asyncio
@pytest.mark.unit
async def test_rerun_same_day_awards_nothing(db_session):
    _, wallet, _ = await _member(db_session, dob=date(1990, 6, 1))
    today = date(2024, 6, 1)

    first = await celebration_service.process_celebration_bonuses(db_session, today=today)
    second = await celebration_service.process_celebration_bonuses(
        db_session, today=today
    )

    assert len(first) == 2
    assert second == []
    await db_session.refresh(wallet)
    assert wallet.balance_paise == 30000


@pytest.mark.asyncio
@pytest.mark.unit
async def test_disabled_toggle_skips_everything(db_session):
    _, wallet, _ = await _member(db_session, dob=date(1990, 6, 1))
    await SettingsProvider(db_session).set(BONUS_CELEBRATION_ENABLED, False)

    bonuses = await celebration_service.process_celebration_bonuses(
        db_session, today=date(2024, 6, 1)
    )

    assert bonuses == []
    await db_session.refresh(wallet)
    assert wallet.balance_paise == 0


@pytest.mark.asyncio
@pytest.mark.unit
async def test_blocked_investor_skipped_others_paid(db_session):
    _, blocked_wallet, _ = await _member(db_session, dob=date(1990, 6, 1), blocked=True)
    _, wallet, _ = await _member(db_session, dob=date(1985, 6, 1))

    bonuses = await celebration_service.process_celebration_bonuses(
        db_session, today=date(2024, 6, 1)
    )

    assert {b.investor_id for b in bonuses} == {wallet.investor_id}
    await db_session.refresh(blocked_wallet)
    assert blocked_wallet.balance_paise == 0


@pytest.mark.asyncio
@pytest.mark.unit
async def test_celebration_job(db_session, session_factory):
    await _member(db_session, dob=date(1990, 6, 1))

    count = await tasks.process_celebration_bonuses(
        date(2024, 6, 1), session_factory=session_factory
    )

    assert count == 2


# ---------------------------------------------------------------------------
# Event milestones
# ---------------------------------------------------------------------------


def _milestones(*entries):
    return {"celebration": {"milestones": list(entries)}}


async def _payments(db, subscription, count, **overrides):
    payments = [
        PaymentFactory.create(
            investor_id=subscription.investor_id,
            subscription_id=subscription.id,
            **overrides,
        )
        for _ in range(count)
    ]
    db.add_all(payments)
    await db.commit()
    return payments


@pytest.mark.unit
def test_milestone_awards_follow_thresholds():
    subscription = SubscriptionFactory.create(amount_paise=100000)
    config = CelebrationConfig(
        milestones=[
            CelebrationMilestone(
                name="Tenth instalment",
                metric="payment_count",
                threshold=10,
                amount_paise=25000,
            ),
            CelebrationMilestone(
                metric="referral_count",
                threshold=3,
                bonus_type="percentage",
                percentage="5",
            ),
            CelebrationMilestone(
                metric="tenure_months", threshold=24, amount_paise=9000
            ),
        ]
    )

    awards = celebration_service.milestone_awards(
        subscription=subscription,
        config=config,
        metrics={"payment_count": 10, "referral_count": 4, "tenure_months": 23},
    )

    assert [a.award_key for a in awards] == [
        f"celebration:milestone:{subscription.id}:payment_count:10",
        f"celebration:milestone:{subscription.id}:referral_count:3",
    ]
    assert [a.amount.amount_paise for a in awards] == [25000, 5000]
    assert awards[0].description == "Tenth instalment"
    assert awards[1].details["metric"] == "referral_count"


@pytest.mark.asyncio
@pytest.mark.unit
async def test_milestone_metrics(db_session):
    investor, _, subscription = await _member(
        db_session, start=date(2023, 6, 1), consecutive_payments_count=3
    )
    await _payments(db_session, subscription, 2)
    await _payments(db_session, subscription, 1, is_on_time=False)
    await _payments(db_session, subscription, 1, status=PaymentStatus.FAILED)
    completed, pending = ReferralStatus.COMPLETED, ReferralStatus.PENDING
    for status in (completed, completed, pending):
        referee = InvestorFactory.create()
        db_session.add(referee)
        db_session.add(
            ReferralFactory.create(
                referrer_id=investor.id, referee_id=referee.id, status=status
            )
        )
    await db_session.commit()

    metrics = await celebration_service.milestone_metrics(
        db_session, subscription, date(2024, 6, 15)
    )

    assert metrics == {
        "payment_count": 3,
        "total_invested": 300000,
        "tenure_months": 12,
        "referral_count": 2,
        "streak_months": 3,
        "zero_missed_payments": 0,
    }


@pytest.mark.asyncio
@pytest.mark.unit
async def test_payment_milestone_paid_once(db_session):
    _, wallet, subscription = await _member(
        db_session,
        config_snapshot=_milestones(
            {"metric": "payment_count", "threshold": 2, "amount_paise": 25000},
            {"metric": "zero_missed_payments", "threshold": 3, "amount_paise": 7000},
        ),
    )
    first, second = await _payments(db_session, subscription, 2)

    awarded = await celebration_service.award_payment_milestones(db_session, first.id)
    repeat = await celebration_service.award_payment_milestones(db_session, second.id)

    await db_session.refresh(wallet)
    assert [b.amount_paise for b in awarded] == [25000]
    assert repeat == []
    assert wallet.balance_paise == 25000


@pytest.mark.asyncio
@pytest.mark.unit
async def test_unpaid_payment_checks_no_milestones(db_session):
    _, wallet, subscription = await _member(
        db_session,
        config_snapshot=_milestones(
            {"metric": "payment_count", "threshold": 1, "amount_paise": 25000}
        ),
    )
    (payment,) = await _payments(
        db_session, subscription, 1, status=PaymentStatus.FAILED
    )

    bonuses = await celebration_service.award_payment_milestones(db_session, payment.id)

    assert bonuses == []
    await db_session.refresh(wallet)
    assert wallet.balance_paise == 0


@pytest.mark.asyncio
@pytest.mark.unit
async def test_daily_run_awards_tenure_milestone(db_session):
    _, wallet, subscription = await _member(
        db_session,
        start=date(2023, 6, 1),
        config_snapshot=_milestones(
            {
                "name": "One year with us",
                "metric": "tenure_months",
                "threshold": 12,
                "bonus_type": "percentage",
                "percentage": "10",
            }
        ),
    )

    early = await celebration_service.process_celebration_bonuses(
        db_session, today=date(2024, 5, 31)
    )
    (bonus,) = await celebration_service.process_celebration_bonuses(
        db_session, today=date(2024, 6, 2)
    )
    rerun = await celebration_service.process_celebration_bonuses(
        db_session, today=date(2024, 6, 3)
    )

    assert early == []
    assert rerun == []
    assert bonus.bonus_type == BonusType.CELEBRATION
    assert bonus.amount_paise == 10000
    assert bonus.award_key == (
        f"celebration:milestone:{subscription.id}:tenure_months:12"
    )
    await db_session.refresh(wallet)
    assert wallet.balance_paise == 10000


@pytest.mark.asyncio
@pytest.mark.unit
async def test_payment_job_awards_milestones(db_session, session_factory):
    _, _, subscription = await _member(
        db_session,
        config_snapshot=_milestones(
            {"metric": "total_invested", "threshold": 100000, "amount_paise": 5000}
        ),
    )
    (payment,) = await _payments(db_session, subscription, 1)

    assert await tasks.calculate_payment_bonuses(
        str(payment.id), session_factory=session_factory
    ) == 1
    assert await tasks.calculate_payment_bonuses(
        str(payment.id), session_factory=session_factory
    ) == 0
