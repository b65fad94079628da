"""Unit tests for subscription plan-config snapshots."""

import uuid
from datetime import date
from decimal import Decimal

import pytest
from services.ledger_service.errors import InvalidArgument, NotFound
from services.ledger_service.services import bonus_service, config_snapshot
from tests.factories import InvestorFactory, PaymentFactory, PlanFactory, WalletFactory

PLAN_CONFIG = {
    "milestone": {"milestones": [{"month": 1, "amount_paise": 10000}]},
    "profit_share": {"percentage": "5"},
}


async def _plan_and_investor(db, bonus_config=None):
    plan = PlanFactory.create(bonus_config=bonus_config or PLAN_CONFIG)
    investor = InvestorFactory.create()
    db.add_all([plan, investor, WalletFactory.create(investor_id=investor.id)])
    await db.commit()
    return plan, investor


@pytest.mark.unit
def test_hash_ignores_key_order():
    a = {"milestone": {"milestones": []}, "progressive": {"rate": "0.5"}}
    b = {"progressive": {"rate": "0.5"}, "milestone": {"milestones": []}}

    assert config_snapshot.hash_config(a) == config_snapshot.hash_config(b)
    assert len(config_snapshot.hash_config(a)) == 64


@pytest.mark.asyncio
@pytest.mark.unit
async def test_subscription_copies_plan_config(db_session):
    plan, investor = await _plan_and_investor(db_session)

    subscription = await config_snapshot.create_subscription(
        db_session,
        investor_id=investor.id,
        plan_id=plan.id,
        start_date=date(2024, 1, 1),
    )

    assert subscription.plan_slug == plan.slug
    assert subscription.amount_paise == plan.monthly_amount_paise
    assert subscription.bonus_multiplier == Decimal("1.00")
    assert subscription.config_snapshot["profit_share"] == {"percentage": "5"}
    assert config_snapshot.verify_config_integrity(subscription)


@pytest.mark.asyncio
@pytest.mark.unit
async def test_plan_edits_do_not_touch_existing_snapshots(db_session):
    plan, investor = await _plan_and_investor(db_session)
    subscription = await config_snapshot.create_subscription(
        db_session, investor_id=investor.id, plan_id=plan.id
    )

    plan.bonus_config = {"milestone": {"milestones": [{"month": 1, "amount_paise": 99}]}}
    await db_session.commit()

    subscription.consecutive_payments_count = 1
    payment = PaymentFactory.create(
        investor_id=investor.id, subscription_id=subscription.id
    )
    db_session.add(payment)
    await db_session.commit()

    (bonus,) = await bonus_service.calculate_and_award_bonuses(db_session, payment.id)
    assert bonus.amount_paise == 10000


@pytest.mark.asyncio
@pytest.mark.unit
async def test_tampered_snapshot_fails_integrity_check(db_session):
    plan, investor = await _plan_and_investor(db_session)
    subscription = await config_snapshot.create_subscription(
        db_session, investor_id=investor.id, plan_id=plan.id
    )

    subscription.config_snapshot = {
        **subscription.config_snapshot,
        "profit_share": {"percentage": "50"},
    }

    assert not config_snapshot.verify_config_integrity(subscription)


@pytest.mark.asyncio
@pytest.mark.unit
async def test_create_subscription_validates_inputs(db_session):
    plan, investor = await _plan_and_investor(db_session)

    with pytest.raises(NotFound):
        await config_snapshot.create_subscription(
            db_session, investor_id=investor.id, plan_id=uuid.uuid4()
        )
    with pytest.raises(NotFound):
        await config_snapshot.create_subscription(
            db_session, investor_id=uuid.uuid4(), plan_id=plan.id
        )
    with pytest.raises(InvalidArgument):
        await config_snapshot.create_subscription(
            db_session, investor_id=investor.id, plan_id=plan.id, amount_paise=0
        )
