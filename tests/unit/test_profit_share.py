"""Unit tests for profit share calculation, distribution and reversal."""

from datetime import date
from decimal import Decimal

import pytest
from services.ledger_service.errors import (
    DomainConflict,
    InsufficientBalance,
    InvalidArgument,
    NoEligibleSubscriptions,
)
from services.ledger_service.models import (
    BonusStatus,
    BonusTransaction,
    BonusType,
    ProfitShareStatus,
    SubscriptionStatus,
    TransactionType,
    UserProfitShare,
)
from services.ledger_service.services import (
    bonus_service,
    profit_share_service,
    wallet_ops,
)
from services.ledger_service.services.settings_provider import (
    PROFIT_SHARE_MIN_TENURE_MONTHS,
    SettingsProvider,
)
from sqlalchemy import func, select
from tests.factories import InvestorFactory, SubscriptionFactory, WalletFactory

POOL = 1000000  # ₹10,000


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def _subscriber(db, percentage="5", *, amount=100000, blocked=False, **overrides):
    investor = InvestorFactory.create(is_blocked=blocked, risk_score=90 if blocked else 0)
    wallet = WalletFactory.create(investor_id=investor.id)
    snapshot = {"profit_share": {"percentage": percentage}} if percentage else {}
    subscription = SubscriptionFactory.create(
        investor_id=investor.id,
        amount_paise=amount,
        config_snapshot=snapshot,
        **overrides,
    )
    db.add_all([investor, wallet, subscription])
    await db.commit()
    return wallet, subscription


async def _period(db, pool=POOL):
    return await profit_share_service.create_profit_share_period(
        db,
        period_name="FY24 Q1",
        total_pool_paise=pool,
        start_date=date(2024, 1, 1),
        end_date=date(2024, 3, 31),
        created_by="admin-1",
    )


async def _two_user_distribution(db):
    wallet_a, _ = await _subscriber(db, "5")
    wallet_b, _ = await _subscriber(db, "10")
    period = await _period(db)
    await profit_share_service.calculate_distribution(db, period.id)
    await profit_share_service.distribute_to_wallets(db, period.id, admin_id="admin-1")
    return period, wallet_a, wallet_b


async def _count(db, model) -> int:
    return (await db.execute(select(func.count(model.id)))).scalar_one()


# ---------------------------------------------------------------------------
# Calculation
# ---------------------------------------------------------------------------


@pytest.mark.unit
def test_share_gross_amount():
    assert profit_share_service.share_gross_amount(POOL, 1, 2, 5) == 25000
    assert profit_share_service.share_gross_amount(POOL, 1, 2, 10) == 50000
    assert profit_share_service.share_gross_amount(100, 1, 3, 100) == 33


@pytest.mark.asyncio
@pytest.mark.unit
async def test_calculate_equal_weights_different_percentages(db_session):
    _, sub_a = await _subscriber(db_session, "5")
    _, sub_b = await _subscriber(db_session, "10")
    period = await _period(db_session)

    shares = await profit_share_service.calculate_distribution(db_session, period.id)

    by_sub = {s.subscription_id: s for s in shares}
    assert by_sub[sub_a.id].gross_amount_paise == 25000
    assert by_sub[sub_b.id].gross_amount_paise == 50000
    assert by_sub[sub_a.id].ratio == Decimal("0.5")

    bonuses = (
        (
            await db_session.execute(
                select(BonusTransaction).where(
                    BonusTransaction.bonus_type == BonusType.PROFIT_SHARE
                )
            )
        )
        .scalars()
        .all()
    )
    assert len(bonuses) == 2
    assert all(b.status == BonusStatus.PENDING for b in bonuses)
    assert all(b.tds_deducted_paise == 0 for b in bonuses)

    await db_session.refresh(period)
    assert period.status == ProfitShareStatus.PENDING
    assert period.calculated_at is not None


@pytest.mark.asyncio
@pytest.mark.unit
async def test_tds_withheld_on_large_shares(db_session):
    await _subscriber(db_session, "100")
    period = await _period(db_session, pool=2000000)

    (share,) = await profit_share_service.calculate_distribution(db_session, period.id)
    bonus = (
        await db_session.execute(
            select(BonusTransaction).where(
                BonusTransaction.id == share.bonus_transaction_id
            )
        )
    ).scalar_one()

    assert share.gross_amount_paise == 2000000
    assert bonus.tds_deducted_paise == 200000
    assert bonus.net_amount_paise == 1800000


@pytest.mark.asyncio
@pytest.mark.unit
async def test_eligibility_filters(db_session):
    _, eligible = await _subscriber(db_session, "5")
    await _subscriber(db_session, "5", blocked=True)
    await _subscriber(db_session, None)
    await _subscriber(db_session, "5", status=SubscriptionStatus.CANCELLED)
    await _subscriber(db_session, "5", start_date=date(2024, 4, 1))
    period = await _period(db_session)

    shares = await profit_share_service.calculate_distribution(db_session, period.id)

    assert [s.subscription_id for s in shares] == [eligible.id]
    # A sole participant takes pool x percentage.
    assert shares[0].gross_amount_paise == 50000


@pytest.mark.asyncio
@pytest.mark.unit
async def test_minimum_tenure_from_settings(db_session):
    await _subscriber(db_session, "5", start_date=date(2024, 1, 15))
    await SettingsProvider(db_session).set(PROFIT_SHARE_MIN_TENURE_MONTHS, 3)
    period = await _period(db_session)

    with pytest.raises(NoEligibleSubscriptions):
        await profit_share_service.calculate_distribution(db_session, period.id)


@pytest.mark.asyncio
@pytest.mark.unit
async def test_non_positive_pool_cancels_period(db_session):
    await _subscriber(db_session, "5")
    period = await _period(db_session, pool=0)

    with pytest.raises(InvalidArgument):
        await profit_share_service.calculate_distribution(db_session, period.id)

    await db_session.refresh(period)
    assert period.status == ProfitShareStatus.CANCELLED
    assert await _count(db_session, UserProfitShare) == 0


@pytest.mark.asyncio
@pytest.mark.unit
async def test_no_eligible_subscriptions_cancels_period(db_session):
    period = await _period(db_session)

    with pytest.raises(NoEligibleSubscriptions):
        await profit_share_service.calculate_distribution(db_session, period.id)

    await db_session.refresh(period)
    assert period.status == ProfitShareStatus.CANCELLED
    assert period.cancellation_reason == "No eligible subscriptions"


@pytest.mark.asyncio
@pytest.mark.unit
async def test_calculation_runs_once(db_session):
    await _subscriber(db_session, "5")
    period = await _period(db_session)
    await profit_share_service.calculate_distribution(db_session, period.id)

    with pytest.raises(DomainConflict):
        await profit_share_service.calculate_distribution(db_session, period.id)


# ---------------------------------------------------------------------------
# Distribution
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_distribute_credits_net_amounts(db_session):
    period, wallet_a, wallet_b = await _two_user_distribution(db_session)

    await db_session.refresh(period)
    await db_session.refresh(wallet_a)
    await db_session.refresh(wallet_b)
    assert period.status == ProfitShareStatus.DISTRIBUTED
    assert period.total_distributed_paise == 75000
    assert period.distributed_by == "admin-1"
    assert wallet_a.balance_paise == 25000
    assert wallet_b.balance_paise == 50000

    txns, _ = await wallet_ops.list_transactions(
        db_session,
        wallet_id=wallet_a.id,
        transaction_type=TransactionType.PROFIT_SHARE,
    )
    assert len(txns) == 1


@pytest.mark.asyncio
@pytest.mark.unit
async def test_distribution_is_terminal(db_session):
    period, _, _ = await _two_user_distribution(db_session)

    with pytest.raises(DomainConflict):
        await profit_share_service.distribute_to_wallets(
            db_session, period.id, admin_id="admin-1"
        )
    with pytest.raises(DomainConflict):
        await profit_share_service.calculate_distribution(db_session, period.id)
    with pytest.raises(DomainConflict):
        await profit_share_service.cancel_period(
            db_session, period.id, reason="late", admin_id="admin-1"
        )


@pytest.mark.asyncio
@pytest.mark.unit
async def test_distribute_requires_calculation(db_session):
    period = await _period(db_session)

    with pytest.raises(DomainConflict):
        await profit_share_service.distribute_to_wallets(
            db_session, period.id, admin_id="admin-1"
        )


# ---------------------------------------------------------------------------
# Reversal
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_reverse_debits_every_wallet_back_to_zero(db_session):
    period, wallet_a, wallet_b = await _two_user_distribution(db_session)

    reversed_period = await profit_share_service.reverse_distribution(
        db_session, period.id, reason="Audit restatement", admin_id="admin-1"
    )

    assert reversed_period.status == ProfitShareStatus.REVERSED
    assert reversed_period.reversal_reason == "Audit restatement"
    await db_session.refresh(wallet_a)
    await db_session.refresh(wallet_b)
    assert wallet_a.balance_paise == 0
    assert wallet_b.balance_paise == 0

    statuses = (
        (
            await db_session.execute(
                select(BonusTransaction.status).where(
                    BonusTransaction.bonus_type == BonusType.PROFIT_SHARE
                )
            )
        )
        .scalars()
        .all()
    )
    assert set(statuses) == {BonusStatus.REVERSED}

    with pytest.raises(DomainConflict):
        await profit_share_service.reverse_distribution(
            db_session, period.id, reason="again", admin_id="admin-1"
        )


@pytest.mark.asyncio
@pytest.mark.unit
async def test_reversal_is_all_or_nothing(db_session):
    period, wallet_a, wallet_b = await _two_user_distribution(db_session)
    await wallet_ops.withdraw(
        db_session,
        wallet_id=wallet_b.id,
        amount_paise=1,
        transaction_type=TransactionType.INVESTMENT,
        description="Bought gold",
    )

    with pytest.raises(InsufficientBalance) as exc_info:
        await profit_share_service.reverse_distribution(
            db_session, period.id, reason="Audit restatement", admin_id="admin-1"
        )

    assert exc_info.value.context["investor_id"] == str(wallet_b.investor_id)
    await db_session.refresh(period)
    await db_session.refresh(wallet_a)
    await db_session.refresh(wallet_b)
    assert period.status == ProfitShareStatus.DISTRIBUTED
    assert wallet_a.balance_paise == 25000
    assert wallet_b.balance_paise == 49999
    assert (
        await db_session.execute(
            select(func.count(BonusTransaction.id)).where(
                BonusTransaction.bonus_type == BonusType.REVERSAL
            )
        )
    ).scalar_one() == 0


@pytest.mark.asyncio
@pytest.mark.unit
async def test_reversal_skips_individually_reversed_share(db_session):
    """An admin clawback of one share does not wedge the period reversal."""
    period, wallet_a, wallet_b = await _two_user_distribution(db_session)
    share_a = (
        await db_session.execute(
            select(UserProfitShare).where(
                UserProfitShare.investor_id == wallet_a.investor_id
            )
        )
    ).scalar_one()
    await bonus_service.reverse_bonus(
        db_session,
        share_a.bonus_transaction_id,
        reason="Duplicate KYC account",
        admin_id="admin-1",
    )

    reversed_period = await profit_share_service.reverse_distribution(
        db_session, period.id, reason="Audit restatement", admin_id="admin-1"
    )

    assert reversed_period.status == ProfitShareStatus.REVERSED
    await db_session.refresh(wallet_a)
    await db_session.refresh(wallet_b)
    assert wallet_a.balance_paise == 0
    assert wallet_b.balance_paise == 0
    reversals = (
        await db_session.execute(
            select(func.count(BonusTransaction.id)).where(
                BonusTransaction.bonus_type == BonusType.REVERSAL
            )
        )
    ).scalar_one()
    assert reversals == 2


# ---------------------------------------------------------------------------
# Cancellation
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_cancel_discards_calculated_shares(db_session):
    await _subscriber(db_session, "5")
    period = await _period(db_session)
    await profit_share_service.calculate_distribution(db_session, period.id)

    cancelled = await profit_share_service.cancel_period(
        db_session, period.id, reason="Pool restated", admin_id="admin-1"
    )

    assert cancelled.status == ProfitShareStatus.CANCELLED
    assert await _count(db_session, UserProfitShare) == 0
    assert await _count(db_session, BonusTransaction) == 0

    with pytest.raises(DomainConflict):
        await profit_share_service.calculate_distribution(db_session, period.id)


@pytest.mark.asyncio
@pytest.mark.unit
async def test_period_dates_validated(db_session):
    with pytest.raises(InvalidArgument):
        await profit_share_service.create_profit_share_period(
            db_session,
            period_name="Backwards",
            total_pool_paise=POOL,
            start_date=date(2024, 3, 31),
            end_date=date(2024, 1, 1),
        )
