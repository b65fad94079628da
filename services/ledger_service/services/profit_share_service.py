"""Profit share distribution.

Lifecycle of a period::

    pending --calculate--> pending (with shares) --distribute--> distributed
    distributed --reverse--> reversed
    pending --cancel--> cancelled

``reversed`` and ``cancelled`` are terminal. Distribution and reversal are all
or nothing: one failing wallet rolls back the whole batch.
"""

import uuid
from datetime import date
from decimal import Decimal
from typing import Optional

from libs.common.currency import HUNDRED, format_inr, round_paise
from libs.common.datetime_utils import months_between, utc_now
from libs.common.logging import get_logger
from services.ledger_service.errors import (
    DomainConflict,
    InsufficientBalance,
    InvalidArgument,
    NoEligibleSubscriptions,
    NotFound,
)
from services.ledger_service.models import (
    BonusStatus,
    BonusTransaction,
    BonusType,
    Investor,
    ProfitShare,
    ProfitShareStatus,
    Subscription,
    SubscriptionStatus,
    TransactionType,
    UserProfitShare,
    Wallet,
)
from services.ledger_service.services import tds, wallet_ops
from services.ledger_service.services.bonus_service import (
    snapshot_section,
    write_reversal,
)
from services.ledger_service.services.settings_provider import (
    PROFIT_SHARE_MIN_INVESTMENT_PAISE,
    PROFIT_SHARE_MIN_TENURE_MONTHS,
    SettingsProvider,
)
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)

RATIO_PLACES = Decimal("0.00000001")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def _get_period(
    db: AsyncSession, profit_share_id: uuid.UUID, *, for_update: bool = False
) -> ProfitShare:
    query = select(ProfitShare).where(ProfitShare.id == profit_share_id)
    if for_update:
        query = query.with_for_update().execution_options(populate_existing=True)
    period = (await db.execute(query)).scalar_one_or_none()
    if not period:
        raise NotFound(
            "Profit share period not found", {"profit_share_id": str(profit_share_id)}
        )
    return period


def _require_status(period: ProfitShare, expected: ProfitShareStatus, action: str) -> None:
    if period.status != expected:
        raise DomainConflict(
            f"Cannot {action} a {period.status.value} profit share period",
            {
                "profit_share_id": str(period.id),
                "status": period.status.value,
                "expected_status": expected.value,
            },
        )


async def _shares_with_bonuses(
    db: AsyncSession, profit_share_id: uuid.UUID
) -> list[tuple[UserProfitShare, BonusTransaction]]:
    result = await db.execute(
        select(UserProfitShare, BonusTransaction)
        .join(
            BonusTransaction,
            BonusTransaction.id == UserProfitShare.bonus_transaction_id,
        )
        .where(UserProfitShare.profit_share_id == profit_share_id)
        .order_by(UserProfitShare.created_at, UserProfitShare.id)
    )
    return [(share, bonus) for share, bonus in result.all()]


async def _cancel(db: AsyncSession, period: ProfitShare, reason: str) -> None:
    period.status = ProfitShareStatus.CANCELLED
    period.cancellation_reason = reason
    await db.commit()
    logger.info("Profit share period %s cancelled: %s", period.id, reason)


def share_gross_amount(
    pool_paise: int, weight_paise: int, total_weight_paise: int, percentage: Decimal
) -> int:
    """pool × (weight / Σweights) × percentage / 100, rounded half-up."""
    return round_paise(
        Decimal(pool_paise) * weight_paise * percentage
        / (Decimal(total_weight_paise) * HUNDRED)
    )


# ---------------------------------------------------------------------------
# Period lifecycle
# ---------------------------------------------------------------------------


async def create_profit_share_period(
    db: AsyncSession,
    *,
    period_name: str,
    total_pool_paise: int,
    start_date: date,
    end_date: date,
    created_by: Optional[str] = None,
) -> ProfitShare:
    if end_date < start_date:
        raise InvalidArgument(
            "Period end date is before its start date",
            {"start_date": start_date.isoformat(), "end_date": end_date.isoformat()},
        )
    period = ProfitShare(
        period_name=period_name,
        total_pool_paise=total_pool_paise,
        start_date=start_date,
        end_date=end_date,
        status=ProfitShareStatus.PENDING,
        created_by=created_by,
    )
    db.add(period)
    await db.commit()
    await db.refresh(period)

    logger.info(
        "Created profit share period %s (%s) pool=%s",
        period.id,
        period_name,
        format_inr(total_pool_paise),
    )
    return period


async def calculate_distribution(
    db: AsyncSession,
    profit_share_id: uuid.UUID,
    *,
    settings: Optional[SettingsProvider] = None,
) -> list[UserProfitShare]:
    """Compute every eligible subscription's share and its pending bonus row.

    Cancels the period and raises when the pool is not positive or nothing is
    eligible.
    """
    settings = settings or SettingsProvider(db)
    period = await _get_period(db, profit_share_id, for_update=True)
    _require_status(period, ProfitShareStatus.PENDING, "calculate")

    existing = (
        await db.execute(
            select(UserProfitShare.id)
            .where(UserProfitShare.profit_share_id == period.id)
            .limit(1)
        )
    ).first()
    if existing:
        raise DomainConflict(
            "Distribution already calculated for this period",
            {"profit_share_id": str(period.id)},
        )

    if period.total_pool_paise <= 0:
        pool = period.total_pool_paise
        await _cancel(db, period, "Total pool must be positive")
        raise InvalidArgument(
            "Total pool must be positive",
            {"profit_share_id": str(profit_share_id), "total_pool_paise": pool},
        )

    min_tenure = await settings.get_int(PROFIT_SHARE_MIN_TENURE_MONTHS, fresh=True)
    min_investment = await settings.get_int(
        PROFIT_SHARE_MIN_INVESTMENT_PAISE, fresh=True
    )

    result = await db.execute(
        select(Subscription)
        .join(Investor, Investor.id == Subscription.investor_id)
        .where(
            Subscription.status == SubscriptionStatus.ACTIVE,
            Subscription.start_date <= period.end_date,
            Subscription.amount_paise >= min_investment,
            Investor.is_blocked.is_(False),
        )
        .order_by(Subscription.created_at, Subscription.id)
    )
    eligible: list[tuple[Subscription, Decimal]] = []
    for subscription in result.scalars().all():
        if months_between(subscription.start_date, period.end_date) < min_tenure:
            continue
        config = snapshot_section(subscription, "profit_share")
        if config is None or config.percentage <= 0:
            continue
        eligible.append((subscription, config.percentage))

    if not eligible:
        await _cancel(db, period, "No eligible subscriptions")
        raise NoEligibleSubscriptions(
            "No eligible subscriptions for profit share",
            {"profit_share_id": str(profit_share_id)},
        )

    threshold, rate = await tds.load_tds_policy(settings)
    total_weight = sum(s.amount_paise for s, _ in eligible)
    pool = period.total_pool_paise

    shares: list[UserProfitShare] = []
    try:
        for subscription, percentage in eligible:
            gross = share_gross_amount(
                pool, subscription.amount_paise, total_weight, percentage
            )
            withholding = tds.compute_tds(gross, threshold, rate)
            bonus = BonusTransaction(
                investor_id=subscription.investor_id,
                subscription_id=subscription.id,
                bonus_type=BonusType.PROFIT_SHARE,
                amount_paise=gross,
                tds_deducted_paise=withholding.tds_paise,
                status=BonusStatus.PENDING,
                award_key=f"profit_share:{period.id}:{subscription.id}",
                description=f"Profit share: {period.period_name}",
                details={"profit_share_id": str(period.id)},
            )
            db.add(bonus)
            await db.flush()

            share = UserProfitShare(
                profit_share_id=period.id,
                investor_id=subscription.investor_id,
                subscription_id=subscription.id,
                weight_paise=subscription.amount_paise,
                ratio=(Decimal(subscription.amount_paise) / total_weight).quantize(
                    RATIO_PLACES
                ),
                profit_share_percentage=percentage,
                gross_amount_paise=gross,
                bonus_transaction_id=bonus.id,
            )
            db.add(share)
            shares.append(share)

        period.calculated_at = utc_now()
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info(
        "Calculated profit share %s: %d shares, gross total %d",
        period.id,
        len(shares),
        sum(s.gross_amount_paise for s in shares),
    )
    return shares


async def distribute_to_wallets(
    db: AsyncSession, profit_share_id: uuid.UUID, *, admin_id: str
) -> ProfitShare:
    """Deposit every share's net amount. All shares land or none do."""
    period = await _get_period(db, profit_share_id, for_update=True)
    _require_status(period, ProfitShareStatus.PENDING, "distribute")

    pairs = await _shares_with_bonuses(db, period.id)
    if not pairs:
        raise DomainConflict(
            "Calculate the distribution before distributing",
            {"profit_share_id": str(period.id)},
        )

    total_net = 0
    try:
        for share, bonus in pairs:
            wallet = await wallet_ops.get_wallet_for_investor(db, share.investor_id)
            if bonus.net_amount_paise > 0:
                txn = await wallet_ops.deposit(
                    db,
                    wallet_id=wallet.id,
                    amount_paise=bonus.net_amount_paise,
                    transaction_type=TransactionType.PROFIT_SHARE,
                    description=bonus.description or "Profit share",
                    reference_type="bonus_transaction",
                    reference_id=str(bonus.id),
                    idempotency_key=f"profit-share:{bonus.id}",
                    metadata=(
                        {"tds_deducted_paise": bonus.tds_deducted_paise}
                        if bonus.tds_deducted_paise
                        else None
                    ),
                    commit=False,
                )
                bonus.wallet_transaction_id = txn.id
                total_net += bonus.net_amount_paise
            bonus.status = BonusStatus.CREDITED
            bonus.credited_at = utc_now()

        period.status = ProfitShareStatus.DISTRIBUTED
        period.total_distributed_paise = total_net
        period.distributed_by = admin_id
        period.distributed_at = utc_now()
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    await db.refresh(period)
    logger.info(
        "Distributed profit share %s by %s: %d shares, net %s",
        period.id,
        admin_id,
        len(pairs),
        format_inr(total_net),
    )
    return period


async def reverse_distribution(
    db: AsyncSession, profit_share_id: uuid.UUID, *, reason: str, admin_id: str
) -> ProfitShare:
    """Claw back a distributed period.

    Every wallet is checked first; if any investor can no longer cover their
    net share the call fails with InsufficientBalance naming them and the
    period stays ``distributed``. Shares whose bonus was already reversed on
    its own are skipped.
    """
    period = await _get_period(db, profit_share_id, for_update=True)
    _require_status(period, ProfitShareStatus.DISTRIBUTED, "reverse")

    pairs = [
        (share, bonus)
        for share, bonus in await _shares_with_bonuses(db, period.id)
        if bonus.status != BonusStatus.REVERSED
    ]
    required: dict[uuid.UUID, int] = {}
    for share, bonus in pairs:
        required[share.investor_id] = (
            required.get(share.investor_id, 0) + bonus.net_amount_paise
        )

    wallets: dict[uuid.UUID, Wallet] = {}
    for investor_id, needed in required.items():
        wallet = await wallet_ops.get_wallet_for_investor(db, investor_id)
        await db.refresh(wallet)
        if wallet.available_paise < needed:
            raise InsufficientBalance(
                f"Investor {investor_id} has insufficient balance to reverse "
                f"profit share {period.period_name}",
                available_paise=wallet.available_paise,
                requested_paise=needed,
                context={
                    "investor_id": str(investor_id),
                    "profit_share_id": str(period.id),
                },
            )
        wallets[investor_id] = wallet

    try:
        for share, bonus in pairs:
            await write_reversal(
                db,
                bonus=bonus,
                wallet=wallets[share.investor_id],
                reason=reason,
                transaction_type=TransactionType.PROFIT_SHARE_REVERSAL,
            )

        period.status = ProfitShareStatus.REVERSED
        period.reversal_reason = reason
        period.reversed_by = admin_id
        period.reversed_at = utc_now()
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    await db.refresh(period)
    logger.info(
        "Reversed profit share %s by %s (%d shares): %s",
        period.id,
        admin_id,
        len(pairs),
        reason,
    )
    return period


async def cancel_period(
    db: AsyncSession, profit_share_id: uuid.UUID, *, reason: str, admin_id: str
) -> ProfitShare:
    """Cancel a pending period, discarding any calculated (uncredited) shares."""
    period = await _get_period(db, profit_share_id, for_update=True)
    _require_status(period, ProfitShareStatus.PENDING, "cancel")

    try:
        bonus_ids = (
            (
                await db.execute(
                    select(UserProfitShare.bonus_transaction_id).where(
                        UserProfitShare.profit_share_id == period.id
                    )
                )
            )
            .scalars()
            .all()
        )
        await db.execute(
            delete(UserProfitShare).where(UserProfitShare.profit_share_id == period.id)
        )
        if bonus_ids:
            await db.execute(
                delete(BonusTransaction).where(
                    BonusTransaction.id.in_([b for b in bonus_ids if b]),
                    BonusTransaction.status == BonusStatus.PENDING,
                )
            )
        period.status = ProfitShareStatus.CANCELLED
        period.cancellation_reason = reason
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    await db.refresh(period)
    logger.info("Profit share %s cancelled by %s: %s", period.id, admin_id, reason)
    return period


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


async def get_period(db: AsyncSession, profit_share_id: uuid.UUID) -> ProfitShare:
    return await _get_period(db, profit_share_id)


async def list_shares(
    db: AsyncSession, profit_share_id: uuid.UUID
) -> list[UserProfitShare]:
    result = await db.execute(
        select(UserProfitShare)
        .where(UserProfitShare.profit_share_id == profit_share_id)
        .order_by(UserProfitShare.created_at, UserProfitShare.id)
    )
    return list(result.scalars().all())
