"""Per-payment bonus awards (progressive, milestone, consistency) and reversals.

Each bonus type is independently toggled and reads its config from the
subscription's snapshot. A disabled toggle or an absent config skips that type
quietly; an invalid config skips it with a warning. Every award is keyed
(``award_key``) so retried jobs never pay twice.
"""

import uuid
from dataclasses import dataclass
from typing import Any, Optional

from libs.common.datetime_utils import utc_now
from libs.common.logging import get_logger
from pydantic import ValidationError
from services.ledger_service.errors import DomainConflict, NotFound
from services.ledger_service.models import (
    BonusStatus,
    BonusTransaction,
    BonusType,
    Payment,
    PaymentStatus,
    Subscription,
    TransactionType,
    Wallet,
)
from services.ledger_service.schemas.plan_config import load_bonus_config
from services.ledger_service.services import (
    bonus_calculator,
    risk_guard,
    tds,
    wallet_ops,
)
from services.ledger_service.services.settings_provider import (
    BONUS_CONSISTENCY_ENABLED,
    BONUS_MILESTONE_ENABLED,
    BONUS_PROGRESSIVE_ENABLED,
    SettingsProvider,
)
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)


@dataclass(frozen=True)
class PendingAward:
    """A computed award waiting to be written."""

    bonus_type: BonusType
    award_key: str
    amount: bonus_calculator.BonusAmount
    description: str
    milestone_month: Optional[int] = None
    details: Optional[dict[str, Any]] = None


# ---------------------------------------------------------------------------
# Award keys
# ---------------------------------------------------------------------------


def payment_award_key(bonus_type: BonusType, payment_id: uuid.UUID) -> str:
    return f"{bonus_type.value}:{payment_id}"


def milestone_award_key(subscription_id: uuid.UUID, month: int) -> str:
    return f"milestone:{subscription_id}:{month}"


# ---------------------------------------------------------------------------
# Config loading
# ---------------------------------------------------------------------------


def snapshot_section(subscription: Subscription, kind: str):
    """Validated config section, or None when absent or invalid."""
    try:
        return load_bonus_config(subscription.config_snapshot, kind)
    except ValidationError as e:
        logger.warning(
            "Invalid %s config in snapshot of subscription %s, skipping: %s",
            kind,
            subscription.id,
            e.errors(include_url=False),
        )
        return None


# ---------------------------------------------------------------------------
# Writing awards
# ---------------------------------------------------------------------------


async def award_bonus(
    db: AsyncSession,
    *,
    wallet: Wallet,
    award: PendingAward,
    subscription_id: Optional[uuid.UUID],
    payment_id: Optional[uuid.UUID] = None,
    tds_threshold_paise: int,
    tds_rate_percent,
) -> BonusTransaction:
    """Write a credited BonusTransaction and deposit its net amount.

    Flushes only; the caller commits or rolls back the batch it belongs to.
    """
    withholding = tds.compute_tds(
        award.amount.amount_paise, tds_threshold_paise, tds_rate_percent
    )
    bonus = BonusTransaction(
        investor_id=wallet.investor_id,
        subscription_id=subscription_id,
        payment_id=payment_id,
        bonus_type=award.bonus_type,
        amount_paise=withholding.gross_paise,
        base_amount_paise=award.amount.base_amount_paise,
        multiplier_applied=award.amount.multiplier,
        tds_deducted_paise=withholding.tds_paise,
        status=BonusStatus.CREDITED,
        award_key=award.award_key,
        milestone_month=award.milestone_month,
        description=award.description,
        details=award.details,
        credited_at=utc_now(),
    )
    db.add(bonus)
    await db.flush()

    if withholding.net_paise > 0:
        txn = await wallet_ops.deposit(
            db,
            wallet_id=wallet.id,
            amount_paise=withholding.net_paise,
            transaction_type=TransactionType.BONUS_CREDIT,
            description=award.description,
            reference_type="bonus_transaction",
            reference_id=str(bonus.id),
            idempotency_key=f"bonus:{award.award_key}",
            metadata=(
                {"tds_deducted_paise": withholding.tds_paise}
                if withholding.tds_paise
                else None
            ),
            commit=False,
        )
        bonus.wallet_transaction_id = txn.id
    return bonus


async def existing_award_keys(db: AsyncSession, keys: list[str]) -> set[str]:
    if not keys:
        return set()
    result = await db.execute(
        select(BonusTransaction.award_key).where(BonusTransaction.award_key.in_(keys))
    )
    return set(result.scalars().all())


async def _milestone_already_awarded(
    db: AsyncSession, subscription_id: uuid.UUID, month: int
) -> bool:
    result = await db.execute(
        select(BonusTransaction.id).where(
            BonusTransaction.subscription_id == subscription_id,
            BonusTransaction.bonus_type == BonusType.MILESTONE,
            BonusTransaction.milestone_month == month,
        )
    )
    return result.first() is not None


# ---------------------------------------------------------------------------
# Per-payment calculation
# ---------------------------------------------------------------------------


async def compute_payment_awards(
    db: AsyncSession,
    *,
    payment: Payment,
    subscription: Subscription,
    settings: SettingsProvider,
) -> list[PendingAward]:
    """Work out which awards this payment earns, without writing anything."""
    streak = subscription.consecutive_payments_count
    multiplier = subscription.bonus_multiplier
    awards: list[PendingAward] = []

    # Progressive
    if not await settings.get_bool(BONUS_PROGRESSIVE_ENABLED, fresh=True):
        logger.debug("Progressive bonus disabled, skipping payment %s", payment.id)
    else:
        config = snapshot_section(subscription, "progressive")
        amount = (
            bonus_calculator.progressive_bonus(
                config,
                consecutive_payments=streak,
                payment_amount_paise=payment.amount_paise,
                bonus_multiplier=multiplier,
            )
            if config
            else None
        )
        if amount and amount.amount_paise > 0:
            awards.append(
                PendingAward(
                    bonus_type=BonusType.PROGRESSIVE,
                    award_key=payment_award_key(BonusType.PROGRESSIVE, payment.id),
                    amount=amount,
                    description=(
                        f"Progressive bonus ({amount.percentage}% at month {streak})"
                    ),
                    details={"percentage": str(amount.percentage), "month": streak},
                )
            )

    # Milestone
    if not await settings.get_bool(BONUS_MILESTONE_ENABLED, fresh=True):
        logger.debug("Milestone bonus disabled, skipping payment %s", payment.id)
    else:
        config = snapshot_section(subscription, "milestone")
        amount = (
            bonus_calculator.milestone_bonus(
                config, consecutive_payments=streak, bonus_multiplier=multiplier
            )
            if config
            else None
        )
        if amount and amount.amount_paise > 0:
            if await _milestone_already_awarded(db, subscription.id, streak):
                logger.info(
                    "Milestone %d already awarded for subscription %s",
                    streak,
                    subscription.id,
                )
            else:
                awards.append(
                    PendingAward(
                        bonus_type=BonusType.MILESTONE,
                        award_key=milestone_award_key(subscription.id, streak),
                        amount=amount,
                        description=f"Milestone bonus for month {streak}",
                        milestone_month=streak,
                    )
                )

    # Consistency
    if not await settings.get_bool(BONUS_CONSISTENCY_ENABLED, fresh=True):
        logger.debug("Consistency bonus disabled, skipping payment %s", payment.id)
    else:
        config = snapshot_section(subscription, "consistency")
        amount = (
            bonus_calculator.consistency_bonus(
                config,
                consecutive_payments=streak,
                is_on_time=payment.is_on_time,
                bonus_multiplier=multiplier,
            )
            if config
            else None
        )
        if amount and amount.amount_paise > 0:
            awards.append(
                PendingAward(
                    bonus_type=BonusType.CONSISTENCY,
                    award_key=payment_award_key(BonusType.CONSISTENCY, payment.id),
                    amount=amount,
                    description=f"Consistency bonus (streak {streak})",
                    details={"streak": streak},
                )
            )

    return awards


async def calculate_and_award_bonuses(
    db: AsyncSession,
    payment_id: uuid.UUID,
    *,
    settings: Optional[SettingsProvider] = None,
) -> list[BonusTransaction]:
    """Compute and credit every bonus a paid payment earns.

    Safe to retry: awards already written for this payment (or milestone) are
    skipped. Returns only the awards created by this call.
    """
    payment = (
        await db.execute(select(Payment).where(Payment.id == payment_id))
    ).scalar_one_or_none()
    if not payment:
        raise NotFound("Payment not found", {"payment_id": str(payment_id)})
    if payment.status != PaymentStatus.PAID:
        logger.info(
            "Payment %s is %s, no bonuses", payment.id, payment.status.value
        )
        return []

    subscription = (
        await db.execute(
            select(Subscription).where(Subscription.id == payment.subscription_id)
        )
    ).scalar_one_or_none()
    if not subscription:
        raise NotFound(
            "Subscription not found", {"subscription_id": str(payment.subscription_id)}
        )

    await risk_guard.assert_user_can_invest(
        db,
        payment.investor_id,
        operation="award_bonus",
        context={"payment_id": str(payment.id), "subscription_id": str(subscription.id)},
    )

    settings = settings or SettingsProvider(db)
    awards = await compute_payment_awards(
        db, payment=payment, subscription=subscription, settings=settings
    )
    existing = await existing_award_keys(db, [a.award_key for a in awards])
    awards = [a for a in awards if a.award_key not in existing]
    if not awards:
        logger.info("No new bonuses for payment %s", payment.id)
        return []

    threshold, rate = await tds.load_tds_policy(settings)
    wallet = await wallet_ops.get_wallet_for_investor(db, payment.investor_id)

    created: list[BonusTransaction] = []
    try:
        for award in awards:
            created.append(
                await award_bonus(
                    db,
                    wallet=wallet,
                    award=award,
                    subscription_id=subscription.id,
                    payment_id=payment.id,
                    tds_threshold_paise=threshold,
                    tds_rate_percent=rate,
                )
            )
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    for bonus in created:
        logger.info(
            "Awarded %s bonus %d (tds %d) to investor %s for payment %s",
            bonus.bonus_type.value,
            bonus.amount_paise,
            bonus.tds_deducted_paise,
            bonus.investor_id,
            payment.id,
        )
    return created


# ---------------------------------------------------------------------------
# Reversal
# ---------------------------------------------------------------------------


async def write_reversal(
    db: AsyncSession,
    *,
    bonus: BonusTransaction,
    wallet: Wallet,
    reason: str,
    transaction_type: TransactionType = TransactionType.ADMIN_ADJUSTMENT,
) -> BonusTransaction:
    """Claw back a credited bonus: withdraw its net amount, add a negated row.

    Flushes only. Raises InsufficientBalance (from the ledger) when the wallet
    can no longer cover the net amount.
    """
    txn = None
    if bonus.net_amount_paise > 0:
        txn = await wallet_ops.withdraw(
            db,
            wallet_id=wallet.id,
            amount_paise=bonus.net_amount_paise,
            transaction_type=transaction_type,
            description=f"Reversal of bonus {bonus.id}: {reason}",
            reference_type="bonus_transaction",
            reference_id=str(bonus.id),
            idempotency_key=f"bonus-reversal:{bonus.id}",
            commit=False,
        )

    reversal = BonusTransaction(
        investor_id=bonus.investor_id,
        subscription_id=bonus.subscription_id,
        payment_id=bonus.payment_id,
        bonus_type=BonusType.REVERSAL,
        amount_paise=-bonus.amount_paise,
        base_amount_paise=(
            -bonus.base_amount_paise if bonus.base_amount_paise is not None else None
        ),
        multiplier_applied=bonus.multiplier_applied,
        tds_deducted_paise=-bonus.tds_deducted_paise,
        status=BonusStatus.CREDITED,
        award_key=f"reversal:{bonus.id}",
        description=f"Reversal of bonus {bonus.id}: {reason}",
        wallet_transaction_id=txn.id if txn else None,
        reversal_of_id=bonus.id,
        credited_at=utc_now(),
    )
    db.add(reversal)
    bonus.status = BonusStatus.REVERSED
    await db.flush()
    return reversal


async def reverse_bonus(
    db: AsyncSession, bonus_id: uuid.UUID, *, reason: str, admin_id: str
) -> BonusTransaction:
    """Admin reversal of a single credited bonus."""
    bonus = (
        await db.execute(
            select(BonusTransaction).where(BonusTransaction.id == bonus_id)
        )
    ).scalar_one_or_none()
    if not bonus:
        raise NotFound("Bonus transaction not found", {"bonus_id": str(bonus_id)})
    if bonus.bonus_type == BonusType.REVERSAL:
        raise DomainConflict(
            "This transaction is already a reversal", {"bonus_id": str(bonus_id)}
        )
    if bonus.status != BonusStatus.CREDITED:
        raise DomainConflict(
            f"Only credited bonuses can be reversed (status {bonus.status.value})",
            {"bonus_id": str(bonus_id), "status": bonus.status.value},
        )

    wallet = await wallet_ops.get_wallet_for_investor(db, bonus.investor_id)
    try:
        reversal = await write_reversal(db, bonus=bonus, wallet=wallet, reason=reason)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    await db.refresh(reversal)
    logger.info(
        "Bonus %s reversed by %s (%d): %s",
        bonus_id,
        admin_id,
        reversal.amount_paise,
        reason,
    )
    return reversal


async def list_bonus_transactions(
    db: AsyncSession,
    *,
    investor_id: uuid.UUID,
    bonus_type: Optional[BonusType] = None,
    skip: int = 0,
    limit: int = 50,
) -> list[BonusTransaction]:
    query = select(BonusTransaction).where(BonusTransaction.investor_id == investor_id)
    if bonus_type is not None:
        query = query.where(BonusTransaction.bonus_type == bonus_type)
    result = await db.execute(
        query.order_by(BonusTransaction.created_at.desc(), BonusTransaction.id)
        .offset(skip)
        .limit(limit)
    )
    return list(result.scalars().all())
