"""Celebration bonuses: birthdays, subscription anniversaries, festivals and
event milestones.

All of them share the ``bonus_celebration_enabled`` toggle. Birthday,
anniversary and milestone amounts come from the subscription snapshot's
``celebration`` section; festival amounts come from the FestivalEvent
calendar, by plan slug. Each milestone is paid at most once per subscription.
"""

import uuid
from datetime import date
from typing import Optional

from libs.common.config import get_settings
from libs.common.currency import to_decimal
from libs.common.datetime_utils import (
    local_today,
    months_between,
    same_day_of_year,
    years_between,
)
from libs.common.logging import get_logger
from services.ledger_service.errors import NotFound, RiskBlocked
from services.ledger_service.models import (
    BonusTransaction,
    BonusType,
    FestivalEvent,
    Investor,
    Payment,
    PaymentStatus,
    Referral,
    ReferralStatus,
    Subscription,
    SubscriptionStatus,
)
from services.ledger_service.schemas.plan_config import CelebrationConfig
from services.ledger_service.services import bonus_calculator, risk_guard, tds, wallet_ops
from services.ledger_service.services.bonus_service import (
    PendingAward,
    award_bonus,
    existing_award_keys,
    snapshot_section,
)
from services.ledger_service.services.settings_provider import (
    BONUS_CELEBRATION_ENABLED,
    SettingsProvider,
)
from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)

ONE = bonus_calculator.ONE


def _flat(amount_paise: int) -> bonus_calculator.BonusAmount:
    return bonus_calculator.BonusAmount(
        amount_paise=amount_paise, base_amount_paise=amount_paise, multiplier=ONE
    )


def celebration_awards(
    *,
    subscription: Subscription,
    investor: Investor,
    config: Optional[CelebrationConfig],
    festivals: list[FestivalEvent],
    today: date,
) -> list[PendingAward]:
    """Celebration awards due today for one subscription (pure)."""
    awards: list[PendingAward] = []

    if config and config.birthday_amount_paise > 0 and investor.date_of_birth:
        if same_day_of_year(investor.date_of_birth, today):
            awards.append(
                PendingAward(
                    bonus_type=BonusType.CELEBRATION,
                    award_key=f"celebration:birthday:{subscription.id}:{today.year}",
                    amount=_flat(config.birthday_amount_paise),
                    description="Birthday bonus",
                    details={"kind": "birthday", "year": today.year},
                )
            )

    if config and config.anniversary_amount_paise > 0:
        years = years_between(subscription.start_date, today)
        if years >= 1 and same_day_of_year(subscription.start_date, today):
            amount = bonus_calculator.anniversary_amount(
                config.anniversary_amount_paise, years
            )
            awards.append(
                PendingAward(
                    bonus_type=BonusType.CELEBRATION,
                    award_key=f"celebration:anniversary:{subscription.id}:{today.year}",
                    amount=bonus_calculator.BonusAmount(
                        amount_paise=amount,
                        base_amount_paise=config.anniversary_amount_paise,
                        multiplier=to_decimal(years),
                    ),
                    description=f"{years}-year subscription anniversary bonus",
                    details={"kind": "anniversary", "years": years},
                )
            )

    for festival in festivals:
        amount = bonus_calculator.festival_amount(
            festival.amounts_by_plan or {}, subscription.plan_slug
        )
        if amount <= 0:
            continue
        awards.append(
            PendingAward(
                bonus_type=BonusType.CELEBRATION,
                award_key=(
                    f"celebration:festival:{festival.slug}:"
                    f"{festival.event_date.isoformat()}:{subscription.id}"
                ),
                amount=_flat(amount),
                description=f"{festival.name} bonus",
                details={"kind": "festival", "festival": festival.slug},
            )
        )

    return awards


async def _award_batch(
    db: AsyncSession,
    *,
    subscription: Subscription,
    awards: list[PendingAward],
    tds_threshold_paise: int,
    tds_rate_percent,
) -> list[BonusTransaction]:
    """Credit the not-yet-paid awards of one subscription in one commit.

    Blocked investors are skipped with a warning.
    """
    existing = await existing_award_keys(db, [a.award_key for a in awards])
    awards = [a for a in awards if a.award_key not in existing]
    if not awards:
        return []

    try:
        await risk_guard.assert_user_can_invest(
            db,
            subscription.investor_id,
            operation="celebration_bonus",
            context={"subscription_id": str(subscription.id)},
        )
    except RiskBlocked:
        logger.warning(
            "Skipping celebration bonuses for blocked investor %s",
            subscription.investor_id,
        )
        return []

    wallet = await wallet_ops.get_wallet_for_investor(db, subscription.investor_id)
    batch: list[BonusTransaction] = []
    try:
        for award in awards:
            batch.append(
                await award_bonus(
                    db,
                    wallet=wallet,
                    award=award,
                    subscription_id=subscription.id,
                    tds_threshold_paise=tds_threshold_paise,
                    tds_rate_percent=tds_rate_percent,
                )
            )
        await db.commit()
    except Exception:
        await db.rollback()
        raise
    return batch


async def process_celebration_bonuses(
    db: AsyncSession,
    *,
    today: Optional[date] = None,
    settings: Optional[SettingsProvider] = None,
) -> list[BonusTransaction]:
    """Award every celebration bonus due on ``today``. Safe to re-run.

    Event milestones are checked here too, since tenure and referral counts
    move without a payment.
    """
    today = today or local_today(get_settings().TIMEZONE)
    settings = settings or SettingsProvider(db)
    if not await settings.get_bool(BONUS_CELEBRATION_ENABLED, fresh=True):
        logger.info("Celebration bonuses disabled, skipping %s", today)
        return []

    festivals = list(
        (
            await db.execute(
                select(FestivalEvent).where(
                    FestivalEvent.event_date == today,
                    FestivalEvent.is_active.is_(True),
                )
            )
        )
        .scalars()
        .all()
    )
    rows = (
        await db.execute(
            select(Subscription, Investor)
            .join(Investor, Investor.id == Subscription.investor_id)
            .where(Subscription.status == SubscriptionStatus.ACTIVE)
            .order_by(Subscription.created_at, Subscription.id)
        )
    ).all()
    threshold, rate = await tds.load_tds_policy(settings)

    created: list[BonusTransaction] = []
    for subscription, investor in rows:
        config = snapshot_section(subscription, "celebration")
        awards = celebration_awards(
            subscription=subscription,
            investor=investor,
            config=config,
            festivals=festivals,
            today=today,
        )
        if config and config.milestones:
            awards += milestone_awards(
                subscription=subscription,
                config=config,
                metrics=await milestone_metrics(db, subscription, today),
            )
        if not awards:
            continue

        created.extend(
            await _award_batch(
                db,
                subscription=subscription,
                awards=awards,
                tds_threshold_paise=threshold,
                tds_rate_percent=rate,
            )
        )

    logger.info("Awarded %d celebration bonuses for %s", len(created), today)
    return created


# ---------------------------------------------------------------------------
# Event milestones
# ---------------------------------------------------------------------------


def milestone_award_key(subscription_id: uuid.UUID, metric: str, threshold: int) -> str:
    return f"celebration:milestone:{subscription_id}:{metric}:{threshold}"


async def milestone_metrics(
    db: AsyncSession, subscription: Subscription, today: date
) -> dict[str, int]:
    """Current value of every milestone metric for one subscription."""
    count, total, late = (
        await db.execute(
            select(
                func.count(Payment.id),
                func.coalesce(func.sum(Payment.amount_paise), 0),
                func.coalesce(
                    func.sum(case((Payment.is_on_time.is_(False), 1), else_=0)), 0
                ),
            ).where(
                Payment.subscription_id == subscription.id,
                Payment.status == PaymentStatus.PAID,
            )
        )
    ).one()
    referrals = (
        await db.execute(
            select(func.count(Referral.id)).where(
                Referral.referrer_id == subscription.investor_id,
                Referral.status == ReferralStatus.COMPLETED,
            )
        )
    ).scalar_one()
    return {
        "payment_count": int(count),
        "total_invested": int(total),
        "tenure_months": months_between(subscription.start_date, today),
        "referral_count": int(referrals),
        "streak_months": subscription.consecutive_payments_count,
        "zero_missed_payments": int(count) if not late else 0,
    }


def milestone_awards(
    *,
    subscription: Subscription,
    config: Optional[CelebrationConfig],
    metrics: dict[str, int],
) -> list[PendingAward]:
    """Milestones whose threshold the subscription has reached (pure).

    Already-paid milestones are filtered later by award key.
    """
    awards: list[PendingAward] = []
    if not config:
        return awards
    for milestone in config.milestones:
        if metrics.get(milestone.metric, 0) < milestone.threshold:
            continue
        amount = bonus_calculator.celebration_milestone_amount(
            milestone, subscription.amount_paise
        )
        if amount <= 0:
            continue
        awards.append(
            PendingAward(
                bonus_type=BonusType.CELEBRATION,
                award_key=milestone_award_key(
                    subscription.id, milestone.metric, milestone.threshold
                ),
                amount=_flat(amount),
                description=milestone.name
                or f"Milestone bonus: {milestone.metric} {milestone.threshold}",
                details={
                    "kind": "milestone",
                    "metric": milestone.metric,
                    "threshold": milestone.threshold,
                    "bonus_type": milestone.bonus_type,
                },
            )
        )
    return awards


async def award_payment_milestones(
    db: AsyncSession,
    payment_id: uuid.UUID,
    *,
    today: Optional[date] = None,
    settings: Optional[SettingsProvider] = None,
) -> list[BonusTransaction]:
    """Check the event milestones of a paid payment's subscription."""
    settings = settings or SettingsProvider(db)
    if not await settings.get_bool(BONUS_CELEBRATION_ENABLED, fresh=True):
        return []

    payment = (
        await db.execute(select(Payment).where(Payment.id == payment_id))
    ).scalar_one_or_none()
    if not payment:
        raise NotFound("Payment not found", {"payment_id": str(payment_id)})
    if payment.status != PaymentStatus.PAID:
        return []

    subscription = (
        await db.execute(
            select(Subscription).where(Subscription.id == payment.subscription_id)
        )
    ).scalar_one()
    config = snapshot_section(subscription, "celebration")
    if not config or not config.milestones:
        return []

    today = today or local_today(get_settings().TIMEZONE)
    awards = milestone_awards(
        subscription=subscription,
        config=config,
        metrics=await milestone_metrics(db, subscription, today),
    )
    threshold, rate = await tds.load_tds_policy(settings)
    return await _award_batch(
        db,
        subscription=subscription,
        awards=awards,
        tds_threshold_paise=threshold,
        tds_rate_percent=rate,
    )
