"""Pure bonus formulas.

Amounts are paise; percentages and multipliers are Decimals. A base is
rounded half-up to whole paise before the multiplier is applied, so every
stored row satisfies ``amount = round(base_amount × multiplier_applied)``.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Mapping, Optional

from libs.common.currency import HUNDRED, Number, percent_of, round_paise, to_decimal
from services.ledger_service.schemas.plan_config import (
    CelebrationMilestone,
    ConsistencyConfig,
    MilestoneConfig,
    ProgressiveConfig,
    ReferralConfig,
)

ONE = Decimal("1")


@dataclass(frozen=True)
class BonusAmount:
    """A computed award: ``amount_paise = round(base_amount_paise × multiplier)``."""

    amount_paise: int
    base_amount_paise: int
    multiplier: Decimal
    percentage: Optional[Decimal] = None


def apply_multiplier(base_paise: Number, multiplier: Number) -> int:
    return round_paise(to_decimal(base_paise) * to_decimal(multiplier))


# ---------------------------------------------------------------------------
# Progressive
# ---------------------------------------------------------------------------


def progressive_percentage(config: ProgressiveConfig, consecutive_payments: int) -> Optional[Decimal]:
    """Percentage for this streak position, or None when not yet eligible.

    An exact-month override wins; otherwise the rate grows by ``rate`` per
    month from ``start_month`` and is capped at ``max_percentage``.
    """
    if consecutive_payments < config.start_month:
        return None
    if consecutive_payments in config.overrides:
        return config.overrides[consecutive_payments]
    grown = (consecutive_payments - config.start_month + 1) * config.rate
    return min(config.max_percentage, grown)


def progressive_bonus(
    config: ProgressiveConfig,
    *,
    consecutive_payments: int,
    payment_amount_paise: int,
    bonus_multiplier: Number = ONE,
) -> Optional[BonusAmount]:
    percentage = progressive_percentage(config, consecutive_payments)
    if percentage is None or percentage <= 0:
        return None
    base = round_paise(Decimal(payment_amount_paise) * percentage / HUNDRED)
    if base <= 0:
        return None
    multiplier = to_decimal(bonus_multiplier)
    return BonusAmount(
        amount_paise=apply_multiplier(base, multiplier),
        base_amount_paise=base,
        multiplier=multiplier,
        percentage=percentage,
    )


# ---------------------------------------------------------------------------
# Milestone
# ---------------------------------------------------------------------------


def milestone_amount(config: MilestoneConfig, consecutive_payments: int) -> Optional[int]:
    """Configured amount for an exact milestone month, else None."""
    for milestone in config.milestones:
        if milestone.month == consecutive_payments:
            return milestone.amount_paise
    return None


def milestone_bonus(
    config: MilestoneConfig,
    *,
    consecutive_payments: int,
    bonus_multiplier: Number = ONE,
) -> Optional[BonusAmount]:
    amount = milestone_amount(config, consecutive_payments)
    if not amount:
        return None
    multiplier = to_decimal(bonus_multiplier)
    return BonusAmount(
        amount_paise=apply_multiplier(amount, multiplier),
        base_amount_paise=amount,
        multiplier=multiplier,
    )


# ---------------------------------------------------------------------------
# Consistency
# ---------------------------------------------------------------------------


def streak_multiplier(config: ConsistencyConfig, consecutive_payments: int) -> Decimal:
    """Multiplier of the highest streak threshold reached (1 when none)."""
    reached = [s for s in config.streaks if s.months <= consecutive_payments]
    if not reached:
        return ONE
    return max(reached, key=lambda s: s.months).multiplier


def consistency_bonus(
    config: ConsistencyConfig,
    *,
    consecutive_payments: int,
    is_on_time: bool,
    bonus_multiplier: Number = ONE,
) -> Optional[BonusAmount]:
    if not is_on_time or config.amount_per_payment_paise <= 0:
        return None
    multiplier = streak_multiplier(config, consecutive_payments) * to_decimal(
        bonus_multiplier
    )
    return BonusAmount(
        amount_paise=apply_multiplier(config.amount_per_payment_paise, multiplier),
        base_amount_paise=config.amount_per_payment_paise,
        multiplier=multiplier,
    )


# ---------------------------------------------------------------------------
# Referral tiers
# ---------------------------------------------------------------------------


def referral_multiplier(config: ReferralConfig, completed_referrals: int) -> Decimal:
    """Multiplier of the highest tier whose minimum is reached (1 when none)."""
    reached = [t for t in config.tiers if t.min_referrals <= completed_referrals]
    if not reached:
        return ONE
    return max(reached, key=lambda t: t.min_referrals).multiplier


# ---------------------------------------------------------------------------
# Celebrations
# ---------------------------------------------------------------------------


def anniversary_amount(base_paise: int, years_elapsed: int) -> int:
    """``base × years``; zero before the first full year."""
    if years_elapsed <= 0:
        return 0
    return base_paise * years_elapsed


def festival_amount(amounts_by_plan: Mapping[str, Number], plan_slug: str) -> int:
    """Festival payout for a plan, zero when the plan is not listed."""
    value = amounts_by_plan.get(plan_slug)
    if value is None:
        return 0
    return round_paise(value)


def celebration_milestone_amount(
    milestone: CelebrationMilestone, instalment_paise: int
) -> int:
    """Fixed amount, or a percentage of the subscription instalment."""
    if milestone.bonus_type == "percentage":
        return percent_of(instalment_paise, milestone.percentage)
    return milestone.amount_paise
