"""Risk scoring and the investment gate.

Scoring is additive and deterministic:

- any confirmed chargeback adds the base weight, each one after the first
  adds the repeat weight
- a high chargeback ratio (needs a minimum number of payments) adds a ratio
  weight
- a young account with chargebacks adds the new-account weight
- every open dispute adds a weight scaled by its severity

The reported score is capped at ``RISK_MAX_SCORE``; the uncapped value is kept
for audit. :func:`assert_user_can_invest` must run before any investment
mutation reaches the ledger.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional, Sequence

from libs.common.config import Settings, get_settings
from libs.common.datetime_utils import ensure_aware, utc_now
from libs.common.logging import get_logger
from services.ledger_service.errors import NotFound, RiskBlocked
from services.ledger_service.models import (
    OPEN_DISPUTE_STATUSES,
    Dispute,
    DisputeSeverity,
    Investor,
    Payment,
    PaymentStatus,
    RiskCategory,
)
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)

# Factor names reported in RiskScore.factors
FACTOR_CHARGEBACK_HISTORY = "chargeback_history"
FACTOR_HIGH_CHARGEBACK_RATIO = "high_chargeback_ratio"
FACTOR_NEW_ACCOUNT = "new_account_risk"
FACTOR_PENDING_DISPUTES = "pending_disputes"

# Payments that count toward the chargeback ratio denominator.
_SETTLED_PAYMENT_STATUSES = (
    PaymentStatus.PAID,
    PaymentStatus.REFUNDED,
    PaymentStatus.CHARGEBACK_CONFIRMED,
)


@dataclass(frozen=True)
class RiskInputs:
    """Everything scoring needs, gathered from the store."""

    chargeback_count: int = 0
    total_payments: int = 0
    account_age_days: int = 0
    open_dispute_severities: Sequence[DisputeSeverity] = ()


@dataclass(frozen=True)
class RiskScore:
    score: int
    uncapped_score: int
    category: RiskCategory
    factors: list[str] = field(default_factory=list)
    breakdown: dict[str, int] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Thresholds
# ---------------------------------------------------------------------------


def should_block(score: int, settings: Optional[Settings] = None) -> bool:
    settings = settings or get_settings()
    return score >= settings.RISK_BLOCK_THRESHOLD


def is_high_risk(score: int, settings: Optional[Settings] = None) -> bool:
    settings = settings or get_settings()
    return score >= settings.RISK_HIGH_THRESHOLD


def should_review(score: int, settings: Optional[Settings] = None) -> bool:
    settings = settings or get_settings()
    return score >= settings.RISK_REVIEW_THRESHOLD


def get_risk_category(score: int, settings: Optional[Settings] = None) -> RiskCategory:
    if should_block(score, settings):
        return RiskCategory.BLOCKED
    if is_high_risk(score, settings):
        return RiskCategory.HIGH
    if should_review(score, settings):
        return RiskCategory.REVIEW
    return RiskCategory.LOW


# ---------------------------------------------------------------------------
# Scoring (pure)
# ---------------------------------------------------------------------------


def _dispute_weight(severity: DisputeSeverity, settings: Settings) -> int:
    return {
        DisputeSeverity.LOW: settings.RISK_DISPUTE_LOW_WEIGHT,
        DisputeSeverity.MEDIUM: settings.RISK_DISPUTE_MEDIUM_WEIGHT,
        DisputeSeverity.HIGH: settings.RISK_DISPUTE_HIGH_WEIGHT,
        DisputeSeverity.CRITICAL: settings.RISK_DISPUTE_CRITICAL_WEIGHT,
    }[DisputeSeverity(severity)]


def score_risk(inputs: RiskInputs, settings: Optional[Settings] = None) -> RiskScore:
    """Score an investor from gathered inputs. Same inputs, same score."""
    settings = settings or get_settings()
    breakdown: dict[str, int] = {}

    if inputs.chargeback_count > 0:
        breakdown[FACTOR_CHARGEBACK_HISTORY] = (
            settings.RISK_CHARGEBACK_BASE_WEIGHT
            + (inputs.chargeback_count - 1) * settings.RISK_CHARGEBACK_REPEAT_WEIGHT
        )

        if inputs.total_payments >= settings.RISK_MIN_PAYMENTS_FOR_RATIO:
            ratio = inputs.chargeback_count / inputs.total_payments
            if ratio >= settings.RISK_VERY_HIGH_RATIO:
                breakdown[FACTOR_HIGH_CHARGEBACK_RATIO] = (
                    settings.RISK_VERY_HIGH_RATIO_WEIGHT
                )
            elif ratio >= settings.RISK_HIGH_RATIO:
                breakdown[FACTOR_HIGH_CHARGEBACK_RATIO] = settings.RISK_HIGH_RATIO_WEIGHT

        if inputs.account_age_days < settings.RISK_NEW_ACCOUNT_DAYS:
            breakdown[FACTOR_NEW_ACCOUNT] = settings.RISK_NEW_ACCOUNT_WEIGHT

    if inputs.open_dispute_severities:
        breakdown[FACTOR_PENDING_DISPUTES] = sum(
            _dispute_weight(severity, settings)
            for severity in inputs.open_dispute_severities
        )

    uncapped = sum(breakdown.values())
    score = min(uncapped, settings.RISK_MAX_SCORE)
    return RiskScore(
        score=score,
        uncapped_score=uncapped,
        category=get_risk_category(score, settings),
        factors=list(breakdown),
        breakdown=breakdown,
    )


# ---------------------------------------------------------------------------
# Store-backed operations
# ---------------------------------------------------------------------------


async def _get_investor(db: AsyncSession, investor_id: uuid.UUID) -> Investor:
    result = await db.execute(select(Investor).where(Investor.id == investor_id))
    investor = result.scalar_one_or_none()
    if not investor:
        raise NotFound("Investor not found", {"investor_id": str(investor_id)})
    return investor


async def gather_risk_inputs(
    db: AsyncSession, investor_id: uuid.UUID, *, now: Optional[datetime] = None
) -> RiskInputs:
    investor = await _get_investor(db, investor_id)
    now = now or utc_now()

    chargebacks = (
        await db.execute(
            select(func.count(Payment.id)).where(
                Payment.investor_id == investor_id,
                Payment.status == PaymentStatus.CHARGEBACK_CONFIRMED,
            )
        )
    ).scalar_one()
    total_payments = (
        await db.execute(
            select(func.count(Payment.id)).where(
                Payment.investor_id == investor_id,
                Payment.status.in_(_SETTLED_PAYMENT_STATUSES),
            )
        )
    ).scalar_one()
    severities = (
        (
            await db.execute(
                select(Dispute.severity).where(
                    Dispute.investor_id == investor_id,
                    Dispute.status.in_(OPEN_DISPUTE_STATUSES),
                )
            )
        )
        .scalars()
        .all()
    )

    age_days = (now - ensure_aware(investor.created_at)).days
    return RiskInputs(
        chargeback_count=chargebacks,
        total_payments=total_payments,
        account_age_days=max(age_days, 0),
        open_dispute_severities=tuple(severities),
    )


async def calculate_score(
    db: AsyncSession, investor_id: uuid.UUID, *, now: Optional[datetime] = None
) -> RiskScore:
    inputs = await gather_risk_inputs(db, investor_id, now=now)
    return score_risk(inputs)


async def refresh_risk_status(
    db: AsyncSession,
    investor_id: uuid.UUID,
    *,
    now: Optional[datetime] = None,
    commit: bool = True,
) -> RiskScore:
    """Recalculate and persist the score, blocking at the threshold.

    Never unblocks; that is an admin decision (:func:`unblock_investor`).
    """
    risk = await calculate_score(db, investor_id, now=now)
    investor = await _get_investor(db, investor_id)

    investor.risk_score = risk.score
    investor.last_risk_update_at = utc_now()
    if should_block(risk.score) and not investor.is_blocked:
        investor.is_blocked = True
        investor.blocked_reason = (
            f"Automatic block: risk score {risk.score} "
            f"({', '.join(risk.factors)})"
        )
        logger.warning(
            "Blocked investor %s: risk score %d (uncapped %d) factors=%s",
            investor_id,
            risk.score,
            risk.uncapped_score,
            risk.factors,
        )

    if commit:
        await db.commit()
    else:
        await db.flush()

    logger.info(
        "Risk score for investor %s: %d (%s)",
        investor_id,
        risk.score,
        risk.category.value,
    )
    return risk


async def unblock_investor(
    db: AsyncSession, investor_id: uuid.UUID, *, admin_id: str, reason: str
) -> Investor:
    investor = await _get_investor(db, investor_id)
    investor.is_blocked = False
    investor.blocked_reason = None
    investor.last_risk_update_at = utc_now()
    await db.commit()
    await db.refresh(investor)

    logger.info("Investor %s unblocked by %s: %s", investor_id, admin_id, reason)
    return investor


async def get_blocking_details(db: AsyncSession, investor_id: uuid.UUID) -> dict[str, Any]:
    """Stored blocking state plus a freshly computed breakdown, for admin review."""
    investor = await _get_investor(db, investor_id)
    risk = await calculate_score(db, investor_id)
    return {
        "investor_id": investor.id,
        "is_blocked": investor.is_blocked,
        "blocked_reason": investor.blocked_reason,
        "risk_score": investor.risk_score,
        "category": get_risk_category(investor.risk_score),
        "last_risk_update_at": investor.last_risk_update_at,
        "current_score": risk.score,
        "uncapped_score": risk.uncapped_score,
        "factors": risk.factors,
        "breakdown": risk.breakdown,
    }


async def list_blocked_investors(
    db: AsyncSession, *, skip: int = 0, limit: int = 50
) -> list[Investor]:
    result = await db.execute(
        select(Investor)
        .where(Investor.is_blocked.is_(True))
        .order_by(Investor.risk_score.desc(), Investor.id)
        .offset(skip)
        .limit(limit)
    )
    return list(result.scalars().all())


# ---------------------------------------------------------------------------
# Gate
# ---------------------------------------------------------------------------


async def assert_user_can_invest(
    db: AsyncSession,
    investor_id: uuid.UUID,
    *,
    operation: str,
    context: Optional[dict[str, Any]] = None,
) -> None:
    """Raise RiskBlocked if the investor is blocked right now.

    Reads the columns straight from the database rather than any loaded
    ``Investor`` instance, so a block applied by another session is seen.
    """
    result = await db.execute(
        select(
            Investor.is_blocked, Investor.risk_score, Investor.blocked_reason
        ).where(Investor.id == investor_id)
    )
    row = result.first()
    if row is None:
        raise NotFound("Investor not found", {"investor_id": str(investor_id)})

    is_blocked, risk_score, blocked_reason = row
    if is_blocked:
        logger.warning(
            "Risk gate rejected %s for investor %s (score %d)",
            operation,
            investor_id,
            risk_score,
        )
        raise RiskBlocked(
            investor_id=investor_id,
            operation=operation,
            risk_score=risk_score,
            blocked_reason=blocked_reason,
            context=context,
        )
