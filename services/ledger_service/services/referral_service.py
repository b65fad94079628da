"""Referral tiers: keeps ``Subscription.bonus_multiplier`` in step with referrals."""

import uuid
from datetime import date
from decimal import Decimal
from typing import Optional

from libs.common.datetime_utils import utc_now
from libs.common.logging import get_logger
from services.ledger_service.errors import DomainConflict, InvalidArgument, NotFound
from services.ledger_service.models import (
    Referral,
    ReferralCampaign,
    ReferralStatus,
    Subscription,
    SubscriptionStatus,
)
from services.ledger_service.schemas.plan_config import ReferralConfig, ReferralTier
from services.ledger_service.services import bonus_calculator
from services.ledger_service.services.bonus_service import snapshot_section
from services.ledger_service.services.settings_provider import (
    REFERRAL_TIERS,
    SettingsProvider,
)
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)


def parse_tier_table(raw) -> ReferralConfig:
    """Parse ``"0:1.0,3:1.5"`` (or a list of tier dicts) into a ReferralConfig."""
    if isinstance(raw, list):
        return ReferralConfig(tiers=raw)
    try:
        tiers = []
        for pair in str(raw).split(","):
            if not pair.strip():
                continue
            count, multiplier = pair.split(":")
            tiers.append(
                ReferralTier(min_referrals=int(count), multiplier=Decimal(multiplier))
            )
    except (ValueError, ArithmeticError) as e:
        raise InvalidArgument(
            "Referral tier table is malformed", {"value": str(raw)}
        ) from e
    return ReferralConfig(tiers=tiers)


async def count_completed_referrals(db: AsyncSession, investor_id: uuid.UUID) -> int:
    result = await db.execute(
        select(func.count(Referral.id)).where(
            Referral.referrer_id == investor_id,
            Referral.status == ReferralStatus.COMPLETED,
        )
    )
    return result.scalar_one()


async def active_campaign(
    db: AsyncSession, today: Optional[date] = None
) -> Optional[ReferralCampaign]:
    """The running campaign with the highest multiplier, if any."""
    today = today or utc_now().date()
    result = await db.execute(
        select(ReferralCampaign)
        .where(
            ReferralCampaign.is_active.is_(True),
            ReferralCampaign.starts_on <= today,
            ReferralCampaign.ends_on >= today,
        )
        .order_by(ReferralCampaign.multiplier.desc(), ReferralCampaign.id)
        .limit(1)
    )
    return result.scalar_one_or_none()


async def recalculate_bonus_multiplier(
    db: AsyncSession,
    investor_id: uuid.UUID,
    *,
    today: Optional[date] = None,
    settings: Optional[SettingsProvider] = None,
    commit: bool = True,
) -> dict[uuid.UUID, Decimal]:
    """Write the referral multiplier to each active subscription of an investor.

    A running campaign supersedes the tier table. Otherwise the tier table from
    the subscription's snapshot applies, falling back to the platform default.
    Returns ``{subscription_id: multiplier}``.
    """
    settings = settings or SettingsProvider(db)
    completed = await count_completed_referrals(db, investor_id)
    campaign = await active_campaign(db, today)
    default_tiers = parse_tier_table(await settings.get(REFERRAL_TIERS))

    result = await db.execute(
        select(Subscription).where(
            Subscription.investor_id == investor_id,
            Subscription.status == SubscriptionStatus.ACTIVE,
        )
    )
    updated: dict[uuid.UUID, Decimal] = {}
    for subscription in result.scalars().all():
        if campaign is not None:
            multiplier = campaign.multiplier
        else:
            tiers = snapshot_section(subscription, "referral") or default_tiers
            multiplier = bonus_calculator.referral_multiplier(tiers, completed)
        if subscription.bonus_multiplier != multiplier:
            logger.info(
                "Subscription %s multiplier %s -> %s (%d referrals%s)",
                subscription.id,
                subscription.bonus_multiplier,
                multiplier,
                completed,
                f", campaign {campaign.name}" if campaign else "",
            )
            subscription.bonus_multiplier = multiplier
        updated[subscription.id] = multiplier

    if commit:
        await db.commit()
    else:
        await db.flush()
    return updated


async def complete_referral(
    db: AsyncSession, referral_id: uuid.UUID, *, today: Optional[date] = None
) -> Referral:
    """Mark a referral completed and refresh the referrer's multiplier."""
    referral = (
        await db.execute(select(Referral).where(Referral.id == referral_id))
    ).scalar_one_or_none()
    if not referral:
        raise NotFound("Referral not found", {"referral_id": str(referral_id)})
    if referral.status != ReferralStatus.PENDING:
        raise DomainConflict(
            f"Referral is already {referral.status.value}",
            {"referral_id": str(referral_id), "status": referral.status.value},
        )

    referral.status = ReferralStatus.COMPLETED
    referral.completed_at = utc_now()
    await db.flush()
    await recalculate_bonus_multiplier(db, referral.referrer_id, today=today)
    return referral


async def refresh_all_multipliers(db: AsyncSession, *, today: Optional[date] = None) -> int:
    """Recalculate every investor with an active subscription. Returns the count."""
    result = await db.execute(
        select(Subscription.investor_id)
        .where(Subscription.status == SubscriptionStatus.ACTIVE)
        .distinct()
    )
    investor_ids = list(result.scalars().all())
    settings = SettingsProvider(db)
    for investor_id in investor_ids:
        await recalculate_bonus_multiplier(
            db, investor_id, today=today, settings=settings
        )
    return len(investor_ids)
