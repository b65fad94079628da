"""Immutable plan-config snapshots for subscriptions.

A subscription copies its plan's ``bonus_config`` at creation together with a
SHA-256 of its canonical JSON form. Bonus math reads only the snapshot, so plan
edits never rewrite history; :func:`verify_config_integrity` detects tampering.
"""

import copy
import hashlib
import json
import uuid
from datetime import date
from decimal import Decimal
from typing import Any, Optional

from libs.common.datetime_utils import utc_now
from libs.common.logging import get_logger
from services.ledger_service.errors import InvalidArgument, NotFound
from services.ledger_service.models import (
    Investor,
    Plan,
    Subscription,
    SubscriptionStatus,
)
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)


def canonical_json(config: dict[str, Any]) -> str:
    return json.dumps(config, sort_keys=True, separators=(",", ":"), default=str)


def hash_config(config: dict[str, Any]) -> str:
    return hashlib.sha256(canonical_json(config).encode("utf-8")).hexdigest()


def verify_config_integrity(subscription: Subscription) -> bool:
    """True when the stored snapshot still matches its recorded hash."""
    return hash_config(subscription.config_snapshot or {}) == (
        subscription.config_snapshot_hash
    )


async def create_subscription(
    db: AsyncSession,
    *,
    investor_id: uuid.UUID,
    plan_id: uuid.UUID,
    amount_paise: Optional[int] = None,
    start_date: Optional[date] = None,
    bonus_multiplier: Decimal = Decimal("1.00"),
    commit: bool = True,
) -> Subscription:
    """Create a subscription with a frozen copy of the plan's bonus config."""
    plan = (await db.execute(select(Plan).where(Plan.id == plan_id))).scalar_one_or_none()
    if not plan:
        raise NotFound("Plan not found", {"plan_id": str(plan_id)})
    investor_exists = (
        await db.execute(select(Investor.id).where(Investor.id == investor_id))
    ).first()
    if not investor_exists:
        raise NotFound("Investor not found", {"investor_id": str(investor_id)})

    amount = plan.monthly_amount_paise if amount_paise is None else amount_paise
    if amount <= 0:
        raise InvalidArgument("Subscription amount must be positive", {"amount_paise": amount})

    # Round-trip through canonical JSON so the stored snapshot hashes identically
    # after the database hands it back.
    snapshot = json.loads(canonical_json(copy.deepcopy(plan.bonus_config or {})))
    subscription = Subscription(
        investor_id=investor_id,
        plan_id=plan.id,
        plan_slug=plan.slug,
        amount_paise=amount,
        status=SubscriptionStatus.ACTIVE,
        start_date=start_date or utc_now().date(),
        consecutive_payments_count=0,
        bonus_multiplier=bonus_multiplier,
        config_snapshot=snapshot,
        config_snapshot_hash=hash_config(snapshot),
        config_snapshot_at=utc_now(),
    )
    db.add(subscription)
    if commit:
        await db.commit()
        await db.refresh(subscription)
    else:
        await db.flush()

    logger.info(
        "Created subscription %s for investor %s on plan %s (snapshot %s)",
        subscription.id,
        investor_id,
        plan.slug,
        subscription.config_snapshot_hash[:12],
    )
    return subscription
