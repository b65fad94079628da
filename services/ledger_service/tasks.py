"""Background bonus, referral, risk and reconciliation jobs for the ledger service.

Each job opens its own session. ``session_factory`` is injectable so tests can
run jobs against their own engine.
"""

from __future__ import annotations

import uuid
from datetime import date

from libs.common.logging import get_logger
from libs.db.config import AsyncSessionLocal
from services.ledger_service.errors import NotFound, RiskBlocked
from services.ledger_service.models import (
    OPEN_DISPUTE_STATUSES,
    Dispute,
    Payment,
    PaymentStatus,
)
from services.ledger_service.services import (
    allocation_service,
    bonus_service,
    celebration_service,
    referral_service,
    risk_guard,
    wallet_ops,
)
from sqlalchemy import select, union

logger = get_logger(__name__)


async def calculate_payment_bonuses(
    payment_id: str | uuid.UUID, *, session_factory=AsyncSessionLocal
) -> int:
    """Award bonuses and event milestones for one paid payment.

    Returns the number of new awards.
    """
    payment_uuid = uuid.UUID(str(payment_id))
    async with session_factory() as db:
        try:
            awarded = await bonus_service.calculate_and_award_bonuses(db, payment_uuid)
            awarded += await celebration_service.award_payment_milestones(
                db, payment_uuid
            )
        except RiskBlocked as exc:
            # Blocked investors get nothing; retrying would not change that.
            logger.warning(
                "Bonus job for payment %s stopped by risk gate: %s",
                payment_id,
                exc.message,
            )
            return 0
        except NotFound as exc:
            logger.error("Bonus job for payment %s: %s", payment_id, exc.message)
            return 0
    return len(awarded)


async def allocate_payment(
    payment_id: str | uuid.UUID,
    product_id: str | uuid.UUID,
    *,
    session_factory=AsyncSessionLocal,
) -> int:
    """Allocate inventory for one paid payment. Returns the allocation row count.

    InsufficientInventory propagates and fails the job.
    """
    payment_uuid = uuid.UUID(str(payment_id))
    async with session_factory() as db:
        try:
            investments = await allocation_service.allocate_for_payment(
                db, payment_uuid, product_id=uuid.UUID(str(product_id))
            )
        except RiskBlocked as exc:
            logger.warning(
                "Allocation job for payment %s stopped by risk gate: %s",
                payment_id,
                exc.message,
            )
            return 0
        except NotFound as exc:
            logger.error("Allocation job for payment %s: %s", payment_id, exc.message)
            return 0
    return len(investments)


async def process_celebration_bonuses(
    today: date | None = None, *, session_factory=AsyncSessionLocal
) -> int:
    async with session_factory() as db:
        awarded = await celebration_service.process_celebration_bonuses(db, today=today)
    return len(awarded)


async def refresh_referral_multipliers(*, session_factory=AsyncSessionLocal) -> int:
    async with session_factory() as db:
        return await referral_service.refresh_all_multipliers(db)


async def refresh_risk_scores(*, session_factory=AsyncSessionLocal) -> int:
    """Rescore every investor with a chargeback or an open dispute."""
    async with session_factory() as db:
        candidates = union(
            select(Payment.investor_id).where(
                Payment.status == PaymentStatus.CHARGEBACK_CONFIRMED
            ),
            select(Dispute.investor_id).where(Dispute.status.in_(OPEN_DISPUTE_STATUSES)),
        )
        investor_ids = list((await db.execute(candidates)).scalars().all())
        for investor_id in investor_ids:
            await risk_guard.refresh_risk_status(db, investor_id)
    logger.info("Refreshed risk scores for %d investors", len(investor_ids))
    return len(investor_ids)


async def reconcile_wallets(*, session_factory=AsyncSessionLocal) -> int:
    """Check every wallet against its journal. Returns the number that drifted."""
    async with session_factory() as db:
        drifted = await wallet_ops.reconcile_all_wallets(db)
    return len(drifted)
