"""Internal service-to-service ledger endpoints.

Called by other platform services (payments, reporting, notifications) with a
service-role JWT, never by frontend clients directly.
"""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query
from libs.auth.dependencies import require_service_role
from libs.auth.models import AuthUser
from libs.common.arq_config import enqueue
from libs.common.logging import get_logger
from libs.db.session import get_async_db
from services.ledger_service.models import BonusType, TransactionType
from services.ledger_service.schemas import (
    AllocateRequest,
    BlockingDetailsResponse,
    BonusTransactionResponse,
    CancelWithdrawalRequest,
    DepositRequest,
    PaymentSucceededRequest,
    TransactionListResponse,
    TransactionResponse,
    UserInvestmentResponse,
    WalletResponse,
    WithdrawRequest,
)
from services.ledger_service.services import (
    allocation_service,
    bonus_service,
    risk_guard,
    wallet_ops,
)
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)
router = APIRouter(prefix="/internal/ledger", tags=["internal-ledger"])


# ---------------------------------------------------------------------------
# Wallet
# ---------------------------------------------------------------------------


@router.post("/investors/{investor_id}/wallet", response_model=WalletResponse)
async def create_investor_wallet(
    investor_id: uuid.UUID,
    _service: AuthUser = Depends(require_service_role),
    db: AsyncSession = Depends(get_async_db),
):
    """Create the investor's wallet at onboarding (idempotent)."""
    return await wallet_ops.create_wallet(db, investor_id=investor_id)


@router.get("/investors/{investor_id}/wallet", response_model=WalletResponse)
async def get_investor_wallet(
    investor_id: uuid.UUID,
    _service: AuthUser = Depends(require_service_role),
    db: AsyncSession = Depends(get_async_db),
):
    return await wallet_ops.get_wallet_for_investor(db, investor_id)


@router.get(
    "/investors/{investor_id}/transactions", response_model=TransactionListResponse
)
async def list_investor_transactions(
    investor_id: uuid.UUID,
    transaction_type: Optional[TransactionType] = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    _service: AuthUser = Depends(require_service_role),
    db: AsyncSession = Depends(get_async_db),
):
    wallet = await wallet_ops.get_wallet_for_investor(db, investor_id)
    transactions, total = await wallet_ops.list_transactions(
        db,
        wallet_id=wallet.id,
        transaction_type=transaction_type,
        skip=skip,
        limit=limit,
    )
    return TransactionListResponse(
        transactions=[TransactionResponse.model_validate(t) for t in transactions],
        total=total,
        skip=skip,
        limit=limit,
    )


@router.post("/investors/{investor_id}/deposit", response_model=TransactionResponse)
async def internal_deposit(
    investor_id: uuid.UUID,
    body: DepositRequest,
    _service: AuthUser = Depends(require_service_role),
    db: AsyncSession = Depends(get_async_db),
):
    wallet = await wallet_ops.get_wallet_for_investor(db, investor_id)
    return await wallet_ops.deposit(
        db,
        wallet_id=wallet.id,
        amount_paise=body.amount_paise,
        transaction_type=body.transaction_type,
        description=body.description,
        reference_type=body.reference_type,
        reference_id=body.reference_id,
        idempotency_key=body.idempotency_key,
    )


@router.post("/investors/{investor_id}/withdraw", response_model=TransactionResponse)
async def internal_withdraw(
    investor_id: uuid.UUID,
    body: WithdrawRequest,
    _service: AuthUser = Depends(require_service_role),
    db: AsyncSession = Depends(get_async_db),
):
    wallet = await wallet_ops.get_wallet_for_investor(db, investor_id)
    return await wallet_ops.withdraw(
        db,
        wallet_id=wallet.id,
        amount_paise=body.amount_paise,
        transaction_type=body.transaction_type,
        description=body.description,
        reference_type=body.reference_type,
        reference_id=body.reference_id,
        lock=body.lock,
        idempotency_key=body.idempotency_key,
    )


@router.post(
    "/transactions/{transaction_id}/complete", response_model=TransactionResponse
)
async def complete_withdrawal(
    transaction_id: uuid.UUID,
    _service: AuthUser = Depends(require_service_role),
    db: AsyncSession = Depends(get_async_db),
):
    """Settle a locked withdrawal once the payout has gone out."""
    return await wallet_ops.complete_locked_withdrawal(
        db, transaction_id=transaction_id
    )


@router.post(
    "/transactions/{transaction_id}/cancel", response_model=TransactionResponse
)
async def cancel_withdrawal(
    transaction_id: uuid.UUID,
    body: CancelWithdrawalRequest,
    _service: AuthUser = Depends(require_service_role),
    db: AsyncSession = Depends(get_async_db),
):
    """Release a locked withdrawal whose payout failed or was called off."""
    return await wallet_ops.cancel_locked_withdrawal(
        db, transaction_id=transaction_id, reason=body.reason
    )


# ---------------------------------------------------------------------------
# Payments, allocation and bonuses
# ---------------------------------------------------------------------------


@router.post("/payments/{payment_id}/succeeded", status_code=202)
async def payment_succeeded(
    payment_id: uuid.UUID,
    body: Optional[PaymentSucceededRequest] = None,
    _service: AuthUser = Depends(require_service_role),
):
    """Queue bonus calculation for a persisted, paid payment.

    Allocation is queued too when the body names a product.
    """
    await enqueue(
        "task_calculate_payment_bonuses",
        str(payment_id),
        job_id=f"payment-bonuses:{payment_id}",
    )
    allocation_queued = bool(body and body.product_id)
    if allocation_queued:
        await enqueue(
            "task_allocate_payment",
            str(payment_id),
            str(body.product_id),
            job_id=f"payment-allocation:{payment_id}",
        )
    logger.info(
        "Queued jobs for payment %s (allocation=%s)", payment_id, allocation_queued
    )
    return {
        "queued": True,
        "payment_id": str(payment_id),
        "allocation_queued": allocation_queued,
    }


@router.post("/allocations", response_model=list[UserInvestmentResponse])
async def allocate_inventory(
    body: AllocateRequest,
    _service: AuthUser = Depends(require_service_role),
    db: AsyncSession = Depends(get_async_db),
):
    return await allocation_service.allocate(
        db,
        product_id=body.product_id,
        investor_id=body.investor_id,
        requested_value_paise=body.requested_value_paise,
        payment_id=body.payment_id,
        source=body.source,
    )


@router.get(
    "/investors/{investor_id}/investments",
    response_model=list[UserInvestmentResponse],
)
async def list_investor_investments(
    investor_id: uuid.UUID,
    product_id: Optional[uuid.UUID] = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    _service: AuthUser = Depends(require_service_role),
    db: AsyncSession = Depends(get_async_db),
):
    return await allocation_service.list_user_investments(
        db, investor_id=investor_id, product_id=product_id, skip=skip, limit=limit
    )


@router.get(
    "/investors/{investor_id}/bonuses",
    response_model=list[BonusTransactionResponse],
)
async def list_investor_bonuses(
    investor_id: uuid.UUID,
    bonus_type: Optional[BonusType] = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    _service: AuthUser = Depends(require_service_role),
    db: AsyncSession = Depends(get_async_db),
):
    return await bonus_service.list_bonus_transactions(
        db, investor_id=investor_id, bonus_type=bonus_type, skip=skip, limit=limit
    )


# ---------------------------------------------------------------------------
# Risk
# ---------------------------------------------------------------------------


@router.get("/investors/{investor_id}/risk", response_model=BlockingDetailsResponse)
async def investor_risk(
    investor_id: uuid.UUID,
    _service: AuthUser = Depends(require_service_role),
    db: AsyncSession = Depends(get_async_db),
):
    return await risk_guard.get_blocking_details(db, investor_id)
