"""Admin ledger endpoints: profit share, bonus reversal, inventory, risk and
wallet reconciliation."""

import uuid

from fastapi import APIRouter, Depends, Query, status
from libs.auth.dependencies import require_admin
from libs.auth.models import AuthUser
from libs.common.logging import get_logger
from libs.db.session import get_async_db
from services.ledger_service.schemas import (
    BlockedInvestorResponse,
    BlockingDetailsResponse,
    BonusTransactionResponse,
    BulkPurchaseCreateRequest,
    BulkPurchaseResponse,
    ProfitShareCreateRequest,
    ProfitShareReasonRequest,
    ProfitShareResponse,
    ReverseBonusRequest,
    UnblockRequest,
    UserProfitShareResponse,
    WalletReconciliationResponse,
)
from services.ledger_service.services import (
    allocation_service,
    bonus_service,
    profit_share_service,
    risk_guard,
    wallet_ops,
)
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)
router = APIRouter(prefix="/admin/ledger", tags=["admin-ledger"])


# ---------------------------------------------------------------------------
# Profit share
# ---------------------------------------------------------------------------


@router.post(
    "/profit-shares",
    response_model=ProfitShareResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_profit_share(
    body: ProfitShareCreateRequest,
    admin: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    return await profit_share_service.create_profit_share_period(
        db,
        period_name=body.period_name,
        total_pool_paise=body.total_pool_paise,
        start_date=body.start_date,
        end_date=body.end_date,
        created_by=admin.user_id,
    )


@router.get("/profit-shares/{profit_share_id}", response_model=ProfitShareResponse)
async def get_profit_share(
    profit_share_id: uuid.UUID,
    _admin: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    return await profit_share_service.get_period(db, profit_share_id)


@router.get(
    "/profit-shares/{profit_share_id}/shares",
    response_model=list[UserProfitShareResponse],
)
async def list_profit_share_shares(
    profit_share_id: uuid.UUID,
    _admin: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    return await profit_share_service.list_shares(db, profit_share_id)


@router.post(
    "/profit-shares/{profit_share_id}/calculate",
    response_model=list[UserProfitShareResponse],
)
async def calculate_profit_share(
    profit_share_id: uuid.UUID,
    admin: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    logger.info("Profit share %s calculation requested by %s", profit_share_id, admin.user_id)
    return await profit_share_service.calculate_distribution(db, profit_share_id)


@router.post(
    "/profit-shares/{profit_share_id}/distribute", response_model=ProfitShareResponse
)
async def distribute_profit_share(
    profit_share_id: uuid.UUID,
    admin: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    return await profit_share_service.distribute_to_wallets(
        db, profit_share_id, admin_id=admin.user_id
    )


@router.post(
    "/profit-shares/{profit_share_id}/reverse", response_model=ProfitShareResponse
)
async def reverse_profit_share(
    profit_share_id: uuid.UUID,
    body: ProfitShareReasonRequest,
    admin: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    return await profit_share_service.reverse_distribution(
        db, profit_share_id, reason=body.reason, admin_id=admin.user_id
    )


@router.post(
    "/profit-shares/{profit_share_id}/cancel", response_model=ProfitShareResponse
)
async def cancel_profit_share(
    profit_share_id: uuid.UUID,
    body: ProfitShareReasonRequest,
    admin: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    return await profit_share_service.cancel_period(
        db, profit_share_id, reason=body.reason, admin_id=admin.user_id
    )


# ---------------------------------------------------------------------------
# Bonuses
# ---------------------------------------------------------------------------


@router.post("/bonuses/{bonus_id}/reverse", response_model=BonusTransactionResponse)
async def reverse_bonus(
    bonus_id: uuid.UUID,
    body: ReverseBonusRequest,
    admin: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    return await bonus_service.reverse_bonus(
        db, bonus_id, reason=body.reason, admin_id=admin.user_id
    )


# ---------------------------------------------------------------------------
# Inventory
# ---------------------------------------------------------------------------


@router.post(
    "/bulk-purchases",
    response_model=BulkPurchaseResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_bulk_purchase(
    body: BulkPurchaseCreateRequest,
    admin: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    return await allocation_service.create_bulk_purchase(
        db,
        product_id=body.product_id,
        face_value_purchased_paise=body.face_value_purchased_paise,
        actual_cost_paid_paise=body.actual_cost_paid_paise,
        extra_allocation_percentage=body.extra_allocation_percentage,
        purchase_date=body.purchase_date,
        source_type=body.source_type,
        manual_entry_reason=body.manual_entry_reason,
        source_documentation=body.source_documentation,
        company_share_listing_id=body.company_share_listing_id,
        notes=body.notes,
        created_by=admin.user_id,
    )


@router.post(
    "/bulk-purchases/{bulk_purchase_id}/approve", response_model=BulkPurchaseResponse
)
async def approve_bulk_purchase(
    bulk_purchase_id: uuid.UUID,
    admin: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    return await allocation_service.approve_bulk_purchase(
        db, bulk_purchase_id, admin_id=admin.user_id
    )


# ---------------------------------------------------------------------------
# Risk
# ---------------------------------------------------------------------------


@router.get("/risk/blocked", response_model=list[BlockedInvestorResponse])
async def list_blocked(
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    _admin: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    return await risk_guard.list_blocked_investors(db, skip=skip, limit=limit)


@router.get("/risk/{investor_id}", response_model=BlockingDetailsResponse)
async def blocking_details(
    investor_id: uuid.UUID,
    _admin: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    return await risk_guard.get_blocking_details(db, investor_id)


@router.post("/risk/{investor_id}/refresh", response_model=BlockingDetailsResponse)
async def refresh_risk(
    investor_id: uuid.UUID,
    _admin: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    await risk_guard.refresh_risk_status(db, investor_id)
    return await risk_guard.get_blocking_details(db, investor_id)


@router.post("/risk/{investor_id}/unblock", response_model=BlockingDetailsResponse)
async def unblock(
    investor_id: uuid.UUID,
    body: UnblockRequest,
    admin: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    await risk_guard.unblock_investor(
        db, investor_id, admin_id=admin.user_id, reason=body.reason
    )
    return await risk_guard.get_blocking_details(db, investor_id)


# ---------------------------------------------------------------------------
# Wallet reconciliation
# ---------------------------------------------------------------------------


@router.get(
    "/wallets/drift",
    response_model=list[WalletReconciliationResponse],
)
async def list_drifted_wallets(
    _admin: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    reports = await wallet_ops.reconcile_all_wallets(db)
    return [WalletReconciliationResponse.model_validate(r) for r in reports]


@router.get(
    "/wallets/{investor_id}/reconcile",
    response_model=WalletReconciliationResponse,
)
async def reconcile_wallet(
    investor_id: uuid.UUID,
    _admin: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    wallet = await wallet_ops.get_wallet_for_investor(db, investor_id)
    report = await wallet_ops.reconcile_wallet(db, wallet.id)
    return WalletReconciliationResponse.model_validate(report)
