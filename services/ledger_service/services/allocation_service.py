"""Inventory allocation: apportion bulk-purchase batches to investors.

Batches are consumed oldest purchase first (``purchase_date``, then
``created_at``, then ``id``). An allocation either takes the full requested
value or nothing: the total across eligible batches is checked under row locks
before any batch is touched.
"""

import uuid
from datetime import date
from decimal import Decimal
from typing import Any, Optional

from libs.common.currency import HUNDRED, Number, round_paise, to_decimal, truncate
from libs.common.datetime_utils import utc_now
from libs.common.logging import get_logger
from services.ledger_service.errors import (
    DomainConflict,
    InsufficientInventory,
    InvalidArgument,
    NotFound,
    ProvenanceViolation,
)
from services.ledger_service.models import (
    AllocationSource,
    BulkPurchase,
    BulkPurchaseSource,
    BulkPurchaseStatus,
    Payment,
    PaymentStatus,
    Product,
    UserInvestment,
)
from services.ledger_service.services import risk_guard
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)

UNIT_DECIMAL_PLACES = 4

# Fields that may change after a bulk purchase is recorded.
AMENDABLE_FIELDS = frozenset({"notes"})

# Provenance fields each source type must carry.
REQUIRED_PROVENANCE = {
    BulkPurchaseSource.MANUAL_ENTRY: ("manual_entry_reason", "source_documentation"),
    BulkPurchaseSource.COMPANY_LISTING: ("company_share_listing_id",),
}


# ---------------------------------------------------------------------------
# Derived values (pure)
# ---------------------------------------------------------------------------


def compute_total_value_received(face_value_paise: int, extra_percentage: Number) -> int:
    """face × (1 + extra/100), rounded half-up to paise."""
    return round_paise(
        Decimal(face_value_paise) * (1 + to_decimal(extra_percentage) / HUNDRED)
    )


def discount_percentage(face_value_paise: int, cost_paise: int) -> Decimal:
    return (Decimal(face_value_paise) - cost_paise) / face_value_paise * HUNDRED


def gross_margin(total_value_paise: int, cost_paise: int) -> int:
    return total_value_paise - cost_paise


def gross_margin_percentage(total_value_paise: int, cost_paise: int) -> Optional[Decimal]:
    if not cost_paise:
        return None
    return Decimal(gross_margin(total_value_paise, cost_paise)) / cost_paise * HUNDRED


def units_for_value(value_paise: int, face_value_per_unit_paise: int) -> Decimal:
    """Units bought by ``value_paise``, truncated to 4 decimal places."""
    return truncate(
        Decimal(value_paise) / Decimal(face_value_per_unit_paise), UNIT_DECIMAL_PLACES
    )


def validate_provenance(
    source_type: Optional[Any],
    *,
    manual_entry_reason: Optional[str] = None,
    source_documentation: Optional[str] = None,
    company_share_listing_id: Optional[str] = None,
) -> BulkPurchaseSource:
    """Return the parsed source type or raise ProvenanceViolation."""
    if source_type is None or (isinstance(source_type, str) and not source_type.strip()):
        raise ProvenanceViolation(None, "source_type")
    try:
        source = BulkPurchaseSource(source_type)
    except ValueError as e:
        raise InvalidArgument(
            f"Unknown source_type '{source_type}'", {"source_type": str(source_type)}
        ) from e

    values = {
        "manual_entry_reason": manual_entry_reason,
        "source_documentation": source_documentation,
        "company_share_listing_id": company_share_listing_id,
    }
    for field_name in REQUIRED_PROVENANCE[source]:
        value = values[field_name]
        if value is None or not str(value).strip():
            raise ProvenanceViolation(source.value, field_name)
    return source


# ---------------------------------------------------------------------------
# Bulk purchase lifecycle
# ---------------------------------------------------------------------------


async def create_bulk_purchase(
    db: AsyncSession,
    *,
    product_id: uuid.UUID,
    face_value_purchased_paise: int,
    actual_cost_paid_paise: int,
    purchase_date: date,
    source_type: Optional[Any],
    extra_allocation_percentage: Number = 0,
    manual_entry_reason: Optional[str] = None,
    source_documentation: Optional[str] = None,
    company_share_listing_id: Optional[str] = None,
    notes: Optional[str] = None,
    created_by: Optional[str] = None,
) -> BulkPurchase:
    """Record a new inventory batch (pending approval)."""
    extra = to_decimal(extra_allocation_percentage)
    if face_value_purchased_paise <= 0:
        raise InvalidArgument(
            "Face value must be positive",
            {"face_value_purchased_paise": face_value_purchased_paise},
        )
    if actual_cost_paid_paise < 0:
        raise InvalidArgument(
            "Actual cost cannot be negative",
            {"actual_cost_paid_paise": actual_cost_paid_paise},
        )
    if extra < 0:
        raise InvalidArgument(
            "Extra allocation percentage cannot be negative",
            {"extra_allocation_percentage": str(extra)},
        )

    source = validate_provenance(
        source_type,
        manual_entry_reason=manual_entry_reason,
        source_documentation=source_documentation,
        company_share_listing_id=company_share_listing_id,
    )

    product = (
        await db.execute(select(Product).where(Product.id == product_id))
    ).scalar_one_or_none()
    if not product:
        raise NotFound("Product not found", {"product_id": str(product_id)})

    total = compute_total_value_received(face_value_purchased_paise, extra)
    batch = BulkPurchase(
        product_id=product.id,
        face_value_purchased_paise=face_value_purchased_paise,
        actual_cost_paid_paise=actual_cost_paid_paise,
        extra_allocation_percentage=extra,
        total_value_received_paise=total,
        value_remaining_paise=total,
        purchase_date=purchase_date,
        status=BulkPurchaseStatus.PENDING_APPROVAL,
        source_type=source,
        manual_entry_reason=manual_entry_reason,
        source_documentation=source_documentation,
        company_share_listing_id=company_share_listing_id,
        notes=notes,
        created_by=created_by,
    )
    db.add(batch)
    await db.commit()
    await db.refresh(batch)

    logger.info(
        "Recorded bulk purchase %s for product %s: face=%d cost=%d total=%d (%s)",
        batch.id,
        product.slug,
        face_value_purchased_paise,
        actual_cost_paid_paise,
        total,
        source.value,
    )
    return batch


async def _get_bulk_purchase(db: AsyncSession, bulk_purchase_id: uuid.UUID) -> BulkPurchase:
    result = await db.execute(
        select(BulkPurchase).where(BulkPurchase.id == bulk_purchase_id)
    )
    batch = result.scalar_one_or_none()
    if not batch:
        raise NotFound(
            "Bulk purchase not found", {"bulk_purchase_id": str(bulk_purchase_id)}
        )
    return batch


async def approve_bulk_purchase(
    db: AsyncSession, bulk_purchase_id: uuid.UUID, *, admin_id: str
) -> BulkPurchase:
    """pending_approval -> approved. Approved and rejected batches are final."""
    batch = await _get_bulk_purchase(db, bulk_purchase_id)
    if batch.status != BulkPurchaseStatus.PENDING_APPROVAL:
        raise DomainConflict(
            f"Bulk purchase is already {batch.status.value}",
            {"bulk_purchase_id": str(batch.id), "status": batch.status.value},
        )
    batch.status = BulkPurchaseStatus.APPROVED
    batch.approved_by = admin_id
    batch.approved_at = utc_now()
    await db.commit()
    await db.refresh(batch)

    logger.info("Bulk purchase %s approved by %s", batch.id, admin_id)
    return batch


async def reject_bulk_purchase(
    db: AsyncSession, bulk_purchase_id: uuid.UUID, *, admin_id: str, reason: str
) -> BulkPurchase:
    batch = await _get_bulk_purchase(db, bulk_purchase_id)
    if batch.status != BulkPurchaseStatus.PENDING_APPROVAL:
        raise DomainConflict(
            f"Bulk purchase is already {batch.status.value}",
            {"bulk_purchase_id": str(batch.id), "status": batch.status.value},
        )
    batch.status = BulkPurchaseStatus.REJECTED
    batch.notes = f"{batch.notes}\n{reason}" if batch.notes else reason
    await db.commit()
    await db.refresh(batch)

    logger.info("Bulk purchase %s rejected by %s: %s", batch.id, admin_id, reason)
    return batch


async def amend_bulk_purchase(
    db: AsyncSession,
    bulk_purchase_id: uuid.UUID,
    *,
    changes: dict[str, Any],
    admin_id: str,
) -> BulkPurchase:
    """Apply changes to amendable fields. Any frozen field fails the whole call."""
    frozen = sorted(set(changes) - AMENDABLE_FIELDS)
    if frozen:
        raise DomainConflict(
            "Bulk purchase financial and provenance fields cannot be changed",
            {"bulk_purchase_id": str(bulk_purchase_id), "frozen_fields": frozen},
        )

    batch = await _get_bulk_purchase(db, bulk_purchase_id)
    for name, value in changes.items():
        setattr(batch, name, value)
    await db.commit()
    await db.refresh(batch)

    logger.info(
        "Bulk purchase %s amended by %s (%s)", batch.id, admin_id, ", ".join(changes)
    )
    return batch


# ---------------------------------------------------------------------------
# Allocation (atomic)
# ---------------------------------------------------------------------------


async def available_inventory(db: AsyncSession, product_id: uuid.UUID) -> int:
    """Remaining value across approved batches of a product."""
    result = await db.execute(
        select(func.coalesce(func.sum(BulkPurchase.value_remaining_paise), 0)).where(
            BulkPurchase.product_id == product_id,
            BulkPurchase.status == BulkPurchaseStatus.APPROVED,
        )
    )
    return int(result.scalar_one())


async def allocate(
    db: AsyncSession,
    *,
    product_id: uuid.UUID,
    investor_id: uuid.UUID,
    requested_value_paise: int,
    payment_id: Optional[uuid.UUID] = None,
    source: AllocationSource = AllocationSource.INVESTMENT,
    commit: bool = True,
) -> list[UserInvestment]:
    """Allocate ``requested_value_paise`` of a product to an investor.

    Returns one UserInvestment per consumed batch. Raises InsufficientInventory
    with every batch untouched when the product cannot cover the request.
    """
    if (
        isinstance(requested_value_paise, bool)
        or not isinstance(requested_value_paise, int)
        or requested_value_paise <= 0
    ):
        raise InvalidArgument(
            "Requested value must be a positive whole number of paise",
            {"requested_value_paise": requested_value_paise},
        )

    await risk_guard.assert_user_can_invest(
        db,
        investor_id,
        operation="allocate",
        context={
            "product_id": str(product_id),
            "requested_value_paise": requested_value_paise,
            "payment_id": str(payment_id) if payment_id else None,
        },
    )

    try:
        product = (
            await db.execute(select(Product).where(Product.id == product_id))
        ).scalar_one_or_none()
        if not product:
            raise NotFound("Product not found", {"product_id": str(product_id)})

        result = await db.execute(
            select(BulkPurchase)
            .where(
                BulkPurchase.product_id == product_id,
                BulkPurchase.status == BulkPurchaseStatus.APPROVED,
                BulkPurchase.value_remaining_paise > 0,
            )
            .order_by(
                BulkPurchase.purchase_date,
                BulkPurchase.created_at,
                BulkPurchase.id,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        batches = list(result.scalars().all())

        available = sum(b.value_remaining_paise for b in batches)
        if available < requested_value_paise:
            raise InsufficientInventory(
                f"Insufficient inventory for {product.slug}: "
                f"requested {requested_value_paise}, available {available}",
                {
                    "product_id": str(product_id),
                    "requested_value_paise": requested_value_paise,
                    "available_value_paise": available,
                },
            )

        allocations: list[UserInvestment] = []
        outstanding = requested_value_paise
        for batch in batches:
            if outstanding == 0:
                break
            take = min(outstanding, batch.value_remaining_paise)
            batch.value_remaining_paise -= take
            outstanding -= take

            investment = UserInvestment(
                investor_id=investor_id,
                product_id=product.id,
                bulk_purchase_id=batch.id,
                payment_id=payment_id,
                units_allocated=units_for_value(take, product.face_value_per_unit_paise),
                value_allocated_paise=take,
                source=source,
            )
            db.add(investment)
            allocations.append(investment)

        if commit:
            await db.commit()
            for investment in allocations:
                await db.refresh(investment)
        else:
            await db.flush()
    except Exception:
        if commit:
            await db.rollback()
        raise

    logger.info(
        "Allocated %d of %s to investor %s across %d batch(es)",
        requested_value_paise,
        product.slug,
        investor_id,
        len(allocations),
    )
    return allocations


async def allocate_for_payment(
    db: AsyncSession, payment_id: uuid.UUID, *, product_id: uuid.UUID
) -> list[UserInvestment]:
    """Allocate a paid payment's full amount of ``product_id`` to its investor.

    Safe to retry: a payment that already has allocations returns them as is.
    Unpaid payments allocate nothing.
    """
    payment = (
        await db.execute(select(Payment).where(Payment.id == payment_id))
    ).scalar_one_or_none()
    if not payment:
        raise NotFound("Payment not found", {"payment_id": str(payment_id)})
    if payment.status != PaymentStatus.PAID:
        logger.info(
            "Payment %s is %s, nothing to allocate", payment.id, payment.status.value
        )
        return []

    existing = (
        (
            await db.execute(
                select(UserInvestment)
                .where(UserInvestment.payment_id == payment.id)
                .order_by(UserInvestment.created_at, UserInvestment.id)
            )
        )
        .scalars()
        .all()
    )
    if existing:
        logger.info("Payment %s already allocated, skipping", payment.id)
        return list(existing)

    return await allocate(
        db,
        product_id=product_id,
        investor_id=payment.investor_id,
        requested_value_paise=payment.amount_paise,
        payment_id=payment.id,
        source=AllocationSource.INVESTMENT,
    )


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


async def check_inventory_conservation(
    db: AsyncSession, bulk_purchase_id: uuid.UUID
) -> bool:
    """True when value_remaining = total_value_received − Σ allocations."""
    batch = await _get_bulk_purchase(db, bulk_purchase_id)
    allocated = (
        await db.execute(
            select(
                func.coalesce(func.sum(UserInvestment.value_allocated_paise), 0)
            ).where(UserInvestment.bulk_purchase_id == bulk_purchase_id)
        )
    ).scalar_one()

    expected = batch.total_value_received_paise - int(allocated)
    if batch.value_remaining_paise != expected:
        logger.error(
            "Inventory drift on bulk purchase %s: remaining=%d expected=%d",
            batch.id,
            batch.value_remaining_paise,
            expected,
        )
        return False
    return True


async def list_user_investments(
    db: AsyncSession,
    *,
    investor_id: uuid.UUID,
    product_id: Optional[uuid.UUID] = None,
    skip: int = 0,
    limit: int = 50,
) -> list[UserInvestment]:
    query = select(UserInvestment).where(UserInvestment.investor_id == investor_id)
    if product_id is not None:
        query = query.where(UserInvestment.product_id == product_id)
    result = await db.execute(
        query.order_by(UserInvestment.created_at.desc(), UserInvestment.id)
        .offset(skip)
        .limit(limit)
    )
    return list(result.scalars().all())
