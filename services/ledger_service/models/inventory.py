"""Inventory models: products, bulk purchases (batches) and allocations."""

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from libs.common.currency import HUNDRED
from libs.common.datetime_utils import utc_now
from libs.db.base import Base
from services.ledger_service.models.enums import (
    AllocationSource,
    BulkPurchaseSource,
    BulkPurchaseStatus,
    enum_values,
)
from sqlalchemy import BigInteger, Boolean, CheckConstraint, Date, DateTime
from sqlalchemy import Enum as SAEnum
from sqlalchemy import ForeignKey, Index, Numeric, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column


class Product(Base):
    """A pre-listed security offered on the platform."""

    __tablename__ = "products"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String, nullable=False)
    slug: Mapped[str] = mapped_column(String, unique=True, index=True, nullable=False)
    face_value_per_unit_paise: Mapped[int] = mapped_column(BigInteger, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )

    __table_args__ = (
        CheckConstraint("face_value_per_unit_paise > 0", name="face_value_positive"),
    )

    def __repr__(self) -> str:
        return f"<Product {self.slug}>"


class BulkPurchase(Base):
    """One priced lot of inventory with its own cost basis and markup.

    Financial and provenance columns are frozen once the row exists. Only
    ``value_remaining_paise`` (via allocation), ``status`` (via approval) and
    ``notes`` (via amend) change afterwards.
    """

    __tablename__ = "bulk_purchases"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    product_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("products.id"), index=True, nullable=False
    )
    face_value_purchased_paise: Mapped[int] = mapped_column(BigInteger, nullable=False)
    actual_cost_paid_paise: Mapped[int] = mapped_column(BigInteger, nullable=False)
    extra_allocation_percentage: Mapped[Decimal] = mapped_column(
        Numeric(7, 4), default=Decimal("0"), nullable=False
    )
    total_value_received_paise: Mapped[int] = mapped_column(BigInteger, nullable=False)
    value_remaining_paise: Mapped[int] = mapped_column(BigInteger, nullable=False)
    purchase_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[BulkPurchaseStatus] = mapped_column(
        SAEnum(
            BulkPurchaseStatus,
            name="bulk_purchase_status_enum",
            values_callable=enum_values,
            validate_strings=True,
        ),
        default=BulkPurchaseStatus.PENDING_APPROVAL,
        nullable=False,
    )

    # Provenance
    source_type: Mapped[BulkPurchaseSource] = mapped_column(
        SAEnum(
            BulkPurchaseSource,
            name="bulk_purchase_source_enum",
            values_callable=enum_values,
            validate_strings=True,
        ),
        nullable=False,
    )
    manual_entry_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    source_documentation: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    company_share_listing_id: Mapped[Optional[str]] = mapped_column(
        String, nullable=True
    )

    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    approved_by: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    approved_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_by: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False
    )

    __table_args__ = (
        CheckConstraint("face_value_purchased_paise > 0", name="face_value_positive"),
        CheckConstraint("actual_cost_paid_paise >= 0", name="cost_non_negative"),
        CheckConstraint("value_remaining_paise >= 0", name="remaining_non_negative"),
        CheckConstraint(
            "value_remaining_paise <= total_value_received_paise",
            name="remaining_lte_total",
        ),
        Index("ix_bulk_purchases_allocation_order", "product_id", "purchase_date"),
    )

    # Derived accessors -------------------------------------------------------

    @property
    def discount_percentage(self) -> Decimal:
        face = Decimal(self.face_value_purchased_paise)
        return (face - self.actual_cost_paid_paise) / face * HUNDRED

    @property
    def gross_margin_paise(self) -> int:
        return self.total_value_received_paise - self.actual_cost_paid_paise

    @property
    def gross_margin_percentage(self) -> Optional[Decimal]:
        # Undefined for zero-cost batches (gifted inventory).
        if not self.actual_cost_paid_paise:
            return None
        return (
            Decimal(self.gross_margin_paise) / self.actual_cost_paid_paise * HUNDRED
        )

    @property
    def allocated_amount_paise(self) -> int:
        return self.total_value_received_paise - self.value_remaining_paise

    @property
    def available_amount_paise(self) -> int:
        return self.value_remaining_paise

    def __repr__(self) -> str:
        return (
            f"<BulkPurchase {self.id} product={self.product_id} "
            f"remaining={self.value_remaining_paise}/{self.total_value_received_paise}>"
        )


class UserInvestment(Base):
    """Value drawn from one batch for one investor. Immutable once written."""

    __tablename__ = "user_investments"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    investor_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("investors.id"), index=True, nullable=False
    )
    product_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("products.id"), index=True, nullable=False
    )
    bulk_purchase_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("bulk_purchases.id"), index=True, nullable=False
    )
    payment_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("payments.id"), index=True, nullable=True
    )
    units_allocated: Mapped[Decimal] = mapped_column(Numeric(18, 4), nullable=False)
    value_allocated_paise: Mapped[int] = mapped_column(BigInteger, nullable=False)
    source: Mapped[AllocationSource] = mapped_column(
        SAEnum(
            AllocationSource,
            name="allocation_source_enum",
            values_callable=enum_values,
            validate_strings=True,
        ),
        default=AllocationSource.INVESTMENT,
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )

    __table_args__ = (
        CheckConstraint("value_allocated_paise > 0", name="value_positive"),
    )

    def __repr__(self) -> str:
        return (
            f"<UserInvestment {self.id} investor={self.investor_id} "
            f"value={self.value_allocated_paise} units={self.units_allocated}>"
        )
