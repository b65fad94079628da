"""Plan, subscription and payment models."""

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from libs.common.datetime_utils import utc_now
from libs.db.base import Base, JSONType
from services.ledger_service.models.enums import (
    PaymentStatus,
    SubscriptionStatus,
    enum_values,
)
from sqlalchemy import BigInteger, Boolean, CheckConstraint, Date, DateTime
from sqlalchemy import Enum as SAEnum
from sqlalchemy import ForeignKey, Integer, Numeric, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column


class Plan(Base):
    """Subscription plan. ``bonus_config`` is the live, editable config."""

    __tablename__ = "plans"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String, nullable=False)
    slug: Mapped[str] = mapped_column(String, unique=True, index=True, nullable=False)
    monthly_amount_paise: Mapped[int] = mapped_column(BigInteger, nullable=False)
    duration_months: Mapped[int] = mapped_column(Integer, default=36, nullable=False)
    bonus_config: Mapped[dict] = mapped_column(JSONType, default=dict, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False
    )

    def __repr__(self) -> str:
        return f"<Plan {self.slug}>"


class Subscription(Base):
    """An investor's recurring commitment to a plan.

    ``config_snapshot`` is captured once at creation; bonus math always reads
    the snapshot, never the live plan.
    """

    __tablename__ = "subscriptions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    investor_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("investors.id"), index=True, nullable=False
    )
    plan_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("plans.id"), index=True, nullable=False
    )
    plan_slug: Mapped[str] = mapped_column(String, nullable=False)
    amount_paise: Mapped[int] = mapped_column(BigInteger, nullable=False)
    status: Mapped[SubscriptionStatus] = mapped_column(
        SAEnum(
            SubscriptionStatus,
            name="subscription_status_enum",
            values_callable=enum_values,
            validate_strings=True,
        ),
        default=SubscriptionStatus.ACTIVE,
        nullable=False,
    )
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    consecutive_payments_count: Mapped[int] = mapped_column(
        Integer, default=0, nullable=False
    )
    bonus_multiplier: Mapped[Decimal] = mapped_column(
        Numeric(6, 2), default=Decimal("1.00"), nullable=False
    )

    # Immutable plan config snapshot
    config_snapshot: Mapped[dict] = mapped_column(JSONType, nullable=False)
    config_snapshot_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    config_snapshot_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False
    )

    __table_args__ = (
        CheckConstraint("amount_paise > 0", name="amount_positive"),
        CheckConstraint("bonus_multiplier > 0", name="multiplier_positive"),
    )

    def __repr__(self) -> str:
        return (
            f"<Subscription {self.id} plan={self.plan_slug} "
            f"streak={self.consecutive_payments_count}>"
        )


class Payment(Base):
    """A subscription payment, persisted by the payments collaborator."""

    __tablename__ = "payments"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    investor_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("investors.id"), index=True, nullable=False
    )
    subscription_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("subscriptions.id"), index=True, nullable=False
    )
    amount_paise: Mapped[int] = mapped_column(BigInteger, nullable=False)
    is_on_time: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    status: Mapped[PaymentStatus] = mapped_column(
        SAEnum(
            PaymentStatus,
            name="payment_status_enum",
            values_callable=enum_values,
            validate_strings=True,
        ),
        default=PaymentStatus.PAID,
        nullable=False,
    )
    gateway_reference: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    paid_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )

    def __repr__(self) -> str:
        return f"<Payment {self.id} {self.amount_paise} {self.status.value}>"
