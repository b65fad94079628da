"""Profit share period and per-subscription share models."""

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from libs.common.datetime_utils import utc_now
from libs.db.base import Base
from services.ledger_service.models.enums import ProfitShareStatus, enum_values
from sqlalchemy import BigInteger, CheckConstraint, Date, DateTime
from sqlalchemy import Enum as SAEnum
from sqlalchemy import ForeignKey, Numeric, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column


class ProfitShare(Base):
    """A profit-sharing period.

    Status moves ``pending → distributed → reversed`` or ``pending → cancelled``.
    ``reversed`` and ``cancelled`` are terminal.
    """

    __tablename__ = "profit_shares"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    period_name: Mapped[str] = mapped_column(String, nullable=False)
    total_pool_paise: Mapped[int] = mapped_column(BigInteger, nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[ProfitShareStatus] = mapped_column(
        SAEnum(
            ProfitShareStatus,
            name="profit_share_status_enum",
            values_callable=enum_values,
            validate_strings=True,
        ),
        default=ProfitShareStatus.PENDING,
        nullable=False,
    )
    total_distributed_paise: Mapped[int] = mapped_column(
        BigInteger, default=0, nullable=False
    )
    cancellation_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    reversal_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_by: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    distributed_by: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    reversed_by: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    calculated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    distributed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    reversed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False
    )

    __table_args__ = (CheckConstraint("end_date >= start_date", name="date_range"),)

    def __repr__(self) -> str:
        return f"<ProfitShare {self.period_name} {self.status.value}>"


class UserProfitShare(Base):
    """Computed gross share of one subscription in one period."""

    __tablename__ = "user_profit_shares"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    profit_share_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("profit_shares.id"), index=True, nullable=False
    )
    investor_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("investors.id"), index=True, nullable=False
    )
    subscription_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("subscriptions.id"), nullable=False
    )
    weight_paise: Mapped[int] = mapped_column(BigInteger, nullable=False)
    ratio: Mapped[Decimal] = mapped_column(Numeric(12, 8), nullable=False)
    profit_share_percentage: Mapped[Decimal] = mapped_column(
        Numeric(7, 4), nullable=False
    )
    gross_amount_paise: Mapped[int] = mapped_column(BigInteger, nullable=False)
    bonus_transaction_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("bonus_transactions.id"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )

    __table_args__ = (
        UniqueConstraint(
            "profit_share_id", "subscription_id", name="uq_share_per_subscription"
        ),
    )

    def __repr__(self) -> str:
        return f"<UserProfitShare {self.subscription_id} {self.gross_amount_paise}>"
