"""BonusTransaction model: one row per awarded (or reversed) bonus."""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from libs.common.datetime_utils import utc_now
from libs.db.base import Base, JSONType
from services.ledger_service.models.enums import BonusStatus, BonusType, enum_values
from sqlalchemy import BigInteger, DateTime, Integer
from sqlalchemy import Enum as SAEnum
from sqlalchemy import ForeignKey, Index, Numeric, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column


class BonusTransaction(Base):
    """Record of a bonus award.

    ``amount_paise`` is the gross award (``base_amount_paise × multiplier_applied``
    when both are set). The wallet receives ``amount_paise − tds_deducted_paise``.
    Reversals are new rows with a negated amount and type ``reversal``.
    """

    __tablename__ = "bonus_transactions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    investor_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("investors.id"), index=True, nullable=False
    )
    subscription_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("subscriptions.id"), index=True, nullable=True
    )
    payment_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("payments.id"), index=True, nullable=True
    )
    bonus_type: Mapped[BonusType] = mapped_column(
        SAEnum(
            BonusType,
            name="bonus_type_enum",
            values_callable=enum_values,
            validate_strings=True,
        ),
        nullable=False,
    )
    amount_paise: Mapped[int] = mapped_column(BigInteger, nullable=False)
    base_amount_paise: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    multiplier_applied: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(8, 4), nullable=True
    )
    tds_deducted_paise: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    status: Mapped[BonusStatus] = mapped_column(
        SAEnum(
            BonusStatus,
            name="bonus_status_enum",
            values_callable=enum_values,
            validate_strings=True,
        ),
        default=BonusStatus.PENDING,
        nullable=False,
    )
    # e.g. "progressive:<payment_id>", "milestone:<subscription_id>:12"
    award_key: Mapped[Optional[str]] = mapped_column(
        String, unique=True, index=True, nullable=True
    )
    milestone_month: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    wallet_transaction_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("wallet_transactions.id"), nullable=True
    )
    reversal_of_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("bonus_transactions.id"), nullable=True
    )
    details: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)
    credited_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )

    __table_args__ = (
        Index(
            "ix_bonus_transactions_subscription_type",
            "subscription_id",
            "bonus_type",
        ),
    )

    @property
    def net_amount_paise(self) -> int:
        return self.amount_paise - self.tds_deducted_paise

    def __repr__(self) -> str:
        return (
            f"<BonusTransaction {self.id} {self.bonus_type.value} "
            f"{self.amount_paise} {self.status.value}>"
        )
