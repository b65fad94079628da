"""WalletTransaction and WalletAuditLog: the immutable journal."""

import uuid
from datetime import datetime
from typing import Optional

from libs.common.datetime_utils import utc_now
from libs.db.base import Base, JSONType
from services.ledger_service.models.enums import (
    AuditAction,
    TransactionDirection,
    TransactionStatus,
    TransactionType,
    enum_values,
)
from sqlalchemy import BigInteger, CheckConstraint, DateTime
from sqlalchemy import Enum as SAEnum
from sqlalchemy import ForeignKey, Index, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column


class WalletTransaction(Base):
    """Immutable ledger of all balance changes. Never updated after insert."""

    __tablename__ = "wallet_transactions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    wallet_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("wallets.id"), nullable=False, index=True
    )
    idempotency_key: Mapped[Optional[str]] = mapped_column(
        String, unique=True, index=True, nullable=True
    )
    transaction_type: Mapped[TransactionType] = mapped_column(
        SAEnum(
            TransactionType,
            name="transaction_type_enum",
            values_callable=enum_values,
            validate_strings=True,
        ),
        nullable=False,
    )
    direction: Mapped[TransactionDirection] = mapped_column(
        SAEnum(
            TransactionDirection,
            name="transaction_direction_enum",
            values_callable=enum_values,
            validate_strings=True,
        ),
        nullable=False,
    )
    # Always positive; direction carries the sign.
    amount_paise: Mapped[int] = mapped_column(BigInteger, nullable=False)
    balance_before_paise: Mapped[int] = mapped_column(BigInteger, nullable=False)
    balance_after_paise: Mapped[int] = mapped_column(BigInteger, nullable=False)
    status: Mapped[TransactionStatus] = mapped_column(
        SAEnum(
            TransactionStatus,
            name="transaction_status_enum",
            values_callable=enum_values,
            validate_strings=True,
        ),
        default=TransactionStatus.COMPLETED,
        nullable=False,
    )
    description: Mapped[str] = mapped_column(String, nullable=False)
    reference_type: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    reference_id: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    # Set on the entry that completes or cancels a locked withdrawal.
    settles_transaction_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, unique=True, nullable=True
    )
    txn_metadata: Mapped[Optional[dict]] = mapped_column(
        "txn_metadata", JSONType, nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )

    __table_args__ = (
        CheckConstraint("amount_paise > 0", name="amount_positive"),
        Index("ix_wallet_transactions_wallet_created", "wallet_id", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<WalletTransaction {self.id} {self.direction.value} "
            f"{self.amount_paise} {self.status.value}>"
        )


class WalletAuditLog(Base):
    """Lock/unlock movements, which change available funds but not the balance."""

    __tablename__ = "wallet_audit_logs"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    wallet_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    action: Mapped[AuditAction] = mapped_column(
        SAEnum(
            AuditAction,
            name="audit_action_enum",
            values_callable=enum_values,
            validate_strings=True,
        ),
        nullable=False,
    )
    amount_paise: Mapped[int] = mapped_column(BigInteger, nullable=False)
    locked_before_paise: Mapped[int] = mapped_column(BigInteger, nullable=False)
    locked_after_paise: Mapped[int] = mapped_column(BigInteger, nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    reference_type: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    reference_id: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )

    def __repr__(self) -> str:
        return f"<WalletAuditLog {self.id} {self.action.value} {self.amount_paise}>"
