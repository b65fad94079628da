"""Wallet model: authoritative balance in paise."""

import uuid
from datetime import datetime

from libs.common.datetime_utils import utc_now
from libs.db.base import Base
from services.ledger_service.models.enums import WalletStatus, enum_values
from sqlalchemy import BigInteger, CheckConstraint, DateTime
from sqlalchemy import Enum as SAEnum
from sqlalchemy import ForeignKey, Uuid
from sqlalchemy.orm import Mapped, mapped_column


class Wallet(Base):
    """One per investor, created at onboarding.

    ``balance_paise`` is the total owned, ``locked_paise`` the portion reserved
    for pending withdrawals. Only ``wallet_ops`` writes either column.
    """

    __tablename__ = "wallets"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    investor_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("investors.id"), unique=True, index=True, nullable=False
    )
    balance_paise: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    locked_paise: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    status: Mapped[WalletStatus] = mapped_column(
        SAEnum(
            WalletStatus,
            name="wallet_status_enum",
            values_callable=enum_values,
            validate_strings=True,
        ),
        default=WalletStatus.ACTIVE,
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False
    )

    __table_args__ = (
        CheckConstraint("balance_paise >= 0", name="balance_non_negative"),
        CheckConstraint("locked_paise >= 0", name="locked_non_negative"),
        CheckConstraint("locked_paise <= balance_paise", name="locked_lte_balance"),
    )

    @property
    def available_paise(self) -> int:
        """Balance that can be withdrawn or locked right now."""
        return self.balance_paise - self.locked_paise

    def __repr__(self) -> str:
        return (
            f"<Wallet {self.id} investor={self.investor_id} "
            f"balance={self.balance_paise} locked={self.locked_paise}>"
        )
