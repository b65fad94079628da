"""Dispute model: the open-dispute input to risk scoring."""

import uuid
from datetime import datetime
from typing import Optional

from libs.common.datetime_utils import utc_now
from libs.db.base import Base
from services.ledger_service.models.enums import (
    DisputeSeverity,
    DisputeStatus,
    enum_values,
)
from sqlalchemy import DateTime
from sqlalchemy import Enum as SAEnum
from sqlalchemy import ForeignKey, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column


class Dispute(Base):
    __tablename__ = "disputes"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    investor_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("investors.id"), index=True, nullable=False
    )
    payment_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("payments.id"), nullable=True
    )
    severity: Mapped[DisputeSeverity] = mapped_column(
        SAEnum(
            DisputeSeverity,
            name="dispute_severity_enum",
            values_callable=enum_values,
            validate_strings=True,
        ),
        default=DisputeSeverity.MEDIUM,
        nullable=False,
    )
    status: Mapped[DisputeStatus] = mapped_column(
        SAEnum(
            DisputeStatus,
            name="dispute_status_enum",
            values_callable=enum_values,
            validate_strings=True,
        ),
        default=DisputeStatus.OPEN,
        nullable=False,
    )
    category: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )
    resolved_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    def __repr__(self) -> str:
        return f"<Dispute {self.id} {self.severity.value} {self.status.value}>"
