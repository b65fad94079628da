"""Referral, campaign and festival calendar models."""

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from libs.common.datetime_utils import utc_now
from libs.db.base import Base, JSONType
from services.ledger_service.models.enums import ReferralStatus, enum_values
from sqlalchemy import Boolean, Date, DateTime
from sqlalchemy import Enum as SAEnum
from sqlalchemy import ForeignKey, Numeric, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column


class Referral(Base):
    """Referrer -> referee link. Only completed referrals count toward tiers."""

    __tablename__ = "referrals"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    referrer_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("investors.id"), index=True, nullable=False
    )
    referee_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("investors.id"), unique=True, nullable=False
    )
    status: Mapped[ReferralStatus] = mapped_column(
        SAEnum(
            ReferralStatus,
            name="referral_status_enum",
            values_callable=enum_values,
            validate_strings=True,
        ),
        default=ReferralStatus.PENDING,
        nullable=False,
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )

    def __repr__(self) -> str:
        return f"<Referral {self.referrer_id} -> {self.referee_id} {self.status.value}>"


class ReferralCampaign(Base):
    """Time-bounded multiplier that supersedes the tier table while active."""

    __tablename__ = "referral_campaigns"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String, nullable=False)
    multiplier: Mapped[Decimal] = mapped_column(Numeric(6, 2), nullable=False)
    starts_on: Mapped[date] = mapped_column(Date, nullable=False)
    ends_on: Mapped[date] = mapped_column(Date, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )

    def __repr__(self) -> str:
        return f"<ReferralCampaign {self.name} x{self.multiplier}>"


class FestivalEvent(Base):
    """Named calendar event paying a per-plan amount (keyed by plan slug)."""

    __tablename__ = "festival_events"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String, nullable=False)
    slug: Mapped[str] = mapped_column(String, nullable=False)
    event_date: Mapped[date] = mapped_column(Date, index=True, nullable=False)
    # {"plan-slug": amount_paise}
    amounts_by_plan: Mapped[dict] = mapped_column(JSONType, default=dict, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )

    __table_args__ = (UniqueConstraint("slug", "event_date", name="uq_festival_day"),)

    def __repr__(self) -> str:
        return f"<FestivalEvent {self.slug} {self.event_date}>"
