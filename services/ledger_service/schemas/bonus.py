"""Bonus transaction schemas."""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from services.ledger_service.models.enums import BonusStatus, BonusType


class BonusTransactionResponse(BaseModel):
    id: uuid.UUID
    investor_id: uuid.UUID
    subscription_id: Optional[uuid.UUID] = None
    payment_id: Optional[uuid.UUID] = None
    bonus_type: BonusType
    amount_paise: int
    base_amount_paise: Optional[int] = None
    multiplier_applied: Optional[Decimal] = None
    tds_deducted_paise: int
    net_amount_paise: int
    status: BonusStatus
    milestone_month: Optional[int] = None
    description: Optional[str] = None
    wallet_transaction_id: Optional[uuid.UUID] = None
    reversal_of_id: Optional[uuid.UUID] = None
    credited_at: Optional[datetime] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ReverseBonusRequest(BaseModel):
    reason: str = Field(..., min_length=5)
