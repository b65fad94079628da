"""Profit share admin schemas."""

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from services.ledger_service.models.enums import ProfitShareStatus


class ProfitShareCreateRequest(BaseModel):
    period_name: str = Field(..., min_length=1)
    total_pool_paise: int
    start_date: date
    end_date: date


class ProfitShareResponse(BaseModel):
    id: uuid.UUID
    period_name: str
    total_pool_paise: int
    start_date: date
    end_date: date
    status: ProfitShareStatus
    total_distributed_paise: int
    cancellation_reason: Optional[str] = None
    reversal_reason: Optional[str] = None
    calculated_at: Optional[datetime] = None
    distributed_at: Optional[datetime] = None
    reversed_at: Optional[datetime] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class UserProfitShareResponse(BaseModel):
    id: uuid.UUID
    profit_share_id: uuid.UUID
    investor_id: uuid.UUID
    subscription_id: uuid.UUID
    weight_paise: int
    ratio: Decimal
    profit_share_percentage: Decimal
    gross_amount_paise: int
    bonus_transaction_id: Optional[uuid.UUID] = None

    model_config = ConfigDict(from_attributes=True)


class ProfitShareReasonRequest(BaseModel):
    reason: str = Field(..., min_length=5)
