"""Risk guard schemas."""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from services.ledger_service.models.enums import RiskCategory


class BlockingDetailsResponse(BaseModel):
    investor_id: uuid.UUID
    is_blocked: bool
    blocked_reason: Optional[str] = None
    risk_score: int
    category: RiskCategory
    last_risk_update_at: Optional[datetime] = None
    current_score: int
    uncapped_score: int
    factors: list[str]
    breakdown: dict[str, int]


class BlockedInvestorResponse(BaseModel):
    id: uuid.UUID
    auth_id: str
    email: Optional[str] = None
    risk_score: int
    blocked_reason: Optional[str] = None
    last_risk_update_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class UnblockRequest(BaseModel):
    reason: str = Field(..., min_length=5)
