"""Wallet and journal response schemas."""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from libs.common.currency import paise_to_rupees
from pydantic import BaseModel, ConfigDict, Field, computed_field
from services.ledger_service.models.enums import (
    TransactionDirection,
    TransactionStatus,
    TransactionType,
    WalletStatus,
)


class WalletResponse(BaseModel):
    id: uuid.UUID
    investor_id: uuid.UUID
    balance_paise: int
    locked_paise: int
    available_paise: int
    status: WalletStatus
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)

    @computed_field
    @property
    def balance_rupees(self) -> Decimal:
        return paise_to_rupees(self.balance_paise)


class TransactionResponse(BaseModel):
    id: uuid.UUID
    wallet_id: uuid.UUID
    idempotency_key: Optional[str] = None
    transaction_type: TransactionType
    direction: TransactionDirection
    amount_paise: int
    balance_before_paise: int
    balance_after_paise: int
    status: TransactionStatus
    description: str
    reference_type: Optional[str] = None
    reference_id: Optional[str] = None
    settles_transaction_id: Optional[uuid.UUID] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class TransactionListResponse(BaseModel):
    transactions: list[TransactionResponse]
    total: int
    skip: int
    limit: int


class DepositRequest(BaseModel):
    """Credit from a collaborator (refund, admin adjustment)."""

    amount_paise: int = Field(..., gt=0)
    transaction_type: TransactionType = TransactionType.DEPOSIT
    description: str
    reference_type: Optional[str] = None
    reference_id: Optional[str] = None
    idempotency_key: Optional[str] = None


class WithdrawRequest(BaseModel):
    amount_paise: int = Field(..., gt=0)
    transaction_type: TransactionType = TransactionType.WITHDRAWAL
    description: str
    reference_type: Optional[str] = None
    reference_id: Optional[str] = None
    lock: bool = False
    idempotency_key: Optional[str] = None


class CancelWithdrawalRequest(BaseModel):
    reason: str = Field(..., min_length=3)


class WalletReconciliationResponse(BaseModel):
    wallet_id: uuid.UUID
    investor_id: uuid.UUID
    balance_paise: int
    expected_balance_paise: int
    balance_drift_paise: int
    locked_paise: int
    expected_locked_paise: int
    locked_drift_paise: int
    total_credits_paise: int
    total_debits_paise: int
    is_balanced: bool

    model_config = ConfigDict(from_attributes=True)
