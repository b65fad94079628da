"""Inventory and allocation schemas."""

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from services.ledger_service.models.enums import (
    AllocationSource,
    BulkPurchaseSource,
    BulkPurchaseStatus,
)


class UserInvestmentResponse(BaseModel):
    id: uuid.UUID
    investor_id: uuid.UUID
    product_id: uuid.UUID
    bulk_purchase_id: uuid.UUID
    payment_id: Optional[uuid.UUID] = None
    units_allocated: Decimal
    value_allocated_paise: int
    source: AllocationSource
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class BulkPurchaseResponse(BaseModel):
    id: uuid.UUID
    product_id: uuid.UUID
    face_value_purchased_paise: int
    actual_cost_paid_paise: int
    extra_allocation_percentage: Decimal
    total_value_received_paise: int
    value_remaining_paise: int
    allocated_amount_paise: int
    discount_percentage: Decimal
    gross_margin_paise: int
    gross_margin_percentage: Optional[Decimal] = None
    purchase_date: date
    status: BulkPurchaseStatus
    source_type: BulkPurchaseSource
    manual_entry_reason: Optional[str] = None
    source_documentation: Optional[str] = None
    company_share_listing_id: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class BulkPurchaseCreateRequest(BaseModel):
    product_id: uuid.UUID
    face_value_purchased_paise: int
    actual_cost_paid_paise: int
    extra_allocation_percentage: Decimal = Decimal("0")
    purchase_date: date
    # Optional here so a missing value surfaces as a provenance violation.
    source_type: Optional[str] = None
    manual_entry_reason: Optional[str] = None
    source_documentation: Optional[str] = None
    company_share_listing_id: Optional[str] = None
    notes: Optional[str] = None


class AllocateRequest(BaseModel):
    product_id: uuid.UUID
    investor_id: uuid.UUID
    requested_value_paise: int = Field(..., gt=0)
    payment_id: Optional[uuid.UUID] = None
    source: AllocationSource = AllocationSource.INVESTMENT


class PaymentSucceededRequest(BaseModel):
    """Optional body of the payment-succeeded event.

    ``product_id`` names the product the payment buys; without it only bonuses
    are calculated.
    """

    product_id: Optional[uuid.UUID] = None
