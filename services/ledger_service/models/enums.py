"""Enums for the Ledger Service models."""

import enum


def enum_values(enum_cls):
    """Return persistent DB values for SAEnum mappings."""
    return [member.value for member in enum_cls]


class WalletStatus(str, enum.Enum):
    ACTIVE = "active"
    FROZEN = "frozen"
    CLOSED = "closed"


class TransactionType(str, enum.Enum):
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"
    SUBSCRIPTION_PAYMENT = "subscription_payment"
    INVESTMENT = "investment"
    BONUS_CREDIT = "bonus_credit"
    PROFIT_SHARE = "profit_share"
    PROFIT_SHARE_REVERSAL = "profit_share_reversal"
    REFUND = "refund"
    CHARGEBACK = "chargeback"
    TDS_DEDUCTION = "tds_deduction"
    ADMIN_ADJUSTMENT = "admin_adjustment"


class TransactionDirection(str, enum.Enum):
    CREDIT = "credit"
    DEBIT = "debit"


class TransactionStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class AuditAction(str, enum.Enum):
    LOCK_FUNDS = "lock_funds"
    UNLOCK_FUNDS = "unlock_funds"
    COMPLETE_LOCKED = "complete_locked"
    CANCEL_LOCKED = "cancel_locked"


class BulkPurchaseSource(str, enum.Enum):
    MANUAL_ENTRY = "manual_entry"
    COMPANY_LISTING = "company_listing"


class BulkPurchaseStatus(str, enum.Enum):
    PENDING_APPROVAL = "pending_approval"
    APPROVED = "approved"
    REJECTED = "rejected"


class AllocationSource(str, enum.Enum):
    INVESTMENT = "investment"
    BONUS = "bonus"


class SubscriptionStatus(str, enum.Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"
    CHARGEBACK_CONFIRMED = "chargeback_confirmed"


class ReferralStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class BonusType(str, enum.Enum):
    PROGRESSIVE = "progressive"
    MILESTONE = "milestone_bonus"
    CONSISTENCY = "consistency"
    REFERRAL = "referral"
    PROFIT_SHARE = "profit_share"
    CELEBRATION = "celebration"
    LUCKY_DRAW = "lucky_draw"
    REVERSAL = "reversal"


class BonusStatus(str, enum.Enum):
    PENDING = "pending"
    CREDITED = "credited"
    REVERSED = "reversed"


class ProfitShareStatus(str, enum.Enum):
    PENDING = "pending"
    DISTRIBUTED = "distributed"
    REVERSED = "reversed"
    CANCELLED = "cancelled"


class DisputeSeverity(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class DisputeStatus(str, enum.Enum):
    OPEN = "open"
    UNDER_INVESTIGATION = "under_investigation"
    ESCALATED = "escalated"
    RESOLVED = "resolved"
    CLOSED = "closed"


OPEN_DISPUTE_STATUSES = (
    DisputeStatus.OPEN,
    DisputeStatus.UNDER_INVESTIGATION,
    DisputeStatus.ESCALATED,
)


class RiskCategory(str, enum.Enum):
    LOW = "low"
    REVIEW = "review"
    HIGH = "high"
    BLOCKED = "blocked"
