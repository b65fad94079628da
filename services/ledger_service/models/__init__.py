"""Ledger Service models package.

Re-exports all models and enums so that:
  - ``from services.ledger_service.models import Wallet`` works
  - SQLAlchemy's mapper registry sees every model class on import
    (``Base.metadata.create_all`` in tests relies on this)

IMPORTANT: Every model class AND enum must be listed here.
When adding a new model, add both its import and its __all__ entry.
"""

from services.ledger_service.models.bonus import BonusTransaction  # noqa: F401

# Enums
from services.ledger_service.models.enums import (  # noqa: F401
    OPEN_DISPUTE_STATUSES,
    AllocationSource,
    AuditAction,
    BonusStatus,
    BonusType,
    BulkPurchaseSource,
    BulkPurchaseStatus,
    DisputeSeverity,
    DisputeStatus,
    PaymentStatus,
    ProfitShareStatus,
    ReferralStatus,
    RiskCategory,
    SubscriptionStatus,
    TransactionDirection,
    TransactionStatus,
    TransactionType,
    WalletStatus,
)
from services.ledger_service.models.inventory import (  # noqa: F401
    BulkPurchase,
    Product,
    UserInvestment,
)

# Core ledger models
from services.ledger_service.models.investor import Investor  # noqa: F401
from services.ledger_service.models.profit_share import (  # noqa: F401
    ProfitShare,
    UserProfitShare,
)
from services.ledger_service.models.referral import (  # noqa: F401
    FestivalEvent,
    Referral,
    ReferralCampaign,
)
from services.ledger_service.models.risk import Dispute  # noqa: F401
from services.ledger_service.models.settings import PlatformSetting  # noqa: F401
from services.ledger_service.models.subscription import (  # noqa: F401
    Payment,
    Plan,
    Subscription,
)
from services.ledger_service.models.transaction import (  # noqa: F401
    WalletAuditLog,
    WalletTransaction,
)
from services.ledger_service.models.wallet import Wallet  # noqa: F401

__all__ = [
    # Enums
    "OPEN_DISPUTE_STATUSES",
    "AllocationSource",
    "AuditAction",
    "BonusStatus",
    "BonusType",
    "BulkPurchaseSource",
    "BulkPurchaseStatus",
    "DisputeSeverity",
    "DisputeStatus",
    "PaymentStatus",
    "ProfitShareStatus",
    "ReferralStatus",
    "RiskCategory",
    "SubscriptionStatus",
    "TransactionDirection",
    "TransactionStatus",
    "TransactionType",
    "WalletStatus",
    # Ledger
    "Investor",
    "Wallet",
    "WalletTransaction",
    "WalletAuditLog",
    # Inventory
    "Product",
    "BulkPurchase",
    "UserInvestment",
    # Subscriptions & bonuses
    "Plan",
    "Subscription",
    "Payment",
    "Referral",
    "ReferralCampaign",
    "FestivalEvent",
    "BonusTransaction",
    # Profit share
    "ProfitShare",
    "UserProfitShare",
    # Risk & settings
    "Dispute",
    "PlatformSetting",
]
