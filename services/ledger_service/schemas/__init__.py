"""Ledger Service schemas package.

Re-exports all schemas so that:
  - ``from services.ledger_service.schemas import WalletResponse`` works
  - Router files need no import path changes

IMPORTANT: Every schema class must be listed here.
When adding a new schema, add its import and __all__ entry.
"""

from services.ledger_service.schemas.bonus import (  # noqa: F401
    BonusTransactionResponse,
    ReverseBonusRequest,
)
from services.ledger_service.schemas.investment import (  # noqa: F401
    AllocateRequest,
    BulkPurchaseCreateRequest,
    BulkPurchaseResponse,
    PaymentSucceededRequest,
    UserInvestmentResponse,
)
from services.ledger_service.schemas.plan_config import (  # noqa: F401
    CelebrationConfig,
    CelebrationMilestone,
    ConsistencyConfig,
    MilestoneConfig,
    ProfitShareConfig,
    ProgressiveConfig,
    ReferralConfig,
    load_bonus_config,
)
from services.ledger_service.schemas.profit_share import (  # noqa: F401
    ProfitShareCreateRequest,
    ProfitShareReasonRequest,
    ProfitShareResponse,
    UserProfitShareResponse,
)
from services.ledger_service.schemas.risk import (  # noqa: F401
    BlockedInvestorResponse,
    BlockingDetailsResponse,
    UnblockRequest,
)
from services.ledger_service.schemas.wallet import (  # noqa: F401
    CancelWithdrawalRequest,
    DepositRequest,
    TransactionListResponse,
    TransactionResponse,
    WalletReconciliationResponse,
    WalletResponse,
    WithdrawRequest,
)

__all__ = [
    # Plan config
    "CelebrationConfig",
    "CelebrationMilestone",
    "ConsistencyConfig",
    "MilestoneConfig",
    "ProfitShareConfig",
    "ProgressiveConfig",
    "ReferralConfig",
    "load_bonus_config",
    # Wallet
    "WalletResponse",
    "TransactionResponse",
    "TransactionListResponse",
    "DepositRequest",
    "WithdrawRequest",
    "CancelWithdrawalRequest",
    "WalletReconciliationResponse",
    # Inventory
    "UserInvestmentResponse",
    "BulkPurchaseResponse",
    "BulkPurchaseCreateRequest",
    "AllocateRequest",
    "PaymentSucceededRequest",
    # Bonus
    "BonusTransactionResponse",
    "ReverseBonusRequest",
    # Profit share
    "ProfitShareCreateRequest",
    "ProfitShareResponse",
    "UserProfitShareResponse",
    "ProfitShareReasonRequest",
    # Risk
    "BlockingDetailsResponse",
    "BlockedInvestorResponse",
    "UnblockRequest",
]
