"""Ledger error taxonomy.

Every error carries a human-readable ``message`` and a ``context`` dict that is
safe to log and to return to internal callers. The HTTP layer maps each class
to a status code (see ``app/main.py``).
"""

from typing import Any, Optional


class LedgerError(Exception):
    """Base class for all domain errors raised by the ledger service."""

    def __init__(self, message: str, context: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": type(self).__name__,
            "detail": self.message,
            "context": self.context,
        }


class InvalidArgument(LedgerError):
    """Rejected before any mutation (non-positive amount, negative cost...)."""


class NotFound(LedgerError):
    pass


class InsufficientBalance(LedgerError):
    """Withdrawal exceeds the wallet's available balance."""

    def __init__(
        self,
        message: str,
        *,
        available_paise: int,
        requested_paise: int,
        context: Optional[dict[str, Any]] = None,
    ):
        ctx = {"available_paise": available_paise, "requested_paise": requested_paise}
        ctx.update(context or {})
        super().__init__(message, ctx)
        self.available_paise = available_paise
        self.requested_paise = requested_paise


class InsufficientLockedFunds(LedgerError):
    """Unlock or completion asked for more than is currently locked."""


class InsufficientInventory(LedgerError):
    """Allocation exceeds the remaining value across eligible batches."""


class ProvenanceViolation(LedgerError):
    """Bulk purchase provenance metadata is incomplete."""

    def __init__(self, source_type: Optional[str], missing_field: str):
        super().__init__(
            f"Bulk purchase provenance incomplete: '{missing_field}' is required"
            + (f" for source_type '{source_type}'" if source_type else ""),
            {"source_type": source_type, "missing_field": missing_field},
        )
        self.source_type = source_type
        self.missing_field = missing_field


class RiskBlocked(LedgerError):
    """Risk gate rejection. Raised before any ledger mutation."""

    USER_MESSAGE = (
        "Your account is under review and cannot make new investments right now. "
        "Please contact support."
    )

    def __init__(
        self,
        *,
        investor_id: Any,
        operation: str,
        risk_score: int,
        blocked_reason: Optional[str] = None,
        context: Optional[dict[str, Any]] = None,
    ):
        self.investor_id = investor_id
        self.operation = operation
        self.risk_score = risk_score
        self.blocked_reason = blocked_reason
        self.user_message = self.USER_MESSAGE
        super().__init__(
            f"Investor {investor_id} is blocked from '{operation}' (risk score {risk_score})",
            {
                "investor_id": str(investor_id),
                "operation": operation,
                "risk_score": risk_score,
                "blocked_reason": blocked_reason,
                "operation_context": context or {},
            },
        )


class DomainConflict(LedgerError):
    """Attempt to mutate a terminal or frozen record."""


class NoEligibleSubscriptions(DomainConflict):
    pass
