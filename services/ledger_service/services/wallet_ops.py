"""Core wallet operations: atomic deposit/withdraw/lock with row-level locking.

This module is the only writer of ``Wallet.balance_paise`` and
``Wallet.locked_paise``. Every mutation follows the same steps:

1. Idempotency check (when a key is given)
2. SELECT FOR UPDATE on the wallet row
3. Validate amount, wallet status and funds
4. Write the journal row with balance snapshots
5. Update the wallet
6. Commit (or flush only, when the caller owns the transaction)
"""

import uuid
from dataclasses import dataclass
from typing import Optional

from libs.common.currency import format_inr
from libs.common.logging import get_logger
from services.ledger_service.errors import (
    DomainConflict,
    InsufficientBalance,
    InsufficientLockedFunds,
    InvalidArgument,
    NotFound,
)
from services.ledger_service.models import (
    AuditAction,
    TransactionDirection,
    TransactionStatus,
    TransactionType,
    Wallet,
    WalletAuditLog,
    WalletStatus,
    WalletTransaction,
)
from sqlalchemy import case, exists, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

logger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _validate_amount(amount_paise: int) -> None:
    if (
        isinstance(amount_paise, bool)
        or not isinstance(amount_paise, int)
        or amount_paise <= 0
    ):
        raise InvalidArgument(
            "Amount must be a positive whole number of paise",
            {"amount_paise": amount_paise},
        )


async def _lock_wallet(db: AsyncSession, wallet_id: uuid.UUID) -> Wallet:
    """Lock the wallet row and return it with freshly loaded columns."""
    result = await db.execute(
        select(Wallet)
        .where(Wallet.id == wallet_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    wallet = result.scalar_one_or_none()
    if not wallet:
        raise NotFound("Wallet not found", {"wallet_id": str(wallet_id)})
    return wallet


async def _find_by_idempotency_key(
    db: AsyncSession, idempotency_key: Optional[str]
) -> Optional[WalletTransaction]:
    if not idempotency_key:
        return None
    result = await db.execute(
        select(WalletTransaction).where(
            WalletTransaction.idempotency_key == idempotency_key
        )
    )
    existing = result.scalar_one_or_none()
    if existing:
        logger.info(
            "Idempotent replay for key=%s -> txn=%s", idempotency_key, existing.id
        )
    return existing


async def _finish(db: AsyncSession, commit: bool, *instances) -> None:
    if commit:
        await db.commit()
        for instance in instances:
            await db.refresh(instance)
    else:
        await db.flush()


# ---------------------------------------------------------------------------
# Wallet creation and lookup
# ---------------------------------------------------------------------------


async def create_wallet(db: AsyncSession, *, investor_id: uuid.UUID) -> Wallet:
    """Create the investor's wallet.

    Idempotent: returns the existing wallet if one already exists.
    """
    result = await db.execute(select(Wallet).where(Wallet.investor_id == investor_id))
    existing = result.scalar_one_or_none()
    if existing:
        return existing

    wallet = Wallet(
        investor_id=investor_id,
        balance_paise=0,
        locked_paise=0,
        status=WalletStatus.ACTIVE,
    )
    db.add(wallet)
    await db.commit()
    await db.refresh(wallet)

    logger.info("Created wallet %s for investor %s", wallet.id, investor_id)
    return wallet


async def get_wallet_for_investor(db: AsyncSession, investor_id: uuid.UUID) -> Wallet:
    """Get wallet by investor ID. Raises NotFound if the investor has none."""
    result = await db.execute(select(Wallet).where(Wallet.investor_id == investor_id))
    wallet = result.scalar_one_or_none()
    if not wallet:
        raise NotFound(
            "Wallet not found for investor", {"investor_id": str(investor_id)}
        )
    return wallet


# ---------------------------------------------------------------------------
# Deposit (atomic)
# ---------------------------------------------------------------------------


async def deposit(
    db: AsyncSession,
    *,
    wallet_id: uuid.UUID,
    amount_paise: int,
    transaction_type: TransactionType,
    description: str,
    reference_type: Optional[str] = None,
    reference_id: Optional[str] = None,
    idempotency_key: Optional[str] = None,
    metadata: Optional[dict] = None,
    commit: bool = True,
) -> WalletTransaction:
    """Atomically credit a wallet.

    Frozen wallets still accept credits (refunds, reversals of debits).
    Closed wallets accept nothing.
    """
    _validate_amount(amount_paise)

    existing = await _find_by_idempotency_key(db, idempotency_key)
    if existing:
        return existing

    wallet = await _lock_wallet(db, wallet_id)
    if wallet.status == WalletStatus.CLOSED:
        raise DomainConflict("Wallet is closed", {"wallet_id": str(wallet_id)})

    balance_before = wallet.balance_paise
    balance_after = balance_before + amount_paise

    txn = WalletTransaction(
        wallet_id=wallet.id,
        idempotency_key=idempotency_key,
        transaction_type=transaction_type,
        direction=TransactionDirection.CREDIT,
        amount_paise=amount_paise,
        balance_before_paise=balance_before,
        balance_after_paise=balance_after,
        status=TransactionStatus.COMPLETED,
        description=description,
        reference_type=reference_type,
        reference_id=reference_id,
        txn_metadata=metadata,
    )
    db.add(txn)
    wallet.balance_paise = balance_after

    await _finish(db, commit, txn)

    logger.info(
        "Deposit %s (%s) to wallet %s, balance %d->%d",
        format_inr(amount_paise),
        transaction_type.value,
        wallet.id,
        balance_before,
        balance_after,
    )
    return txn


# ---------------------------------------------------------------------------
# Withdraw (atomic)
# ---------------------------------------------------------------------------


async def withdraw(
    db: AsyncSession,
    *,
    wallet_id: uuid.UUID,
    amount_paise: int,
    transaction_type: TransactionType,
    description: str,
    reference_type: Optional[str] = None,
    reference_id: Optional[str] = None,
    lock: bool = False,
    idempotency_key: Optional[str] = None,
    metadata: Optional[dict] = None,
    commit: bool = True,
) -> WalletTransaction:
    """Atomically debit a wallet against its available balance.

    With ``lock=True`` the amount is reserved instead: the balance is left
    alone, ``locked_paise`` grows and a ``pending`` journal row is written.
    The reservation is settled by :func:`complete_locked_withdrawal` or
    released by :func:`cancel_locked_withdrawal`.
    """
    _validate_amount(amount_paise)

    existing = await _find_by_idempotency_key(db, idempotency_key)
    if existing:
        return existing

    wallet = await _lock_wallet(db, wallet_id)
    if wallet.status != WalletStatus.ACTIVE:
        raise DomainConflict(
            "Wallet temporarily suspended",
            {"wallet_id": str(wallet_id), "status": wallet.status.value},
        )

    available = wallet.available_paise
    if available < amount_paise:
        raise InsufficientBalance(
            f"Insufficient balance: need {format_inr(amount_paise)}, "
            f"available {format_inr(available)}",
            available_paise=available,
            requested_paise=amount_paise,
            context={"wallet_id": str(wallet_id)},
        )

    balance_before = wallet.balance_paise
    if lock:
        balance_after = balance_before
        locked_before = wallet.locked_paise
        wallet.locked_paise = locked_before + amount_paise
        db.add(
            WalletAuditLog(
                wallet_id=wallet.id,
                action=AuditAction.LOCK_FUNDS,
                amount_paise=amount_paise,
                locked_before_paise=locked_before,
                locked_after_paise=wallet.locked_paise,
                reason=description,
                reference_type=reference_type,
                reference_id=reference_id,
            )
        )
    else:
        balance_after = balance_before - amount_paise
        wallet.balance_paise = balance_after

    txn = WalletTransaction(
        wallet_id=wallet.id,
        idempotency_key=idempotency_key,
        transaction_type=transaction_type,
        direction=TransactionDirection.DEBIT,
        amount_paise=amount_paise,
        balance_before_paise=balance_before,
        balance_after_paise=balance_after,
        status=TransactionStatus.PENDING if lock else TransactionStatus.COMPLETED,
        description=description,
        reference_type=reference_type,
        reference_id=reference_id,
        txn_metadata=metadata,
    )
    db.add(txn)

    await _finish(db, commit, txn)

    logger.info(
        "Withdraw %s (%s%s) from wallet %s, balance %d->%d locked=%d",
        format_inr(amount_paise),
        transaction_type.value,
        ", locked" if lock else "",
        wallet.id,
        balance_before,
        balance_after,
        wallet.locked_paise,
    )
    return txn


async def _pending_withdrawal(
    db: AsyncSession, transaction_id: uuid.UUID, action: str
) -> tuple[WalletTransaction, Optional[WalletTransaction]]:
    """Return a pending withdrawal and the entry that closed it, if any."""
    result = await db.execute(
        select(WalletTransaction).where(WalletTransaction.id == transaction_id)
    )
    pending = result.scalar_one_or_none()
    if not pending:
        raise NotFound("Transaction not found", {"transaction_id": str(transaction_id)})
    if (
        pending.status != TransactionStatus.PENDING
        or pending.direction != TransactionDirection.DEBIT
    ):
        raise DomainConflict(
            f"Only pending withdrawals can be {action}",
            {"transaction_id": str(transaction_id), "status": pending.status.value},
        )

    result = await db.execute(
        select(WalletTransaction).where(
            WalletTransaction.settles_transaction_id == pending.id
        )
    )
    return pending, result.scalar_one_or_none()


async def _reserved_for_withdrawals(db: AsyncSession, wallet_id: uuid.UUID) -> int:
    """Sum of pending withdrawals on the wallet that are not yet closed."""
    closing = aliased(WalletTransaction)
    result = await db.execute(
        select(func.coalesce(func.sum(WalletTransaction.amount_paise), 0)).where(
            WalletTransaction.wallet_id == wallet_id,
            WalletTransaction.status == TransactionStatus.PENDING,
            WalletTransaction.direction == TransactionDirection.DEBIT,
            ~exists().where(closing.settles_transaction_id == WalletTransaction.id),
        )
    )
    return int(result.scalar_one())


def _already_closed(
    pending: WalletTransaction, closed_by: WalletTransaction
) -> DomainConflict:
    return DomainConflict(
        f"Withdrawal was already {closed_by.status.value}",
        {
            "transaction_id": str(pending.id),
            "closed_by": str(closed_by.id),
            "status": closed_by.status.value,
        },
    )


async def complete_locked_withdrawal(
    db: AsyncSession,
    *,
    transaction_id: uuid.UUID,
    commit: bool = True,
) -> WalletTransaction:
    """Settle a pending (locked) withdrawal: debit the balance and clear the lock.

    Writes a new completed journal row pointing at the pending one. Settling
    the same pending row twice returns the first settlement; a cancelled
    withdrawal can never be settled.
    """
    pending, settled = await _pending_withdrawal(db, transaction_id, "completed")
    if settled:
        if settled.status != TransactionStatus.COMPLETED:
            raise _already_closed(pending, settled)
        logger.info("Locked withdrawal %s already settled by %s", pending.id, settled.id)
        return settled

    wallet = await _lock_wallet(db, pending.wallet_id)
    amount = pending.amount_paise
    if wallet.locked_paise < amount:
        raise InsufficientLockedFunds(
            "Locked funds are lower than the pending withdrawal",
            {
                "wallet_id": str(wallet.id),
                "locked_paise": wallet.locked_paise,
                "requested_paise": amount,
            },
        )

    balance_before = wallet.balance_paise
    locked_before = wallet.locked_paise
    wallet.balance_paise = balance_before - amount
    wallet.locked_paise = locked_before - amount

    txn = WalletTransaction(
        wallet_id=wallet.id,
        transaction_type=pending.transaction_type,
        direction=TransactionDirection.DEBIT,
        amount_paise=amount,
        balance_before_paise=balance_before,
        balance_after_paise=wallet.balance_paise,
        status=TransactionStatus.COMPLETED,
        description=f"{pending.description} (completed)",
        reference_type=pending.reference_type,
        reference_id=pending.reference_id,
        settles_transaction_id=pending.id,
    )
    db.add(txn)
    db.add(
        WalletAuditLog(
            wallet_id=wallet.id,
            action=AuditAction.COMPLETE_LOCKED,
            amount_paise=amount,
            locked_before_paise=locked_before,
            locked_after_paise=wallet.locked_paise,
            reason=f"Completed withdrawal {pending.id}",
            reference_type="wallet_transaction",
            reference_id=str(pending.id),
        )
    )

    await _finish(db, commit, txn)

    logger.info(
        "Completed locked withdrawal %s on wallet %s, balance %d->%d",
        pending.id,
        wallet.id,
        balance_before,
        wallet.balance_paise,
    )
    return txn


async def cancel_locked_withdrawal(
    db: AsyncSession,
    *,
    transaction_id: uuid.UUID,
    reason: str,
    commit: bool = True,
) -> WalletTransaction:
    """Cancel a pending (locked) withdrawal and release its reservation.

    Writes a ``cancelled`` journal row pointing at the pending one; the
    balance is untouched. Cancelling twice returns the first cancellation.
    A completed withdrawal cannot be cancelled.
    """
    pending, closed_by = await _pending_withdrawal(db, transaction_id, "cancelled")
    if closed_by:
        if closed_by.status != TransactionStatus.CANCELLED:
            raise _already_closed(pending, closed_by)
        return closed_by

    wallet = await _lock_wallet(db, pending.wallet_id)
    amount = pending.amount_paise
    if wallet.locked_paise < amount:
        raise InsufficientLockedFunds(
            "Locked funds are lower than the pending withdrawal",
            {
                "wallet_id": str(wallet.id),
                "locked_paise": wallet.locked_paise,
                "requested_paise": amount,
            },
        )

    locked_before = wallet.locked_paise
    wallet.locked_paise = locked_before - amount

    txn = WalletTransaction(
        wallet_id=wallet.id,
        transaction_type=pending.transaction_type,
        direction=TransactionDirection.DEBIT,
        amount_paise=amount,
        balance_before_paise=wallet.balance_paise,
        balance_after_paise=wallet.balance_paise,
        status=TransactionStatus.CANCELLED,
        description=f"{pending.description} (cancelled: {reason})",
        reference_type=pending.reference_type,
        reference_id=pending.reference_id,
        settles_transaction_id=pending.id,
    )
    db.add(txn)
    db.add(
        WalletAuditLog(
            wallet_id=wallet.id,
            action=AuditAction.CANCEL_LOCKED,
            amount_paise=amount,
            locked_before_paise=locked_before,
            locked_after_paise=wallet.locked_paise,
            reason=reason,
            reference_type="wallet_transaction",
            reference_id=str(pending.id),
        )
    )

    await _finish(db, commit, txn)

    logger.info(
        "Cancelled locked withdrawal %s on wallet %s, locked %d->%d (%s)",
        pending.id,
        wallet.id,
        locked_before,
        wallet.locked_paise,
        reason,
    )
    return txn


# ---------------------------------------------------------------------------
# Lock / unlock
# ---------------------------------------------------------------------------


async def lock_funds(
    db: AsyncSession,
    *,
    wallet_id: uuid.UUID,
    amount_paise: int,
    reason: str,
    reference_type: Optional[str] = None,
    reference_id: Optional[str] = None,
    commit: bool = True,
) -> Wallet:
    """Reserve part of the available balance without debiting it."""
    _validate_amount(amount_paise)

    wallet = await _lock_wallet(db, wallet_id)
    available = wallet.available_paise
    if available < amount_paise:
        raise InsufficientBalance(
            f"Cannot lock {format_inr(amount_paise)}: available {format_inr(available)}",
            available_paise=available,
            requested_paise=amount_paise,
            context={"wallet_id": str(wallet_id)},
        )

    locked_before = wallet.locked_paise
    wallet.locked_paise = locked_before + amount_paise
    db.add(
        WalletAuditLog(
            wallet_id=wallet.id,
            action=AuditAction.LOCK_FUNDS,
            amount_paise=amount_paise,
            locked_before_paise=locked_before,
            locked_after_paise=wallet.locked_paise,
            reason=reason,
            reference_type=reference_type,
            reference_id=reference_id,
        )
    )

    await _finish(db, commit, wallet)

    logger.info(
        "Locked %s on wallet %s, locked %d->%d (%s)",
        format_inr(amount_paise),
        wallet.id,
        locked_before,
        wallet.locked_paise,
        reason,
    )
    return wallet


async def unlock_funds(
    db: AsyncSession,
    *,
    wallet_id: uuid.UUID,
    amount_paise: int,
    reason: str,
    reference_type: Optional[str] = None,
    reference_id: Optional[str] = None,
    commit: bool = True,
) -> Wallet:
    """Release funds held by :func:`lock_funds` back to the available balance.

    Funds reserved by a pending withdrawal are not released here; use
    :func:`cancel_locked_withdrawal` so the pending row is closed too.
    """
    _validate_amount(amount_paise)

    wallet = await _lock_wallet(db, wallet_id)
    reserved = await _reserved_for_withdrawals(db, wallet.id)
    releasable = max(wallet.locked_paise - reserved, 0)
    if amount_paise > releasable:
        raise InsufficientLockedFunds(
            f"Cannot unlock {format_inr(amount_paise)}: only "
            f"{format_inr(releasable)} is held outside pending withdrawals",
            {
                "wallet_id": str(wallet_id),
                "locked_paise": wallet.locked_paise,
                "reserved_for_withdrawals_paise": reserved,
                "requested_paise": amount_paise,
            },
        )

    locked_before = wallet.locked_paise
    wallet.locked_paise = locked_before - amount_paise
    db.add(
        WalletAuditLog(
            wallet_id=wallet.id,
            action=AuditAction.UNLOCK_FUNDS,
            amount_paise=amount_paise,
            locked_before_paise=locked_before,
            locked_after_paise=wallet.locked_paise,
            reason=reason,
            reference_type=reference_type,
            reference_id=reference_id,
        )
    )

    await _finish(db, commit, wallet)

    logger.info(
        "Unlocked %s on wallet %s, locked %d->%d (%s)",
        format_inr(amount_paise),
        wallet.id,
        locked_before,
        wallet.locked_paise,
        reason,
    )
    return wallet


# ---------------------------------------------------------------------------
# History (read-only)
# ---------------------------------------------------------------------------


async def list_transactions(
    db: AsyncSession,
    *,
    wallet_id: uuid.UUID,
    transaction_type: Optional[TransactionType] = None,
    skip: int = 0,
    limit: int = 50,
) -> tuple[list[WalletTransaction], int]:
    """Newest-first journal page for a wallet plus the total row count."""
    query = select(WalletTransaction).where(WalletTransaction.wallet_id == wallet_id)
    count_query = select(func.count(WalletTransaction.id)).where(
        WalletTransaction.wallet_id == wallet_id
    )
    if transaction_type is not None:
        query = query.where(WalletTransaction.transaction_type == transaction_type)
        count_query = count_query.where(
            WalletTransaction.transaction_type == transaction_type
        )

    total = (await db.execute(count_query)).scalar_one()
    result = await db.execute(
        query.order_by(
            WalletTransaction.created_at.desc(), WalletTransaction.id.desc()
        )
        .offset(skip)
        .limit(limit)
    )
    return list(result.scalars().all()), total


# ---------------------------------------------------------------------------
# Reconciliation (read-only)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class WalletReconciliation:
    """A wallet's stored totals next to the totals its journal implies."""

    wallet_id: uuid.UUID
    investor_id: uuid.UUID
    balance_paise: int
    expected_balance_paise: int
    locked_paise: int
    expected_locked_paise: int
    total_credits_paise: int
    total_debits_paise: int

    @property
    def balance_drift_paise(self) -> int:
        return self.balance_paise - self.expected_balance_paise

    @property
    def locked_drift_paise(self) -> int:
        return self.locked_paise - self.expected_locked_paise

    @property
    def is_balanced(self) -> bool:
        return self.balance_drift_paise == 0 and self.locked_drift_paise == 0


async def reconcile_wallet(
    db: AsyncSession, wallet_id: uuid.UUID
) -> WalletReconciliation:
    """Compare the stored balance and lock against the journal and audit log.

    The expected balance is completed credits minus completed debits. The
    expected lock is every ``lock_funds`` movement minus every release,
    completion and cancellation. Nothing is corrected here; drift is logged
    and reported.
    """
    result = await db.execute(
        select(Wallet)
        .where(Wallet.id == wallet_id)
        .execution_options(populate_existing=True)
    )
    wallet = result.scalar_one_or_none()
    if not wallet:
        raise NotFound("Wallet not found", {"wallet_id": str(wallet_id)})

    totals = await db.execute(
        select(
            func.coalesce(
                func.sum(
                    case(
                        (
                            WalletTransaction.direction == TransactionDirection.CREDIT,
                            WalletTransaction.amount_paise,
                        ),
                        else_=0,
                    )
                ),
                0,
            ),
            func.coalesce(
                func.sum(
                    case(
                        (
                            WalletTransaction.direction == TransactionDirection.DEBIT,
                            WalletTransaction.amount_paise,
                        ),
                        else_=0,
                    )
                ),
                0,
            ),
        ).where(
            WalletTransaction.wallet_id == wallet.id,
            WalletTransaction.status == TransactionStatus.COMPLETED,
        )
    )
    credits, debits = totals.one()

    locked = await db.execute(
        select(
            func.coalesce(
                func.sum(
                    case(
                        (
                            WalletAuditLog.action == AuditAction.LOCK_FUNDS,
                            WalletAuditLog.amount_paise,
                        ),
                        else_=-WalletAuditLog.amount_paise,
                    )
                ),
                0,
            )
        ).where(WalletAuditLog.wallet_id == wallet.id)
    )

    report = WalletReconciliation(
        wallet_id=wallet.id,
        investor_id=wallet.investor_id,
        balance_paise=wallet.balance_paise,
        expected_balance_paise=int(credits) - int(debits),
        locked_paise=wallet.locked_paise,
        expected_locked_paise=int(locked.scalar_one()),
        total_credits_paise=int(credits),
        total_debits_paise=int(debits),
    )
    if not report.is_balanced:
        logger.warning(
            "Wallet %s drift: balance %d (journal %d), locked %d (audit %d)",
            wallet.id,
            report.balance_paise,
            report.expected_balance_paise,
            report.locked_paise,
            report.expected_locked_paise,
        )
    return report


async def reconcile_all_wallets(db: AsyncSession) -> list[WalletReconciliation]:
    """Reconcile every wallet and return only the ones that drifted."""
    result = await db.execute(select(Wallet.id).order_by(Wallet.created_at))
    wallet_ids = result.scalars().all()
    drifted = []
    for wallet_id in wallet_ids:
        report = await reconcile_wallet(db, wallet_id)
        if not report.is_balanced:
            drifted.append(report)

    if drifted:
        logger.warning(
            "Reconciliation: %d of %d wallets drifted", len(drifted), len(wallet_ids)
        )
    else:
        logger.info("Reconciliation: all %d wallets balanced", len(wallet_ids))
    return drifted
