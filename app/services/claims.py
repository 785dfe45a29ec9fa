"""
Claim lifecycle.

    open -> pending --(confirm)--> confirmed
                    --(fail)-----> failed
                    --(expiry)---> expired

Invariants:
- at most one pending transaction per account (account lock in-process,
  partial unique index across processes)
- amount is fixed when the transaction is opened
- terminal states are never left: every transition is an UPDATE guarded by
  `status = 'pending'`, so a lost race changes nothing

Expiry is lazy. A pending transaction past its deadline is closed out the
next time it is read through open / confirm / fail / status.
"""

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.errors import ErrorKind, Failure, Result
from app.core.locks import AccountLocks, account_locks
from app.core.timeutils import from_millis, iso_from_millis, to_millis
from app.models.account import Account
from app.models.claim import ClaimStatus, ClaimTransaction
from app.services.accrual import (
    Accrual,
    RewardPolicy,
    available_for_policy,
    quantize_amount,
    to_decimal,
)

logger = logging.getLogger(__name__)

MAX_AMOUNT_DIGITS = 18

_NOT_FOUND = "Transaction not found or already processed"


@dataclass(frozen=True)
class ClaimPage:
    transactions: List[ClaimTransaction]
    page: int
    limit: int
    total: int

    @property
    def pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0


def parse_amount(value: Any) -> Optional[Decimal]:
    """Positive finite Decimal, or None."""
    if value is None or isinstance(value, bool):
        return None
    try:
        amount = to_decimal(value if not isinstance(value, str) else value.strip())
    except (InvalidOperation, ValueError, TypeError):
        return None
    if not amount.is_finite() or amount <= 0:
        return None
    # past this the difference against the accrued amount overflows the decimal context
    if amount.adjusted() > MAX_AMOUNT_DIGITS:
        return None
    return amount


class ClaimStateMachine:
    def __init__(
        self,
        db: Session,
        *,
        policy: Optional[RewardPolicy] = None,
        locks: AccountLocks = account_locks,
        expiry_seconds: Optional[int] = None,
        tolerance: Optional[Any] = None,
    ):
        self.db = db
        self.policy = policy or RewardPolicy.from_settings()
        self.locks = locks
        self.expiry = timedelta(seconds=expiry_seconds or settings.CLAIM_EXPIRY_SECONDS)
        self.tolerance = to_decimal(settings.CLAIM_AMOUNT_TOLERANCE if tolerance is None else tolerance)

    # ------------------------------------------------------------------
    # accrual
    # ------------------------------------------------------------------

    def preview(self, account: Account, now: datetime) -> Accrual:
        """Read-only view of what the account could claim right now."""
        return available_for_policy(from_millis(account.last_claim_at), now, self.policy)

    # ------------------------------------------------------------------
    # transitions
    # ------------------------------------------------------------------

    def open(self, address: str, expected_amount: Any, now: datetime) -> Result[ClaimTransaction]:
        expected = parse_amount(expected_amount)
        if expected is None:
            return Failure(ErrorKind.INVALID_AMOUNT, "Invalid expected amount")

        with self.locks.hold(address):
            try:
                account = self.db.get(Account, address, populate_existing=True)
                if account is None:
                    return Failure(ErrorKind.UNAUTHENTICATED, "Unknown account")

                pending = self._pending_for(address)
                if pending is not None:
                    if to_millis(now) <= pending.expires_at:
                        return Failure(ErrorKind.CLAIM_ALREADY_IN_PROGRESS, "A claim is already in progress")
                    self._transition(pending, ClaimStatus.EXPIRED, now)
                    self.db.commit()
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.error("database error opening claim for %s: %s", address[:8], e)
                return Failure(ErrorKind.DATABASE_ERROR, "Failed to fetch reward data")

            accrual = self.preview(account, now)
            if not accrual.can_claim:
                return Failure(
                    ErrorKind.CLAIM_TOO_SOON,
                    f"Cannot claim rewards yet. Wait {accrual.next_eligible_in_hours} more hours.",
                )

            if abs(expected - accrual.amount) > self.tolerance:
                logger.warning(
                    "claim amount mismatch for %s: expected %s, calculated %s",
                    address[:8], expected, accrual.amount,
                )
                return Failure(
                    ErrorKind.AMOUNT_MISMATCH,
                    f"Amount mismatch. Expected: {expected}, Calculated: {accrual.amount}",
                )

            now_ms = to_millis(now)
            transaction = ClaimTransaction(
                address=address,
                amount=accrual.amount,
                status=ClaimStatus.PENDING.value,
                earned_at=now_ms,
                expires_at=to_millis(now + self.expiry),
                created_at=now_ms,
                updated_at=now_ms,
            )
            try:
                self.db.add(transaction)
                self.db.commit()
            except IntegrityError:
                # another process opened one first
                self.db.rollback()
                return Failure(ErrorKind.CLAIM_ALREADY_IN_PROGRESS, "A claim is already in progress")
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.error("failed to create claim for %s: %s", address[:8], e)
                return Failure(ErrorKind.TRANSACTION_CREATION_FAILED, "Failed to create claim transaction")

        logger.info("reward claim opened: %s amount=%s id=%s", address[:8], transaction.amount, transaction.id)
        return transaction

    def confirm(
        self, transaction_id: str, address: str, settlement_reference: str, now: datetime
    ) -> Result[ClaimTransaction]:
        with self.locks.hold(address):
            found = self._open_pending(transaction_id, address, now)
            if isinstance(found, Failure):
                return found

            now_ms = to_millis(now)
            try:
                updated = (
                    self.db.query(ClaimTransaction)
                    .filter(
                        ClaimTransaction.id == transaction_id,
                        ClaimTransaction.status == ClaimStatus.PENDING.value,
                    )
                    .update(
                        {
                            ClaimTransaction.status: ClaimStatus.CONFIRMED.value,
                            ClaimTransaction.claimed_at: now_ms,
                            ClaimTransaction.settlement_ref: settlement_reference,
                            ClaimTransaction.updated_at: now_ms,
                        },
                        synchronize_session=False,
                    )
                )
                if updated != 1:
                    self.db.rollback()
                    return Failure(ErrorKind.TRANSACTION_NOT_FOUND, _NOT_FOUND)

                self.db.query(Account).filter(Account.address == address).update(
                    {
                        Account.total_earned: Account.total_earned + found.amount,
                        Account.last_claim_at: now_ms,
                        Account.updated_at: now_ms,
                    },
                    synchronize_session=False,
                )
                self.db.commit()
                self.db.refresh(found)
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.error("failed to confirm claim %s: %s", transaction_id, e)
                return Failure(ErrorKind.CONFIRMATION_FAILED, "Failed to confirm transaction")

        logger.info(
            "reward claim confirmed: %s id=%s amount=%s ref=%s",
            address[:8], transaction_id, found.amount, settlement_reference[:16],
        )
        return found

    def fail(self, transaction_id: str, address: str, now: datetime) -> Result[ClaimTransaction]:
        """Mark a pending claim as failed, e.g. when settlement was rejected."""
        with self.locks.hold(address):
            found = self._open_pending(transaction_id, address, now)
            if isinstance(found, Failure):
                return found
            try:
                if not self._transition(found, ClaimStatus.FAILED, now):
                    self.db.rollback()
                    return Failure(ErrorKind.TRANSACTION_NOT_FOUND, _NOT_FOUND)
                self.db.commit()
                self.db.refresh(found)
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.error("failed to mark claim %s failed: %s", transaction_id, e)
                return Failure(ErrorKind.UPDATE_FAILED, "Failed to update transaction")

        logger.info("reward claim failed: %s id=%s", address[:8], transaction_id)
        return found

    def status(self, transaction_id: str, address: str, now: datetime) -> Result[ClaimTransaction]:
        """Fetch one of the caller's transactions, expiring it first if overdue."""
        with self.locks.hold(address):
            try:
                transaction = self._owned(transaction_id, address)
                if transaction is None:
                    return Failure(ErrorKind.TRANSACTION_NOT_FOUND, "Transaction not found")
                if transaction.status == ClaimStatus.PENDING.value and to_millis(now) > transaction.expires_at:
                    self._transition(transaction, ClaimStatus.EXPIRED, now)
                    self.db.commit()
                    self.db.refresh(transaction)
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.error("database error reading claim %s: %s", transaction_id, e)
                return Failure(ErrorKind.DATABASE_ERROR, "Database error")
        return transaction

    # ------------------------------------------------------------------
    # reads
    # ------------------------------------------------------------------

    def history(
        self, address: str, page: int = 1, limit: int = 20, status: Optional[str] = None
    ) -> Result[ClaimPage]:
        page = max(1, int(page))
        limit = max(1, min(100, int(limit)))
        try:
            query = self.db.query(ClaimTransaction).filter(ClaimTransaction.address == address)
            if status:
                query = query.filter(ClaimTransaction.status == status)
            total = query.count()
            transactions = (
                query.order_by(ClaimTransaction.created_at.desc())
                .offset((page - 1) * limit)
                .limit(limit)
                .all()
            )
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("failed to fetch claim history for %s: %s", address[:8], e)
            return Failure(ErrorKind.DATABASE_ERROR, "Failed to fetch reward history")
        return ClaimPage(transactions=transactions, page=page, limit=limit, total=total)

    def stats(self, address: str) -> Result[Dict[str, Any]]:
        try:
            rows: List[Tuple[Any, str, Optional[int]]] = (
                self.db.query(ClaimTransaction.amount, ClaimTransaction.status, ClaimTransaction.claimed_at)
                .filter(ClaimTransaction.address == address)
                .all()
            )
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("failed to fetch reward stats for %s: %s", address[:8], e)
            return Failure(ErrorKind.DATABASE_ERROR, "Failed to fetch statistics")

        confirmed = [r for r in rows if r[1] == ClaimStatus.CONFIRMED.value]
        total_earned = sum((to_decimal(r[0]) for r in confirmed), Decimal("0"))
        total_claims = len(confirmed)
        success_rate = round(total_claims / len(rows) * 100, 2) if rows else 0.0
        average = total_earned / total_claims if total_claims else Decimal("0")
        claimed_times = sorted(r[2] for r in confirmed if r[2] is not None)

        return {
            "total_earned": quantize_amount(total_earned),
            "total_claims": total_claims,
            "success_rate": success_rate,
            "average_claim_amount": quantize_amount(average),
            "first_claim_date": iso_from_millis(claimed_times[0]) if claimed_times else None,
            "last_claim_date": iso_from_millis(claimed_times[-1]) if claimed_times else None,
        }

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------

    def _owned(self, transaction_id: str, address: str) -> Optional[ClaimTransaction]:
        return (
            self.db.query(ClaimTransaction)
            .populate_existing()
            .filter(ClaimTransaction.id == transaction_id, ClaimTransaction.address == address)
            .first()
        )

    def _pending_for(self, address: str) -> Optional[ClaimTransaction]:
        return (
            self.db.query(ClaimTransaction)
            .populate_existing()
            .filter(
                ClaimTransaction.address == address,
                ClaimTransaction.status == ClaimStatus.PENDING.value,
            )
            .first()
        )

    def _transition(self, transaction: ClaimTransaction, target: ClaimStatus, now: datetime) -> bool:
        """Move a pending transaction to a terminal status. False if it was not pending."""
        now_ms = to_millis(now)
        updated = (
            self.db.query(ClaimTransaction)
            .filter(
                ClaimTransaction.id == transaction.id,
                ClaimTransaction.status == ClaimStatus.PENDING.value,
            )
            .update(
                {ClaimTransaction.status: target.value, ClaimTransaction.updated_at: now_ms},
                synchronize_session=False,
            )
        )
        if updated == 1:
            logger.info("claim %s -> %s", transaction.id, target.value)
        return updated == 1

    def _open_pending(self, transaction_id: str, address: str, now: datetime) -> Result[ClaimTransaction]:
        """
        The caller's pending transaction, or a failure.

        Terminal and foreign transactions are reported as not found. An overdue
        pending transaction is expired here and reported as expired.
        """
        try:
            transaction = self._owned(transaction_id, address)
            if transaction is None or transaction.status != ClaimStatus.PENDING.value:
                return Failure(ErrorKind.TRANSACTION_NOT_FOUND, _NOT_FOUND)

            if to_millis(now) > transaction.expires_at:
                self._transition(transaction, ClaimStatus.EXPIRED, now)
                self.db.commit()
                return Failure(ErrorKind.TRANSACTION_EXPIRED, "Transaction has expired")
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("database error reading claim %s: %s", transaction_id, e)
            return Failure(ErrorKind.DATABASE_ERROR, "Database error")
        return transaction
