import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.errors import ErrorKind, Failure, Result
from app.core.locks import AccountLocks, account_locks
from app.core.timeutils import to_millis
from app.models.account import Account
from app.models.claim import ClaimTransaction
from app.models.session import WalletSession

logger = logging.getLogger(__name__)


def update_profile(
    db: Session,
    address: str,
    now: datetime,
    *,
    display_name: Optional[str] = None,
    email: Optional[str] = None,
    locks: AccountLocks = account_locks,
) -> Result[Account]:
    """Change display name and/or email, both unique across accounts."""
    if display_name is None and email is None:
        return Failure(ErrorKind.NO_UPDATES, "No valid fields to update")

    with locks.hold(address):
        try:
            account = db.get(Account, address, populate_existing=True)
            if account is None:
                return Failure(ErrorKind.UNAUTHENTICATED, "Unknown account")

            if display_name is not None:
                taken = (
                    db.query(Account.address)
                    .filter(Account.display_name == display_name, Account.address != address)
                    .first()
                )
                if taken:
                    return Failure(ErrorKind.USERNAME_TAKEN, "Username is already taken")
                account.display_name = display_name

            if email is not None:
                email = email.strip().lower()
                taken = db.query(Account.address).filter(Account.email == email, Account.address != address).first()
                if taken:
                    db.rollback()
                    return Failure(ErrorKind.EMAIL_TAKEN, "Email is already taken")
                account.email = email

            account.updated_at = to_millis(now)
            db.commit()
            db.refresh(account)
        except IntegrityError:
            db.rollback()
            return Failure(ErrorKind.EMAIL_TAKEN, "Email is already taken")
        except SQLAlchemyError as e:
            db.rollback()
            logger.error("failed to update profile for %s: %s", address[:8], e)
            return Failure(ErrorKind.UPDATE_FAILED, "Failed to update profile")

    logger.info("profile updated for %s", address[:8])
    return account


def erase_account(db: Session, address: str, *, locks: AccountLocks = account_locks) -> Result[bool]:
    """Hard-delete an account together with its sessions and claim transactions."""
    with locks.hold(address):
        try:
            db.query(WalletSession).filter(WalletSession.address == address).delete(synchronize_session=False)
            db.query(ClaimTransaction).filter(ClaimTransaction.address == address).delete(synchronize_session=False)
            deleted = db.query(Account).filter(Account.address == address).delete(synchronize_session=False)
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error("failed to erase account %s: %s", address[:8], e)
            return Failure(ErrorKind.UPDATE_FAILED, "Failed to delete account")

    logger.info("account erased: %s", address[:8])
    return deleted == 1
