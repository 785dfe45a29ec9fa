"""
Wallet sessions: challenge, authenticate, verify, refresh, invalidate.

Session state machine:
    active --(refresh)--> active            (token rotates, expiry extended)
    active --(expire | invalidate)--> inactive   (terminal)

A new login always creates a new session row; older sessions of the same
account are left to expire on their own so several devices can stay signed in.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.cache import HybridCacheManager
from app.core.challenge import Challenge, issue_challenge, parse_message
from app.core.config import settings
from app.core.errors import ErrorKind, Failure, Result
from app.core.jwt_utils import create_session_token, decode_session_token
from app.core.locks import AccountLocks, account_locks
from app.core.timeutils import to_millis
from app.core.wallet_auth import is_valid_address, verify_wallet_signature
from app.models.account import Account
from app.models.session import WalletSession

logger = logging.getLogger(__name__)


def _preview(value: str, length: int = 12) -> str:
    if not value:
        return ""
    return value[:length] + "..." if len(value) > length else value


def _millis(delta: timedelta) -> int:
    return delta // timedelta(milliseconds=1)


def default_display_name(address: str) -> str:
    return f"user_{address[:8]}"


@dataclass(frozen=True)
class AuthResult:
    session_token: str
    session: WalletSession
    account: Account
    is_new_account: bool = False


class SessionManager:
    def __init__(
        self,
        db: Session,
        *,
        locks: AccountLocks = account_locks,
        nonce_guard: Optional[HybridCacheManager] = None,
        freshness_seconds: Optional[int] = None,
        clock_skew_seconds: Optional[int] = None,
        session_days: Optional[int] = None,
    ):
        self.db = db
        self.locks = locks
        self.nonce_guard = nonce_guard
        self.freshness = timedelta(seconds=freshness_seconds or settings.CHALLENGE_FRESHNESS_SECONDS)
        self.clock_skew = timedelta(
            seconds=settings.CHALLENGE_CLOCK_SKEW_SECONDS if clock_skew_seconds is None else clock_skew_seconds
        )
        self.session_lifetime = timedelta(days=session_days or settings.SESSION_EXPIRE_DAYS)

    # ------------------------------------------------------------------
    # challenge
    # ------------------------------------------------------------------

    def issue_challenge(self, address: Optional[str], now: datetime) -> Result[Challenge]:
        if not address or not address.strip():
            return Failure(ErrorKind.MISSING_ADDRESS, "Wallet address is required")
        if not is_valid_address(address):
            return Failure(ErrorKind.INVALID_ADDRESS, "Invalid wallet address")
        return issue_challenge(address, now)

    # ------------------------------------------------------------------
    # authenticate
    # ------------------------------------------------------------------

    def authenticate(self, address: str, message: str, signature: str, now: datetime) -> Result[AuthResult]:
        """
        Authenticate a wallet by its signed challenge and open a new session.

        Gates, in order, each short-circuiting:
        address format, message format, embedded address, freshness,
        signature, (optional) nonce reuse.
        """
        if not is_valid_address(address):
            return Failure(ErrorKind.INVALID_ADDRESS, "Invalid wallet address")
        address = address.strip()

        challenge = parse_message(message)
        if challenge is None:
            return Failure(ErrorKind.INVALID_MESSAGE_FORMAT, "Invalid message format")

        if challenge.address != address:
            logger.warning("auth rejected: address mismatch for %s", _preview(address))
            return Failure(ErrorKind.ADDRESS_MISMATCH, "Wallet address mismatch")

        # compared in integer millis, the embedded timestamp may lie far outside the datetime range
        age_ms = to_millis(now) - challenge.issued_at
        if age_ms > _millis(self.freshness) or -age_ms > _millis(self.clock_skew):
            logger.warning("auth rejected: stale challenge for %s", _preview(address))
            return Failure(ErrorKind.EXPIRED_CHALLENGE, "Message timestamp is expired or invalid")

        if not verify_wallet_signature(message, signature, address):
            logger.warning(
                "auth rejected: invalid signature for %s (message %r, signature %s)",
                _preview(address),
                _preview(message, 40),
                _preview(signature, 10),
            )
            return Failure(ErrorKind.INVALID_SIGNATURE, "Invalid signature")

        nonce_key = f"auth_nonce:{challenge.nonce}"
        if self.nonce_guard is not None:
            ttl = int((self.freshness + self.clock_skew).total_seconds())
            if not self.nonce_guard.add(nonce_key, ttl):
                logger.warning("auth rejected: nonce reuse for %s", _preview(address))
                return Failure(ErrorKind.NONCE_REUSED, "Challenge nonce already used")

        with self.locks.hold(address):
            found = self._get_or_create_account(address, now)
            if isinstance(found, Failure):
                self._release_nonce(nonce_key)
                return found
            account, is_new = found

            try:
                token, session = self._new_session(address, now)
                account.last_login_at = to_millis(now)
                self.db.commit()
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.error("failed to create session for %s: %s", _preview(address), e)
                self._release_nonce(nonce_key)
                return Failure(ErrorKind.SESSION_CREATION_FAILED, "Failed to create session")

        logger.info("wallet authenticated: %s (new account: %s)", _preview(address), is_new)
        return AuthResult(session_token=token, session=session, account=account, is_new_account=is_new)

    def _release_nonce(self, key: str) -> None:
        # the challenge was never turned into a session, so it stays usable
        if self.nonce_guard is not None:
            self.nonce_guard.discard(key)

    def _get_or_create_account(self, address: str, now: datetime) -> Result[tuple[Account, bool]]:
        try:
            account = self.db.get(Account, address)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("database error looking up account %s: %s", _preview(address), e)
            return Failure(ErrorKind.DATABASE_ERROR, "Database error")
        if account is not None:
            return account, False

        now_ms = to_millis(now)
        account = Account(
            address=address,
            display_name=default_display_name(address),
            total_earned=0,
            # registration time is the accrual baseline for a new account
            last_claim_at=now_ms,
            created_at=now_ms,
            updated_at=now_ms,
        )
        try:
            self.db.add(account)
            self.db.flush()
        except IntegrityError:
            # created concurrently by another process
            self.db.rollback()
            existing = self.db.get(Account, address)
            if existing is not None:
                return existing, False
            return Failure(ErrorKind.USER_CREATION_FAILED, "Failed to create user account")
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("failed to create account %s: %s", _preview(address), e)
            return Failure(ErrorKind.USER_CREATION_FAILED, "Failed to create user account")

        logger.info("new account created: %s", _preview(address))
        return account, True

    def _new_session(self, address: str, now: datetime) -> tuple[str, WalletSession]:
        expires_at = now + self.session_lifetime
        token = create_session_token(address, now, expires_at)
        session = WalletSession(
            token=token,
            address=address,
            issued_at=to_millis(now),
            expires_at=to_millis(expires_at),
            last_activity_at=to_millis(now),
            is_active=True,
        )
        self.db.add(session)
        self.db.flush()
        return token, session

    # ------------------------------------------------------------------
    # verify / refresh / invalidate
    # ------------------------------------------------------------------

    def _active_session(self, token: str, now: datetime) -> Result[WalletSession]:
        """Look up a token's session, closing it out if expired or forged."""
        unauthenticated = Failure(ErrorKind.UNAUTHENTICATED, "Invalid or expired token")
        if not token:
            return unauthenticated

        try:
            session = self.db.query(WalletSession).filter(WalletSession.token == token).first()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("database error verifying session: %s", e)
            return Failure(ErrorKind.DATABASE_ERROR, "Database error")

        if session is None or not session.is_active:
            return unauthenticated

        # expiry is judged against the sessions row, the JWT exp mirrors it
        payload = decode_session_token(token, verify_exp=False)
        forged = payload is None or payload["wallet_address"] != session.address
        expired = session.expires_at <= to_millis(now)
        if forged or expired:
            if forged:
                logger.warning("forged session token for %s, deactivating", _preview(session.address))
            session.is_active = False
            try:
                self.db.commit()
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.error("failed to deactivate session: %s", e)
            return unauthenticated

        return session

    def verify(self, token: str, now: datetime) -> Result[Account]:
        session = self._active_session(token, now)
        if isinstance(session, Failure):
            return session

        account = self.db.get(Account, session.address)
        if account is None:
            return Failure(ErrorKind.UNAUTHENTICATED, "Invalid or expired token")
        return account

    def refresh(self, token: str, now: datetime) -> Result[AuthResult]:
        """Rotate the token of an active session and extend its expiry. No re-signing."""
        session = self._active_session(token, now)
        if isinstance(session, Failure):
            return session

        address = session.address
        with self.locks.hold(address):
            try:
                # re-read under the lock, another refresh may have rotated it
                self.db.refresh(session)
                if not session.is_active or session.token != token:
                    return Failure(ErrorKind.UNAUTHENTICATED, "Invalid or expired token")

                expires_at = now + self.session_lifetime
                new_token = create_session_token(address, now, expires_at)
                session.token = new_token
                session.expires_at = to_millis(expires_at)
                session.last_activity_at = to_millis(now)
                account = self.db.get(Account, address)
                self.db.commit()
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.error("failed to refresh session for %s: %s", _preview(address), e)
                return Failure(ErrorKind.REFRESH_FAILED, "Failed to refresh session")

        if account is None:
            return Failure(ErrorKind.UNAUTHENTICATED, "Invalid or expired token")
        logger.info("session refreshed for %s", _preview(address))
        return AuthResult(session_token=new_token, session=session, account=account)

    def invalidate(self, address: str) -> Result[int]:
        """Mark every session of the account inactive. Returns the number closed."""
        with self.locks.hold(address):
            try:
                closed = (
                    self.db.query(WalletSession)
                    .filter(WalletSession.address == address, WalletSession.is_active.is_(True))
                    .update({WalletSession.is_active: False}, synchronize_session=False)
                )
                self.db.commit()
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.error("failed to deactivate sessions for %s: %s", _preview(address), e)
                return Failure(ErrorKind.DISCONNECT_FAILED, "Failed to disconnect")

        logger.info("wallet disconnected: %s (%d sessions closed)", _preview(address), closed)
        return closed
