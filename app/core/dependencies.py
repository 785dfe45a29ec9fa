"""
FastAPI Authentication Dependencies
This module provides FastAPI dependency functions that can be injected into route handlers
to extract the bearer token from the Authorization header and resolve it to an account.
Usage in endpoints:
    @router.get("/protected")
    def protected_route(account: Account = Depends(get_current_account)):
        return {"address": account.address}
Flow:
1. Client sends request with Authorization: Bearer <token> header
2. _extract_token() pulls the token out of the header
3. SessionManager.verify() checks it against the sessions table
4. Returns the Account to the route handler
"""

from typing import Optional

from fastapi import Depends, Header
from sqlalchemy.orm import Session

from app.core.cache import HybridCacheManager, nonce_store
from app.core.config import settings
from app.core.errors import ErrorKind, http_error, unwrap
from app.core.timeutils import Clock, utc_now
from app.db.session import get_db
from app.models.account import Account
from app.services.session_manager import SessionManager


def get_clock() -> Clock:
    """Time source for request handlers, overridden in tests."""
    return utc_now


def get_nonce_guard() -> Optional[HybridCacheManager]:
    return nonce_store if settings.NONCE_REPLAY_GUARD else None


def get_session_manager(
    db: Session = Depends(get_db),
    nonce_guard: Optional[HybridCacheManager] = Depends(get_nonce_guard),
) -> SessionManager:
    return SessionManager(db, nonce_guard=nonce_guard)


def _extract_token(authorization: Optional[str]) -> str:
    """
    Extract the session token from Authorization header.
    Supports both "Bearer <token>" and plain token formats.
    Raises:
        HTTPException 401 MISSING_TOKEN: If the header is missing or empty
    """
    if not authorization or not authorization.strip():
        raise http_error(ErrorKind.MISSING_TOKEN, "No token provided")

    authorization = authorization.strip()
    if authorization.lower().startswith("bearer "):
        token = authorization[7:].strip()
    else:
        token = authorization
    if not token:
        raise http_error(ErrorKind.MISSING_TOKEN, "No token provided")
    return token


def get_current_token(
    authorization: Optional[str] = Header(None, alias="Authorization"),
) -> str:
    return _extract_token(authorization)


def get_current_account(
    token: str = Depends(get_current_token),
    manager: SessionManager = Depends(get_session_manager),
    clock: Clock = Depends(get_clock),
) -> Account:
    """
    Resolve the bearer token to its account.
    Raises 401 INVALID_TOKEN for unknown, inactive or expired sessions.
    """
    return unwrap(manager.verify(token, clock()))
