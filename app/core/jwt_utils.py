"""
Session Token Utilities

Session tokens are signed JWTs. The token string is what the sessions table
stores and what clients present as `Authorization: Bearer <token>`; the
sessions row stays the source of truth for whether a token is active.

Flow:
1. Wallet signature verified -> create_session_token() issues the token
2. Request carries the token -> decode_session_token() checks signature and expiry
3. SessionManager.verify() then checks the sessions row (active, not expired)

The JWT contains:
- wallet_address: The authenticated wallet address
- jti: Random id so two tokens issued in the same second never collide
- iat / exp: Issued-at and expiry, matching the sessions row
"""

import secrets
from datetime import datetime
from typing import Any, Dict, Optional

import jwt

from app.core.config import settings


if not settings.ENCODE_KEY:
    raise RuntimeError("ENCODE_KEY is not configured")

TOKEN_ISSUER = "reward-system-api"


def create_session_token(wallet_address: str, issued_at: datetime, expires_at: datetime) -> str:
    """
    Create a signed session token for an authenticated wallet address.

    Raises:
        ValueError: If wallet_address is empty
    """
    if not wallet_address:
        raise ValueError("wallet_address is required")

    payload: Dict[str, Any] = {
        "wallet_address": wallet_address,
        "jti": secrets.token_hex(16),
        "iss": TOKEN_ISSUER,
        "iat": int(issued_at.timestamp()),
        "exp": int(expires_at.timestamp()),
    }
    return jwt.encode(payload, settings.ENCODE_KEY, algorithm=settings.ENCODE_ALGORITHM)


def decode_session_token(token: str, *, verify_exp: bool = True) -> Optional[Dict[str, Any]]:
    """
    Decode a session token.

    Returns the payload, or None when the token is missing, forged, expired
    or lacks the wallet_address claim.
    """
    if not token:
        return None

    try:
        payload = jwt.decode(
            token,
            settings.ENCODE_KEY,
            algorithms=[settings.ENCODE_ALGORITHM],
            issuer=TOKEN_ISSUER,
            options={"verify_exp": verify_exp},
        )
    except jwt.InvalidTokenError:
        return None

    if "wallet_address" not in payload:
        return None
    return payload
