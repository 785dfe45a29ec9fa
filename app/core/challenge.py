"""
Sign-in challenge messages.

A challenge is stateless: nothing is stored server-side when it is issued.
At verification time the address, nonce and timestamp are re-derived from the
signed message itself, so replay protection rests on the freshness window
(see SessionManager.authenticate) unless the optional nonce replay guard is on.
"""

import secrets
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from app.core.timeutils import to_millis, utc_now
from app.core.wallet_auth import is_valid_address


NONCE_NUM_BYTES = 32  # 32 bytes = 64 hex characters

MESSAGE_TEMPLATE = (
    "Welcome to Reward System!\n"
    "\n"
    "Wallet: {address}\n"
    "Nonce: {nonce}\n"
    "Timestamp: {timestamp}\n"
    "\n"
    "This request will not trigger a blockchain transaction or cost any gas fees."
)

_WALLET_PREFIX = "Wallet: "
_NONCE_PREFIX = "Nonce: "
_TIMESTAMP_PREFIX = "Timestamp: "


@dataclass(frozen=True)
class Challenge:
    address: str
    nonce: str
    issued_at: int  # epoch millis
    message: str = ""


def generate_nonce(num_bytes: int = NONCE_NUM_BYTES) -> str:
    """Cryptographically secure random hex nonce."""
    if num_bytes <= 0:
        num_bytes = NONCE_NUM_BYTES
    return secrets.token_hex(num_bytes)


def build_message(address: str, nonce: str, issued_at: int) -> str:
    return MESSAGE_TEMPLATE.format(address=address, nonce=nonce, timestamp=issued_at)


def issue_challenge(address: str, now: Optional[datetime] = None) -> Challenge:
    """
    Produce a fresh challenge for a wallet address.

    Raises:
        ValueError: If the address is not a valid wallet address
    """
    if not is_valid_address(address):
        raise ValueError("invalid wallet address")

    address = address.strip()
    nonce = generate_nonce()
    issued_at = to_millis(now or utc_now())
    return Challenge(
        address=address,
        nonce=nonce,
        issued_at=issued_at,
        message=build_message(address, nonce, issued_at),
    )


def _line_value(lines: list[str], prefix: str) -> Optional[str]:
    for line in lines:
        if line.startswith(prefix):
            return line[len(prefix):].strip()
    return None


def parse_message(message: str) -> Optional[Challenge]:
    """
    Recover the challenge embedded in a signed message.

    Returns None when any of the Wallet / Nonce / Timestamp lines is missing
    or the timestamp is not an integer.
    """
    if not isinstance(message, str):
        return None

    lines = message.split("\n")
    address = _line_value(lines, _WALLET_PREFIX)
    nonce = _line_value(lines, _NONCE_PREFIX)
    timestamp = _line_value(lines, _TIMESTAMP_PREFIX)
    if not address or not nonce or not timestamp:
        return None

    try:
        issued_at = int(timestamp)
    except ValueError:
        return None

    return Challenge(address=address, nonce=nonce, issued_at=issued_at, message=message)
