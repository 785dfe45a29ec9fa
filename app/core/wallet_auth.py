"""
Wallet Signature Utilities

This module handles the cryptographic side of wallet authentication.
Wallet addresses are base58-encoded 32-byte ED25519 public keys, so the address
itself is the verification key: no separate public key travels with a request.

Authentication Flow:
1. Backend issues a challenge message embedding address, nonce and timestamp
   (see app/core/challenge.py)
2. Frontend signs the raw message bytes with the wallet (detached ED25519)
3. Frontend sends: address, message, signature
4. Backend verifies: verify_signature(message_bytes, signature_bytes, public_key_bytes)

The signature verification uses:
- ED25519 detached signatures over the raw UTF-8 message (no pre-hashing)
- cryptography for the ED25519 primitive
- base58 for address and signature decoding
"""

import base64
import binascii
from typing import Optional

import base58
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PublicKey


PUBLIC_KEY_NUM_BYTES = 32
SIGNATURE_NUM_BYTES = 64


def _decode_base58(value: str) -> bytes:
    """Helper: Decode base58 string to bytes."""
    return base58.b58decode(value)


def _decode_hex(value: str) -> bytes:
    """Helper: Decode hex string to bytes."""
    return binascii.unhexlify(value.encode())


def _decode_base64(value: str) -> bytes:
    """Helper: Decode base64 string to bytes."""
    return base64.b64decode(value, validate=True)


def address_to_public_key(address: str) -> Optional[bytes]:
    """
    Decode a wallet address into its raw public key bytes.

    Returns None when the address is not base58 or does not decode to
    exactly 32 bytes.
    """
    if not isinstance(address, str):
        return None
    address = address.strip()
    if not address:
        return None
    try:
        raw = _decode_base58(address)
    except ValueError:
        return None
    if len(raw) != PUBLIC_KEY_NUM_BYTES:
        return None
    return raw


def is_valid_address(address: str) -> bool:
    return address_to_public_key(address) is not None


def decode_signature(signature: str) -> Optional[bytes]:
    """
    Decode a wallet signature into raw bytes.

    Wallets send base58 by default; hex and base64 are accepted too.
    Only a 64-byte result is considered a candidate ED25519 signature.
    """
    if not isinstance(signature, str):
        return None
    signature = signature.strip()
    for decoder in (_decode_base58, _decode_hex, _decode_base64):
        try:
            raw = decoder(signature)
        except (binascii.Error, ValueError):
            continue
        if len(raw) == SIGNATURE_NUM_BYTES:
            return raw
    return None


def verify_signature(message: bytes, signature: bytes, public_key: bytes) -> bool:
    """
    Verify a detached ED25519 signature over the raw message bytes.

    Pure and deterministic. Malformed signature or key bytes produce False.

    Raises:
        TypeError: If any argument is None
    """
    if message is None or signature is None or public_key is None:
        raise TypeError("message, signature and public_key are required")

    try:
        Ed25519PublicKey.from_public_bytes(bytes(public_key)).verify(bytes(signature), bytes(message))
    except (InvalidSignature, ValueError):
        return False
    return True


def verify_wallet_signature(message: str, signature: str, address: str) -> bool:
    """
    Verify a wallet signature given in its transport encodings.

    Args:
        message: The challenge message exactly as it was signed
        signature: Signature (base58, hex or base64)
        address: Wallet address (base58 public key)

    Returns:
        True only if both encodings decode and the signature is valid
    """
    public_key = address_to_public_key(address)
    signature_bytes = decode_signature(signature)
    if public_key is None or signature_bytes is None:
        return False
    try:
        message_bytes = message.encode("utf-8")
    except UnicodeEncodeError:
        # lone surrogates from JSON escapes cannot be what the wallet signed
        return False
    return verify_signature(message_bytes, signature_bytes, public_key)
