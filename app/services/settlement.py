"""
Settlement ledger lookups.

The claim engine never blocks on the ledger: a settlement reference is handed
in by the client at confirm time. This client is only used to answer
"did this reference settle?" for the transaction status endpoint, through the
ledger's JSON-RPC `getSignatureStatuses` call.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import requests

from app.core.config import settings

logger = logging.getLogger(__name__)

SETTLED_COMMITMENTS = ("confirmed", "finalized")


class SettlementError(Exception):
    """Raised when the settlement ledger cannot be queried."""


@dataclass(frozen=True)
class SettlementStatus:
    reference: str
    exists: bool
    settled: bool
    slot: Optional[int] = None
    confirmation_status: Optional[str] = None


class SettlementClient:
    def __init__(self, rpc_url: str, timeout: float = 10.0, session: Optional[requests.Session] = None):
        self.rpc_url = rpc_url
        self.timeout = timeout
        self.session = session or requests.Session()

    def check(self, reference: str) -> SettlementStatus:
        """
        Ask the ledger whether a settlement reference exists and settled.

        Raises:
            SettlementError: On transport failure or an RPC error response
        """
        payload = {
            "jsonrpc": "2.0",
            "id": 1,
            "method": "getSignatureStatuses",
            "params": [[reference], {"searchTransactionHistory": True}],
        }
        try:
            response = self.session.post(self.rpc_url, json=payload, timeout=self.timeout)
            response.raise_for_status()
            body = response.json()
        except (requests.RequestException, ValueError) as exc:
            raise SettlementError(f"settlement rpc request failed: {exc}") from exc

        if "error" in body:
            raise SettlementError(f"settlement rpc error: {body['error']}")

        values = (body.get("result") or {}).get("value") or [None]
        entry = values[0]
        if entry is None:
            return SettlementStatus(reference=reference, exists=False, settled=False)

        commitment = entry.get("confirmationStatus")
        settled = entry.get("err") is None and commitment in SETTLED_COMMITMENTS
        return SettlementStatus(
            reference=reference,
            exists=True,
            settled=settled,
            slot=entry.get("slot"),
            confirmation_status=commitment,
        )


def get_settlement_client() -> Optional[SettlementClient]:
    """FastAPI dependency: a client when SETTLEMENT_RPC_URL is configured, else None."""
    if not settings.SETTLEMENT_RPC_URL:
        return None
    return SettlementClient(settings.SETTLEMENT_RPC_URL, timeout=settings.SETTLEMENT_RPC_TIMEOUT)
