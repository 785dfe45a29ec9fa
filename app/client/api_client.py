"""
HTTP client for the reward API.

Holds the session token, attaches it as a bearer header and transparently
refreshes it once when the server answers 401 INVALID_TOKEN. Refreshes go
through a RefreshCircuitBreaker so a broken session cannot turn into a
refresh storm; when the breaker opens the token is dropped and the caller
has to sign in again.
"""

import logging
from typing import Any, Dict, Optional

import requests

from app.client.refresh_breaker import RefreshCircuitBreaker, RefreshCircuitOpen

logger = logging.getLogger(__name__)


class ApiError(Exception):
    def __init__(self, status_code: int, code: str, message: str = ""):
        super().__init__(f"{status_code} {code}: {message}")
        self.status_code = status_code
        self.code = code
        self.message = message

    @classmethod
    def from_response(cls, response: requests.Response) -> "ApiError":
        try:
            detail = response.json().get("detail")
        except ValueError:
            detail = None
        if isinstance(detail, dict):
            return cls(response.status_code, detail.get("code", "UNKNOWN"), detail.get("message", ""))
        return cls(response.status_code, "UNKNOWN", str(detail or response.text))


class RewardApiClient:
    def __init__(
        self,
        base_url: str,
        *,
        session_token: Optional[str] = None,
        breaker: Optional[RefreshCircuitBreaker] = None,
        http: Optional[requests.Session] = None,
        timeout: float = 10.0,
    ):
        self.base_url = base_url.rstrip("/")
        self.session_token = session_token
        self.breaker = breaker or RefreshCircuitBreaker()
        self.http = http or requests.Session()
        self.timeout = timeout

    # ------------------------------------------------------------------
    # transport
    # ------------------------------------------------------------------

    def _send(self, method: str, path: str, **kwargs) -> requests.Response:
        headers = kwargs.pop("headers", None) or {}
        if self.session_token:
            headers["Authorization"] = f"Bearer {self.session_token}"
        return self.http.request(
            method, f"{self.base_url}{path}", headers=headers, timeout=self.timeout, **kwargs
        )

    @staticmethod
    def _is_invalid_token(response: requests.Response) -> bool:
        if response.status_code != 401:
            return False
        try:
            detail = response.json().get("detail")
        except ValueError:
            return False
        return isinstance(detail, dict) and detail.get("code") == "INVALID_TOKEN"

    def request(self, method: str, path: str, *, authenticated: bool = True, **kwargs) -> Any:
        response = self._send(method, path, **kwargs)

        if authenticated and self.session_token and self._is_invalid_token(response):
            sent_token = self.session_token
            try:
                self.breaker.call(lambda: self._refresh_token(sent_token))
            except RefreshCircuitOpen:
                self.session_token = None
                raise
            except ApiError as e:
                logger.warning("session refresh failed: %s", e)
                raise ApiError.from_response(response) from e
            response = self._send(method, path, **kwargs)

        if response.status_code >= 400:
            raise ApiError.from_response(response)
        return response.json()

    def _refresh_token(self, sent_token: str) -> str:
        # a concurrent caller may already have rotated the token
        if self.session_token and self.session_token != sent_token:
            return self.session_token
        response = self.http.post(
            f"{self.base_url}/auth/refresh",
            headers={"Authorization": f"Bearer {sent_token}"},
            timeout=self.timeout,
        )
        if response.status_code != 200:
            raise ApiError.from_response(response)
        self.session_token = response.json()["sessionToken"]
        return self.session_token

    # ------------------------------------------------------------------
    # auth
    # ------------------------------------------------------------------

    def get_nonce(self, address: str) -> Dict[str, Any]:
        return self.request("GET", "/auth/nonce", authenticated=False, params={"address": address})

    def connect(self, address: str, message: str, signature: str) -> Dict[str, Any]:
        body = self.request(
            "POST",
            "/auth/connect",
            authenticated=False,
            json={"address": address, "message": message, "signature": signature},
        )
        self.session_token = body["sessionToken"]
        return body

    def disconnect(self) -> Dict[str, Any]:
        body = self.request("POST", "/auth/disconnect")
        self.session_token = None
        return body

    def verify(self) -> Dict[str, Any]:
        return self.request("GET", "/auth/verify")

    # ------------------------------------------------------------------
    # rewards
    # ------------------------------------------------------------------

    def available_rewards(self) -> Dict[str, Any]:
        return self.request("GET", "/rewards/available")

    def claim(self, expected_amount: Any) -> Dict[str, Any]:
        return self.request("POST", "/rewards/claim", json={"expectedAmount": str(expected_amount)})

    def confirm(self, transaction_id: str, settlement_reference: str) -> Dict[str, Any]:
        return self.request(
            "POST",
            "/rewards/confirm",
            json={"transactionId": transaction_id, "settlementReference": settlement_reference},
        )

    def fail(self, transaction_id: str) -> Dict[str, Any]:
        return self.request("POST", "/rewards/fail", json={"transactionId": transaction_id})

    def history(self, page: int = 1, limit: int = 20, status: Optional[str] = None) -> Dict[str, Any]:
        params: Dict[str, Any] = {"page": page, "limit": limit}
        if status:
            params["status"] = status
        return self.request("GET", "/rewards/history", params=params)

    def transaction_status(self, transaction_id: str) -> Dict[str, Any]:
        return self.request("GET", f"/transactions/{transaction_id}/status")
