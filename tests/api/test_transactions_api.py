from unittest.mock import Mock

import pytest
from fastapi import status
from fastapi.testclient import TestClient

from app.services.settlement import SettlementError, SettlementStatus, get_settlement_client
from main import app
from tests.conftest import FakeClock, Wallet, bearer, login


@pytest.fixture
def claimed(client: TestClient, auth_headers, clock: FakeClock):
    """A confirmed claim of the logged-in account"""
    clock.advance(hours=25)
    claim = client.post("/rewards/claim", json={"expectedAmount": "2.40"}, headers=auth_headers).json()
    client.post(
        "/rewards/confirm",
        json={"transactionId": claim["transactionId"], "settlementReference": "5VERv8NMvzbJ"},
        headers=auth_headers,
    )
    return claim["transactionId"]


@pytest.fixture
def settlement():
    client = Mock()
    app.dependency_overrides[get_settlement_client] = lambda: client
    yield client
    app.dependency_overrides.pop(get_settlement_client, None)


class TestTransactionsAPI:
    """Test cases for the /transactions endpoints"""

    def test_list_transactions(self, client: TestClient, auth_headers, claimed):
        response = client.get("/transactions", headers=auth_headers)
        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert [t["id"] for t in data["transactions"]] == [claimed]
        assert data["pagination"]["total"] == 1

    def test_get_transaction(self, client: TestClient, auth_headers, claimed):
        response = client.get(f"/transactions/{claimed}", headers=auth_headers)
        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["id"] == claimed
        assert data["amount"] == "2.40"
        assert data["status"] == "confirmed"

    def test_get_transaction_not_found(self, client: TestClient, auth_headers):
        response = client.get("/transactions/missing", headers=auth_headers)
        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.json()["detail"]["code"] == "TRANSACTION_NOT_FOUND"

    def test_get_transaction_of_other_account(self, client: TestClient, claimed, other_wallet: Wallet):
        other = bearer(login(client, other_wallet)["sessionToken"])
        response = client.get(f"/transactions/{claimed}", headers=other)
        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_reading_overdue_pending_expires_it(self, client: TestClient, auth_headers, clock: FakeClock):
        clock.advance(hours=25)
        claim = client.post("/rewards/claim", json={"expectedAmount": "2.40"}, headers=auth_headers).json()

        clock.advance(minutes=10, seconds=1)
        response = client.get(f"/transactions/{claim['transactionId']}", headers=auth_headers)
        assert response.status_code == status.HTTP_200_OK
        assert response.json()["status"] == "expired"


class TestTransactionStatusAPI:
    """Test cases for /transactions/{id}/status"""

    def test_status_without_settlement_rpc(self, client: TestClient, auth_headers, claimed):
        response = client.get(f"/transactions/{claimed}/status", headers=auth_headers)
        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["transactionId"] == claimed
        assert data["status"] == "confirmed"
        assert data["settlementReference"] == "5VERv8NMvzbJ"
        assert data["settled"] is None
        assert data["lastChecked"]

    def test_status_settled(self, client: TestClient, auth_headers, claimed, settlement):
        settlement.check.return_value = SettlementStatus(
            reference="5VERv8NMvzbJ", exists=True, settled=True, slot=1234, confirmation_status="finalized"
        )
        data = client.get(f"/transactions/{claimed}/status", headers=auth_headers).json()

        settlement.check.assert_called_once_with("5VERv8NMvzbJ")
        assert data["settled"] is True
        assert data["slot"] == 1234

    def test_status_ledger_unavailable(self, client: TestClient, auth_headers, claimed, settlement):
        settlement.check.side_effect = SettlementError("connection refused")
        response = client.get(f"/transactions/{claimed}/status", headers=auth_headers)

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["settled"] is None

    def test_status_pending_skips_ledger(self, client: TestClient, auth_headers, clock: FakeClock, settlement):
        clock.advance(hours=25)
        claim = client.post("/rewards/claim", json={"expectedAmount": "2.40"}, headers=auth_headers).json()

        data = client.get(f"/transactions/{claim['transactionId']}/status", headers=auth_headers).json()
        assert data["status"] == "pending"
        assert data["settled"] is None
        settlement.check.assert_not_called()
