from unittest.mock import Mock

import pytest
import requests

from app.client.api_client import ApiError, RewardApiClient
from app.client.refresh_breaker import RefreshCircuitBreaker, RefreshCircuitOpen

BASE_URL = "http://rewards.test"


def make_response(status_code: int, body) -> Mock:
    response = Mock(spec=requests.Response)
    response.status_code = status_code
    response.json.return_value = body
    response.text = str(body)
    return response


def invalid_token() -> Mock:
    return make_response(401, {"detail": {"code": "INVALID_TOKEN", "message": "Invalid or expired token"}})


@pytest.fixture
def http() -> Mock:
    return Mock(spec=requests.Session)


@pytest.fixture
def api(http: Mock) -> RewardApiClient:
    return RewardApiClient(BASE_URL, session_token="old-token", http=http)


class TestRewardApiClient:
    def test_sends_bearer_token(self, api: RewardApiClient, http: Mock):
        http.request.return_value = make_response(200, {"amount": "2.40"})

        assert api.available_rewards() == {"amount": "2.40"}
        _, kwargs = http.request.call_args
        assert kwargs["headers"]["Authorization"] == "Bearer old-token"
        http.request.assert_called_once_with(
            "GET", f"{BASE_URL}/rewards/available", headers={"Authorization": "Bearer old-token"}, timeout=10.0
        )

    def test_refreshes_once_and_retries(self, api: RewardApiClient, http: Mock):
        http.request.side_effect = [invalid_token(), make_response(200, {"canClaim": True})]
        http.post.return_value = make_response(200, {"sessionToken": "new-token"})

        assert api.available_rewards() == {"canClaim": True}
        assert api.session_token == "new-token"
        http.post.assert_called_once_with(
            f"{BASE_URL}/auth/refresh", headers={"Authorization": "Bearer old-token"}, timeout=10.0
        )
        retried = http.request.call_args_list[1]
        assert retried.kwargs["headers"]["Authorization"] == "Bearer new-token"

    def test_gives_up_after_one_retry(self, api: RewardApiClient, http: Mock):
        http.request.side_effect = [invalid_token(), invalid_token()]
        http.post.return_value = make_response(200, {"sessionToken": "new-token"})

        with pytest.raises(ApiError) as exc_info:
            api.available_rewards()
        assert exc_info.value.code == "INVALID_TOKEN"
        assert http.post.call_count == 1

    def test_failed_refresh_surfaces_request_error(self, api: RewardApiClient, http: Mock):
        http.request.return_value = invalid_token()
        http.post.return_value = make_response(401, {"detail": {"code": "INVALID_TOKEN", "message": "expired"}})

        with pytest.raises(ApiError) as exc_info:
            api.verify()
        assert exc_info.value.status_code == 401
        assert api.breaker.attempts == 1

    def test_open_circuit_drops_token(self, http: Mock):
        breaker = RefreshCircuitBreaker(max_attempts=3, cooldown_seconds=30, clock=lambda: 0.0)
        api = RewardApiClient(BASE_URL, session_token="old-token", http=http, breaker=breaker)
        http.request.return_value = invalid_token()
        http.post.return_value = make_response(500, {"detail": {"code": "REFRESH_FAILED", "message": ""}})

        for _ in range(3):
            with pytest.raises(ApiError):
                api.verify()

        with pytest.raises(RefreshCircuitOpen):
            api.verify()
        assert api.session_token is None
        assert http.post.call_count == 3

    def test_other_errors_do_not_refresh(self, api: RewardApiClient, http: Mock):
        http.request.return_value = make_response(
            400, {"detail": {"code": "AMOUNT_MISMATCH", "message": "Amount mismatch"}}
        )
        with pytest.raises(ApiError) as exc_info:
            api.claim("5.25")
        assert exc_info.value.code == "AMOUNT_MISMATCH"
        http.post.assert_not_called()

    def test_missing_token_is_not_refreshed(self, api: RewardApiClient, http: Mock):
        http.request.return_value = make_response(401, {"detail": {"code": "MISSING_TOKEN", "message": ""}})
        with pytest.raises(ApiError):
            api.verify()
        http.post.assert_not_called()

    def test_connect_stores_token(self, http: Mock):
        api = RewardApiClient(BASE_URL, http=http)
        http.request.return_value = make_response(200, {"sessionToken": "fresh", "account": {}})

        api.connect("addr", "message", "signature")
        assert api.session_token == "fresh"
        _, kwargs = http.request.call_args
        assert "Authorization" not in kwargs["headers"]
