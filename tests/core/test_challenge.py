import pytest

from app.core.challenge import build_message, issue_challenge, parse_message
from app.core.timeutils import to_millis
from tests.conftest import START, Wallet


class TestChallenge:
    def test_issue_embeds_fields(self, wallet: Wallet):
        challenge = issue_challenge(wallet.address, START)

        assert challenge.address == wallet.address
        assert challenge.issued_at == to_millis(START)
        assert len(challenge.nonce) == 64
        assert challenge.message == (
            "Welcome to Reward System!\n\n"
            f"Wallet: {wallet.address}\n"
            f"Nonce: {challenge.nonce}\n"
            f"Timestamp: {challenge.issued_at}\n\n"
            "This request will not trigger a blockchain transaction or cost any gas fees."
        )

    def test_issue_rejects_bad_address(self):
        with pytest.raises(ValueError):
            issue_challenge("not-an-address", START)

    def test_parse_round_trip(self, wallet: Wallet):
        challenge = issue_challenge(wallet.address, START)
        assert parse_message(challenge.message) == challenge

    @pytest.mark.parametrize(
        "message",
        [
            "",
            "hello",
            "Wallet: abc\nNonce: def",
            "Wallet: abc\nTimestamp: 123",
            "Nonce: def\nTimestamp: 123",
            "Wallet: abc\nNonce: def\nTimestamp: yesterday",
        ],
    )
    def test_parse_rejects_malformed(self, message):
        assert parse_message(message) is None

    def test_parse_ignores_surrounding_text(self):
        message = build_message("abc", "def", 123) + "\nextra line"
        parsed = parse_message(message)
        assert (parsed.address, parsed.nonce, parsed.issued_at) == ("abc", "def", 123)
