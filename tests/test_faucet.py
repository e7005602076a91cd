import logging

import requests
from eth_account import Account

from helios_activity.faucet import FAUCET_DELAY_SECONDS, claim_faucet, claim_faucet_all

FAUCET_URL = "https://faucet.test/faucet"
WALLETS = [Account.from_key("0x" + f"{n:02x}" * 32) for n in (0x44, 0x55, 0x66)]


class StubResponse:
    def __init__(self, body) -> None:
        self._body = body

    def json(self):
        if isinstance(self._body, Exception):
            raise self._body
        return self._body


class StubSession:
    def __init__(self, *outcomes) -> None:
        self.outcomes = list(outcomes)
        self.posts: list[tuple[str, dict]] = []

    def post(self, url, json=None, timeout=None):
        self.posts.append((url, json))
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, requests.RequestException):
            raise outcome
        return StubResponse(outcome)


def test_claim_returns_tx_hash_on_success() -> None:
    session = StubSession({"txHash": "0xfeed"})

    assert claim_faucet(WALLETS[0].address, FAUCET_URL, session=session) == "0xfeed"
    assert session.posts == [(FAUCET_URL, {"address": WALLETS[0].address})]


def test_claim_logs_server_message_on_failure(caplog) -> None:
    session = StubSession({"message": "Already claimed today"}, ValueError("not json"))

    with caplog.at_level(logging.ERROR):
        assert claim_faucet(WALLETS[0].address, FAUCET_URL, session=session) is None
        assert claim_faucet(WALLETS[0].address, FAUCET_URL, session=session) is None

    messages = [r.getMessage() for r in caplog.records]
    assert any("Already claimed today" in message for message in messages)
    assert any(message.startswith("Error faucet") for message in messages)


def test_claim_all_isolates_failures_and_waits_between_wallets() -> None:
    session = StubSession(
        requests.ConnectionError("reset by peer"),
        {"txHash": "0x02"},
        {"message": "rate limited"},
    )
    sleeps: list[float] = []

    results = claim_faucet_all(WALLETS, FAUCET_URL, sleep=sleeps.append, session=session)

    assert results == {
        WALLETS[0].address: None,
        WALLETS[1].address: "0x02",
        WALLETS[2].address: None,
    }
    assert sleeps == [FAUCET_DELAY_SECONDS, FAUCET_DELAY_SECONDS]


def test_claim_all_stops_when_sleep_is_interrupted() -> None:
    session = StubSession({"txHash": "0x01"}, {"txHash": "0x02"})

    results = claim_faucet_all(WALLETS, FAUCET_URL, sleep=lambda _: False, session=session)

    assert results == {WALLETS[0].address: "0x01"}
