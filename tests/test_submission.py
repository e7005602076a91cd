import logging
from types import SimpleNamespace

import pytest
from eth_account import Account
from web3.exceptions import TimeExhausted

from helios_activity.calldata import build_stake_transaction
from helios_activity.config import HeliosSettings
from helios_activity.nonces import NonceTracker
from helios_activity.rpc_client import RPCError
from helios_activity.submission import (
    ConfirmationError,
    SubmissionPipeline,
    TransactionRevertedError,
    current_gas_price,
)
from helios_activity.transport import Connection

ACCOUNT = Account.from_key("0x" + "11" * 32)
VALIDATOR = "0x882f8a95409c127f0de7ba83b4dfa0096c3d8d79"
TX_HASH = bytes.fromhex("ab" * 32)


class StubEth:
    def __init__(self, receipt=None, pending: int = 3, gas_price: int = 2 * 10**9) -> None:
        self.receipt = {"status": 1} if receipt is None else receipt
        self.pending = pending
        self.gas_price = gas_price
        self.sent: list[bytes] = []
        self.waited: list[tuple[str, float]] = []
        self.send_error: Exception | None = None
        self.wait_error: Exception | None = None

    def get_transaction_count(self, address, block_identifier):
        return self.pending

    def send_raw_transaction(self, raw):
        if self.send_error is not None:
            raise self.send_error
        self.sent.append(bytes(raw))
        return TX_HASH

    def wait_for_transaction_receipt(self, tx_hash, timeout):
        self.waited.append((tx_hash, timeout))
        if self.wait_error is not None:
            raise self.wait_error
        return self.receipt


def _connection(eth: StubEth) -> Connection:
    return Connection(web3=SimpleNamespace(eth=eth), rpc=SimpleNamespace(), proxy_url=None)


def _built():
    return build_stake_transaction(HeliosSettings(), ACCOUNT.address, VALIDATOR, "0.01")


def _pipeline(tracker: NonceTracker | None = None) -> SubmissionPipeline:
    return SubmissionPipeline(
        tracker if tracker is not None else NonceTracker(), 42000, receipt_timeout=5
    )


def test_submit_signs_broadcasts_and_syncs() -> None:
    eth = StubEth()
    synced: list[str] = []

    outcome = _pipeline().submit(_connection(eth), ACCOUNT, _built(), sync=lambda: synced.append("ok"))

    assert outcome.confirmed
    assert not outcome.reverted
    assert outcome.hash == "0x" + "ab" * 32
    assert synced == ["ok"]
    assert eth.waited == [(outcome.hash, 5)]
    assert Account.recover_transaction(eth.sent[0]) == ACCOUNT.address


def test_sync_failure_is_logged_not_raised(caplog) -> None:
    def failing_sync():
        raise RPCError(-32601, "method not found")

    with caplog.at_level(logging.ERROR):
        outcome = _pipeline().submit(_connection(StubEth()), ACCOUNT, _built(), sync=failing_sync)

    assert outcome.confirmed
    assert any("Failed to sync with portal" in r.getMessage() for r in caplog.records)


def test_reverted_receipt_raises_and_skips_sync() -> None:
    synced: list[str] = []

    with pytest.raises(TransactionRevertedError) as excinfo:
        _pipeline().submit(
            _connection(StubEth(receipt={"status": 0})),
            ACCOUNT,
            _built(),
            sync=lambda: synced.append("ok"),
        )

    assert excinfo.value.outcome.reverted
    assert not excinfo.value.outcome.confirmed
    assert synced == []


def test_receipt_timeout_raises_confirmation_error() -> None:
    eth = StubEth()
    eth.wait_error = TimeExhausted("not mined")

    with pytest.raises(ConfirmationError) as excinfo:
        _pipeline().submit(_connection(eth), ACCOUNT, _built())

    assert excinfo.value.outcome.hash == "0x" + "ab" * 32
    assert not excinfo.value.outcome.confirmed


def test_failed_broadcast_still_consumes_nonce() -> None:
    tracker = NonceTracker()
    eth = StubEth(pending=7)
    eth.send_error = ValueError("nonce too low")

    with pytest.raises(ValueError):
        _pipeline(tracker).submit(_connection(eth), ACCOUNT, _built())

    assert tracker.snapshot() == {ACCOUNT.address: 7}
    eth.send_error = None
    _pipeline(tracker).submit(_connection(eth), ACCOUNT, _built())
    assert tracker.snapshot() == {ACCOUNT.address: 8}


def test_current_gas_price_defaults_to_one_gwei() -> None:
    assert current_gas_price(_connection(StubEth(gas_price=0))) == 10**9
    assert current_gas_price(_connection(StubEth(gas_price=5))) == 5
