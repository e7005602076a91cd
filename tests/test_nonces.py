from types import SimpleNamespace

import pytest

from helios_activity.calldata import InvalidAddressError
from helios_activity.cancellation import CancellationToken, StoppedError
from helios_activity.nonces import NonceTracker

ADDRESS = "0x1234567890abcdef1234567890abcdef12345678"
OTHER = "0x882f8a95409c127f0de7ba83b4dfa0096c3d8d79"


class StubEth:
    def __init__(self, *counts: int) -> None:
        self.counts = list(counts)
        self.calls: list[tuple[str, str]] = []

    def get_transaction_count(self, address, block_identifier):
        self.calls.append((address, block_identifier))
        if len(self.counts) > 1:
            return self.counts.pop(0)
        return self.counts[0]


def _web3(*counts: int) -> SimpleNamespace:
    return SimpleNamespace(eth=StubEth(*counts))


def test_nonces_increase_while_pending_count_lags() -> None:
    web3 = _web3(5)
    tracker = NonceTracker()

    assert [tracker.next_nonce(web3, ADDRESS) for _ in range(3)] == [5, 6, 7]
    assert web3.eth.calls[0] == (ADDRESS, "pending")


def test_nonces_survive_pending_count_regression_and_jump_ahead() -> None:
    web3 = _web3(5, 5, 3, 9)
    tracker = NonceTracker()

    assert [tracker.next_nonce(web3, ADDRESS) for _ in range(4)] == [5, 6, 7, 9]


def test_first_nonce_for_fresh_account_is_zero() -> None:
    tracker = NonceTracker()

    assert tracker.next_nonce(_web3(0), ADDRESS) == 0
    assert tracker.next_nonce(_web3(0), ADDRESS) == 1


def test_addresses_are_tracked_independently() -> None:
    tracker = NonceTracker()
    web3 = _web3(2)

    tracker.next_nonce(web3, ADDRESS)
    tracker.next_nonce(web3, ADDRESS)

    assert tracker.next_nonce(web3, OTHER) == 2
    assert tracker.snapshot() == {ADDRESS: 3, OTHER: 2}


def test_invalid_address_is_rejected_without_network_call() -> None:
    web3 = _web3(1)

    with pytest.raises(InvalidAddressError):
        NonceTracker().next_nonce(web3, "0xnot-an-address")
    with pytest.raises(InvalidAddressError):
        NonceTracker().next_nonce(web3, "")

    assert web3.eth.calls == []


def test_stop_request_short_circuits_before_network_call() -> None:
    token = CancellationToken()
    token.cancel()
    web3 = _web3(1)

    with pytest.raises(StoppedError):
        NonceTracker(cancel=token).next_nonce(web3, ADDRESS)

    assert web3.eth.calls == []


def test_reset_forgets_local_history() -> None:
    tracker = NonceTracker()
    web3 = _web3(4)
    tracker.next_nonce(web3, ADDRESS)
    tracker.next_nonce(web3, ADDRESS)

    tracker.reset()

    assert len(tracker) == 0
    assert tracker.next_nonce(web3, ADDRESS) == 4
