"""Per-address nonce bookkeeping reconciled against the node's pending count."""

from __future__ import annotations

import logging
from typing import Dict

from web3 import Web3

from .calldata import InvalidAddressError
from .cancellation import CancellationToken
from .credentials import short_address

logger = logging.getLogger(__name__)


class NonceTracker:
    """Hand out strictly increasing nonces per address.

    The node's pending transaction count can lag behind transactions this
    process has just broadcast, so the tracker returns the larger of the
    node's count and its own last value plus one. Handed out nonces are spent
    even if the send that used them fails.

    Callers must not request nonces for the same address concurrently; the
    cycle scheduler guarantees this by processing one transaction at a time.
    """

    def __init__(self, cancel: CancellationToken | None = None) -> None:
        self._cancel = cancel
        self._last_used: Dict[str, int] = {}

    def next_nonce(self, web3: Web3, address: str) -> int:
        if self._cancel is not None and self._cancel.cancelled:
            logger.info("Nonce fetch stopped due to stop request.")
            self._cancel.raise_if_stopped()
        if not address or not Web3.is_address(address):
            logger.error("Invalid wallet address: %s", address)
            raise InvalidAddressError(f"Invalid wallet address: {address}")

        try:
            pending = int(web3.eth.get_transaction_count(address, "pending"))
        except Exception as exc:
            logger.error("Failed to fetch nonce for %s: %s", short_address(address), exc)
            raise

        last_used = self._last_used.get(address, pending - 1)
        nonce = max(pending, last_used + 1)
        self._last_used[address] = nonce
        logger.debug("Fetched nonce %d for %s", nonce, short_address(address))
        return nonce

    def reset(self) -> None:
        self._last_used.clear()

    def snapshot(self) -> Dict[str, int]:
        return dict(self._last_used)

    def __len__(self) -> int:
        return len(self._last_used)
