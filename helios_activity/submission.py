"""Sign, broadcast and confirm built transactions."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

from eth_account.signers.local import LocalAccount
from web3.exceptions import TimeExhausted

from .calldata import BuiltTransaction
from .nonces import NonceTracker
from .rpc_client import MalformedResponseError, RPCError, RPCTransportError
from .transport import Connection

logger = logging.getLogger(__name__)

DEFAULT_GAS_PRICE_WEI = 10**9
DEFAULT_RECEIPT_TIMEOUT = 180.0


@dataclass
class TransactionOutcome:
    hash: str
    confirmed: bool = False
    reverted: bool = False
    error: str | None = None
    receipt: Any = None


class ConfirmationError(RuntimeError):
    """Raised when no receipt could be obtained for a broadcast transaction."""

    def __init__(self, message: str, outcome: TransactionOutcome | None = None) -> None:
        super().__init__(message)
        self.outcome = outcome


class TransactionRevertedError(RuntimeError):
    """Raised when a transaction was mined with a failure status."""

    def __init__(self, receipt: Any, outcome: TransactionOutcome | None = None) -> None:
        super().__init__("Transaction reverted")
        self.receipt = receipt
        self.outcome = outcome


def short_hash(tx_hash: str) -> str:
    return f"{tx_hash[:6]}...{tx_hash[-4:]}"


def _to_hex(value: Any) -> str:
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    if hasattr(value, "hex"):
        text = value.hex()
        return text if text.startswith("0x") else f"0x{text}"
    return str(value)


def current_gas_price(connection: Connection) -> int:
    """Return the node's gas price, or 1 gwei when it reports none."""

    price = connection.web3.eth.gas_price
    if not price:
        logger.info("Using default gas price: 1 gwei")
        return DEFAULT_GAS_PRICE_WEI
    return int(price)


class SubmissionPipeline:
    """Submit one transaction at a time and wait for its receipt.

    Submission is not idempotent: every call consumes a fresh nonce, so a
    failed submit must be rebuilt rather than replayed.
    """

    def __init__(
        self,
        nonce_tracker: NonceTracker,
        chain_id: int,
        *,
        receipt_timeout: float = DEFAULT_RECEIPT_TIMEOUT,
    ) -> None:
        self.nonce_tracker = nonce_tracker
        self.chain_id = chain_id
        self.receipt_timeout = receipt_timeout

    def submit(
        self,
        connection: Connection,
        account: LocalAccount,
        built: BuiltTransaction,
        sync: Optional[Callable[[], Any]] = None,
    ) -> TransactionOutcome:
        web3 = connection.web3
        nonce = self.nonce_tracker.next_nonce(web3, account.address)
        tx = {
            "to": built.to,
            "data": built.data_hex,
            "value": built.value,
            "gas": built.gas_limit,
            "gasPrice": current_gas_price(connection),
            "chainId": self.chain_id,
            "nonce": nonce,
        }
        logger.debug("%s transaction object: %s", built.label, tx)

        # The nonce stays consumed if the broadcast fails.
        signed = account.sign_transaction(tx)
        tx_hash = _to_hex(web3.eth.send_raw_transaction(signed.raw_transaction))
        logger.info("%s transaction sent: %s", built.label, short_hash(tx_hash))

        outcome = TransactionOutcome(hash=tx_hash)
        try:
            receipt = web3.eth.wait_for_transaction_receipt(
                tx_hash, timeout=self.receipt_timeout
            )
        except TimeExhausted as exc:
            outcome.error = str(exc)
            raise ConfirmationError(
                f"{built.label} transaction {short_hash(tx_hash)} was not confirmed "
                f"within {self.receipt_timeout:.0f}s",
                outcome,
            ) from exc
        if receipt is None:
            outcome.error = "missing receipt"
            raise ConfirmationError(
                f"No receipt for {built.label} transaction {short_hash(tx_hash)}", outcome
            )

        outcome.receipt = receipt
        if receipt.get("status") == 0:
            outcome.reverted = True
            outcome.error = "Transaction reverted"
            logger.error("%s transaction reverted: %s", built.label, dict(receipt))
            raise TransactionRevertedError(receipt, outcome)

        outcome.confirmed = True
        if sync is not None:
            try:
                sync()
            except (RPCError, RPCTransportError, MalformedResponseError) as exc:
                logger.error("Failed to sync with portal via JSON-RPC: %s", exc)
        return outcome
