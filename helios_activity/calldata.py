"""Calldata encoders for the bridge, stake and approve calls."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any

from eth_abi import encode as abi_encode
from eth_utils import is_address, to_checksum_address

from .config import HeliosSettings

TOKEN_DECIMALS = 18
UINT256_MAX = 2**256 - 1
WORD_SIZE = 32

BRIDGE_SELECTOR = bytes.fromhex("7ae4a8ff")
STAKE_SELECTOR = bytes.fromhex("f5e56040")
APPROVE_SELECTOR = bytes.fromhex("095ea7b3")

# Byte offset of the recipient string, counted from the start of the arguments.
BRIDGE_RECIPIENT_OFFSET = 0xA0
BRIDGE_GAS_PARAM = 10**9
STAKE_MARKER = b"ahelios"


class EncodingError(ValueError):
    """Raised when an amount or argument cannot be encoded."""


class InvalidAddressError(ValueError):
    """Raised when an address is not a well-formed 20-byte hex address."""


@dataclass
class BuiltTransaction:
    """Unsigned call ready for the submission pipeline."""

    to: str
    data: bytes
    gas_limit: int
    label: str
    amount: int = 0
    value: int = 0

    @property
    def data_hex(self) -> str:
        return "0x" + self.data.hex()


@dataclass
class BridgePayload:
    dest_chain_id: int
    token_address: str
    amount: int
    gas_param: int
    recipient: str


def require_address(address: Any, *, role: str = "address") -> str:
    """Return ``address`` checksummed or raise :class:`InvalidAddressError`."""

    if not isinstance(address, str) or not is_address(address):
        raise InvalidAddressError(f"Invalid {role}: {address}")
    return to_checksum_address(address)


def to_token_units(amount: Any, decimals: int = TOKEN_DECIMALS) -> int:
    """Convert a decimal token amount into its integer base-unit value."""

    try:
        value = Decimal(str(amount).strip())
    except (InvalidOperation, ValueError) as exc:
        raise EncodingError(f"Invalid amount: {amount!r}") from exc
    if not value.is_finite() or value <= 0:
        raise EncodingError(f"Amount must be positive, got {amount!r}")

    scaled = value.scaleb(decimals)
    if scaled != scaled.to_integral_value():
        raise EncodingError(f"Amount {amount!r} has more than {decimals} decimal places")
    units = int(scaled)
    if units > UINT256_MAX:
        raise EncodingError(f"Amount {amount!r} overflows uint256")
    return units


def from_token_units(units: int, decimals: int = TOKEN_DECIMALS) -> Decimal:
    return Decimal(int(units)).scaleb(-decimals)


def _word(value: int) -> bytes:
    if value < 0 or value > UINT256_MAX:
        raise EncodingError(f"Value {value} does not fit in a uint256 word")
    return value.to_bytes(WORD_SIZE, "big")


def _address_word(address: str) -> bytes:
    return bytes.fromhex(address[2:]).rjust(WORD_SIZE, b"\x00")


def _padded(data: bytes) -> bytes:
    return data + b"\x00" * (-len(data) % WORD_SIZE)


def encode_bridge_payload(
    dest_chain_id: int,
    token_address: str,
    amount: int,
    recipient: str,
    *,
    gas_param: int = BRIDGE_GAS_PARAM,
) -> bytes:
    """Pack the bridge router call field by field.

    Layout after the selector, one 32-byte word each: destination chain id,
    offset of the recipient string, token address, amount, gas parameter,
    recipient length; then the lowercase ``0x`` recipient as ASCII, right
    padded to a word boundary.
    """

    token = require_address(token_address, role="token address")
    recipient_address = require_address(recipient, role="recipient")
    recipient_text = "0x" + recipient_address[2:].lower()
    recipient_bytes = recipient_text.encode("ascii")
    return b"".join(
        [
            BRIDGE_SELECTOR,
            _word(dest_chain_id),
            _word(BRIDGE_RECIPIENT_OFFSET),
            _address_word(token),
            _word(amount),
            _word(gas_param),
            _word(len(recipient_bytes)),
            _padded(recipient_bytes),
        ]
    )


def decode_bridge_payload(data: bytes) -> BridgePayload:
    """Inverse of :func:`encode_bridge_payload`."""

    if data[:4] != BRIDGE_SELECTOR:
        raise EncodingError(f"Unexpected selector 0x{data[:4].hex()}")
    body = data[4:]
    if len(body) < 6 * WORD_SIZE:
        raise EncodingError("Bridge payload is truncated")

    words = [
        int.from_bytes(body[i * WORD_SIZE:(i + 1) * WORD_SIZE], "big") for i in range(6)
    ]
    dest_chain_id, offset, token_int, amount, gas_param, _ = words
    length_start = offset
    length = int.from_bytes(body[length_start:length_start + WORD_SIZE], "big")
    text_start = length_start + WORD_SIZE
    recipient_bytes = body[text_start:text_start + length]
    if len(recipient_bytes) != length:
        raise EncodingError("Bridge recipient is truncated")

    return BridgePayload(
        dest_chain_id=dest_chain_id,
        token_address=to_checksum_address("0x" + token_int.to_bytes(20, "big").hex()),
        amount=amount,
        gas_param=gas_param,
        recipient=recipient_bytes.decode("ascii"),
    )


def encode_stake_payload(sender: str, validator: str, amount: int) -> bytes:
    sender_address = require_address(sender, role="sender address")
    validator_address = require_address(validator, role="validator address")
    try:
        args = abi_encode(
            ["address", "address", "uint256", "bytes"],
            [sender_address, validator_address, amount, STAKE_MARKER],
        )
    except (TypeError, ValueError, OverflowError) as exc:
        raise EncodingError(f"Failed to encode stake arguments: {exc}") from exc
    return STAKE_SELECTOR + args


def encode_approve_payload(spender: str, amount: int) -> bytes:
    spender_address = require_address(spender, role="spender address")
    try:
        args = abi_encode(["address", "uint256"], [spender_address, amount])
    except (TypeError, ValueError, OverflowError) as exc:
        raise EncodingError(f"Failed to encode approve arguments: {exc}") from exc
    return APPROVE_SELECTOR + args


def build_bridge_transaction(
    settings: HeliosSettings,
    sender: str,
    amount: Any,
    dest_chain_id: int,
    recipient: str | None = None,
) -> BuiltTransaction:
    sender_address = require_address(sender, role="sender address")
    units = to_token_units(amount)
    data = encode_bridge_payload(
        dest_chain_id, settings.token_address, units, recipient or sender_address
    )
    return BuiltTransaction(
        to=require_address(settings.bridge_router, role="bridge router"),
        data=data,
        gas_limit=settings.gas_limit,
        label="Bridge",
        amount=units,
    )


def build_stake_transaction(
    settings: HeliosSettings, sender: str, validator: str, amount: Any
) -> BuiltTransaction:
    units = to_token_units(amount)
    return BuiltTransaction(
        to=require_address(settings.stake_router, role="stake router"),
        data=encode_stake_payload(sender, validator, units),
        gas_limit=settings.gas_limit,
        label="Stake",
        amount=units,
    )


def build_approve_transaction(
    settings: HeliosSettings, spender: str, amount: int, *, gas_limit: int = 100_000
) -> BuiltTransaction:
    return BuiltTransaction(
        to=require_address(settings.token_address, role="token address"),
        data=encode_approve_payload(spender, amount),
        gas_limit=gas_limit,
        label="Approve",
        amount=amount,
    )
