"""Helios testnet bridge and stake activity runner."""

from .calldata import (
    BuiltTransaction,
    EncodingError,
    InvalidAddressError,
    build_bridge_transaction,
    build_stake_transaction,
    decode_bridge_payload,
    encode_bridge_payload,
    encode_stake_payload,
)
from .cancellation import CancellationToken, StoppedError
from .config import ActivityConfig, ActivityConfigStore, ConfigurationError, HeliosSettings
from .nonces import NonceTracker
from .rpc_client import HeliosRPCClient, MalformedResponseError, RPCError, RPCTransportError
from .scheduler import CycleScheduler, CycleState, InsufficientBalanceError
from .submission import (
    ConfirmationError,
    SubmissionPipeline,
    TransactionOutcome,
    TransactionRevertedError,
)
from .transport import Connection, TransportError, open_connection

__all__ = [
    "ActivityConfig",
    "ActivityConfigStore",
    "BuiltTransaction",
    "CancellationToken",
    "ConfigurationError",
    "ConfirmationError",
    "Connection",
    "CycleScheduler",
    "CycleState",
    "EncodingError",
    "HeliosRPCClient",
    "HeliosSettings",
    "InsufficientBalanceError",
    "InvalidAddressError",
    "MalformedResponseError",
    "NonceTracker",
    "RPCError",
    "RPCTransportError",
    "StoppedError",
    "SubmissionPipeline",
    "TransactionOutcome",
    "TransactionRevertedError",
    "TransportError",
    "build_bridge_transaction",
    "build_stake_transaction",
    "decode_bridge_payload",
    "encode_bridge_payload",
    "encode_stake_payload",
    "open_connection",
]
