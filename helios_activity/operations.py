"""Bridge and stake round trips for one connected account."""

from __future__ import annotations

import logging
from typing import Any

from eth_account.signers.local import LocalAccount

from .calldata import (
    build_approve_transaction,
    build_bridge_transaction,
    build_stake_transaction,
    require_address,
)
from .config import HeliosSettings, Validator
from .submission import SubmissionPipeline, TransactionOutcome, current_gas_price
from .transport import Connection

logger = logging.getLogger(__name__)

ERC20_ABI = [
    {
        "name": "balanceOf",
        "type": "function",
        "stateMutability": "view",
        "inputs": [{"name": "owner", "type": "address"}],
        "outputs": [{"name": "", "type": "uint256"}],
    },
    {
        "name": "allowance",
        "type": "function",
        "stateMutability": "view",
        "inputs": [
            {"name": "owner", "type": "address"},
            {"name": "spender", "type": "address"},
        ],
        "outputs": [{"name": "", "type": "uint256"}],
    },
]


class AccountSession:
    """Chain reads and operation round trips for ``account`` over ``connection``."""

    def __init__(
        self,
        connection: Connection,
        account: LocalAccount,
        pipeline: SubmissionPipeline,
        settings: HeliosSettings,
    ) -> None:
        self.connection = connection
        self.account = account
        self.pipeline = pipeline
        self.settings = settings
        self.address = require_address(account.address, role="wallet address")
        self._token = connection.web3.eth.contract(
            address=require_address(settings.token_address, role="token address"),
            abi=ERC20_ABI,
        )

    # Reads ----------------------------------------------------------------

    def native_balance(self) -> int:
        return int(self.connection.web3.eth.get_balance(self.address))

    def token_balance(self) -> int:
        return int(self._token.functions.balanceOf(self.address).call())

    def allowance(self, spender: str) -> int:
        return int(self._token.functions.allowance(self.address, spender).call())

    def estimated_gas_cost(self) -> int:
        return current_gas_price(self.connection) * self.settings.gas_limit

    # Operations -----------------------------------------------------------

    def bridge(self, amount: Any, dest_chain_id: int, recipient: str | None = None) -> TransactionOutcome:
        """Bridge ``amount`` HLS to ``dest_chain_id``, approving the router first if needed."""

        built = build_bridge_transaction(
            self.settings, self.address, amount, dest_chain_id, recipient
        )
        logger.debug(
            "Building bridge transaction for amount %s HLS to chain %s", amount, dest_chain_id
        )

        allowance = self.allowance(built.to)
        logger.debug("Allowance: %s", allowance)
        if allowance < built.amount:
            logger.info("Approving router to spend %s HLS", amount)
            approve = build_approve_transaction(self.settings, built.to, built.amount)
            self.pipeline.submit(self.connection, self.account, approve)
            logger.info("Approval successful")

        outcome = self.pipeline.submit(
            self.connection,
            self.account,
            built,
            sync=lambda: self.connection.rpc.get_account_transfer_txs(self.address),
        )
        logger.info("Bridge Transaction Confirmed And Synced With Portal")
        return outcome

    def stake(self, amount: Any, validator: Validator) -> TransactionOutcome:
        built = build_stake_transaction(self.settings, self.address, validator.address, amount)
        logger.debug(
            "Building stake transaction for amount %s HLS to validator %s", amount, validator.name
        )
        outcome = self.pipeline.submit(
            self.connection,
            self.account,
            built,
            sync=lambda: self.connection.rpc.get_account_last_transactions_info(self.address),
        )
        logger.info("Stake Transaction Confirmed And Synced With Portal")
        return outcome
