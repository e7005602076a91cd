"""Testnet faucet claims for every loaded wallet."""

from __future__ import annotations

import logging
from typing import Callable, Sequence

import requests
from eth_account.signers.local import LocalAccount
from requests import RequestException

from .credentials import short_address

logger = logging.getLogger(__name__)

FAUCET_DELAY_SECONDS = 2.0


def claim_faucet(
    address: str,
    faucet_url: str,
    *,
    session: requests.Session | None = None,
    timeout: float = 30.0,
) -> str | None:
    """Request faucet funds for ``address``; return the tx hash or ``None``."""

    http = session or requests.Session()
    try:
        response = http.post(faucet_url, json={"address": address}, timeout=timeout)
        body = response.json()
    except (RequestException, ValueError) as exc:
        logger.error("Error faucet %s: %s", short_address(address), exc)
        return None

    tx_hash = body.get("txHash") if isinstance(body, dict) else None
    if tx_hash:
        logger.info("Faucet success: %s | TX: %s", short_address(address), tx_hash)
        return tx_hash
    message = body.get("message") if isinstance(body, dict) else None
    logger.error("Faucet failed: %s | %s", short_address(address), message or "No response")
    return None


def claim_faucet_all(
    accounts: Sequence[LocalAccount],
    faucet_url: str,
    *,
    sleep: Callable[[float], object],
    session: requests.Session | None = None,
) -> dict[str, str | None]:
    """Claim for each wallet in turn; one wallet's failure never stops the rest."""

    logger.info("Starting faucet claim for all wallets...")
    http = session or requests.Session()
    results: dict[str, str | None] = {}
    for index, account in enumerate(accounts):
        results[account.address] = claim_faucet(account.address, faucet_url, session=http)
        if index < len(accounts) - 1 and sleep(FAUCET_DELAY_SECONDS) is False:
            break
    logger.info("Finished faucet claims for all wallets.")
    return results
