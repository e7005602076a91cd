"""Private key and proxy list loading."""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Sequence

from eth_account import Account
from eth_account.signers.local import LocalAccount

logger = logging.getLogger(__name__)

PRIVATE_KEY_PATTERN = re.compile(r"^(0x)?[0-9a-fA-F]{64}$")
DEFAULT_KEYS_PATH = Path("pk.txt")
DEFAULT_PROXIES_PATH = Path("proxy.txt")


def parse_private_keys(text: str) -> list[str]:
    """Return the well-formed private keys found in newline separated ``text``."""

    keys = [line.strip() for line in text.splitlines()]
    return [key for key in keys if PRIVATE_KEY_PATTERN.match(key)]


def load_accounts(path: str | Path = DEFAULT_KEYS_PATH) -> list[LocalAccount]:
    """Load signing accounts from a key file.

    A missing file or a file without a single valid key is logged and yields an
    empty list; the caller keeps running with zero accounts.
    """

    key_path = Path(path).expanduser()
    try:
        keys = parse_private_keys(key_path.read_text())
    except OSError as exc:
        logger.error("Failed to load private keys: %s", exc)
        return []
    if not keys:
        logger.error("Failed to load private keys: no valid private keys in %s", key_path)
        return []

    accounts: list[LocalAccount] = []
    for line_number, key in enumerate(keys, start=1):
        try:
            accounts.append(Account.from_key(key if key.startswith("0x") else f"0x{key}"))
        except ValueError as exc:
            logger.error("Skipping private key #%d in %s: %s", line_number, key_path, exc)
    if not accounts:
        logger.error("Failed to load private keys: no usable private keys in %s", key_path)
        return []
    logger.info("Loaded %d private keys from %s", len(accounts), key_path)
    return accounts


def load_proxies(path: str | Path = DEFAULT_PROXIES_PATH) -> list[str]:
    proxy_path = Path(path).expanduser()
    if not proxy_path.exists():
        logger.info("No %s found, running without proxy.", proxy_path)
        return []
    try:
        proxies = [line.strip() for line in proxy_path.read_text().splitlines() if line.strip()]
    except OSError as exc:
        logger.info("Failed to load proxy: %s", exc)
        return []
    if not proxies:
        logger.info("No proxy found in %s, running without proxy.", proxy_path)
        return []
    logger.info("Loaded %d proxies from %s", len(proxies), proxy_path)
    return proxies


def proxy_for_index(proxies: Sequence[str], index: int) -> str | None:
    """Return the proxy assigned to account ``index`` (round robin)."""

    if not proxies:
        return None
    return proxies[index % len(proxies)]


def short_address(address: str | None) -> str:
    if not address:
        return "N/A"
    return f"{address[:6]}...{address[-4:]}"
