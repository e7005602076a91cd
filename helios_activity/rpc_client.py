"""Raw JSON-RPC client for the Helios portal methods."""

from __future__ import annotations

"""Typed JSON-RPC client for Helios nodes.

Standard Ethereum reads and writes go through :mod:`web3`; this client covers
the Helios specific portal methods that web3 has no wrapper for. Every request
carries a fresh uuid so responses can be correlated in node logs, and every
response is validated before its ``result`` is handed back.
"""

import json
import logging
import uuid
from typing import Any, Dict, Optional

import requests
from requests import RequestException

logger = logging.getLogger(__name__)

TRANSFER_HISTORY_METHOD = "eth_getHyperionAccountTransferTxsByPageAndSize"
LAST_TRANSACTIONS_METHOD = "eth_getAccountLastTransactionsInfo"


class RPCError(RuntimeError):
    """Raised when the Helios node responds with an RPC error."""

    def __init__(self, code: int, message: str) -> None:
        super().__init__(f"RPC error {code}: {message}")
        self.code = code
        self.message = message


class RPCTransportError(RuntimeError):
    """Raised when the RPC endpoint is unreachable or answers with an HTTP error."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class MalformedResponseError(RuntimeError):
    """Raised when a response is not JSON or carries no result."""


def proxy_mapping(proxy_url: str | None) -> Dict[str, str] | None:
    """Translate a proxy URL into a requests ``proxies`` mapping.

    ``socks4://``/``socks5://`` URLs are served by the PySocks transport that
    ships with ``requests[socks]``; ``http://`` and ``https://`` URLs use HTTP
    CONNECT tunnelling. ``socks5://`` is upgraded to ``socks5h://`` so host
    names are resolved on the proxy side.
    """

    if not proxy_url:
        return None
    url = proxy_url.strip()
    if url.startswith("socks5://"):
        url = "socks5h://" + url[len("socks5://"):]
    elif not url.startswith(("socks", "http://", "https://")):
        url = f"http://{url}"
    return {"http": url, "https": url}


class HeliosRPCClient:
    """Thin JSON-RPC client bound to one endpoint and one optional proxy."""

    def __init__(
        self,
        url: str,
        *,
        proxy_url: str | None = None,
        timeout: float = 30.0,
        session: requests.Session | None = None,
    ) -> None:
        self.url = url
        self.proxy_url = proxy_url
        self.timeout = timeout
        self._session = session or requests.Session()
        self._proxies = proxy_mapping(proxy_url)

    def call(self, method: str, params: Optional[list[Any]] = None) -> Any:
        """Perform a JSON-RPC request and return its ``result``."""

        payload = {
            "jsonrpc": "2.0",
            "id": str(uuid.uuid4()),
            "method": method,
            "params": params or [],
        }
        logger.debug("RPC call %s params=%s", method, params)
        try:
            response = self._session.post(
                self.url,
                data=json.dumps(payload),
                headers={"content-type": "application/json"},
                proxies=self._proxies,
                timeout=self.timeout,
            )
        except RequestException as exc:
            logger.error("JSON-RPC call failed (%s): %s", method, exc)
            raise RPCTransportError(f"RPC connection failed: {exc}") from exc

        if not response.ok:
            logger.error(
                "JSON-RPC call failed (%s): HTTP %s", method, response.status_code
            )
            raise RPCTransportError(
                f"RPC server returned HTTP {response.status_code}",
                status_code=response.status_code,
            )

        try:
            body = response.json()
        except ValueError as exc:
            logger.debug("RPC JSON parse error: %s", response.text, exc_info=True)
            raise MalformedResponseError("RPC server returned malformed JSON") from exc
        if not isinstance(body, dict):
            raise MalformedResponseError("RPC server returned a non-object response")

        if body.get("error"):
            error = body["error"]
            if not isinstance(error, dict):
                error = {"message": str(error)}
            exc = RPCError(error.get("code", -1), error.get("message", "unknown"))
            logger.error("JSON-RPC call failed (%s): %s", method, exc)
            raise exc

        result = body.get("result")
        # An empty string or empty list is a legitimate result; null is not.
        if result is None:
            logger.error("JSON-RPC call failed (%s): no result in RPC response", method)
            raise MalformedResponseError(f"No result in RPC response for {method}")
        return result

    # Portal sync wrappers ---------------------------------------------------

    def get_account_transfer_txs(self, address: str, page: int = 1, size: int = 10) -> Any:
        return self.call(TRANSFER_HISTORY_METHOD, [address, hex(page), hex(size)])

    def get_account_last_transactions_info(self, address: str) -> Any:
        return self.call(LAST_TRANSACTIONS_METHOD, [address])
