"""Proxy-aware connection setup with retry and direct fallback."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

from requests import RequestException
from web3 import Web3
from web3.exceptions import Web3Exception

from .cancellation import CancellationToken, StoppedError
from .config import HeliosSettings
from .rpc_client import HeliosRPCClient, proxy_mapping

logger = logging.getLogger(__name__)

CONNECT_ATTEMPTS = 3
CONNECT_BACKOFF_SECONDS = 1.0


class TransportError(RuntimeError):
    """Raised when no connection to the RPC endpoint could be established."""


@dataclass
class Connection:
    """A verified web3 handle plus a raw RPC client sharing one network path."""

    web3: Web3
    rpc: HeliosRPCClient
    proxy_url: str | None = None

    @property
    def direct(self) -> bool:
        return self.proxy_url is None


Web3Factory = Callable[[HeliosSettings, Optional[str]], Web3]


def build_web3(settings: HeliosSettings, proxy_url: str | None) -> Web3:
    request_kwargs: dict = {"timeout": settings.request_timeout}
    proxies = proxy_mapping(proxy_url)
    if proxies:
        request_kwargs["proxies"] = proxies
    return Web3(Web3.HTTPProvider(settings.rpc_url, request_kwargs=request_kwargs))


def _verify_chain(web3: Web3, settings: HeliosSettings) -> None:
    chain_id = int(web3.eth.chain_id)
    if chain_id != settings.chain_id:
        raise ValueError(
            f"Network chain ID mismatch: expected {settings.chain_id}, got {chain_id}"
        )


def _connect_once(
    settings: HeliosSettings, proxy_url: str | None, web3_factory: Web3Factory
) -> Connection:
    web3 = web3_factory(settings, proxy_url)
    _verify_chain(web3, settings)
    rpc = HeliosRPCClient(
        settings.rpc_url, proxy_url=proxy_url, timeout=settings.request_timeout
    )
    return Connection(web3=web3, rpc=rpc, proxy_url=proxy_url)


def open_connection(
    settings: HeliosSettings,
    proxy_url: str | None = None,
    *,
    attempts: int = CONNECT_ATTEMPTS,
    backoff_seconds: float = CONNECT_BACKOFF_SECONDS,
    sleep: Callable[[float], object] = time.sleep,
    web3_factory: Web3Factory = build_web3,
    cancel: CancellationToken | None = None,
) -> Connection:
    """Open a connection through ``proxy_url``, falling back to a direct one.

    Every failed attempt is logged with its number and reason. When all
    proxied attempts fail a single direct attempt is made; if that fails too
    :class:`TransportError` is raised and nothing is retried further.

    A ``sleep`` returning ``False``, or a set ``cancel`` token, aborts the
    remaining attempts and the fallback with :class:`StoppedError`.
    """

    last_error: Exception | None = None
    for attempt in range(1, attempts + 1):
        if cancel is not None:
            cancel.raise_if_stopped()
        try:
            return _connect_once(settings, proxy_url, web3_factory)
        except (RequestException, Web3Exception, ValueError, OSError) as exc:
            last_error = exc
            logger.error(
                "Attempt %d/%d failed to initialize provider: %s", attempt, attempts, exc
            )
            if attempt < attempts and sleep(backoff_seconds) is False:
                raise StoppedError("Connection stopped due to stop request") from exc

    if cancel is not None:
        cancel.raise_if_stopped()
    if proxy_url is None:
        raise TransportError(f"Failed to connect to {settings.rpc_url}: {last_error}") from last_error

    logger.warning("Proxy failed, falling back to direct connection")
    try:
        return _connect_once(settings, None, web3_factory)
    except (RequestException, Web3Exception, ValueError, OSError) as exc:
        logger.error("Fallback failed: %s", exc)
        raise TransportError(f"Fallback connection failed: {exc}") from exc
