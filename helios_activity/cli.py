"""Command line interface for the Helios activity runner."""

from __future__ import annotations

import argparse
import json
import logging
import os
import signal
import sys
import threading
import time
from typing import Sequence

from .calldata import from_token_units
from .config import ActivityConfigStore, ConfigurationError, load_settings
from .credentials import (
    DEFAULT_KEYS_PATH,
    DEFAULT_PROXIES_PATH,
    load_accounts,
    load_proxies,
    proxy_for_index,
    short_address,
)
from .faucet import claim_faucet_all
from .nonces import NonceTracker
from .operations import AccountSession
from .scheduler import RECOVERABLE_ERRORS, CycleScheduler, CycleState
from .submission import SubmissionPipeline
from .transport import open_connection

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"
COMPACT_JSON_SEPARATORS = (",", ":")


class CLIError(RuntimeError):
    """Raised when CLI arguments are invalid."""


def _should_debug() -> bool:
    return bool(int(os.environ.get("HELIOS_DEBUG", "0") or 0))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Helios testnet bridge and stake runner")
    parser.add_argument("--keys", default=str(DEFAULT_KEYS_PATH), help="Private key file (one per line)")
    parser.add_argument("--proxies", default=str(DEFAULT_PROXIES_PATH), help="Proxy list file (one per line)")
    parser.add_argument("--config", default="activity.yaml", help="YAML config file")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", help="run the daily bridge/stake cycle")
    run_parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single cycle and exit instead of repeating every 24 hours",
    )

    config_parser = subparsers.add_parser("config", help="show or edit the activity config")
    config_sub = config_parser.add_subparsers(dest="config_command", required=True)
    config_sub.add_parser("show", help="print the current activity config")
    set_parser = config_sub.add_parser("set", help="update activity config values")
    set_parser.add_argument("--bridge-repetitions", type=float, help="Bridge repetitions per account")
    set_parser.add_argument(
        "--bridge-range", type=float, nargs=2, metavar=("MIN", "MAX"), help="HLS range for bridge"
    )
    set_parser.add_argument("--stake-repetitions", type=float, help="Stake repetitions per account")
    set_parser.add_argument(
        "--stake-range", type=float, nargs=2, metavar=("MIN", "MAX"), help="HLS range for stake"
    )

    subparsers.add_parser("balances", help="print the HLS balance of every account")
    subparsers.add_parser("faucet", help="claim the testnet faucet for every account")
    return parser


def _config_changes(args: argparse.Namespace) -> dict:
    changes: dict = {}
    if args.bridge_repetitions is not None:
        changes["bridge_repetitions"] = args.bridge_repetitions
    if args.bridge_range is not None:
        changes["min_hls_bridge"], changes["max_hls_bridge"] = args.bridge_range
    if args.stake_repetitions is not None:
        changes["stake_repetitions"] = args.stake_repetitions
    if args.stake_range is not None:
        changes["min_hls_stake"], changes["max_hls_stake"] = args.stake_range
    if not changes:
        raise CLIError("config set needs at least one value to change")
    return changes


def cmd_config(args: argparse.Namespace) -> None:
    store = ActivityConfigStore(args.config)
    if args.config_command == "set":
        store.update(**_config_changes(args))
    print(json.dumps(store.current.to_dict(), indent=2))


def cmd_run(args: argparse.Namespace) -> int:
    settings = load_settings(config_path=args.config)
    store = ActivityConfigStore(args.config)
    accounts = load_accounts(args.keys)
    proxies = load_proxies(args.proxies)
    scheduler = CycleScheduler(accounts, proxies, store, settings, recurring=not args.once)
    stop_requested = threading.Event()

    def _stop(_signum, _frame) -> None:
        # Only flag here; the scheduler lock may be held by this thread.
        stop_requested.set()

    signal.signal(signal.SIGTERM, _stop)
    if not scheduler.start():
        return 1

    snapshot = scheduler.status_snapshot()
    logger.info(
        "Status: %s | Total Accounts: %d | Auto Bridge: %dx | Auto Stake: %dx",
        snapshot.state,
        snapshot.account_count,
        snapshot.bridge_repetitions,
        snapshot.stake_repetitions,
    )
    try:
        wait_for_scheduler(scheduler, stop_requested)
    except KeyboardInterrupt:
        scheduler.request_stop()
        scheduler.wait_until_idle()
    if scheduler.failure is not None:
        return 1
    return 0 if scheduler.state is CycleState.IDLE else 1


def wait_for_scheduler(
    scheduler: CycleScheduler, stop_requested: threading.Event, poll_seconds: float = 1.0
) -> None:
    """Block until the scheduler is idle, forwarding flagged stop requests."""

    while not scheduler.wait_until_idle(timeout=poll_seconds):
        if stop_requested.is_set():
            stop_requested.clear()
            scheduler.request_stop()


def cmd_balances(args: argparse.Namespace) -> None:
    settings = load_settings(config_path=args.config)
    accounts = load_accounts(args.keys)
    proxies = load_proxies(args.proxies)
    pipeline = SubmissionPipeline(NonceTracker(), settings.chain_id)
    for index, account in enumerate(accounts):
        try:
            connection = open_connection(settings, proxy_for_index(proxies, index))
            session = AccountSession(connection, account, pipeline, settings)
            balance = f"{from_token_units(session.token_balance()):.4f}"
        except RECOVERABLE_ERRORS as exc:
            logger.error("Failed to fetch wallet data for account #%d: %s", index + 1, exc)
            balance = "N/A"
        print(f"{index + 1:>3}  {short_address(account.address)}  {balance}")


def cmd_faucet(args: argparse.Namespace) -> None:
    settings = load_settings(config_path=args.config)
    accounts = load_accounts(args.keys)
    results = claim_faucet_all(accounts, settings.faucet_url, sleep=time.sleep)
    print(json.dumps(results, separators=COMPACT_JSON_SEPARATORS))


def main(argv: Sequence[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.debug or _should_debug() else logging.INFO,
        format=LOG_FORMAT,
    )
    try:
        if args.command == "run":
            status = cmd_run(args)
            if status:
                parser.exit(status, "error: daily activity did not finish cleanly\n")
        elif args.command == "config":
            cmd_config(args)
        elif args.command == "balances":
            cmd_balances(args)
        elif args.command == "faucet":
            cmd_faucet(args)
        else:  # pragma: no cover - argparse enforces choices
            raise CLIError(f"Unknown command: {args.command}")
    except KeyboardInterrupt:  # pragma: no cover - interactive use
        logger.info("Interrupted by user")
    except (CLIError, ConfigurationError) as exc:
        parser.exit(1, f"error: {exc}\n")


if __name__ == "__main__":
    main(sys.argv[1:])
