"""Daily cycle scheduler driving every account through bridge and stake runs."""

from __future__ import annotations

import functools
import logging
import math
import random
import threading
import time
from contextlib import contextmanager
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Iterator, Optional, Sequence

from eth_account.signers.local import LocalAccount
from requests import RequestException
from web3.exceptions import Web3Exception

from .calldata import EncodingError, from_token_units, to_token_units
from .cancellation import CancellationToken, StoppedError
from .config import ActivityConfigStore, HeliosSettings
from .credentials import proxy_for_index, short_address
from .events import StatusSnapshot
from .nonces import NonceTracker
from .operations import AccountSession
from .rpc_client import MalformedResponseError, RPCError, RPCTransportError
from .submission import ConfirmationError, SubmissionPipeline, TransactionRevertedError
from .transport import Connection, TransportError, open_connection

logger = logging.getLogger(__name__)

BRIDGE_DELAY_RANGE = (30, 60)
STAKE_DELAY_RANGE = (30, 60)
PRE_STAKE_DELAY_RANGE = (10, 15)
ACCOUNT_DELAY_SECONDS = 10
CYCLE_INTERVAL_SECONDS = 24 * 60 * 60
DRAIN_POLL_SECONDS = 1.0
AMOUNT_PLACES = 4


class InsufficientBalanceError(RuntimeError):
    """Raised when an account cannot cover an operation's amount or gas."""


# Failures that skip one repetition (or one account) instead of ending the run.
RECOVERABLE_ERRORS = (
    InsufficientBalanceError,
    TransactionRevertedError,
    ConfirmationError,
    RPCError,
    RPCTransportError,
    MalformedResponseError,
    TransportError,
    RequestException,
    Web3Exception,
    ValueError,
)


class CycleState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    STOPPING = "stopping"
    WAITING_FOR_NEXT_CYCLE = "waiting_for_next_cycle"


def random_amount(rng: random.Random, minimum: float, maximum: float, places: int = AMOUNT_PLACES) -> str:
    """Pick an amount in ``[minimum, maximum]`` on a ``places``-decimal grid."""

    scale = 10**places
    low = math.ceil(Decimal(str(minimum)) * scale)
    high = math.floor(Decimal(str(maximum)) * scale)
    if low > high:
        raise EncodingError(
            f"No {places}-decimal amount between {minimum} and {maximum}"
        )
    ticks = rng.randint(low, high)
    return f"{Decimal(ticks).scaleb(-places):.{places}f}"


ConnectFn = Callable[[HeliosSettings, Optional[str]], Connection]
SessionFactory = Callable[[Connection, LocalAccount, SubmissionPipeline, HeliosSettings], Any]


class CycleScheduler:
    """Run the daily cycle and own its run/stop state.

    States move ``IDLE -> RUNNING -> IDLE`` (or ``WAITING_FOR_NEXT_CYCLE`` when
    a recurrence is pending). A stop request moves ``RUNNING`` to ``STOPPING``;
    the drain check returns to ``IDLE`` once no operation or delay is in flight
    and the worker has exited. Accounts are processed strictly one after the
    other, which is what keeps :class:`NonceTracker` safe without locking.
    """

    def __init__(
        self,
        accounts: Sequence[LocalAccount],
        proxies: Sequence[str],
        config_store: ActivityConfigStore,
        settings: HeliosSettings,
        *,
        cancel: CancellationToken | None = None,
        nonce_tracker: NonceTracker | None = None,
        pipeline: SubmissionPipeline | None = None,
        connect: ConnectFn | None = None,
        session_factory: SessionFactory = AccountSession,
        rng: random.Random | None = None,
        timer_factory: Callable[[float, Callable[[], None]], Any] = threading.Timer,
        recurring: bool = True,
        cycle_interval: float = CYCLE_INTERVAL_SECONDS,
        drain_interval: float = DRAIN_POLL_SECONDS,
    ) -> None:
        self.accounts = list(accounts)
        self.proxies = list(proxies)
        self.config_store = config_store
        self.settings = settings
        self.cancel = cancel if cancel is not None else CancellationToken()
        self.nonce_tracker = (
            nonce_tracker if nonce_tracker is not None else NonceTracker(self.cancel)
        )
        if pipeline is None:
            pipeline = SubmissionPipeline(
                self.nonce_tracker, settings.chain_id, receipt_timeout=settings.receipt_timeout
            )
        self.pipeline = pipeline
        self._connect = connect or functools.partial(
            open_connection, sleep=self.cancel.sleep, cancel=self.cancel
        )
        self._session_factory = session_factory
        self._rng = rng or random.Random()
        self._timer_factory = timer_factory
        self.recurring = recurring
        self.cycle_interval = cycle_interval
        self.drain_interval = drain_interval

        self._lock = threading.Lock()
        self._state = CycleState.IDLE
        self._in_flight = 0
        self._cycle_active = False
        self._timer: Any = None
        self._drain_thread: threading.Thread | None = None
        self._worker: threading.Thread | None = None
        self._idle = threading.Event()
        self._idle.set()
        self.active_address: str | None = None
        self.failure: BaseException | None = None

    # State --------------------------------------------------------------

    @property
    def state(self) -> CycleState:
        with self._lock:
            return self._state

    @property
    def in_flight(self) -> int:
        with self._lock:
            return self._in_flight

    def wait_until_idle(self, timeout: float | None = None) -> bool:
        return self._idle.wait(timeout)

    def status_snapshot(self) -> StatusSnapshot:
        config = self.config_store.current
        with self._lock:
            return StatusSnapshot(
                state=self._state.value,
                running=self._state is not CycleState.IDLE,
                address=self.active_address,
                account_count=len(self.accounts),
                bridge_repetitions=config.bridge_repetitions,
                stake_repetitions=config.stake_repetitions,
                in_flight=self._in_flight,
            )

    # Transitions --------------------------------------------------------

    def start(self, *, background: bool = True) -> bool:
        """Begin a cycle; refused while one is running or stopping."""

        with self._lock:
            if self._state in (CycleState.RUNNING, CycleState.STOPPING):
                logger.error("Cycle is still running. Stop the current cycle first.")
                return False
            if not self.accounts:
                logger.error("No valid private keys found.")
                return False
            self._cancel_timer_locked()
            self._state = CycleState.RUNNING
            self._cycle_active = True
            self.failure = None
            self._idle.clear()
            self.cancel.reset()

        if background:
            self._worker = threading.Thread(
                target=self._run_worker, name="helios-cycle", daemon=True
            )
            self._worker.start()
        else:
            self._run_worker(reraise=True)
        return True

    def run_cycle(self) -> bool:
        """Run one cycle on the calling thread."""

        return self.start(background=False)

    def request_stop(self) -> bool:
        with self._lock:
            if self._state is CycleState.WAITING_FOR_NEXT_CYCLE:
                self._cancel_timer_locked()
                self._state = CycleState.IDLE
                self._idle.set()
                logger.info("Daily activity stopped successfully.")
                return True
            if self._state is CycleState.IDLE:
                logger.info("No daily activity is running.")
                return False
            if self._state is CycleState.STOPPING:
                return True
            self._state = CycleState.STOPPING
            self.cancel.cancel()
            self._cancel_timer_locked()
            self._start_drain_locked()
        logger.info("Stopping daily activity. Please wait for ongoing process to complete.")
        return True

    def _cancel_timer_locked(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
            logger.info("Cleared daily activity interval.")

    def _start_drain_locked(self) -> None:
        if self._drain_thread is not None:
            return
        self._drain_thread = threading.Thread(
            target=self._drain, name="helios-drain", daemon=True
        )
        self._drain_thread.start()

    def _drain(self) -> None:
        while True:
            with self._lock:
                if self._in_flight <= 0 and not self._cycle_active:
                    self._in_flight = 0
                    self._state = CycleState.IDLE
                    self._drain_thread = None
                    self.cancel.reset()
                    self._idle.set()
                    break
                remaining = self._in_flight
            logger.info("Waiting for %d process(es) to complete...", remaining)
            time.sleep(self.drain_interval)
        logger.info("Daily activity stopped successfully.")

    def _on_timer(self) -> None:
        with self._lock:
            self._timer = None
        self.start()

    def _run_worker(self, reraise: bool = False) -> None:
        try:
            self._run_accounts()
        except Exception as exc:
            logger.exception("Daily activity failed: %s", exc)
            self.failure = exc
            if reraise:
                raise
        finally:
            self._finish_cycle()

    def _finish_cycle(self) -> None:
        self.nonce_tracker.reset()
        with self._lock:
            self._cycle_active = False
            self.active_address = None
            if self._state is CycleState.STOPPING:
                # The drain check completes the transition.
                self._start_drain_locked()
                return
            if self.failure is None and self.recurring:
                self._state = CycleState.WAITING_FOR_NEXT_CYCLE
                self._timer = self._timer_factory(self.cycle_interval, self._on_timer)
                self._timer.daemon = True
                self._timer.start()
                logger.info("All accounts processed. Waiting 24 hours for next cycle.")
                return
            self._state = CycleState.IDLE
            self._idle.set()
        if self.failure is None:
            logger.info("All accounts processed.")

    # In-flight accounting -------------------------------------------------

    @contextmanager
    def _tracked(self) -> Iterator[None]:
        with self._lock:
            self._in_flight += 1
        try:
            yield
        finally:
            with self._lock:
                self._in_flight = max(0, self._in_flight - 1)

    def _pause(self, seconds: float) -> bool:
        with self._tracked():
            return self.cancel.sleep(seconds)

    # Cycle body ------------------------------------------------------------

    def _run_accounts(self) -> None:
        config = self.config_store.current
        logger.info(
            "Starting daily activity for all accounts. Auto Bridge: %dx, Auto Stake: %dx",
            config.bridge_repetitions,
            config.stake_repetitions,
        )
        total = len(self.accounts)
        for index, account in enumerate(self.accounts):
            if self.cancel.cancelled:
                break
            try:
                self._process_account(index, account)
            except StoppedError:
                self.cancel.log_interrupted("Process stopped successfully.")
                break
            if index < total - 1 and not self.cancel.cancelled:
                logger.info("Waiting %d seconds before next account...", ACCOUNT_DELAY_SECONDS)
                self._pause(ACCOUNT_DELAY_SECONDS)

    def _process_account(self, index: int, account: LocalAccount) -> None:
        number = index + 1
        logger.info("Starting processing for account %d", number)
        proxy_url = proxy_for_index(self.proxies, index)
        logger.info("Account %d: Using Proxy %s", number, proxy_url or "none")
        try:
            with self._tracked():
                connection = self._connect(self.settings, proxy_url)
            session = self._session_factory(connection, account, self.pipeline, self.settings)
        except RECOVERABLE_ERRORS as exc:
            logger.error("Failed to connect to provider for account %d: %s", number, exc)
            return

        self.active_address = account.address
        logger.info("Processing account %d: %s", number, short_address(account.address))

        chains = list(self.settings.destination_chains)
        self._rng.shuffle(chains)
        validators = list(self.settings.validators)
        self._rng.shuffle(validators)

        self._run_bridges(number, session, chains)
        if self.cancel.cancelled:
            return
        delay = self._rng.randint(*PRE_STAKE_DELAY_RANGE)
        logger.info("Waiting %d seconds before staking...", delay)
        self._pause(delay)
        self._run_stakes(number, session, validators)

    def _run_bridges(self, number: int, session: Any, chains: list[int]) -> None:
        repetitions = self.config_store.current.bridge_repetitions
        for rep in range(repetitions):
            if self.cancel.cancelled:
                break
            config = self.config_store.current
            context = f"Account {number} - Bridge {rep + 1}"
            chain_id = chains[rep % len(chains)]
            try:
                amount = random_amount(self._rng, config.min_hls_bridge, config.max_hls_bridge)
                with self._tracked():
                    self._check_funds(session, amount, context)
                    logger.info(
                        "%s: Bridge %s HLS Helios -> %s",
                        context,
                        amount,
                        self.settings.chain_name(chain_id),
                    )
                    session.bridge(amount, chain_id)
            except InsufficientBalanceError as exc:
                logger.error("%s: %s", context, exc)
            except RECOVERABLE_ERRORS as exc:
                logger.error("%s: Failed: %s", context, exc)

            if rep < repetitions - 1 and not self.cancel.cancelled:
                delay = self._rng.randint(*BRIDGE_DELAY_RANGE)
                logger.info("Account %d - Waiting %d seconds before next bridge...", number, delay)
                self._pause(delay)

    def _run_stakes(self, number: int, session: Any, validators: list) -> None:
        repetitions = self.config_store.current.stake_repetitions
        for rep in range(repetitions):
            if self.cancel.cancelled:
                break
            config = self.config_store.current
            context = f"Account {number} - Stake {rep + 1}"
            validator = validators[rep % len(validators)]
            try:
                amount = random_amount(self._rng, config.min_hls_stake, config.max_hls_stake)
                with self._tracked():
                    self._check_funds(session, amount, context)
                    logger.info("%s: Stake %s HLS to %s", context, amount, validator.name)
                    session.stake(amount, validator)
            except InsufficientBalanceError as exc:
                logger.error("%s: %s", context, exc)
            except RECOVERABLE_ERRORS as exc:
                logger.error("%s: Failed: %s", context, exc)

            if rep < repetitions - 1 and not self.cancel.cancelled:
                delay = self._rng.randint(*STAKE_DELAY_RANGE)
                logger.info("Account %d - Waiting %d seconds before next stake...", number, delay)
                self._pause(delay)

    def _check_funds(self, session: Any, amount: str, context: str) -> None:
        native = session.native_balance()
        token = session.token_balance()
        logger.info("%s: HLS Balance: %s", context, from_token_units(token))
        gas_cost = session.estimated_gas_cost()
        if native < gas_cost:
            raise InsufficientBalanceError(
                f"Insufficient native balance ({from_token_units(native)} HLS)"
            )
        if token < to_token_units(amount):
            raise InsufficientBalanceError(
                f"Insufficient HLS balance ({from_token_units(token)} HLS)"
            )
