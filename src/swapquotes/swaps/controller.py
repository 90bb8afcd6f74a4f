"""Quote session controller - polling and commit of quote cycles.

Flow of one cycle:
1. Fetch trades from the aggregator service
2. First cycle, ERC-20 source: read allowance, build the approval transaction
3. Estimate gas for every quote concurrently
4. Read the gas price (custom or from the node)
5. Evaluate quotes, pick the best one and compute its savings
6. Commit the outcome, then schedule the next cycle

The controller is the only writer of SessionState. Pipelines run as tasks and
return a CycleOutcome; _commit applies it only when no newer cycle has
committed since the outcome's cycle was dispatched.

Configuration:
- quote_polling_interval: 50 seconds between cycles
- poll_count_limit: 3 cycles before quotes expire
- fetch_tokens_threshold: token list is refreshed after 24 hours
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import Callable, Optional

from swapquotes.swaps.api import SwapsApiClient
from swapquotes.swaps.errors import (
    AllowanceCheckError,
    FetchOrderConflictError,
    SwapsError,
    error_kind_for,
)
from swapquotes.swaps.evaluator import evaluate
from swapquotes.swaps.gas import DEFAULT_ERC20_APPROVE_GAS, MAX_GAS_LIMIT, GasEstimationGuard
from swapquotes.swaps.models import (
    AggregatorMetadata,
    EvaluationResult,
    FetchMetadata,
    FetchRequest,
    Quote,
    SavingsBreakdown,
    SessionState,
    SessionStatus,
    Token,
    TxParams,
)
from swapquotes.swaps.rpc import EthRpcClient
from swapquotes.swaps.savings import compute_savings
from swapquotes.utils.locks import RefreshLock

logger = logging.getLogger(__name__)


@dataclass
class SwapsConfig:
    """Configuration for a quote session."""

    # Timing
    quote_polling_interval: float = 50.0
    poll_count_limit: int = 3
    fetch_tokens_threshold: float = 60 * 60 * 24
    refresh_lock_timeout: float = 30.0
    token_price_timeout: float = 5.0

    # Gas
    max_gas_limit: int = MAX_GAS_LIMIT
    default_erc20_approve_gas: str = DEFAULT_ERC20_APPROVE_GAS

    @classmethod
    def from_settings(cls, settings) -> "SwapsConfig":
        return cls(
            quote_polling_interval=settings.quote_polling_interval_seconds,
            poll_count_limit=settings.poll_count_limit,
            fetch_tokens_threshold=settings.fetch_tokens_threshold_seconds,
            refresh_lock_timeout=settings.refresh_lock_timeout_seconds,
            token_price_timeout=settings.token_price_timeout_seconds,
            max_gas_limit=settings.max_gas_limit,
            default_erc20_approve_gas=settings.default_erc20_approve_gas,
        )


@dataclass
class CycleOutcome:
    """Result of one pipeline run, applied by SwapsController._commit."""

    sequence: int
    quotes: dict[str, Quote] = field(default_factory=dict)
    evaluation: Optional[EvaluationResult] = None
    savings: Optional[SavingsBreakdown] = None
    approval_tx: Optional[TxParams] = None
    fetched_at_ms: Optional[int] = None
    error: Optional[Exception] = None

    @property
    def success(self) -> bool:
        return self.error is None


class SwapsController:
    """Owner of one quote session.

    Polls the aggregator service every quote_polling_interval seconds, at most
    poll_count_limit times, and keeps the best quote of the newest committed
    cycle in state.
    """

    def __init__(
        self,
        api: SwapsApiClient,
        gas_guard: GasEstimationGuard,
        rpc: Optional[EthRpcClient] = None,
        config: Optional[SwapsConfig] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.api = api
        self.gas = gas_guard
        self.rpc = rpc or gas_guard.rpc
        self.config = config or SwapsConfig()
        self._clock = clock

        self.state = SessionState(poll_cycles_remaining=self.config.poll_count_limit)

        self._poll_count = 0
        self._session = 0
        self._sequence = 0
        self._min_commit_sequence = 0
        self._in_flight: set[int] = set()
        self._timer: Optional[asyncio.TimerHandle] = None
        self._tasks: set[asyncio.Task] = set()

        self._tokens_lock = RefreshLock("tokens", self.config.refresh_lock_timeout)
        self._metadata_lock = RefreshLock("aggregator_metadata", self.config.refresh_lock_timeout)

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    # ======================
    # Session control
    # ======================

    def start_fetch_and_set_quotes(
        self,
        request: FetchRequest,
        metadata: FetchMetadata,
        custom_gas_price: Optional[int] = None,
    ) -> Optional[asyncio.Task]:
        """Begin a new polling session and dispatch its first cycle.

        If the service was last seen offline, liveness is checked again before
        the first cycle; a service that is still offline ends the session with
        OFFLINE_FOR_MAINTENANCE.

        Returns:
            Task of the first cycle
        """
        self._cancel_timer()
        self._session += 1
        self._poll_count = 0
        # Cycles of a previous request must never land in this session
        self._min_commit_sequence = self._sequence + 1

        self.state.fetch_request = request
        self.state.fetch_metadata = metadata
        self.state.custom_gas_price = custom_gas_price
        self.state.error_kind = None
        self.state.approval_tx = None
        self.state.quotes = {}
        self.state.best_aggregator_id = None
        self.state.savings = None
        self.state.costs = {}
        self.state.poll_cycles_remaining = self.config.poll_count_limit

        logger.info(
            f"Starting quote session: {request.source_amount} {request.source_token} -> "
            f"{request.destination_token}"
        )
        self.state.status = SessionStatus.POLLING
        self.state.is_polling = True

        if self.state.swaps_feature_is_live is False:
            return self._spawn(self._recheck_liveness_and_poll(self._session))
        return self._spawn(self._poll_for_new_quotes())

    async def _recheck_liveness_and_poll(self, session: int) -> None:
        try:
            live = await self.check_swaps_liveness()
        except Exception as e:
            logger.warning(f"Liveness re-check failed: {type(e).__name__}: {e}")
            live = False

        # Stopped, replaced or failed while the flag was being read
        if session != self._session or not self.state.is_polling:
            return
        if not live:
            logger.warning("Swaps service is offline for maintenance, not polling")
            self._stop_polling_with_error(SwapsError.OFFLINE_FOR_MAINTENANCE)
            return
        await self._poll_for_new_quotes()

    def stop_polling_and_reset_state(self) -> None:
        """Stop polling and forget the session, keeping the caches."""
        self._cancel_timer()
        self._session += 1
        self._poll_count = self.config.poll_count_limit + 1
        self._min_commit_sequence = self._sequence + 1
        self.state = self.state.reset(self.config.poll_count_limit)
        logger.info("Quote session stopped")

    def safe_refetch_quotes(self) -> Optional[asyncio.Task]:
        """Run one cycle now unless the poll timer is already pending."""
        if self.state.fetch_request is None:
            logger.debug("Refetch skipped: no active request")
            return None
        if self._timer is not None:
            logger.debug("Refetch skipped: poll timer pending")
            return None
        return self._spawn(self._run_cycle())

    def report_swap_failed(self) -> None:
        """The accepted swap failed on-chain; stop the session."""
        self._stop_polling_with_error(SwapsError.SWAP_FAILED)

    def snapshot(self) -> SessionState:
        return self.state.copy()

    async def aclose(self) -> None:
        """Cancel the timer and every in-flight cycle."""
        self._cancel_timer()
        self._min_commit_sequence = self._sequence + 1
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    # ======================
    # Polling
    # ======================

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _schedule_next_cycle(self) -> None:
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self.config.quote_polling_interval, self._on_timer)

    def _on_timer(self) -> None:
        self._timer = None
        self._spawn(self._poll_for_new_quotes())

    async def _poll_for_new_quotes(self) -> None:
        self._poll_count += 1
        if self._poll_count > self.config.poll_count_limit:
            logger.info(f"Quotes expired after {self.config.poll_count_limit} cycles")
            self._stop_polling_with_error(SwapsError.QUOTES_EXPIRED)
            return

        self.state.poll_cycles_remaining = self.config.poll_count_limit - self._poll_count
        await self._run_cycle()

    async def _run_cycle(self) -> bool:
        """Dispatch one pipeline run and commit its outcome.

        Returns:
            True if the outcome was committed
        """
        self._sequence += 1
        sequence = self._sequence
        request = self.state.fetch_request
        metadata = self.state.fetch_metadata
        custom_gas_price = self.state.custom_gas_price
        approval_tx = self.state.approval_tx
        check_approval = self._poll_count <= 1 and approval_tx is None

        self._in_flight.add(sequence)
        self.state.is_fetching = True
        self.state.status = SessionStatus.FETCHING
        try:
            outcome = await self._fetch_quotes(
                sequence, request, metadata, custom_gas_price, approval_tx, check_approval
            )
        finally:
            self._in_flight.discard(sequence)

        return self._commit(outcome)

    def _stop_polling_with_error(self, kind: SwapsError) -> None:
        self._cancel_timer()
        self._poll_count = self.config.poll_count_limit + 1
        self._min_commit_sequence = self._sequence + 1
        self.state.is_polling = False
        self.state.is_fetching = False
        self.state.poll_cycles_remaining = 0
        self.state.error_kind = kind
        self.state.status = SessionStatus.ERRORED

    # ======================
    # Commit
    # ======================

    def _commit(self, outcome: CycleOutcome) -> bool:
        """Apply a cycle outcome unless a newer cycle already committed."""
        if outcome.sequence < self._min_commit_sequence:
            conflict = FetchOrderConflictError(outcome.sequence, self._min_commit_sequence)
            logger.debug(str(conflict))
            self.state.is_fetching = bool(self._in_flight)
            return False
        self._min_commit_sequence = outcome.sequence

        if not outcome.success:
            kind = error_kind_for(outcome.error)
            logger.error(f"Quote cycle {outcome.sequence} failed ({kind.value}): {outcome.error}")
            self._stop_polling_with_error(kind)
            return True

        evaluation = outcome.evaluation
        self.state.quotes = outcome.quotes
        self.state.best_aggregator_id = evaluation.best_aggregator_id
        self.state.costs = evaluation.costs
        self.state.savings = outcome.savings
        self.state.approval_tx = outcome.approval_tx
        self.state.last_fetched_at_ms = outcome.fetched_at_ms
        self.state.error_kind = None
        self.state.is_fetching = bool(self._in_flight)
        self.state.status = SessionStatus.POLLING if self.state.is_polling else SessionStatus.IDLE

        logger.info(
            f"Committed cycle {outcome.sequence}: best {evaluation.best_aggregator_id} "
            f"of {len(outcome.quotes)} quote(s)"
        )

        if self.state.is_polling and self._timer is None:
            self._schedule_next_cycle()
        return True

    # ======================
    # Pipeline
    # ======================

    async def _fetch_quotes(
        self,
        sequence: int,
        request: FetchRequest,
        metadata: FetchMetadata,
        custom_gas_price: Optional[int],
        approval_tx: Optional[TxParams],
        check_approval: bool,
    ) -> CycleOutcome:
        """Run the pipeline without touching state."""
        try:
            quotes = await self.api.fetch_trades(request)
            fetched_at_ms = self._now_ms()

            if check_approval and not request.is_native_source:
                approval_tx = await self._get_approval_transaction(request, quotes)

            approval_gas = approval_tx.gas_units if approval_tx else None
            quotes = await self.gas.estimate_all(quotes, approval_gas)

            if custom_gas_price is not None:
                gas_price = custom_gas_price
            else:
                gas_price = await self.rpc.gas_price()

            conversion_rate = self._get_conversion_rate(request, metadata)
            evaluation = evaluate(
                quotes,
                gas_price,
                metadata.destination_token_info,
                source_token=request.source_token,
                destination_token=request.destination_token,
                conversion_rate=conversion_rate,
                approval_gas=approval_gas,
                max_gas_limit=self.config.max_gas_limit,
            )

            best_id = evaluation.best_aggregator_id
            savings = compute_savings(best_id, evaluation.costs)
            quotes[best_id] = quotes[best_id].copy_with(savings=savings)

            return CycleOutcome(
                sequence=sequence,
                quotes=quotes,
                evaluation=evaluation,
                savings=savings,
                approval_tx=approval_tx,
                fetched_at_ms=fetched_at_ms,
            )
        except Exception as e:
            logger.warning(f"Quote cycle {sequence} pipeline failed: {type(e).__name__}: {e}")
            return CycleOutcome(sequence=sequence, error=e)

    async def _get_approval_transaction(
        self,
        request: FetchRequest,
        quotes: dict[str, Quote],
    ) -> Optional[TxParams]:
        """Approval transaction needed before the swap, if any.

        Raises:
            AllowanceCheckError: If the allowance is zero and no quote carries
                an approval skeleton, or the allowance cannot be read
        """
        allowance = await self.gas.get_allowance(request.source_token, request.wallet_address)
        if allowance != 0:
            return None

        first_quote = quotes[sorted(quotes)[0]]
        approval = first_quote.approval_needed
        if approval is None:
            raise AllowanceCheckError(
                f"Allowance for {request.source_token} is zero but no approval was quoted"
            )

        gas = await self.gas.estimate_gas_with_timeout(approval)
        if gas is None:
            logger.warning(
                f"Approval gas estimation failed, using default {self.config.default_erc20_approve_gas}"
            )
            return replace(approval, gas=self.config.default_erc20_approve_gas)
        return replace(approval, gas=hex(gas))

    def _get_conversion_rate(
        self,
        request: FetchRequest,
        metadata: FetchMetadata,
    ) -> Optional[Decimal]:
        # Ranking never depends on the price service; unknown rates rank at 1
        if request.is_native_destination:
            return Decimal(1)
        return metadata.destination_token_conversion_rate

    async def fetch_token_price_for_display(self, address: str) -> Optional[Decimal]:
        """Price of a token in the native asset, for display only.

        Returns None when the price service fails, is slower than
        token_price_timeout, or reports a price that is not positive.
        """
        try:
            price = await asyncio.wait_for(
                self.api.fetch_token_price(address), timeout=self.config.token_price_timeout
            )
        except asyncio.TimeoutError:
            logger.warning(
                f"Token price lookup for {address} timed out after "
                f"{self.config.token_price_timeout}s"
            )
            return None
        if price is None or not price.is_finite() or price <= 0:
            logger.debug(f"Discarding token price {price} for {address}")
            return None
        return price

    # ======================
    # Caches
    # ======================

    def _tokens_are_fresh(self) -> bool:
        if self.state.tokens is None:
            return False
        age_ms = self._now_ms() - self.state.tokens_last_fetched_ms
        return age_ms < self.config.fetch_tokens_threshold * 1000

    def _metadata_is_fresh(self) -> bool:
        if self.state.aggregator_metadata is None:
            return False
        age_ms = self._now_ms() - self.state.aggregator_metadata_last_fetched_ms
        return age_ms < self.config.fetch_tokens_threshold * 1000

    async def fetch_token_with_cache(self) -> list[Token]:
        """Token list, refreshed only when missing or stale.

        Concurrent callers wait on the lock and re-check freshness, so only the
        first one reaches the network.
        """
        if self._tokens_are_fresh():
            return self.state.tokens

        async with self._tokens_lock.hold("fetch_tokens"):
            if not self._tokens_are_fresh():
                tokens = await self.api.fetch_tokens()
                self.state.tokens = tokens
                self.state.tokens_last_fetched_ms = self._now_ms()
                logger.info(f"Refreshed token list: {len(tokens)} token(s)")
        return self.state.tokens

    async def fetch_aggregator_metadata_with_cache(self) -> dict[str, AggregatorMetadata]:
        if self._metadata_is_fresh():
            return self.state.aggregator_metadata

        async with self._metadata_lock.hold("fetch_aggregator_metadata"):
            if not self._metadata_is_fresh():
                metadata = await self.api.fetch_aggregator_metadata()
                self.state.aggregator_metadata = metadata
                self.state.aggregator_metadata_last_fetched_ms = self._now_ms()
        return self.state.aggregator_metadata

    async def check_swaps_liveness(self) -> bool:
        """Refresh the service liveness flag."""
        live = await self.api.fetch_swaps_feature_liveness()
        self.state.swaps_feature_is_live = live
        if not live:
            logger.warning("Swaps service reports itself offline")
        return live
