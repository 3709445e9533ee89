"""PriceFeedBot: Runs a price feed against the update coordinator.

Architecture:
    - Startup checks: RPC reachable, initial on-chain price read, contract
      owner and wallet balance reported
    - Stream mode: one WebSocket connection at a time, reconnected after a
      fixed delay whenever it closes or fails, forever
    - Poll mode: a PeriodicTimer fetches one sample per period
    - Every sample is handed to the UpdateCoordinator in its own task so the
      feed keeps being read while a transaction awaits confirmation
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from web3 import Web3

from .feeds import BaseFeed, FeedConfigError, FeedError
from .PeriodicTimer import PeriodicTimer
from .TransactionErrors import ChainError
from .UpdateCoordinator import CycleReport, Decision, UpdateCoordinator

if TYPE_CHECKING:
    from .ChainClient import ChainClient
    from .PriceSample import PriceSample

logger = logging.getLogger(__name__)

MODES = ("stream", "poll")

DEFAULT_RECONNECT_DELAY = 1.0
DEFAULT_POLL_PERIOD = 60
DEFAULT_MIN_BALANCE = Web3.to_wei("0.0002", "ether")


class PriceFeedBot:
    """Connects a feed, a chain client and an update coordinator.

    :ivar coordinator: Update coordinator owning session state.
    :ivar chain: Chain client (same instance as the coordinator's).
    :ivar feed: Price feed.
    :ivar mode: "stream" or "poll".
    :ivar poll_period: Seconds between polls.
    :ivar reconnect_delay: Seconds to wait before reconnecting the stream.
    :ivar min_balance: Wallet balance (wei) below which a warning is logged.
    :ivar reconnects: Number of stream reconnections so far.
    """

    def __init__(
        self,
        coordinator: UpdateCoordinator,
        feed: BaseFeed,
        mode: str = "stream",
        poll_period: float = DEFAULT_POLL_PERIOD,
        reconnect_delay: float = DEFAULT_RECONNECT_DELAY,
        min_balance: int = DEFAULT_MIN_BALANCE,
        token_name: str = "Token",
        token_symbol: str = "SYM",
    ) -> None:
        """Initialize the bot.

        :param coordinator: Update coordinator.
        :param feed: Price feed.
        :param mode: "stream" or "poll" (default: "stream").
        :param poll_period: Seconds between polls (default: 60).
        :param reconnect_delay: Seconds before reconnecting (default: 1.0).
        :param min_balance: Low balance warning level in wei (default: 0.0002 ETH).
        :param token_name: Display name of the tracked token.
        :param token_symbol: Display symbol of the tracked token.
        :raises FeedConfigError: If the feed does not support the mode.
        :raises ValueError: If the mode is unknown.
        """
        if mode not in MODES:
            raise ValueError(f"Unknown mode '{mode}'. Expected one of {MODES}")
        if mode == "stream" and not feed.supports_stream:
            raise FeedConfigError(f"Feed '{feed.name}' does not support streaming")
        if mode == "poll" and not feed.supports_poll:
            raise FeedConfigError(f"Feed '{feed.name}' does not support polling")

        self.coordinator = coordinator
        self.chain: ChainClient = coordinator.chain
        self.feed = feed
        self.mode = mode
        self.poll_period = poll_period
        self.reconnect_delay = reconnect_delay
        self.min_balance = min_balance
        self.token_name = token_name
        self.token_symbol = token_symbol

        self.reconnects = 0
        self._timer: PeriodicTimer | None = None
        self._tasks: set[asyncio.Task[Any]] = set()

        previous_callback = coordinator.on_report

        def on_report(report: CycleReport) -> None:
            if previous_callback is not None:
                previous_callback(report)
            if report.decision is Decision.UPDATED:
                self._schedule_balance_check()

        coordinator.on_report = on_report

    async def start(self) -> None:
        """Run startup checks and read the initial on-chain price.

        :raises ChainError: If the chain cannot be reached or read.
        """
        logger.info(
            f"Monitoring {self.token_name} ({self.token_symbol}) via {self.feed.name} "
            f"{self.feed.pair} [{self.mode}], threshold "
            f"±{self.coordinator.threshold.percent:g}%"
        )

        published = await self.coordinator.refresh_published()
        logger.info(f"On-chain price: {published}")

        await self.check_ownership()
        await self.check_balance()

    async def check_ownership(self) -> None:
        """Warn if the bot wallet does not own the price feed contract."""
        try:
            owner = await self.chain.get_owner()
        except ChainError as e:
            logger.warning(f"Ownership check failed: {e}")
            return
        if owner is None:
            return
        if owner.lower() != self.chain.address.lower():
            logger.warning(
                f"Contract owner is {owner}, not the bot wallet {self.chain.address}; "
                "updates will likely revert"
            )
        else:
            logger.info("Ownership already set to bot wallet.")

    async def check_balance(self) -> int | None:
        """Log the bot wallet balance and warn when it is low.

        :returns: Balance in wei, or None if unavailable.
        """
        try:
            balance = await self.chain.get_balance()
        except ChainError as e:
            logger.warning(f"Error fetching bot wallet balance: {e}")
            return None
        if balance is None:
            return None

        formatted = Web3.from_wei(balance, "ether")
        if balance < self.min_balance:
            logger.warning(
                f"Bot wallet balance {formatted} ETH is below "
                f"{Web3.from_wei(self.min_balance, 'ether')} ETH, please add funds"
            )
        else:
            logger.info(f"Bot wallet balance: {formatted} ETH")
        return balance

    def _schedule_balance_check(self) -> None:
        task = asyncio.get_running_loop().create_task(self.check_balance())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def dispatch(self, sample: PriceSample) -> asyncio.Task[CycleReport]:
        """Hand a sample to the coordinator without blocking the feed.

        :param sample: Observed price.
        :returns: Task running the decision cycle.
        """
        task = asyncio.get_running_loop().create_task(self.coordinator.on_sample(sample))
        self._tasks.add(task)
        task.add_done_callback(self._on_cycle_done)
        return task

    def _on_cycle_done(self, task: asyncio.Task[CycleReport]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                f"Error during price comparison or update: {exc!r}", exc_info=exc
            )

    async def run_stream(self) -> None:
        """Consume the stream, reconnecting after every disconnect."""
        while True:
            try:
                async for sample in self.feed.stream():
                    logger.debug(
                        f"Real-time price update for {self.token_name} "
                        f"({self.token_symbol}): {sample}"
                    )
                    self.dispatch(sample)
                logger.warning("WebSocket connection closed. Reconnecting...")
            except FeedError as e:
                logger.warning(f"Feed error: {e}. Reconnecting...")
            except Exception as e:
                logger.exception(f"Unexpected error reading {self.feed.name} stream: {e}")

            await asyncio.sleep(self.reconnect_delay)
            self.reconnects += 1

    async def poll_once(self) -> asyncio.Task[CycleReport] | None:
        """Fetch one sample and dispatch it; skip the tick on failure.

        :returns: Task running the decision cycle, or None if skipped.
        """
        sample = await self.feed.fetch_once()
        if sample is None:
            logger.warning(f"No price from {self.feed.name} this tick, skipping")
            return None
        return self.dispatch(sample)

    async def run_poll(self) -> None:
        """Poll the feed every poll_period seconds until cancelled."""
        self._timer = PeriodicTimer(self.poll_period, self.poll_once, name="poll-timer")
        self._timer.start()
        try:
            await self._timer.wait()
        finally:
            await self._timer.cancel()

    async def run(self) -> None:
        """Run startup checks, then the feed loop until cancelled."""
        await self.start()
        try:
            if self.mode == "stream":
                await self.run_stream()
            else:
                await self.run_poll()
        finally:
            await self.shutdown()

    async def shutdown(self) -> None:
        """Stop the poll timer, let in-flight cycles finish, close HTTP clients."""
        if self._timer is not None:
            await self._timer.cancel()
        if self._tasks:
            logger.info(f"Waiting for {len(self._tasks)} in-flight cycle(s) to finish")
            await asyncio.gather(*self._tasks, return_exceptions=True)
        await BaseFeed.close_shared_client()
        session = self.coordinator.session
        logger.info(
            f"Session summary: {session.transactions_confirmed} confirmed, "
            f"{session.updates_failed} failed, {session.samples_seen} samples "
            f"({session.samples_skipped} skipped)"
        )
