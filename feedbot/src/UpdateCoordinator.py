"""UpdateCoordinator: single-flight price update state machine.

Each observed sample goes through one decision cycle:

    IDLE -> EVALUATING -> SUBMITTING -> CONFIRMING -> IDLE

A retryable failure while submitting or confirming loops back into
SUBMITTING with the attempt produced by the FeeEscalationStrategy. A
terminal failure passes through FAILED and the guard is released.

Only one cycle may evaluate or submit at a time. Samples arriving while a
cycle is running are reported as skipped; the next sample re-evaluates
against fresh on-chain state. With ``reevaluate_latest`` the most recent
skipped sample is evaluated as soon as the guard is released instead.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, replace
from enum import Enum
from typing import TYPE_CHECKING, Callable

from .FeeEscalation import FeeBid, FeeEscalationStrategy, SubmissionAttempt
from .PriceSample import PriceSample, PublishedPrice, format_units
from .ThresholdPolicy import ThresholdConfig, is_significant, threshold_value
from .TransactionErrors import ChainError, FailureKind, TransactionFailure

if TYPE_CHECKING:
    from .ChainClient import ChainClient

logger = logging.getLogger(__name__)


class CoordinatorState(Enum):
    """States of the update state machine."""

    IDLE = "idle"
    EVALUATING = "evaluating"
    SUBMITTING = "submitting"
    CONFIRMING = "confirming"
    FAILED = "failed"


class Decision(Enum):
    """Outcome of a decision cycle."""

    NOT_SIGNIFICANT = "not_significant"
    UPDATED = "updated"
    FAILED = "failed"
    SKIPPED_IN_FLIGHT = "skipped_in_flight"
    ERROR = "error"


@dataclass
class SessionState:
    """Process-lifetime counters.

    :ivar transactions_confirmed: Confirmed price updates.
    :ivar in_flight: True while a cycle holds the single-flight guard.
    :ivar last_confirmed_at: Unix timestamp of the last confirmation.
    :ivar samples_seen: Samples passed to on_sample().
    :ivar samples_skipped: Samples skipped because a cycle was running.
    :ivar updates_failed: Updates that ended in FAILED.
    :ivar last_tx_hash: Hash of the last confirmed transaction.
    """

    transactions_confirmed: int = 0
    in_flight: bool = False
    last_confirmed_at: float | None = None
    samples_seen: int = 0
    samples_skipped: int = 0
    updates_failed: int = 0
    last_tx_hash: str | None = None


@dataclass(frozen=True)
class CycleReport:
    """Status of one decision cycle.

    :ivar observed: The sample that was evaluated.
    :ivar published: On-chain price used for the comparison, if known.
    :ivar threshold: Absolute threshold in the published scale, if known.
    :ivar significant: Result of the significance test, if computed.
    :ivar decision: Cycle outcome.
    :ivar tx_hash: Hash of the last broadcast transaction, if any.
    :ivar attempts: Number of submission attempts made.
    :ivar failure: Terminal failure, if any.
    :ivar transactions_confirmed: Session counter after the cycle.
    """

    observed: PriceSample
    published: PublishedPrice | None
    threshold: int | None
    significant: bool | None
    decision: Decision
    tx_hash: str | None = None
    attempts: int = 0
    failure: TransactionFailure | None = None
    transactions_confirmed: int = 0

    def format(self) -> str:
        """Render the report as a single status line."""
        published = str(self.published) if self.published else "unknown"
        threshold = (
            format_units(self.threshold, self.published.decimals)
            if self.threshold is not None and self.published
            else "unknown"
        )
        line = (
            f"observed={self.observed} on_chain={published} "
            f"threshold=±{threshold} decision={self.decision.value} "
            f"session_txs={self.transactions_confirmed}"
        )
        if self.tx_hash:
            line += f" tx={self.tx_hash}"
        if self.attempts:
            line += f" attempts={self.attempts}"
        if self.failure:
            line += f" error={self.failure}"
        return line


@dataclass(frozen=True)
class _SubmissionResult:
    success: bool
    attempts: int
    tx_hash: str | None = None
    failure: TransactionFailure | None = None


class UpdateCoordinator:
    """Owns session state and drives the update state machine.

    :ivar chain: Chain client used for reads and submissions.
    :ivar threshold: Significance threshold.
    :ivar strategy: Retry policy for failed submissions.
    :ivar initial_fee: Fixed first-attempt fee bid, or None to estimate.
    :ivar published_ttl: Seconds a cached published price stays valid.
    :ivar reevaluate_latest: Evaluate the newest skipped sample after a cycle.
    :ivar session: Session counters.
    :ivar state: Current state machine state.
    """

    def __init__(
        self,
        chain: ChainClient,
        threshold: ThresholdConfig,
        strategy: FeeEscalationStrategy | None = None,
        initial_fee: FeeBid | None = None,
        published_ttl: float = 0.0,
        reevaluate_latest: bool = False,
        on_report: Callable[[CycleReport], None] | None = None,
    ) -> None:
        """Initialize the coordinator.

        :param chain: Chain client.
        :param threshold: Significance threshold ratio.
        :param strategy: Fee escalation strategy (default: FeeEscalationStrategy()).
        :param initial_fee: Fee bid for first attempts (default: chain estimate).
        :param published_ttl: Cache lifetime of the published price in seconds
            (default: 0, re-read on every cycle).
        :param reevaluate_latest: Evaluate the newest skipped sample as soon as
            a cycle finishes (default: False).
        :param on_report: Optional callback receiving every CycleReport.
        """
        self.chain = chain
        self.threshold = threshold
        self.strategy = strategy or FeeEscalationStrategy()
        self.initial_fee = initial_fee
        self.published_ttl = max(0.0, published_ttl)
        self.reevaluate_latest = reevaluate_latest
        self.on_report = on_report

        self.session = SessionState()
        self.state = CoordinatorState.IDLE
        self.published: PublishedPrice | None = None
        self.current_attempt: SubmissionAttempt | None = None
        self._latest_skipped: PriceSample | None = None

    @property
    def is_idle(self) -> bool:
        """True if a new sample would start a decision cycle."""
        return self.state is CoordinatorState.IDLE

    async def refresh_published(self) -> PublishedPrice:
        """Re-read the published price from chain and cache it.

        :raises ChainError: If the contract cannot be read.
        """
        self.published = await self.chain.get_price()
        logger.debug(f"Published price refreshed: {self.published}")
        return self.published

    async def on_sample(self, candidate: PriceSample) -> CycleReport:
        """Process an observed price.

        :param candidate: Newly observed price.
        :returns: Report of the cycle run for this sample.
        """
        self.session.samples_seen += 1

        if not self.is_idle:
            return self._skip(candidate)

        # No suspension point between the idle check and taking the guard.
        self._acquire()
        report = await self._guarded_cycle(candidate)

        while self.reevaluate_latest and self._latest_skipped is not None and self.is_idle:
            latest, self._latest_skipped = self._latest_skipped, None
            logger.info(f"Re-evaluating sample {latest} skipped during last cycle")
            self._acquire()
            await self._guarded_cycle(latest)

        return report

    def _acquire(self) -> None:
        self.state = CoordinatorState.EVALUATING
        self.session.in_flight = True

    def _release(self) -> None:
        self.state = CoordinatorState.IDLE
        self.session.in_flight = False
        self.current_attempt = None

    def _skip(self, candidate: PriceSample) -> CycleReport:
        self.session.samples_skipped += 1
        self._latest_skipped = candidate
        significant = (
            is_significant(self.published, candidate, self.threshold)
            if self.published
            else None
        )
        logger.debug(
            f"Update in progress ({self.state.value}), skipping sample {candidate}"
        )
        return self._report(candidate, Decision.SKIPPED_IN_FLIGHT, significant=significant)

    async def _guarded_cycle(self, candidate: PriceSample) -> CycleReport:
        try:
            return await self._run_cycle(candidate)
        finally:
            self._release()

    async def _run_cycle(self, candidate: PriceSample) -> CycleReport:
        try:
            published = await self._published_for_cycle()
        except ChainError as e:
            logger.warning(f"Could not read on-chain price, skipping cycle: {e}")
            return self._report(candidate, Decision.ERROR)

        if not is_significant(published, candidate, self.threshold):
            return self._report(candidate, Decision.NOT_SIGNIFICANT, significant=False)

        logger.info(
            f"Price change significant ({candidate} vs {published} on-chain, "
            f"threshold {self.threshold.percent:g}%), updating..."
        )

        result = await self._submit(candidate)

        if result.success:
            self.published = PublishedPrice.from_sample(candidate)
            self.session.transactions_confirmed += 1
            self.session.last_confirmed_at = time.time()
            self.session.last_tx_hash = result.tx_hash
            logger.info(
                f"Price updated on-chain: {candidate} (tx {result.tx_hash}, "
                f"session transactions: {self.session.transactions_confirmed})"
            )
            return self._report(
                candidate,
                Decision.UPDATED,
                significant=True,
                published=published,
                tx_hash=result.tx_hash,
                attempts=result.attempts,
            )

        self.state = CoordinatorState.FAILED
        self.session.updates_failed += 1
        failure = result.failure
        if failure is not None and failure.kind is FailureKind.INSUFFICIENT_FUNDS:
            logger.error(
                f"Insufficient funds for gas on {self.chain.address}. "
                "Please add funds to the wallet."
            )
        else:
            logger.error(
                f"Price update to {candidate} failed after {result.attempts} "
                f"attempt(s): {failure}"
            )
        return self._report(
            candidate,
            Decision.FAILED,
            significant=True,
            published=published,
            tx_hash=result.tx_hash,
            attempts=result.attempts,
            failure=failure,
        )

    async def _published_for_cycle(self) -> PublishedPrice:
        if (
            self.published is None
            or time.time() - self.published.read_at >= self.published_ttl
        ):
            return await self.refresh_published()
        return self.published

    async def _submit(self, candidate: PriceSample) -> _SubmissionResult:
        """Broadcast the update, retrying as directed by the strategy."""
        fee_bid = self.initial_fee or await self._estimate_fee()
        attempt = self.strategy.first_attempt(fee_bid)
        tx_hash: str | None = None

        while True:
            self.current_attempt = attempt
            self.state = CoordinatorState.SUBMITTING
            try:
                nonce = attempt.nonce
                if nonce is None:
                    nonce = await self.chain.get_latest_nonce(self.chain.address)
                    attempt = self.current_attempt = replace(attempt, nonce=nonce)

                handle = await self.chain.submit_update(candidate, attempt.fee_bid, nonce)
                tx_hash = handle.tx_hash
                logger.info(
                    f"Transaction sent: {handle.tx_hash} (attempt "
                    f"{attempt.attempt_number}, nonce {attempt.nonce}, {attempt.fee_bid})"
                )

                self.state = CoordinatorState.CONFIRMING
                receipt = await self.chain.wait_for_confirmation(handle)
                logger.info(
                    f"Transaction confirmed: {receipt.tx_hash} in block {receipt.block_number}"
                )
                return _SubmissionResult(True, attempt.attempt_number, receipt.tx_hash)

            except TransactionFailure as failure:
                if failure.nonce is None:
                    failure.nonce = attempt.nonce
                if failure.fee_bid is None:
                    failure.fee_bid = attempt.fee_bid
                decision = self.strategy.next(failure, attempt)
                if not decision.retry:
                    logger.debug(f"Not retrying ({decision.reason}): {failure}")
                    return _SubmissionResult(False, attempt.attempt_number, tx_hash, failure)
                logger.warning(
                    f"Attempt {attempt.attempt_number} failed ({failure.kind.value}: "
                    f"{failure.message}); retrying with {decision.attempt.fee_bid} "
                    f"({decision.reason})"
                )
                attempt = decision.attempt

            except ChainError as e:
                failure = TransactionFailure(
                    FailureKind.OTHER, str(e), attempt.nonce, attempt.fee_bid
                )
                return _SubmissionResult(False, attempt.attempt_number, tx_hash, failure)

    async def _estimate_fee(self) -> FeeBid:
        try:
            return await self.chain.get_current_fee_estimate()
        except ChainError as e:
            logger.warning(
                f"Fee estimation failed ({e}), using fallback {self.strategy.fallback_fee}"
            )
            return self.strategy.fallback_fee

    def _report(
        self,
        candidate: PriceSample,
        decision: Decision,
        significant: bool | None = None,
        published: PublishedPrice | None = None,
        tx_hash: str | None = None,
        attempts: int = 0,
        failure: TransactionFailure | None = None,
    ) -> CycleReport:
        published = published or self.published
        report = CycleReport(
            observed=candidate,
            published=published,
            threshold=threshold_value(published, self.threshold) if published else None,
            significant=significant,
            decision=decision,
            tx_hash=tx_hash,
            attempts=attempts,
            failure=failure,
            transactions_confirmed=self.session.transactions_confirmed,
        )
        if decision is Decision.SKIPPED_IN_FLIGHT:
            logger.debug(report.format())
        else:
            logger.info(report.format())
        if self.on_report is not None:
            self.on_report(report)
        return report
