"""FeeEscalationStrategy: decide how to retry a failed price update.

The strategy is a pure function of the failure and the previous attempt:

    ==========================  =========================================
    Failure kind                Next attempt
    ==========================  =========================================
    REPLACEMENT_UNDERPRICED     fee + increment, same nonce
    NONCE_STALE                 same fee, nonce re-fetched from chain
    UNSUPPORTED_FEE_FIELD       legacy fallback fee, same nonce, once
    INSUFFICIENT_FUNDS          stop
    OTHER                       stop
    ==========================  =========================================

Every logical update is capped at ``max_attempts`` attempts.

.. code-block:: python

    >>> strategy = FeeEscalationStrategy(increment=1, max_attempts=3)
    >>> first = SubmissionAttempt(nonce=7, fee_bid=LegacyFee(10))
    >>> failure = TransactionFailure(FailureKind.REPLACEMENT_UNDERPRICED, "underpriced")
    >>> decision = strategy.next(failure, first)
    >>> decision.retry, decision.attempt.fee_bid, decision.attempt.nonce
    (True, LegacyFee(gas_price=11), 7)
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from typing import Any

from web3 import Web3

from .TransactionErrors import FailureKind, TransactionFailure

logger = logging.getLogger(__name__)

GWEI = 10**9

DEFAULT_INCREMENT = Web3.to_wei(1, "gwei")
DEFAULT_FALLBACK_GAS_PRICE = Web3.to_wei(20, "gwei")
DEFAULT_MAX_ATTEMPTS = 5


class FeeBid(ABC):
    """Fee parameters offered for transaction inclusion (all values in wei)."""

    @property
    @abstractmethod
    def ceiling(self) -> int:
        """Maximum price per gas this bid may pay."""
        pass

    @abstractmethod
    def bump(self, increment: int) -> FeeBid:
        """Return a strictly higher bid."""
        pass

    @abstractmethod
    def capped(self, max_fee: int) -> FeeBid:
        """Return the bid limited to ``max_fee`` wei per gas."""
        pass

    @abstractmethod
    def to_tx_params(self) -> dict[str, Any]:
        """Return the fee fields for a web3 transaction dict."""
        pass


@dataclass(frozen=True)
class LegacyFee(FeeBid):
    """Single gas price (type 0 transaction)."""

    gas_price: int

    @property
    def ceiling(self) -> int:
        return self.gas_price

    def bump(self, increment: int) -> LegacyFee:
        return LegacyFee(self.gas_price + increment)

    def capped(self, max_fee: int) -> LegacyFee:
        return LegacyFee(min(self.gas_price, max_fee))

    def to_tx_params(self) -> dict[str, Any]:
        return {"gasPrice": self.gas_price}

    def __str__(self) -> str:
        return f"gasPrice={self.gas_price / GWEI:g} gwei"


@dataclass(frozen=True)
class DynamicFee(FeeBid):
    """Max fee / priority fee pair (type 2 transaction).

    Both fields are raised on a bump; nodes only accept a replacement when
    the priority fee increases as well.
    """

    max_fee_per_gas: int
    max_priority_fee_per_gas: int

    @property
    def ceiling(self) -> int:
        return self.max_fee_per_gas

    def bump(self, increment: int) -> DynamicFee:
        return DynamicFee(
            self.max_fee_per_gas + increment,
            self.max_priority_fee_per_gas + increment,
        )

    def capped(self, max_fee: int) -> DynamicFee:
        return DynamicFee(
            min(self.max_fee_per_gas, max_fee),
            min(self.max_priority_fee_per_gas, max_fee),
        )

    def to_tx_params(self) -> dict[str, Any]:
        return {
            "maxFeePerGas": self.max_fee_per_gas,
            "maxPriorityFeePerGas": self.max_priority_fee_per_gas,
        }

    def __str__(self) -> str:
        return (
            f"maxFeePerGas={self.max_fee_per_gas / GWEI:g} gwei, "
            f"maxPriorityFeePerGas={self.max_priority_fee_per_gas / GWEI:g} gwei"
        )


@dataclass(frozen=True)
class SubmissionAttempt:
    """One try at broadcasting a price update.

    :ivar nonce: Nonce to use, or None to fetch the latest from chain.
    :ivar fee_bid: Fee parameters.
    :ivar attempt_number: 1-based attempt counter for the logical update.
    :ivar started_at: Unix timestamp when the attempt was created.
    :ivar fee_fallback_used: True once the legacy fallback fee was applied.
    """

    nonce: int | None
    fee_bid: FeeBid
    attempt_number: int = 1
    started_at: float = field(default_factory=time.time)
    fee_fallback_used: bool = False


@dataclass(frozen=True)
class RetryDecision:
    """Outcome of FeeEscalationStrategy.next().

    :ivar retry: Whether another attempt should be made.
    :ivar attempt: The next attempt (or the previous one when not retrying).
    :ivar reason: Short machine-readable reason.
    """

    retry: bool
    attempt: SubmissionAttempt
    reason: str


class FeeEscalationStrategy:
    """Bounded retry policy keyed by failure kind.

    :ivar increment: Wei added to the fee bid after an underpriced replacement.
    :ivar fallback_fee: Fee bid used after an unsupported-fee-field error.
    :ivar max_attempts: Maximum attempts per logical update.
    :ivar max_fee: Optional ceiling; a bump above it stops retrying.
    """

    def __init__(
        self,
        increment: int = DEFAULT_INCREMENT,
        fallback_fee: FeeBid | None = None,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        max_fee: int | None = None,
    ) -> None:
        """Initialize the strategy.

        :param increment: Fee increment in wei (default: 1 gwei).
        :param fallback_fee: Fallback fee bid (default: legacy 20 gwei).
        :param max_attempts: Attempt cap per update (default: 5).
        :param max_fee: Optional fee ceiling in wei.
        :raises ValueError: If parameters are out of range.
        """
        if increment <= 0:
            raise ValueError("increment must be positive")
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if max_fee is not None and max_fee <= 0:
            raise ValueError("max_fee must be positive")

        self.increment = increment
        self.fallback_fee = fallback_fee or LegacyFee(DEFAULT_FALLBACK_GAS_PRICE)
        self.max_attempts = max_attempts
        self.max_fee = max_fee

    def first_attempt(self, fee_bid: FeeBid, nonce: int | None = None) -> SubmissionAttempt:
        """Create attempt #1 for a new logical update."""
        if self.max_fee is not None and fee_bid.ceiling > self.max_fee:
            logger.warning(
                f"Initial fee bid ({fee_bid}) exceeds cap "
                f"{self.max_fee / GWEI:g} gwei, clamping"
            )
            fee_bid = fee_bid.capped(self.max_fee)
        return SubmissionAttempt(nonce=nonce, fee_bid=fee_bid)

    def next(
        self, failure: TransactionFailure, previous: SubmissionAttempt
    ) -> RetryDecision:
        """Compute the next attempt after a failure.

        :param failure: The failure raised by the previous attempt.
        :param previous: The attempt that failed.
        :returns: RetryDecision describing whether and how to retry.
        """
        kind = failure.kind

        if kind is FailureKind.INSUFFICIENT_FUNDS:
            return RetryDecision(False, previous, "insufficient_funds")
        if kind is FailureKind.OTHER:
            return RetryDecision(False, previous, "unrecoverable")

        if previous.attempt_number >= self.max_attempts:
            return RetryDecision(False, previous, "attempt_cap")

        if kind is FailureKind.REPLACEMENT_UNDERPRICED:
            fee_bid = previous.fee_bid.bump(self.increment)
            if self.max_fee is not None and fee_bid.ceiling > self.max_fee:
                return RetryDecision(False, previous, "fee_cap")
            return RetryDecision(True, self._advance(previous, fee_bid=fee_bid), "fee_bumped")

        if kind is FailureKind.NONCE_STALE:
            return RetryDecision(True, self._advance(previous, nonce=None), "nonce_refetch")

        # UNSUPPORTED_FEE_FIELD: one reset to the legacy floor.
        if previous.fee_fallback_used:
            return RetryDecision(False, previous, "fallback_exhausted")
        return RetryDecision(
            True,
            self._advance(previous, fee_bid=self.fallback_fee, fee_fallback_used=True),
            "fee_fallback",
        )

    @staticmethod
    def _advance(previous: SubmissionAttempt, **changes: Any) -> SubmissionAttempt:
        return replace(
            previous,
            attempt_number=previous.attempt_number + 1,
            started_at=time.time(),
            **changes,
        )
