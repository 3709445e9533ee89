"""Tagged chain and transaction errors.

Nodes and web3 report transaction problems as loosely structured RPC error
payloads. ``classify_error`` reduces them to a closed set of failure kinds
that the fee escalation strategy knows how to react to.
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Any

from web3.exceptions import TimeExhausted

if TYPE_CHECKING:
    from .FeeEscalation import FeeBid


class FailureKind(Enum):
    """Kinds of transaction failure."""

    INSUFFICIENT_FUNDS = "insufficient_funds"
    REPLACEMENT_UNDERPRICED = "replacement_underpriced"
    NONCE_STALE = "nonce_stale"
    UNSUPPORTED_FEE_FIELD = "unsupported_fee_field"
    OTHER = "other"


# Lowercase substrings of node error messages, checked in order.
_MESSAGE_PATTERNS: list[tuple[FailureKind, tuple[str, ...]]] = [
    (FailureKind.INSUFFICIENT_FUNDS, ("insufficient funds",)),
    (
        FailureKind.REPLACEMENT_UNDERPRICED,
        (
            "underpriced",
            "less than block base fee",
            "fee cap less than",
            "feecap too low",
            "fee too low",
        ),
    ),
    (
        FailureKind.NONCE_STALE,
        (
            "nonce too low",
            "nonce expired",
            "invalid nonce",
            "nonce has already been used",
        ),
    ),
    (
        FailureKind.UNSUPPORTED_FEE_FIELD,
        (
            "transaction type not supported",
            "unsupported transaction type",
            "invalid transaction type",
            "eip-1559 not supported",
            "eip-1559 transactions are not supported",
            "eip1559 not supported",
        ),
    ),
]


class ChainError(Exception):
    """Base exception for chain interaction errors."""

    pass


class TransactionFailure(ChainError):
    """Raised when a transaction could not be broadcast or confirmed.

    :ivar kind: Failure classification.
    :ivar message: Node or library message.
    :ivar nonce: Nonce used by the failing attempt, if known.
    :ivar fee_bid: Fee bid used by the failing attempt, if known.
    """

    def __init__(
        self,
        kind: FailureKind,
        message: str,
        nonce: int | None = None,
        fee_bid: FeeBid | None = None,
    ):
        self.kind = kind
        self.message = message
        self.nonce = nonce
        self.fee_bid = fee_bid
        super().__init__(f"{kind.value}: {message}")


def error_message(exc: BaseException) -> str:
    """Extract the most useful message from a web3/RPC exception.

    web3 raises errors whose first argument is often the JSON-RPC error
    object (``{"code": -32000, "message": "nonce too low"}``).
    """
    payload: Any = exc.args[0] if exc.args else None
    if isinstance(payload, dict):
        message = payload.get("message")
        if message:
            return str(message)
    rpc_response = getattr(exc, "rpc_response", None)
    if isinstance(rpc_response, dict):
        error = rpc_response.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
    return str(exc) or type(exc).__name__


def classify_error(exc: BaseException) -> FailureKind:
    """Map an exception raised while sending a transaction to a FailureKind.

    :param exc: Exception raised by web3, eth-account or the node.
    :returns: Failure classification (OTHER if unrecognized).
    """
    if isinstance(exc, TransactionFailure):
        return exc.kind
    if isinstance(exc, TimeExhausted):
        return FailureKind.OTHER

    message = error_message(exc).lower()
    for kind, patterns in _MESSAGE_PATTERNS:
        if any(pattern in message for pattern in patterns):
            return kind
    return FailureKind.OTHER


def to_failure(
    exc: BaseException, nonce: int | None = None, fee_bid: FeeBid | None = None
) -> TransactionFailure:
    """Wrap an arbitrary exception into a TransactionFailure."""
    if isinstance(exc, TransactionFailure):
        return exc
    return TransactionFailure(classify_error(exc), error_message(exc), nonce, fee_bid)
