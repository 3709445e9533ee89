"""ChainClient: Abstract interface to the on-chain price feed contract."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .FeeEscalation import FeeBid
    from .PriceSample import PriceSample, PublishedPrice


@dataclass(frozen=True)
class TransactionHandle:
    """A broadcast transaction awaiting confirmation.

    :ivar tx_hash: 0x-prefixed transaction hash.
    :ivar nonce: Nonce used.
    :ivar fee_bid: Fee bid used.
    """

    tx_hash: str
    nonce: int
    fee_bid: FeeBid


@dataclass(frozen=True)
class Receipt:
    """Confirmation of a mined transaction.

    :ivar tx_hash: 0x-prefixed transaction hash.
    :ivar block_number: Block the transaction was included in.
    :ivar gas_used: Gas consumed.
    :ivar raw: Library-specific receipt object.
    """

    tx_hash: str
    block_number: int
    gas_used: int = 0
    raw: Any = field(default=None, compare=False, repr=False)


class ChainClient(ABC):
    """Abstract base class for price feed contract clients.

    Transaction methods raise ``TransactionFailure`` tagged with a
    ``FailureKind``; read methods raise ``ChainError``.
    """

    @property
    @abstractmethod
    def address(self) -> str:
        """Address of the account submitting updates."""
        pass

    @abstractmethod
    async def get_price(self) -> PublishedPrice:
        """Read the price currently stored on-chain."""
        pass

    @abstractmethod
    async def submit_update(
        self, candidate: PriceSample, fee_bid: FeeBid, nonce: int
    ) -> TransactionHandle:
        """Sign and broadcast an ``updatePrice`` transaction.

        :param candidate: Price to publish.
        :param fee_bid: Fee parameters.
        :param nonce: Account nonce.
        :returns: Handle of the broadcast transaction.
        """
        pass

    @abstractmethod
    async def wait_for_confirmation(self, handle: TransactionHandle) -> Receipt:
        """Wait until the transaction is mined successfully."""
        pass

    @abstractmethod
    async def get_latest_nonce(self, address: str) -> int:
        """Return the latest transaction count of ``address``."""
        pass

    @abstractmethod
    async def get_current_fee_estimate(self) -> FeeBid:
        """Return a fee bid suitable for current network conditions."""
        pass

    async def get_balance(self) -> int | None:
        """Return the submitting account balance in wei, if supported."""
        return None

    async def get_owner(self) -> str | None:
        """Return the contract owner address, if the contract exposes one."""
        return None
