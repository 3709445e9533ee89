"""Shared fixtures: an in-memory ChainClient."""

from __future__ import annotations

import asyncio

import pytest

from feedbot.src.ChainClient import ChainClient, Receipt, TransactionHandle
from feedbot.src.FeeEscalation import FeeBid, LegacyFee
from feedbot.src.PriceSample import PriceSample, PublishedPrice
from feedbot.src.TransactionErrors import ChainError, TransactionFailure

GWEI = 10**9
BOT_ADDRESS = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"


class FakeChainClient(ChainClient):
    """ChainClient double that records submissions.

    :ivar price: Value returned by get_price() (updated on confirmation).
    :ivar submit_failures: Failures raised by successive submit_update() calls.
    :ivar confirm_failures: Failures raised by successive wait_for_confirmation() calls.
    :ivar confirm_gate: If set, confirmations wait for this event.
    """

    def __init__(self, price: int = 100_00000000, decimals: int = 8) -> None:
        self.price = price
        self.decimals = decimals
        self.nonce = 7
        self.balance: int | None = 10**18
        self.owner: str | None = BOT_ADDRESS
        self.fee_estimate: FeeBid = LegacyFee(10 * GWEI)

        self.submit_failures: list[BaseException] = []
        self.confirm_failures: list[BaseException] = []
        self.read_error: ChainError | None = None
        self.confirm_gate: asyncio.Event | None = None

        self.submissions: list[tuple[int, FeeBid, int]] = []
        self.price_reads = 0
        self.nonce_requests = 0

    @property
    def address(self) -> str:
        return BOT_ADDRESS

    async def get_price(self) -> PublishedPrice:
        self.price_reads += 1
        if self.read_error is not None:
            raise self.read_error
        return PublishedPrice(self.price, self.decimals)

    async def submit_update(
        self, candidate: PriceSample, fee_bid: FeeBid, nonce: int
    ) -> TransactionHandle:
        self.submissions.append((candidate.value, fee_bid, nonce))
        if self.submit_failures:
            raise self.submit_failures.pop(0)
        return TransactionHandle(
            tx_hash=f"0x{len(self.submissions):064x}", nonce=nonce, fee_bid=fee_bid
        )

    async def wait_for_confirmation(self, handle: TransactionHandle) -> Receipt:
        if self.confirm_gate is not None:
            await self.confirm_gate.wait()
        if self.confirm_failures:
            raise self.confirm_failures.pop(0)
        self.price = self.submissions[-1][0]
        return Receipt(tx_hash=handle.tx_hash, block_number=100 + len(self.submissions))

    async def get_latest_nonce(self, address: str) -> int:
        self.nonce_requests += 1
        return self.nonce

    async def get_current_fee_estimate(self) -> FeeBid:
        return self.fee_estimate

    async def get_balance(self) -> int | None:
        return self.balance

    async def get_owner(self) -> str | None:
        return self.owner


def failure(kind, message: str = "rejected") -> TransactionFailure:
    """Build a TransactionFailure of the given kind."""
    return TransactionFailure(kind, message)


@pytest.fixture
def chain() -> FakeChainClient:
    """Fake chain with 100.00000000 published at 8 decimals."""
    return FakeChainClient()
