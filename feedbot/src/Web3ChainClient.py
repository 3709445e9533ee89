"""Web3ChainClient: ChainClient backed by web3.py and a local signing key."""

from __future__ import annotations

import asyncio
import json
import logging
import time
from pathlib import Path
from typing import Any, Callable, TypeVar

from eth_account import Account
from eth_account.signers.local import LocalAccount
from web3 import Web3
from web3.contract import Contract
from web3.exceptions import TimeExhausted

from .ChainClient import ChainClient, Receipt, TransactionHandle
from .FeeEscalation import DynamicFee, FeeBid, LegacyFee
from .PriceSample import PriceSample, PublishedPrice
from .TransactionErrors import ChainError, FailureKind, TransactionFailure, to_failure

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Minimal ABI of the price feed contract.
PRICE_FEED_ABI: list[dict[str, Any]] = [
    {
        "type": "function",
        "name": "updatePrice",
        "stateMutability": "nonpayable",
        "inputs": [{"name": "newPrice", "type": "uint256"}],
        "outputs": [],
    },
    {
        "type": "function",
        "name": "getPrice",
        "stateMutability": "view",
        "inputs": [],
        "outputs": [{"name": "", "type": "uint256"}],
    },
    {
        "type": "function",
        "name": "owner",
        "stateMutability": "view",
        "inputs": [],
        "outputs": [{"name": "", "type": "address"}],
    },
]

DEFAULT_GAS_LIMIT = 50000
DEFAULT_CONFIRMATION_TIMEOUT = 120.0


class Web3ChainClient(ChainClient):
    """Chain client for an EVM price feed contract.

    web3.py is synchronous; every call runs in a worker thread so the event
    loop keeps serving the price feed while a receipt is awaited.

    :ivar w3: Web3 instance.
    :ivar account: Local signing account.
    :ivar contract: Price feed contract instance.
    :ivar decimals: Decimals of the on-chain price.
    :ivar gas_limit: Gas limit for updatePrice transactions.
    :ivar confirmation_timeout: Seconds to wait for a receipt.
    :ivar legacy: Estimate legacy gas prices instead of EIP-1559 fees.
    """

    def __init__(
        self,
        rpc_url: str,
        private_key: str,
        contract_address: str,
        decimals: int = 8,
        gas_limit: int = DEFAULT_GAS_LIMIT,
        confirmation_timeout: float = DEFAULT_CONFIRMATION_TIMEOUT,
        legacy: bool = False,
        abi: list[dict[str, Any]] | None = None,
        w3: Web3 | None = None,
    ) -> None:
        """Initialize the client.

        :param rpc_url: JSON-RPC endpoint URL.
        :param private_key: Hex private key of the bot wallet.
        :param contract_address: Price feed contract address.
        :param decimals: Decimals of the on-chain price (default: 8).
        :param gas_limit: Gas limit per update (default: 50000).
        :param confirmation_timeout: Receipt wait timeout (default: 120s).
        :param legacy: Use legacy gas pricing for estimates (default: False).
        :param abi: Optional contract ABI (default: PRICE_FEED_ABI).
        :param w3: Optional preconfigured Web3 instance.
        :raises ValueError: If the key or address is malformed.
        """
        self.rpc_url = rpc_url
        self.w3 = w3 or Web3(Web3.HTTPProvider(rpc_url))
        self.account: LocalAccount = Account.from_key(private_key)

        if not Web3.is_address(contract_address):
            raise ValueError(f"Invalid contract address: {contract_address}")
        self.contract: Contract = self.w3.eth.contract(
            address=Web3.to_checksum_address(contract_address),
            abi=abi or PRICE_FEED_ABI,
        )

        self.decimals = decimals
        self.gas_limit = gas_limit
        self.confirmation_timeout = confirmation_timeout
        self.legacy = legacy

    @staticmethod
    def load_abi(path: str | Path) -> list[dict[str, Any]]:
        """Load a contract ABI from a JSON file.

        Accepts either a bare ABI list or a compiler artifact with an
        ``abi`` key.

        :param path: Path to the JSON file.
        :returns: ABI list.
        """
        with open(path, "r") as file:
            data = json.load(file)
        return data["abi"] if isinstance(data, dict) else data

    @property
    def address(self) -> str:
        return self.account.address

    async def _call(self, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        return await asyncio.to_thread(fn, *args, **kwargs)

    async def _read(self, what: str, fn: Callable[..., T], *args: Any) -> T:
        try:
            return await self._call(fn, *args)
        except Exception as e:
            raise ChainError(f"Failed to read {what}: {e}") from e

    async def is_connected(self) -> bool:
        """Check that the RPC endpoint answers."""
        return await self._call(self.w3.is_connected)

    async def get_price(self) -> PublishedPrice:
        value = await self._read("price", self.contract.functions.getPrice().call)
        return PublishedPrice(int(value), self.decimals, time.time())

    async def get_latest_nonce(self, address: str) -> int:
        return await self._read(
            "nonce", self.w3.eth.get_transaction_count, address, "latest"
        )

    async def get_current_fee_estimate(self) -> FeeBid:
        return await self._read("fee estimate", self._estimate_fee)

    def _estimate_fee(self) -> FeeBid:
        if self.legacy:
            return LegacyFee(self.w3.eth.gas_price)

        block = self.w3.eth.get_block("latest")
        base_fee = block.get("baseFeePerGas")
        if base_fee is None:
            logger.debug("Latest block has no baseFeePerGas, using legacy gas price")
            return LegacyFee(self.w3.eth.gas_price)

        priority_fee = self.w3.eth.max_priority_fee
        return DynamicFee(2 * base_fee + priority_fee, priority_fee)

    async def get_balance(self) -> int | None:
        return await self._read("balance", self.w3.eth.get_balance, self.address)

    async def get_owner(self) -> str | None:
        return await self._read("owner", self.contract.functions.owner().call)

    async def submit_update(
        self, candidate: PriceSample, fee_bid: FeeBid, nonce: int
    ) -> TransactionHandle:
        if candidate.decimals != self.decimals:
            raise ValueError(
                f"Sample has {candidate.decimals} decimals, contract expects {self.decimals}"
            )
        try:
            tx_hash = await self._call(self._send_update, candidate.value, fee_bid, nonce)
        except Exception as e:
            raise to_failure(e, nonce, fee_bid) from e
        return TransactionHandle(tx_hash=tx_hash, nonce=nonce, fee_bid=fee_bid)

    def _send_update(self, value: int, fee_bid: FeeBid, nonce: int) -> str:
        tx_params: dict[str, Any] = {
            "from": self.address,
            "nonce": nonce,
            "gas": self.gas_limit,
            **fee_bid.to_tx_params(),
        }
        tx = self.contract.functions.updatePrice(value).build_transaction(tx_params)
        signed = self.account.sign_transaction(tx)
        tx_hash = self.w3.eth.send_raw_transaction(signed.raw_transaction)
        return Web3.to_hex(tx_hash)

    async def wait_for_confirmation(self, handle: TransactionHandle) -> Receipt:
        try:
            receipt = await self._call(
                self.w3.eth.wait_for_transaction_receipt,
                handle.tx_hash,
                timeout=self.confirmation_timeout,
            )
        except TimeExhausted as e:
            raise TransactionFailure(
                FailureKind.OTHER,
                f"Transaction {handle.tx_hash} not mined within {self.confirmation_timeout}s",
                handle.nonce,
                handle.fee_bid,
            ) from e
        except Exception as e:
            raise to_failure(e, handle.nonce, handle.fee_bid) from e

        if receipt["status"] != 1:
            raise TransactionFailure(
                FailureKind.OTHER,
                f"Transaction {handle.tx_hash} reverted",
                handle.nonce,
                handle.fee_bid,
            )

        return Receipt(
            tx_hash=Web3.to_hex(receipt["transactionHash"]),
            block_number=receipt["blockNumber"],
            gas_used=receipt.get("gasUsed", 0),
            raw=receipt,
        )
