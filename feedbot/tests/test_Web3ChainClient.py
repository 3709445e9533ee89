"""Unit tests for Web3ChainClient with a mocked Web3 instance."""

import json
from unittest.mock import MagicMock

import pytest
from conftest import BOT_ADDRESS
from web3.exceptions import TimeExhausted

from feedbot.src.ChainClient import TransactionHandle
from feedbot.src.FeeEscalation import DynamicFee, LegacyFee
from feedbot.src.PriceSample import PriceSample
from feedbot.src.TransactionErrors import ChainError, FailureKind, TransactionFailure
from feedbot.src.Web3ChainClient import PRICE_FEED_ABI, Web3ChainClient

# Well-known local development key (Hardhat/Anvil account #0).
DEV_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"
CONTRACT = "0x5FbDB2315678afecb367f032d93F642f64180aa3"


def make_client(**kwargs) -> tuple[Web3ChainClient, MagicMock, MagicMock]:
    w3 = MagicMock()
    contract = w3.eth.contract.return_value
    client = Web3ChainClient("http://localhost:8545", DEV_KEY, CONTRACT, w3=w3, **kwargs)
    return client, w3, contract


class TestWeb3ChainClientInit:
    """Test construction."""

    def test_address_from_key(self) -> None:
        """The bot address is derived from the private key."""
        client, _, _ = make_client()
        assert client.address == BOT_ADDRESS

    def test_contract_built_with_checksum_address(self) -> None:
        """The contract uses the checksum address and default ABI."""
        _, w3, _ = make_client()
        w3.eth.contract.assert_called_once_with(address=CONTRACT, abi=PRICE_FEED_ABI)

    def test_lowercase_address_accepted(self) -> None:
        """Lowercase addresses are checksummed."""
        w3 = MagicMock()
        Web3ChainClient("http://x", DEV_KEY, CONTRACT.lower(), w3=w3)
        assert w3.eth.contract.call_args.kwargs["address"] == CONTRACT

    def test_invalid_contract_address(self) -> None:
        """Malformed addresses are rejected."""
        with pytest.raises(ValueError, match="Invalid contract address"):
            Web3ChainClient("http://x", DEV_KEY, "0x1234", w3=MagicMock())

    def test_load_abi_from_artifact(self, tmp_path) -> None:
        """ABI can be read from a compiler artifact or a bare list."""
        artifact = tmp_path / "PriceFeed.json"
        artifact.write_text(json.dumps({"contractName": "PriceFeed", "abi": PRICE_FEED_ABI}))
        bare = tmp_path / "abi.json"
        bare.write_text(json.dumps(PRICE_FEED_ABI))

        assert Web3ChainClient.load_abi(artifact) == PRICE_FEED_ABI
        assert Web3ChainClient.load_abi(bare) == PRICE_FEED_ABI


class TestReads:
    """Test contract and account reads."""

    @pytest.mark.asyncio
    async def test_get_price(self) -> None:
        """getPrice() is returned at the configured decimals."""
        client, _, contract = make_client(decimals=8)
        contract.functions.getPrice.return_value.call.return_value = 301245000000

        price = await client.get_price()

        assert price.value == 301245000000
        assert price.decimals == 8

    @pytest.mark.asyncio
    async def test_read_failure_raises_chain_error(self) -> None:
        """RPC failures surface as ChainError."""
        client, _, contract = make_client()
        contract.functions.getPrice.return_value.call.side_effect = ConnectionError("refused")

        with pytest.raises(ChainError, match="Failed to read price"):
            await client.get_price()

    @pytest.mark.asyncio
    async def test_get_latest_nonce(self) -> None:
        """Nonce is the latest confirmed transaction count."""
        client, w3, _ = make_client()
        w3.eth.get_transaction_count.return_value = 12

        assert await client.get_latest_nonce(client.address) == 12
        w3.eth.get_transaction_count.assert_called_once_with(BOT_ADDRESS, "latest")

    @pytest.mark.asyncio
    async def test_get_owner_and_balance(self) -> None:
        """Owner and balance are read from chain."""
        client, w3, contract = make_client()
        contract.functions.owner.return_value.call.return_value = BOT_ADDRESS
        w3.eth.get_balance.return_value = 5 * 10**17

        assert await client.get_owner() == BOT_ADDRESS
        assert await client.get_balance() == 5 * 10**17


class TestFeeEstimate:
    """Test fee estimation."""

    @pytest.mark.asyncio
    async def test_dynamic_fee(self) -> None:
        """EIP-1559 chains get 2 * base fee + tip."""
        client, w3, _ = make_client()
        w3.eth.get_block.return_value = {"baseFeePerGas": 10}
        w3.eth.max_priority_fee = 2

        assert await client.get_current_fee_estimate() == DynamicFee(22, 2)

    @pytest.mark.asyncio
    async def test_no_base_fee_uses_gas_price(self) -> None:
        """Pre-London blocks fall back to the legacy gas price."""
        client, w3, _ = make_client()
        w3.eth.get_block.return_value = {}
        w3.eth.gas_price = 7

        assert await client.get_current_fee_estimate() == LegacyFee(7)

    @pytest.mark.asyncio
    async def test_legacy_mode(self) -> None:
        """Legacy mode never looks at the block."""
        client, w3, _ = make_client(legacy=True)
        w3.eth.gas_price = 9

        assert await client.get_current_fee_estimate() == LegacyFee(9)
        w3.eth.get_block.assert_not_called()


class TestSubmit:
    """Test transaction submission and confirmation."""

    def _prepare(self, contract: MagicMock, w3: MagicMock) -> None:
        contract.functions.updatePrice.return_value.build_transaction.return_value = {
            "to": CONTRACT,
            "data": "0x",
            "value": 0,
            "gas": 50000,
            "gasPrice": 10 * 10**9,
            "nonce": 3,
            "chainId": 31337,
        }
        w3.eth.send_raw_transaction.return_value = b"\x12" * 32

    @pytest.mark.asyncio
    async def test_submit_update(self) -> None:
        """The update is built with nonce, gas and fee, signed and sent."""
        client, w3, contract = make_client()
        self._prepare(contract, w3)

        handle = await client.submit_update(
            PriceSample(301245000000, 8), LegacyFee(10 * 10**9), 3
        )

        assert handle.tx_hash == "0x" + "12" * 32
        assert handle.nonce == 3
        contract.functions.updatePrice.assert_called_once_with(301245000000)
        contract.functions.updatePrice.return_value.build_transaction.assert_called_once_with(
            {"from": BOT_ADDRESS, "nonce": 3, "gas": 50000, "gasPrice": 10 * 10**9}
        )
        w3.eth.send_raw_transaction.assert_called_once()

    @pytest.mark.asyncio
    async def test_submit_classifies_rpc_error(self) -> None:
        """Node rejections become typed failures."""
        client, w3, contract = make_client()
        self._prepare(contract, w3)
        w3.eth.send_raw_transaction.side_effect = ValueError(
            {"code": -32000, "message": "nonce too low"}
        )

        with pytest.raises(TransactionFailure) as info:
            await client.submit_update(PriceSample(1, 8), LegacyFee(1), 3)

        assert info.value.kind is FailureKind.NONCE_STALE
        assert info.value.nonce == 3
        assert info.value.fee_bid == LegacyFee(1)

    @pytest.mark.asyncio
    async def test_submit_decimals_mismatch(self) -> None:
        """Samples must match the contract's decimals."""
        client, _, _ = make_client(decimals=8)

        with pytest.raises(ValueError, match="contract expects 8"):
            await client.submit_update(PriceSample(1, 18), LegacyFee(1), 0)

    @pytest.mark.asyncio
    async def test_confirmation(self) -> None:
        """A successful receipt is returned."""
        client, w3, _ = make_client()
        w3.eth.wait_for_transaction_receipt.return_value = {
            "status": 1,
            "transactionHash": b"\xab" * 32,
            "blockNumber": 42,
            "gasUsed": 30000,
        }

        receipt = await client.wait_for_confirmation(
            TransactionHandle("0x" + "ab" * 32, 3, LegacyFee(1))
        )

        assert receipt.tx_hash == "0x" + "ab" * 32
        assert receipt.block_number == 42
        assert receipt.gas_used == 30000

    @pytest.mark.asyncio
    async def test_reverted(self) -> None:
        """A status 0 receipt is a failure."""
        client, w3, _ = make_client()
        w3.eth.wait_for_transaction_receipt.return_value = {
            "status": 0,
            "transactionHash": b"\xab" * 32,
            "blockNumber": 42,
        }

        with pytest.raises(TransactionFailure, match="reverted") as info:
            await client.wait_for_confirmation(TransactionHandle("0xab", 3, LegacyFee(1)))

        assert info.value.kind is FailureKind.OTHER

    @pytest.mark.asyncio
    async def test_timeout(self) -> None:
        """A receipt timeout is a failure."""
        client, w3, _ = make_client(confirmation_timeout=5)
        w3.eth.wait_for_transaction_receipt.side_effect = TimeExhausted("timeout")

        with pytest.raises(TransactionFailure, match="not mined within 5s") as info:
            await client.wait_for_confirmation(TransactionHandle("0xab", 3, LegacyFee(1)))

        assert info.value.kind is FailureKind.OTHER
        w3.eth.wait_for_transaction_receipt.assert_called_once_with("0xab", timeout=5)
