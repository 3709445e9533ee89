"""Unit tests for TradingPair."""

import pytest

from feedbot.src.TradingPair import TradingPair


class TestTradingPairBasics:
    """Test basic TradingPair functionality."""

    def test_init_normalizes_to_lowercase(self) -> None:
        """Symbols should be normalized to lowercase."""
        pair = TradingPair("ETH", "USDT")
        assert pair.base == "eth"
        assert pair.quote == "usdt"

    def test_str_format(self) -> None:
        """String format should be 'base/quote'."""
        assert str(TradingPair("eth", "usd")) == "eth/usd"

    def test_repr(self) -> None:
        """Repr should be developer-friendly."""
        assert repr(TradingPair("btc", "usd")) == "TradingPair('btc', 'usd')"

    def test_equality_and_hash(self) -> None:
        """Pairs differing only in case are equal and hash alike."""
        pair1 = TradingPair("eth", "usdt")
        pair2 = TradingPair("ETH", "USDT")
        assert pair1 == pair2
        assert hash(pair1) == hash(pair2)
        assert len({pair1, pair2}) == 1

    def test_inequality(self) -> None:
        """Different pairs should not be equal."""
        assert TradingPair("btc", "usd") != TradingPair("eth", "usd")

    def test_equality_with_non_pair(self) -> None:
        """Comparison with non-TradingPair should return NotImplemented."""
        assert TradingPair("btc", "usd").__eq__("btc/usd") == NotImplemented

    def test_symbol(self) -> None:
        """Exchange symbols are uppercase with optional separator."""
        pair = TradingPair("eth", "usdt")
        assert pair.symbol() == "ETHUSDT"
        assert pair.symbol("-") == "ETH-USDT"


class TestTradingPairFromString:
    """Test TradingPair.from_string() parsing."""

    def test_valid_pair(self) -> None:
        """Parse valid pair string."""
        pair = TradingPair.from_string("eth/usdt")
        assert pair.base == "eth"
        assert pair.quote == "usdt"

    def test_mixed_case_and_whitespace(self) -> None:
        """Mixed case and surrounding whitespace are normalized."""
        pair = TradingPair.from_string("  EtH/UsD ")
        assert str(pair) == "eth/usd"

    @pytest.mark.parametrize("bad", ["ethusd", "eth/usd/extra", "", "/", "eth/", "/usd"])
    def test_invalid(self, bad: str) -> None:
        """Malformed strings should raise ValueError."""
        with pytest.raises(ValueError, match="Invalid pair format"):
            TradingPair.from_string(bad)
