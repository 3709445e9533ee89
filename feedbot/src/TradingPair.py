"""TradingPair: base/quote symbol pair observed by a price feed.

.. code-block:: python

    >>> pair = TradingPair.from_string("ETH/USDT")
    >>> str(pair)
    'eth/usdt'
    >>> pair.symbol()
    'ETHUSDT'
    >>> pair.symbol("-")
    'ETH-USDT'
"""

from __future__ import annotations


class TradingPair:
    """A trading pair such as eth/usdt.

    :ivar base: Base currency symbol (lowercase).
    :ivar quote: Quote currency symbol (lowercase).
    """

    def __init__(self, base: str, quote: str) -> None:
        """Initialize a trading pair.

        :param base: Base currency symbol (e.g., "eth", "btc").
        :param quote: Quote currency symbol (e.g., "usdt", "usd").
        """
        self.base = base.lower()
        self.quote = quote.lower()

    def __str__(self) -> str:
        return f"{self.base}/{self.quote}"

    def __repr__(self) -> str:
        return f"TradingPair({self.base!r}, {self.quote!r})"

    def __hash__(self) -> int:
        return hash(str(self))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, TradingPair):
            return NotImplemented
        return str(self) == str(other)

    def symbol(self, separator: str = "") -> str:
        """Return the uppercase exchange symbol (e.g., "ETHUSDT").

        :param separator: String placed between base and quote.
        """
        return f"{self.base.upper()}{separator}{self.quote.upper()}"

    @classmethod
    def from_string(cls, pair_str: str) -> TradingPair:
        """Parse a pair string in format "base/quote".

        :param pair_str: Pair string like "eth/usdt".
        :returns: New TradingPair instance.
        :raises ValueError: If the format is invalid or a side is empty.
        """
        parts = pair_str.strip().lower().split("/")
        if len(parts) != 2 or not all(parts):
            raise ValueError(
                f"Invalid pair format '{pair_str}'. Expected 'base/quote' (e.g., 'eth/usdt')"
            )
        return cls(parts[0], parts[1])
