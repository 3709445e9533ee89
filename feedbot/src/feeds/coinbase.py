"""Coinbase Exchange feed (poll only).

Endpoint: https://api.exchange.coinbase.com/products/{BASE}-{QUOTE}/ticker
"""

from ..PriceSample import PriceSample
from .base import BaseFeed, register_feed


@register_feed
class CoinbaseFeed(BaseFeed):
    """Polling feed for native USD pairs such as "eth/usd"."""

    name = "coinbase"
    BASE_URL = "https://api.exchange.coinbase.com"

    async def fetch_once(self) -> PriceSample | None:
        return await self._fetch_price(
            f"{self.BASE_URL}/products/{self.pair.symbol('-')}/ticker"
        )
