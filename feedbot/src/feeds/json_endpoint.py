"""Generic JSON endpoint feed.

Polls any HTTP endpoint returning JSON and reads the price at a dotted
path, e.g. ``data.price`` or ``data.attributes.token_prices.0``.
"""

from __future__ import annotations

from typing import Any

from ..PriceSample import PriceSample
from .base import BaseFeed, FeedConfigError, register_feed, resolve_path

__all__ = ["JsonEndpointFeed", "resolve_path"]


@register_feed
class JsonEndpointFeed(BaseFeed):
    """Polling feed for an arbitrary JSON price endpoint.

    :ivar url: Endpoint URL.
    :ivar price_path: Dotted path to the price in the response.
    """

    name = "http"
    DEFAULT_PRICE_PATH = "data.price"

    def __init__(
        self,
        *args: Any,
        url: str | None = None,
        price_path: str | None = None,
        **kwargs: Any,
    ) -> None:
        """Initialize the feed.

        :param url: Endpoint URL (required).
        :param price_path: Dotted path to the price (default: "data.price").
        :raises FeedConfigError: If no URL is given.
        """
        super().__init__(*args, **kwargs)
        if not url:
            raise FeedConfigError("The http feed requires a URL")
        self.url = url
        self.price_path = price_path or self.DEFAULT_PRICE_PATH

    async def fetch_once(self) -> PriceSample | None:
        """Fetch and extract the price, sending the API key as a bearer token."""
        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else None
        return await self._fetch_price(self.url, self.price_path, headers=headers)
