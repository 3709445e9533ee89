"""Binance feed.

Stream: wss://stream.binance.com:9443/ws/{symbol}@trade (field "p")
Poll: https://api.binance.com/api/v3/ticker/price?symbol={SYMBOL}
Rate Limit: High (no key required)
"""

from __future__ import annotations

import json
import logging
from typing import Any, AsyncIterator

import aiohttp

from ..PriceSample import PriceSample
from .base import BaseFeed, FeedError, register_feed

logger = logging.getLogger(__name__)


@register_feed
class BinanceFeed(BaseFeed):
    """Feed for Binance spot prices.

    Streams individual trades over WebSocket, or polls the ticker endpoint.
    Binance quotes in USDT, so pairs are typically "eth/usdt".

    :ivar stream_url: WebSocket URL (default: trade stream of the pair).
    """

    name = "binance"
    BASE_URL = "https://api.binance.com/api/v3"
    STREAM_BASE_URL = "wss://stream.binance.com:9443/ws"
    HEARTBEAT = 30.0

    def __init__(self, *args: Any, stream_url: str | None = None, **kwargs: Any) -> None:
        """Initialize the feed.

        :param stream_url: Optional WebSocket URL override.
        """
        super().__init__(*args, **kwargs)
        self.stream_url = (
            stream_url or f"{self.STREAM_BASE_URL}/{self.pair.symbol().lower()}@trade"
        )

    def parse_message(self, data: str | bytes | dict) -> PriceSample | None:
        """Parse a trade stream message.

        :param data: Raw JSON text or decoded message.
        :returns: Sample, or None if the message carries no valid price.
        """
        try:
            message = json.loads(data) if isinstance(data, (str, bytes)) else data
        except ValueError as e:
            logger.warning(f"[binance] Invalid JSON message: {e}")
            return None

        if not isinstance(message, dict) or "p" not in message:
            logger.debug(f"[binance] Ignoring message without price: {message}")
            return None

        trade_time = message.get("T")
        observed_at = trade_time / 1000 if isinstance(trade_time, (int, float)) else None
        return self._to_sample(message["p"], observed_at)

    async def stream(self) -> AsyncIterator[PriceSample]:
        """Stream trade prices until the WebSocket closes.

        :raises FeedError: On connection or protocol errors.
        """
        try:
            async with aiohttp.ClientSession() as session:
                async with session.ws_connect(self.stream_url, heartbeat=self.HEARTBEAT) as ws:
                    logger.info(f"[binance] Connected to {self.stream_url}")
                    async for msg in ws:
                        if msg.type == aiohttp.WSMsgType.TEXT:
                            sample = self.parse_message(msg.data)
                            if sample is not None:
                                yield sample
                        elif msg.type == aiohttp.WSMsgType.ERROR:
                            raise FeedError(f"WebSocket error: {ws.exception()}")
                    logger.info(f"[binance] WebSocket closed (code {ws.close_code})")
        except aiohttp.ClientError as e:
            raise FeedError(f"WebSocket connection failed: {e}") from e

    async def fetch_once(self) -> PriceSample | None:
        """Fetch the latest ticker price.

        :returns: Sample, or None on failure.
        """
        return await self._fetch_price(
            f"{self.BASE_URL}/ticker/price", params={"symbol": self.pair.symbol()}
        )
