"""
Price feeds for a single trading pair.

Usage:
    from feedbot.src.feeds import get_feed, get_available_feeds

    # Get list of available feeds
    available = get_available_feeds()
    # ['binance', 'coinbase', 'http']

    # Streaming feed
    feed = get_feed("binance", pair="eth/usdt", decimals=8)
    async for sample in feed.stream():
        ...

    # Polling feed
    feed = get_feed("http", pair="tkn/usd", url="https://...", price_path="data.price")
    sample = await feed.fetch_once()
"""

# Import base classes and utilities
from .base import (
    FEED_REGISTRY,
    BaseFeed,
    FeedConfigError,
    FeedError,
    FeedHTTPError,
    get_available_feeds,
    get_feed,
    register_feed,
)

# Import all feed implementations to trigger registration
from .binance import BinanceFeed
from .coinbase import CoinbaseFeed
from .json_endpoint import JsonEndpointFeed

__all__ = [
    # Base classes
    "BaseFeed",
    "FeedError",
    "FeedConfigError",
    "FeedHTTPError",
    # Registry functions
    "register_feed",
    "get_feed",
    "get_available_feeds",
    "FEED_REGISTRY",
    # Feed implementations
    "BinanceFeed",
    "CoinbaseFeed",
    "JsonEndpointFeed",
]
