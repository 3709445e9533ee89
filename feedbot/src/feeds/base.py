"""Base feed interface and shared HTTP client management.

A feed observes a single trading pair and produces PriceSample values in
one of two ways:

- ``stream()``: async iterator over a live connection (e.g., WebSocket).
  Each call opens a new connection; the iterator ends when the connection
  closes and is not restartable.
- ``fetch_once()``: one HTTP request per call, used on a polling interval.

A shared httpx.AsyncClient is used across all feeds for polling.

.. code-block:: python

    @register_feed
    class MyFeed(BaseFeed):
        name = "myfeed"

        async def fetch_once(self) -> PriceSample | None:
            return await self._fetch_price(f"https://api.example.com/{self.pair.symbol()}")
"""

from __future__ import annotations

import logging
from abc import ABC
from typing import Any, AsyncIterator, ClassVar

import httpx

from ..PriceSample import PriceSample
from ..TradingPair import TradingPair

logger = logging.getLogger(__name__)


def resolve_path(data: Any, path: str) -> Any:
    """Walk a dotted path through nested dicts and lists.

    :param data: Decoded JSON document.
    :param path: Dotted path; numeric segments index into lists.
    :returns: Value at the path.
    :raises KeyError: If a segment is missing.
    """
    current = data
    for segment in path.split("."):
        if isinstance(current, list):
            try:
                current = current[int(segment)]
            except (ValueError, IndexError) as e:
                raise KeyError(segment) from e
        elif isinstance(current, dict):
            current = current[segment]
        else:
            raise KeyError(segment)
    return current


class FeedError(Exception):
    """Base exception for feed errors."""

    pass


class FeedConfigError(FeedError):
    """Raised when feed configuration is invalid (e.g., unsupported mode)."""

    pass


class FeedHTTPError(FeedError):
    """Raised when HTTP request fails.

    :ivar status_code: HTTP status code from the failed request.
    """

    def __init__(self, status_code: int, message: str):
        self.status_code = status_code
        super().__init__(f"HTTP {status_code}: {message}")


class BaseFeed(ABC):
    """Abstract base class for price feeds.

    Subclasses set ``name`` and implement ``stream()``, ``fetch_once()`` or
    both.

    :cvar name: Unique identifier for this feed.
    :cvar DEFAULT_TIMEOUT: Default HTTP request timeout in seconds.
    :ivar pair: Observed trading pair.
    :ivar decimals: Decimals of produced samples.
    :ivar api_key: Optional API key for authenticated endpoints.
    :ivar timeout: Request timeout in seconds.
    """

    # Class-level shared HTTP client
    _shared_client: ClassVar[httpx.AsyncClient | None] = None

    name: ClassVar[str] = ""

    DEFAULT_TIMEOUT = 10.0

    def __init__(
        self,
        pair: TradingPair | str,
        decimals: int = 8,
        api_key: str | None = None,
        timeout: float | None = None,
    ) -> None:
        """Initialize the feed.

        :param pair: Trading pair or "base/quote" string.
        :param decimals: Decimals of produced samples (default: 8).
        :param api_key: Optional API key.
        :param timeout: Request timeout in seconds (default: 10).
        """
        self.pair = pair if isinstance(pair, TradingPair) else TradingPair.from_string(pair)
        self.decimals = decimals
        self.api_key = api_key
        self.timeout = timeout or self.DEFAULT_TIMEOUT

    def __repr__(self) -> str:
        return f"{type(self).__name__}({str(self.pair)!r}, decimals={self.decimals})"

    @property
    def supports_stream(self) -> bool:
        """True if the subclass implements stream()."""
        return type(self).stream is not BaseFeed.stream

    @property
    def supports_poll(self) -> bool:
        """True if the subclass implements fetch_once()."""
        return type(self).fetch_once is not BaseFeed.fetch_once

    @classmethod
    def get_shared_client(cls) -> httpx.AsyncClient:
        """Get or create the shared HTTP client.

        :returns: Shared httpx.AsyncClient instance.
        """
        if cls._shared_client is None or cls._shared_client.is_closed:
            cls._shared_client = httpx.AsyncClient(
                timeout=httpx.Timeout(30.0, connect=10.0),
                limits=httpx.Limits(max_connections=10, max_keepalive_connections=5),
                follow_redirects=True,
            )
        return cls._shared_client

    @classmethod
    async def close_shared_client(cls) -> None:
        """Close the shared HTTP client."""
        if cls._shared_client is not None and not cls._shared_client.is_closed:
            await cls._shared_client.aclose()
            cls._shared_client = None

    def stream(self) -> AsyncIterator[PriceSample]:
        """Open a connection and yield samples until it closes.

        :raises FeedConfigError: If the feed cannot stream.
        :raises FeedError: On connection errors.
        """
        raise FeedConfigError(f"Feed '{self.name}' does not support streaming")

    async def fetch_once(self) -> PriceSample | None:
        """Fetch the current price.

        :returns: Sample, or None if the fetch failed or the payload was malformed.
        :raises FeedConfigError: If the feed cannot poll.
        """
        raise FeedConfigError(f"Feed '{self.name}' does not support polling")

    def _to_sample(self, raw: Any, observed_at: float | None = None) -> PriceSample | None:
        """Convert a raw price value into a sample, or None if malformed.

        Floats are stringified before parsing so no binary rounding leaks in.
        """
        try:
            if raw is None or isinstance(raw, bool):
                raise ValueError(f"not a price: {raw!r}")
            return PriceSample.from_text(str(raw), self.decimals, observed_at)
        except ValueError as e:
            logger.warning(f"[{self.name}] Malformed price for {self.pair}: {e}")
            return None

    async def _get(
        self,
        url: str,
        *,
        params: dict | None = None,
        headers: dict | None = None,
    ) -> httpx.Response:
        """Make an HTTP GET request using the shared client.

        :param url: Request URL.
        :param params: Optional query parameters.
        :param headers: Optional request headers.
        :returns: httpx.Response object.
        :raises FeedHTTPError: On non-2xx response.
        :raises FeedError: On network/timeout errors.
        """
        client = self.get_shared_client()
        try:
            response = await client.get(
                url,
                params=params,
                headers=headers,
                timeout=self.timeout,
            )
            if not response.is_success:
                logger.debug(
                    "HTTP GET %s failed with status %s: %s",
                    url,
                    response.status_code,
                    response.text[:200],
                )
                raise FeedHTTPError(response.status_code, response.text[:200])
            return response
        except httpx.TimeoutException as e:
            raise FeedError(f"Request timeout: {e}") from e
        except httpx.RequestError as e:
            raise FeedError(f"Request failed: {e}") from e

    async def _fetch_price(
        self,
        url: str,
        path: str = "price",
        *,
        params: dict | None = None,
        headers: dict | None = None,
    ) -> PriceSample | None:
        """GET a JSON document and read the price at a dotted path.

        :returns: Sample, or None if the request failed or the price is missing.
        """
        try:
            response = await self._get(url, params=params, headers=headers)
            return self._to_sample(resolve_path(response.json(), path))
        except FeedError as e:
            logger.warning(f"[{self.name}] Failed to fetch {url}: {e}")
            return None
        except (KeyError, ValueError, TypeError) as e:
            logger.warning(
                f"[{self.name}] No price at '{path}' in response from {url}: {e}"
            )
            return None


# Registry of available feeds (populated by subclass imports)
FEED_REGISTRY: dict[str, type[BaseFeed]] = {}


def register_feed(cls: type[BaseFeed]) -> type[BaseFeed]:
    """Decorator to register a feed class in the global registry.

    :param cls: Feed class to register.
    :returns: The registered class (unchanged).
    :raises ValueError: If feed has no name defined.
    """
    if not cls.name:
        raise ValueError(f"Feed {cls.__name__} must define a 'name' class variable")
    FEED_REGISTRY[cls.name] = cls
    return cls


def get_feed(name: str, **options: Any) -> BaseFeed:
    """Get a feed instance by name.

    :param name: Feed name (e.g., "binance", "coinbase").
    :param options: Constructor arguments (pair, decimals, ...).
    :returns: Feed instance.
    :raises ValueError: If feed name is unknown.
    """
    if name not in FEED_REGISTRY:
        available = ", ".join(sorted(FEED_REGISTRY.keys()))
        raise ValueError(f"Unknown feed '{name}'. Available: {available}")
    return FEED_REGISTRY[name](**options)


def get_available_feeds() -> list[str]:
    """Get list of available feed names.

    :returns: Sorted list of registered feed names.
    """
    return sorted(FEED_REGISTRY.keys())
