#!/usr/bin/env python3
"""Price Feed Bot.

Watches a live price feed and publishes the price to an on-chain price feed
contract whenever it diverges from the stored value by more than the
configured threshold.

Configure via CLI flags or environment variables (CLI args take precedence).
"""

import argparse
import asyncio
import logging
import os
import sys
from decimal import Decimal, InvalidOperation

from web3 import Web3

from .src.FeeEscalation import FeeEscalationStrategy, LegacyFee
from .src.feeds import get_available_feeds, get_feed
from .src.PriceFeedBot import MODES, PriceFeedBot
from .src.ThresholdPolicy import ThresholdConfig
from .src.UpdateCoordinator import UpdateCoordinator
from .src.Web3ChainClient import Web3ChainClient

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)


def env_flag(name: str) -> bool:
    """Interpret an environment variable as a boolean flag."""
    return (os.environ.get(name) or "").strip().lower() in ("1", "true", "yes", "on")


def parse_gwei(value: str | None) -> int | None:
    """Convert a gwei amount string to wei.

    :param value: Amount in gwei (e.g., "1.5"), or None/empty.
    :returns: Amount in wei, or None if no value given.
    :raises ValueError: If the value is not a non-negative number.
    """
    if value is None or not str(value).strip():
        return None
    try:
        amount = Decimal(str(value).strip())
    except InvalidOperation as e:
        raise ValueError(f"Invalid gwei amount '{value}'") from e
    if not amount.is_finite() or amount < 0:
        raise ValueError(f"Invalid gwei amount '{value}'")
    return int(Web3.to_wei(amount, "gwei"))


def build_parser() -> argparse.ArgumentParser:
    """Build the CLI argument parser with environment defaults."""
    available_feeds = get_available_feeds()

    parser = argparse.ArgumentParser(
        description="Price Feed Bot: threshold-triggered on-chain price updates",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=f"""
Available feeds:
  {', '.join(available_feeds)}

Examples:
  # Stream ETH/USDT trades from Binance, publish on 1% moves
  python -m feedbot.main --rpc-url https://rpc.example.org \\
      --contract-address 0x... --feed binance --pair eth/usdt

  # Poll a JSON endpoint every 15 minutes
  python -m feedbot.main --mode poll --poll-period 900 --feed http \\
      --feed-url https://api.example.com/price --price-path data.price

Environment variables (CLI args take precedence):
  RPC_URL, BOT_PRIVATE_KEY, CONTRACT_ADDRESS, BOT_WALLET_ADDRESS,
  TOKEN_NAME, TOKEN_SYMBOL, PRICE_DECIMALS, PRICE_CHANGE_THRESHOLD,
  SCALE_FACTOR, FEED, MODE, PAIR, FEED_URL, WEBSOCKET_URL, PRICE_PATH,
  FEED_API_KEY, POLL_PERIOD, RECONNECT_DELAY, DEFAULT_GAS_LIMIT,
  GAS_PRICE_GWEI, GAS_PRICE_INCREMENT_GWEI, FALLBACK_GAS_PRICE_GWEI,
  MAX_GAS_PRICE_GWEI, MAX_ATTEMPTS, LEGACY_TX, MIN_BALANCE_ETH,
  CONFIRMATION_TIMEOUT, PUBLISHED_TTL, REEVALUATE_LATEST
""",
    )

    chain = parser.add_argument_group("chain")
    chain.add_argument(
        "--rpc-url",
        dest="rpc_url",
        type=str,
        help="JSON-RPC endpoint of the target chain",
        default=os.environ.get("RPC_URL"),
    )
    chain.add_argument(
        "--contract-address",
        dest="contract_address",
        type=str,
        help="Address of the price feed contract",
        default=os.environ.get("CONTRACT_ADDRESS"),
    )
    chain.add_argument(
        "--wallet-address",
        dest="wallet_address",
        type=str,
        help="Expected bot wallet address (checked against the private key)",
        default=os.environ.get("BOT_WALLET_ADDRESS"),
    )
    chain.add_argument(
        "--abi",
        type=str,
        help="Path to a JSON ABI of the price feed contract (optional)",
        default=os.environ.get("CONTRACT_ABI"),
    )
    chain.add_argument(
        "--decimals",
        type=int,
        help="Decimals of the on-chain price (default: 8)",
        default=int(os.environ.get("PRICE_DECIMALS") or "8"),
    )
    chain.add_argument(
        "--confirmation-timeout",
        dest="confirmation_timeout",
        type=float,
        help="Seconds to wait for a transaction receipt (default: 120)",
        default=float(os.environ.get("CONFIRMATION_TIMEOUT") or "120"),
    )

    threshold = parser.add_argument_group("threshold")
    threshold.add_argument(
        "--threshold",
        type=int,
        help="Threshold numerator (default: 100, i.e. 1%% with scale 10000)",
        default=int(os.environ.get("PRICE_CHANGE_THRESHOLD") or "100"),
    )
    threshold.add_argument(
        "--scale-factor",
        dest="scale_factor",
        type=int,
        help="Threshold denominator (default: 10000)",
        default=int(os.environ.get("SCALE_FACTOR") or "10000"),
    )
    threshold.add_argument(
        "--published-ttl",
        dest="published_ttl",
        type=float,
        help="Seconds to cache the on-chain price between reads (default: 0)",
        default=float(os.environ.get("PUBLISHED_TTL") or "0"),
    )
    threshold.add_argument(
        "--reevaluate-latest",
        dest="reevaluate_latest",
        action="store_true",
        help="Evaluate the newest sample skipped during an update right after it",
        default=env_flag("REEVALUATE_LATEST"),
    )

    feed = parser.add_argument_group("feed")
    feed.add_argument(
        "--feed",
        type=str,
        help=f"Price feed. Available: {', '.join(available_feeds)} (default: binance)",
        default=os.environ.get("FEED") or "binance",
    )
    feed.add_argument(
        "--mode",
        type=str,
        choices=MODES,
        help="Stream over WebSocket or poll over HTTP (default: stream)",
        default=os.environ.get("MODE") or "stream",
    )
    feed.add_argument(
        "--pair",
        type=str,
        help="Trading pair observed by the feed (default: eth/usdt)",
        default=os.environ.get("PAIR") or "eth/usdt",
    )
    feed.add_argument(
        "--feed-url",
        dest="feed_url",
        type=str,
        help="Endpoint URL for the http feed",
        default=os.environ.get("FEED_URL"),
    )
    feed.add_argument(
        "--websocket-url",
        dest="websocket_url",
        type=str,
        help="WebSocket URL override for streaming feeds",
        default=os.environ.get("WEBSOCKET_URL"),
    )
    feed.add_argument(
        "--price-path",
        dest="price_path",
        type=str,
        help="Dotted path to the price in http feed responses (default: data.price)",
        default=os.environ.get("PRICE_PATH"),
    )
    feed.add_argument(
        "--poll-period",
        dest="poll_period",
        type=int,
        help="Seconds between polls in poll mode (minimum: 1, default: 60)",
        default=int(os.environ.get("POLL_PERIOD") or "60"),
    )
    feed.add_argument(
        "--reconnect-delay",
        dest="reconnect_delay",
        type=float,
        help="Seconds before reconnecting a closed stream (default: 1.0)",
        default=float(os.environ.get("RECONNECT_DELAY") or "1.0"),
    )

    fees = parser.add_argument_group("fees")
    fees.add_argument(
        "--gas-limit",
        dest="gas_limit",
        type=int,
        help="Gas limit per update (default: 50000)",
        default=int(os.environ.get("DEFAULT_GAS_LIMIT") or "50000"),
    )
    fees.add_argument(
        "--gas-price-gwei",
        dest="gas_price_gwei",
        type=str,
        help="Fixed initial gas price in gwei (default: estimate from chain)",
        default=os.environ.get("GAS_PRICE_GWEI"),
    )
    fees.add_argument(
        "--gas-increment-gwei",
        dest="gas_increment_gwei",
        type=str,
        help="Gas price bump after an underpriced replacement (default: 1)",
        default=os.environ.get("GAS_PRICE_INCREMENT_GWEI") or "1",
    )
    fees.add_argument(
        "--fallback-gas-price-gwei",
        dest="fallback_gas_price_gwei",
        type=str,
        help="Legacy gas price used when fee fields are unsupported (default: 20)",
        default=os.environ.get("FALLBACK_GAS_PRICE_GWEI") or "20",
    )
    fees.add_argument(
        "--max-gas-price-gwei",
        dest="max_gas_price_gwei",
        type=str,
        help="Stop escalating above this gas price (default: no cap)",
        default=os.environ.get("MAX_GAS_PRICE_GWEI"),
    )
    fees.add_argument(
        "--max-attempts",
        dest="max_attempts",
        type=int,
        help="Maximum submission attempts per update (default: 5)",
        default=int(os.environ.get("MAX_ATTEMPTS") or "5"),
    )
    fees.add_argument(
        "--legacy",
        action="store_true",
        help="Estimate legacy gas prices instead of EIP-1559 fees",
        default=env_flag("LEGACY_TX"),
    )
    fees.add_argument(
        "--min-balance-eth",
        dest="min_balance_eth",
        type=str,
        help="Warn when the wallet balance drops below this (default: 0.0002)",
        default=os.environ.get("MIN_BALANCE_ETH") or "0.0002",
    )

    parser.add_argument(
        "--token-name",
        dest="token_name",
        type=str,
        help="Display name of the tracked token",
        default=os.environ.get("TOKEN_NAME") or "Token",
    )
    parser.add_argument(
        "--token-symbol",
        dest="token_symbol",
        type=str,
        help="Display symbol of the tracked token",
        default=os.environ.get("TOKEN_SYMBOL") or "SYM",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose (DEBUG) logging",
    )
    return parser


def main() -> None:
    """Main entry point for the Price Feed Bot CLI."""
    parser = build_parser()
    args = parser.parse_args()

    # Configure logging level
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    # The key is only read from the environment, never from argv.
    private_key = os.environ.get("BOT_PRIVATE_KEY")

    # Validate arguments
    if not args.rpc_url:
        parser.error("--rpc-url (or RPC_URL) is required")
    if not args.contract_address:
        parser.error("--contract-address (or CONTRACT_ADDRESS) is required")
    if not private_key:
        parser.error("BOT_PRIVATE_KEY must be set in the environment")
    if args.feed not in get_available_feeds():
        parser.error(
            f"Unknown feed '{args.feed}'. Available: {', '.join(get_available_feeds())}"
        )
    if args.feed == "http" and not args.feed_url:
        parser.error("--feed-url (or FEED_URL) is required for the http feed")
    if args.decimals < 0:
        parser.error("--decimals must be non-negative")
    if args.scale_factor <= 0:
        parser.error("--scale-factor must be positive")
    if args.threshold < 0:
        parser.error("--threshold must be non-negative")
    if args.poll_period < 1:
        parser.error("--poll-period must be at least 1 second")
    if args.reconnect_delay < 0:
        parser.error("--reconnect-delay must be non-negative")
    if args.max_attempts < 1:
        parser.error("--max-attempts must be at least 1")
    if args.gas_limit < 21000:
        parser.error("--gas-limit must be at least 21000")

    try:
        initial_gas_price = parse_gwei(args.gas_price_gwei)
        increment = parse_gwei(args.gas_increment_gwei)
        fallback_gas_price = parse_gwei(args.fallback_gas_price_gwei)
        max_gas_price = parse_gwei(args.max_gas_price_gwei)
        min_balance = int(Web3.to_wei(Decimal(args.min_balance_eth), "ether"))
    except (ValueError, InvalidOperation) as e:
        parser.error(str(e))

    if not increment:
        parser.error("--gas-increment-gwei must be positive")
    if not fallback_gas_price:
        parser.error("--fallback-gas-price-gwei must be positive")

    threshold = ThresholdConfig(args.threshold, args.scale_factor)

    # Log configuration
    logger.info("=" * 60)
    logger.info("Price Feed Bot")
    logger.info("=" * 60)
    logger.info(f"Token:             {args.token_name} ({args.token_symbol})")
    logger.info(f"RPC URL:           {args.rpc_url}")
    logger.info(f"Contract:          {args.contract_address}")
    logger.info(f"Feed:              {args.feed} {args.pair} [{args.mode}]")
    logger.info(f"Threshold:         ±{threshold.percent:.2f}%")
    logger.info(f"Price Decimals:    {args.decimals}")
    if args.mode == "poll":
        logger.info(f"Poll Period:       {args.poll_period}s")
    else:
        logger.info(f"Reconnect Delay:   {args.reconnect_delay}s")
    logger.info(f"Gas Limit:         {args.gas_limit}")
    logger.info(
        f"Initial Gas Price: {args.gas_price_gwei} gwei"
        if initial_gas_price is not None
        else "Initial Gas Price: estimated"
    )
    logger.info(f"Max Attempts:      {args.max_attempts}")
    logger.info("=" * 60)

    try:
        chain = Web3ChainClient(
            rpc_url=args.rpc_url,
            private_key=private_key,
            contract_address=args.contract_address,
            decimals=args.decimals,
            gas_limit=args.gas_limit,
            confirmation_timeout=args.confirmation_timeout,
            legacy=args.legacy,
            abi=Web3ChainClient.load_abi(args.abi) if args.abi else None,
        )
        logger.info(f"Bot wallet:        {chain.address}")
        if args.wallet_address and args.wallet_address.lower() != chain.address.lower():
            logger.warning(
                f"BOT_WALLET_ADDRESS {args.wallet_address} does not match the "
                f"private key address {chain.address}"
            )

        feed = get_feed(
            args.feed,
            pair=args.pair,
            decimals=args.decimals,
            api_key=os.environ.get("FEED_API_KEY"),
            **_feed_options(args),
        )

        coordinator = UpdateCoordinator(
            chain=chain,
            threshold=threshold,
            strategy=FeeEscalationStrategy(
                increment=increment,
                fallback_fee=LegacyFee(fallback_gas_price),
                max_attempts=args.max_attempts,
                max_fee=max_gas_price,
            ),
            initial_fee=LegacyFee(initial_gas_price) if initial_gas_price is not None else None,
            published_ttl=args.published_ttl,
            reevaluate_latest=args.reevaluate_latest,
        )

        bot = PriceFeedBot(
            coordinator=coordinator,
            feed=feed,
            mode=args.mode,
            poll_period=args.poll_period,
            reconnect_delay=args.reconnect_delay,
            min_balance=min_balance,
            token_name=args.token_name,
            token_symbol=args.token_symbol,
        )
        asyncio.run(bot.run())
    except KeyboardInterrupt:
        logger.info("Shutting down...")
    except Exception as e:
        logger.error(f"Fatal error: {e}")
        sys.exit(1)


def _feed_options(args: argparse.Namespace) -> dict[str, str]:
    """Feed-specific constructor options from the CLI arguments."""
    if args.feed == "http":
        options = {"url": args.feed_url}
        if args.price_path:
            options["price_path"] = args.price_path
        return options
    if args.feed == "binance" and args.websocket_url:
        return {"stream_url": args.websocket_url}
    return {}


if __name__ == "__main__":
    main()
