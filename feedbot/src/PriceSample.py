"""Fixed-point price values observed off-chain and published on-chain.

Prices are always carried as integers scaled by ``10 ** decimals`` so they
compare exactly against the ``uint256`` stored by the price feed contract.

.. code-block:: python

    >>> sample = PriceSample.from_text("3012.45", decimals=8)
    >>> sample.value
    301245000000
    >>> format_units(sample.value, sample.decimals)
    '3012.45000000'
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation, localcontext

MAX_UINT256 = 2**256 - 1
MAX_DIGITS = len(str(MAX_UINT256))


def parse_units(text: str | int | Decimal, decimals: int) -> int:
    """Convert a decimal price string into a fixed-point integer.

    Rounds half-up at ``decimals`` places.

    :param text: Decimal representation of the price (e.g., "3012.45").
    :param decimals: Number of decimal places of the fixed-point result.
    :returns: Scaled integer value.
    :raises ValueError: If the input is not a finite non-negative number.
    """
    if decimals < 0:
        raise ValueError(f"decimals must be non-negative, got {decimals}")
    try:
        amount = Decimal(str(text).strip())
    except InvalidOperation as e:
        raise ValueError(f"Invalid price '{text}'") from e

    if not amount.is_finite():
        raise ValueError(f"Price must be finite, got '{text}'")
    if amount < 0:
        raise ValueError(f"Price must be non-negative, got '{text}'")

    # Contract prices are uint256; anything with more digits cannot be published.
    if amount and amount.adjusted() + decimals >= MAX_DIGITS:
        raise ValueError(f"Price '{text}' does not fit in uint256 at {decimals} decimals")

    try:
        with localcontext() as ctx:
            ctx.prec = MAX_DIGITS + 2
            scaled = amount.scaleb(decimals).quantize(Decimal(1), rounding=ROUND_HALF_UP)
    except ArithmeticError as e:
        raise ValueError(f"Cannot scale price '{text}' to {decimals} decimals") from e

    value = int(scaled)
    if value > MAX_UINT256:
        raise ValueError(f"Price '{text}' does not fit in uint256 at {decimals} decimals")
    return value


def format_units(value: int, decimals: int) -> str:
    """Render a fixed-point integer as a decimal string.

    :param value: Scaled integer value.
    :param decimals: Number of decimal places.
    :returns: String with exactly ``decimals`` fractional digits.
    """
    if decimals == 0:
        return str(value)
    sign = "-" if value < 0 else ""
    whole, frac = divmod(abs(value), 10**decimals)
    return f"{sign}{whole}.{frac:0{decimals}d}"


def rescale(value: int, from_decimals: int, to_decimals: int) -> int:
    """Scale a fixed-point value up to a larger number of decimals.

    :raises ValueError: If asked to scale down, which would lose precision.
    """
    if to_decimals < from_decimals:
        raise ValueError(
            f"Refusing to scale down from {from_decimals} to {to_decimals} decimals"
        )
    return value * 10 ** (to_decimals - from_decimals)


@dataclass(frozen=True)
class PriceSample:
    """A price observed from a feed.

    :ivar value: Fixed-point price.
    :ivar decimals: Decimal places of ``value``.
    :ivar observed_at: Unix timestamp of the observation.
    """

    value: int
    decimals: int
    observed_at: float = field(default_factory=time.time)

    def __post_init__(self) -> None:
        if self.value < 0:
            raise ValueError(f"Price value must be non-negative, got {self.value}")
        if self.decimals < 0:
            raise ValueError(f"decimals must be non-negative, got {self.decimals}")

    @classmethod
    def from_text(
        cls, text: str | int | Decimal, decimals: int, observed_at: float | None = None
    ) -> PriceSample:
        """Build a sample from a decimal string as delivered by a price API.

        :param text: Price as text (floats are accepted but stringified first).
        :param decimals: Target number of decimals.
        :param observed_at: Observation time (default: now).
        :returns: New PriceSample.
        :raises ValueError: If the text is not a valid price.
        """
        value = parse_units(text, decimals)
        if observed_at is None:
            return cls(value, decimals)
        return cls(value, decimals, observed_at)

    def __str__(self) -> str:
        return format_units(self.value, self.decimals)


@dataclass(frozen=True)
class PublishedPrice:
    """The last price known to be stored on-chain.

    :ivar value: Fixed-point price as returned by the contract.
    :ivar decimals: Decimal places used by the contract.
    :ivar read_at: Unix timestamp when the value was read or confirmed.
    """

    value: int
    decimals: int
    read_at: float = field(default_factory=time.time)

    @classmethod
    def from_sample(cls, sample: PriceSample) -> PublishedPrice:
        """Return the published price resulting from a confirmed sample."""
        return cls(sample.value, sample.decimals)

    def __str__(self) -> str:
        return format_units(self.value, self.decimals)
