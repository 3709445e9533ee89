"""ThresholdPolicy: decide whether a price moved enough to publish.

The threshold is a rational ``numerator / denominator`` so the comparison is
done entirely in integers:

    |candidate - published| * denominator > published * numerator

With ``numerator=100`` and ``denominator=10000`` the threshold is 1%.
"""

from __future__ import annotations

from dataclasses import dataclass

from .PriceSample import PriceSample, PublishedPrice, rescale


@dataclass(frozen=True)
class ThresholdConfig:
    """Significance threshold as a ratio.

    :ivar numerator: Threshold numerator (e.g., 100).
    :ivar denominator: Threshold denominator (e.g., 10000).
    """

    numerator: int = 100
    denominator: int = 10000

    def __post_init__(self) -> None:
        if self.denominator <= 0:
            raise ValueError("threshold denominator must be positive")
        if self.numerator < 0:
            raise ValueError("threshold numerator must be non-negative")

    @property
    def percent(self) -> float:
        """Threshold expressed in percent, for display only."""
        return self.numerator * 100 / self.denominator


def _common_scale(
    published: PublishedPrice, candidate: PriceSample
) -> tuple[int, int, int]:
    """Return (published_value, candidate_value, decimals) on a shared scale."""
    decimals = max(published.decimals, candidate.decimals)
    return (
        rescale(published.value, published.decimals, decimals),
        rescale(candidate.value, candidate.decimals, decimals),
        decimals,
    )


def is_significant(
    published: PublishedPrice, candidate: PriceSample, config: ThresholdConfig
) -> bool:
    """Check whether the candidate diverges significantly from the published price.

    :param published: Price currently stored on-chain.
    :param candidate: Freshly observed price.
    :param config: Threshold ratio.
    :returns: True if an on-chain update is warranted.
    """
    published_value, candidate_value, _ = _common_scale(published, candidate)

    # Uninitialized contract: anything non-zero is news.
    if published_value == 0:
        return candidate_value != 0

    difference = abs(candidate_value - published_value)
    return difference * config.denominator > published_value * config.numerator


def threshold_value(published: PublishedPrice, config: ThresholdConfig) -> int:
    """Absolute threshold in the published price's scale (rounded down).

    :param published: Price currently stored on-chain.
    :param config: Threshold ratio.
    :returns: Fixed-point amount the price must move by to be significant.
    """
    return published.value * config.numerator // config.denominator
