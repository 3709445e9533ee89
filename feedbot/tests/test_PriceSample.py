"""Unit tests for fixed-point price values."""

from decimal import Decimal

import pytest

from feedbot.src.PriceSample import (
    PriceSample,
    PublishedPrice,
    format_units,
    parse_units,
    rescale,
)


class TestParseUnits:
    """Test parse_units()."""

    def test_basic(self) -> None:
        """Decimal text scales exactly."""
        assert parse_units("3012.45", 8) == 301245000000

    def test_integer_input(self) -> None:
        """Integers are accepted."""
        assert parse_units(100, 8) == 100_00000000

    def test_rounds_half_up(self) -> None:
        """Extra precision is rounded half-up at the target decimals."""
        assert parse_units("1.123456785", 8) == 112345679
        assert parse_units("1.123456784", 8) == 112345678

    def test_exact_for_eighteen_decimals(self) -> None:
        """No float drift for values like 0.1."""
        assert parse_units("0.1", 18) == 10**17

    def test_decimal_input(self) -> None:
        """Decimal instances are accepted."""
        assert parse_units(Decimal("2.5"), 2) == 250

    @pytest.mark.parametrize("bad", ["abc", "", "-1", "NaN", "Infinity"])
    def test_invalid(self, bad: str) -> None:
        """Non-numeric, negative and non-finite values are rejected."""
        with pytest.raises(ValueError):
            parse_units(bad, 8)

    def test_large_price_at_eighteen_decimals(self) -> None:
        """Values beyond 28 significant digits scale exactly."""
        assert parse_units("20000000000.5", 18) == 20000000000500000000000000000

    def test_uint256_bounds(self) -> None:
        """The largest uint256 is accepted; anything above is rejected."""
        assert parse_units(str(2**256 - 1), 0) == 2**256 - 1
        with pytest.raises(ValueError, match="does not fit in uint256"):
            parse_units(str(2**256), 0)

    def test_huge_exponent_rejected(self) -> None:
        """Exponent notation too large for the contract is a ValueError."""
        with pytest.raises(ValueError, match="does not fit in uint256"):
            parse_units("1e400", 8)

    def test_tiny_exponent_rounds_to_zero(self) -> None:
        """Values far below one unit round to zero."""
        assert parse_units("1e-400", 8) == 0

    def test_negative_decimals(self) -> None:
        """Decimals must be non-negative."""
        with pytest.raises(ValueError, match="decimals must be non-negative"):
            parse_units("1", -1)


class TestFormatUnits:
    """Test format_units()."""

    def test_pads_fraction(self) -> None:
        """Fraction is zero-padded to the number of decimals."""
        assert format_units(100_00000001, 8) == "100.00000001"
        assert format_units(5, 8) == "0.00000005"

    def test_zero_decimals(self) -> None:
        """Zero decimals renders an integer."""
        assert format_units(42, 0) == "42"


class TestRescale:
    """Test rescale()."""

    def test_scale_up(self) -> None:
        """Scaling up multiplies by a power of ten."""
        assert rescale(1_00000000, 8, 18) == 10**18

    def test_scale_down_refused(self) -> None:
        """Scaling down would lose precision."""
        with pytest.raises(ValueError, match="Refusing to scale down"):
            rescale(10**18, 18, 8)


class TestPriceSample:
    """Test PriceSample and PublishedPrice."""

    def test_from_text(self) -> None:
        """from_text parses and keeps the observation time."""
        sample = PriceSample.from_text("101.01", 8, observed_at=123.0)
        assert sample.value == 101_01000000
        assert sample.decimals == 8
        assert sample.observed_at == 123.0

    def test_immutable(self) -> None:
        """Samples are frozen."""
        sample = PriceSample(1, 8)
        with pytest.raises(AttributeError):
            sample.value = 2  # type: ignore[misc]

    def test_negative_value_rejected(self) -> None:
        """Prices cannot be negative."""
        with pytest.raises(ValueError, match="non-negative"):
            PriceSample(-1, 8)

    def test_str(self) -> None:
        """String form is the decimal price."""
        assert str(PriceSample(301245000000, 8)) == "3012.45000000"

    def test_published_from_sample_is_exact(self) -> None:
        """A confirmed sample becomes the published price without drift."""
        sample = PriceSample.from_text("3012.45678901", 8)
        published = PublishedPrice.from_sample(sample)
        assert published.value == sample.value
        assert published.decimals == sample.decimals
