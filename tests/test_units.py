"""Tests for base-unit conversion and amount allocation."""

from decimal import Decimal

import pytest

from fluxfolio.errors.exceptions import ValidationError
from fluxfolio.models.intents import DistributionEntry
from fluxfolio.services.tokens import TokenRegistry, default_registry
from fluxfolio.services.units import (
    allocate_amounts,
    check_distribution,
    format_amount,
    from_base_units,
    to_base_units,
)


def _dist(**weights) -> list[DistributionEntry]:
    return [DistributionEntry(symbol=sym, percentage=Decimal(str(pct))) for sym, pct in weights.items()]


def test_conversion_truncates():
    base = to_base_units("1.2345678901", 6)
    assert base == 1234567
    assert from_base_units(base, 6) == Decimal("1.234567")
    assert from_base_units(base, 6) <= Decimal("1.2345678901")


@pytest.mark.parametrize(
    "amount,decimals",
    [("0.999999999", 6), ("123.456", 2), ("0.00000001", 8), ("7", 18), ("1e-30", 24)],
)
def test_round_trip_never_exceeds_input(amount, decimals):
    assert from_base_units(to_base_units(amount, decimals), decimals) <= Decimal(amount)


def test_float_input_uses_its_shortest_repr():
    assert to_base_units(0.1, 6) == 100000


def test_negative_and_garbage_amounts_rejected():
    with pytest.raises(ValidationError):
        to_base_units("-1", 6)
    with pytest.raises(ValidationError):
        to_base_units("one", 6)


def test_display_amount_for_eth_quote():
    eth = default_registry.by_symbol("ETH")
    assert format_amount("300000000000000000", eth.decimals) == "0.3"


def test_display_amount_strips_trailing_zeros():
    assert format_amount(1500000, 6) == "1.5"
    assert format_amount(0, 6) == "0"
    assert format_amount(100000000, 6) == "100"


def test_allocate_amounts_sums_to_total():
    parts = allocate_amounts(1000, _dist(ETH=30, SOL=40, BTC=30))
    assert parts == [300, 400, 300]

    parts = allocate_amounts(1001, _dist(ETH="33.33", SOL="33.33", BTC="33.34"))
    assert sum(parts) == 1001
    assert parts[:2] == [333, 333]


def test_distribution_must_sum_to_hundred():
    with pytest.raises(ValidationError):
        check_distribution(_dist(ETH=50, SOL=40))
    with pytest.raises(ValidationError):
        check_distribution([])


def test_distribution_rejects_duplicate_assets():
    entries = _dist(ETH=50) + _dist(ETH=50)
    with pytest.raises(ValidationError):
        check_distribution(entries)


def test_token_registry_lookup():
    usdc = default_registry.by_symbol("usdc")
    assert usdc.decimals == 6
    assert default_registry.by_asset_id(usdc.defuse_asset_id) is usdc
    with pytest.raises(ValidationError):
        default_registry.by_symbol("XYZ")
    assert TokenRegistry([]).symbols() == []
