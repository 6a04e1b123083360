"""Base-unit conversion for on-chain amounts.

All on-chain arithmetic is done on integers in an asset's smallest unit.
Conversions from human amounts truncate so an allocation can never exceed
what the user asked for.
"""

from collections.abc import Sequence
from decimal import ROUND_DOWN, Decimal, InvalidOperation

from fluxfolio.errors.exceptions import ValidationError
from fluxfolio.models.intents import DistributionEntry

HUNDRED = Decimal(100)


def _as_decimal(value: Decimal | int | float | str) -> Decimal:
    try:
        # str() first so floats keep their shortest repr instead of binary noise
        return value if isinstance(value, Decimal) else Decimal(str(value))
    except InvalidOperation as exc:
        raise ValidationError(f"Invalid amount: {value!r}") from exc


def to_base_units(amount: Decimal | int | float | str, decimals: int) -> int:
    """``floor(amount * 10**decimals)`` for non-negative amounts."""
    value = _as_decimal(amount)
    if value < 0:
        raise ValidationError(f"Amount must be non-negative: {amount}")
    scaled = value.scaleb(decimals)
    return int(scaled.to_integral_value(rounding=ROUND_DOWN))


def from_base_units(base_units: int | str, decimals: int) -> Decimal:
    return Decimal(int(base_units)).scaleb(-decimals)


def format_amount(base_units: int | str, decimals: int) -> str:
    """Human display string without trailing zeros, e.g. ``0.3``."""
    value = from_base_units(base_units, decimals)
    if value == 0:
        return "0"
    text = format(value.normalize(), "f")
    return text


def check_distribution(distribution: Sequence[DistributionEntry]) -> None:
    if not distribution:
        raise ValidationError("Distribution must not be empty")
    symbols = [entry.symbol for entry in distribution]
    if len(set(symbols)) != len(symbols):
        raise ValidationError("Distribution lists an asset more than once", {"symbols": symbols})
    total = sum((entry.percentage for entry in distribution), Decimal(0))
    if total != HUNDRED:
        raise ValidationError(f"Distribution must sum to 100, got {total}")


def allocate_amounts(total: int, distribution: Sequence[DistributionEntry]) -> list[int]:
    """Split ``total`` base units across the distribution.

    Each share is truncated; the truncation remainder goes to the last leg so
    the parts always sum to ``total`` exactly.
    """
    check_distribution(distribution)
    if total < 0:
        raise ValidationError("Total amount must be non-negative")
    parts = [
        int((Decimal(total) * entry.percentage / HUNDRED).to_integral_value(rounding=ROUND_DOWN))
        for entry in distribution
    ]
    parts[-1] += total - sum(parts)
    return parts
