"""Rebalance planning.

Holdings are valued in the stable asset, compared with the target weights,
and turned into two lists of trades: over-weight assets sold into the stable
asset, and stable-asset amounts spent on under-weight assets. All amounts
are integer base units and every division truncates.
"""

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from decimal import ROUND_DOWN, Decimal

from fluxfolio.errors.exceptions import ValidationError
from fluxfolio.services.units import HUNDRED


@dataclass(frozen=True)
class TradeLeg:
    asset_in: str
    asset_out: str
    amount_in: int


@dataclass
class RebalancePlan:
    stable_asset: str
    total_value: int
    sells: list[TradeLeg] = field(default_factory=list)
    buys: list[TradeLeg] = field(default_factory=list)
    target_bps: dict[str, int] = field(default_factory=dict)

    @property
    def is_noop(self) -> bool:
        return not self.sells and not self.buys

    def to_dict(self) -> dict:
        return {
            "stable_asset": self.stable_asset,
            "total_value": str(self.total_value),
            "sells": [{"asset": t.asset_in, "amount": str(t.amount_in)} for t in self.sells],
            "buys": [{"asset": t.asset_out, "amount": str(t.amount_in)} for t in self.buys],
            "target_bps": dict(self.target_bps),
        }


def _floor(value: Decimal) -> int:
    return int(value.to_integral_value(rounding=ROUND_DOWN))


def percentages_to_bps(targets: Mapping[str, Decimal]) -> dict[str, int]:
    return {asset: _floor(Decimal(pct) * 100) for asset, pct in targets.items()}


def fit_buys(buys: Sequence[TradeLeg], available: int) -> list[TradeLeg]:
    """Scale buy legs down proportionally so they spend at most ``available``."""
    wanted = sum(t.amount_in for t in buys)
    if wanted <= available:
        return list(buys)
    if available <= 0:
        return []
    scaled = [
        TradeLeg(t.asset_in, t.asset_out, t.amount_in * available // wanted)
        for t in buys
    ]
    return [t for t in scaled if t.amount_in > 0]


def plan_rebalance(
    balances: Mapping[str, int],
    valuations: Mapping[str, int],
    targets: Mapping[str, Decimal],
    stable_asset: str,
    min_trade_value: int = 0,
) -> RebalancePlan:
    """Compute the trades that move ``balances`` towards ``targets``.

    ``valuations`` maps each held asset id to its worth in stable-asset base
    units; the stable asset is valued at its own balance. ``targets`` maps
    asset ids to percentages summing to 100. Assets held but absent from
    ``targets`` have a target of zero and are sold in full.
    """
    total_pct = sum((Decimal(p) for p in targets.values()), Decimal(0))
    if total_pct != HUNDRED:
        raise ValidationError(f"Target allocation must sum to 100, got {total_pct}")

    values = {asset: int(v) for asset, v in valuations.items() if asset != stable_asset}
    values[stable_asset] = int(balances.get(stable_asset, 0))
    total = sum(values.values())
    if total <= 0:
        raise ValidationError("Portfolio holds nothing to rebalance")

    plan = RebalancePlan(stable_asset=stable_asset, total_value=total, target_bps=percentages_to_bps(targets))
    cash = values[stable_asset]
    buys: list[TradeLeg] = []

    for asset in sorted(set(values) | set(targets)):
        if asset == stable_asset:
            continue
        current = values.get(asset, 0)
        target = _floor(Decimal(total) * Decimal(targets.get(asset, 0)) / HUNDRED)
        gap = target - current
        if abs(gap) <= min_trade_value:
            continue
        if gap < 0:
            held = int(balances.get(asset, 0))
            amount = held if target == 0 else held * (-gap) // current
            if amount > 0:
                plan.sells.append(TradeLeg(asset, stable_asset, amount))
                cash += -gap
        else:
            buys.append(TradeLeg(stable_asset, asset, gap))

    # Never plan to spend stable value the target wants to keep.
    keep = _floor(Decimal(total) * Decimal(targets.get(stable_asset, 0)) / HUNDRED)
    plan.buys = fit_buys(buys, max(cash - keep, 0))
    return plan
