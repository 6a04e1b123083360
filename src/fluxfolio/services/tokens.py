"""Supported assets and their settlement identifiers."""

from dataclasses import dataclass

from fluxfolio.errors.exceptions import ValidationError


@dataclass(frozen=True, slots=True)
class TokenInfo:
    symbol: str
    defuse_asset_id: str
    decimals: int
    chain: str


_TOKENS: tuple[TokenInfo, ...] = (
    TokenInfo("USDC", "nep141:17208628f84f5d6ad33f0da3bbbeb27ffcb398eac501a31bd6ad2011e36133a1", 6, "near"),
    TokenInfo("ETH", "nep141:eth.omft.near", 18, "eth"),
    TokenInfo("BTC", "nep141:btc.omft.near", 8, "bitcoin"),
    TokenInfo("SOL", "nep141:sol.omft.near", 9, "solana"),
    TokenInfo("NEAR", "nep141:wrap.near", 24, "near"),
    TokenInfo("DOGE", "nep141:doge.omft.near", 8, "dogecoin"),
)


class TokenRegistry:
    """Lookup by symbol or by settlement asset id."""

    def __init__(self, tokens: tuple[TokenInfo, ...] | list[TokenInfo] = _TOKENS):
        self._by_symbol = {t.symbol.upper(): t for t in tokens}
        self._by_asset = {t.defuse_asset_id: t for t in tokens}

    def by_symbol(self, symbol: str) -> TokenInfo:
        token = self._by_symbol.get(symbol.upper())
        if token is None:
            raise ValidationError(f"Unsupported asset: {symbol}")
        return token

    def by_asset_id(self, asset_id: str) -> TokenInfo:
        token = self._by_asset.get(asset_id)
        if token is None:
            raise ValidationError(f"Unknown asset id: {asset_id}")
        return token

    def symbols(self) -> list[str]:
        return list(self._by_symbol)


default_registry = TokenRegistry()
