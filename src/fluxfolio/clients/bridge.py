"""Deposit-address lookups on the bridge service."""

from fluxfolio.clients.jsonrpc import JsonRpcClient
from fluxfolio.errors.exceptions import ExternalCallError, ValidationError
from fluxfolio.models.enums import DepositChain

_CHAINS = {
    "solana": DepositChain.SOLANA,
    "evm": DepositChain.EVM,
    "bitcoin": DepositChain.BITCOIN,
}


class BridgeClient(JsonRpcClient):
    async def fetch_deposit_address(self, network: str, account_id: str) -> str:
        chain = _CHAINS.get(network.lower())
        if chain is None:
            raise ValidationError(f"Unsupported deposit network: {network}")
        result = await self.call(
            "deposit_address",
            [{"account_id": account_id, "chain": chain.value}],
            request_id=1,
        )
        address = (result or {}).get("address")
        if not address:
            raise ExternalCallError(f"No deposit address for {account_id} on {chain.value}")
        return address
