"""Read-only contract queries against a NEAR RPC node."""

import base64
import json
import logging
from typing import Any

from fluxfolio.clients.jsonrpc import JsonRpcClient
from fluxfolio.errors.exceptions import ExternalCallError

logger = logging.getLogger(__name__)


def encode_args(args: dict) -> str:
    return base64.b64encode(json.dumps(args, separators=(",", ":")).encode("utf-8")).decode("ascii")


def decode_result_bytes(raw: list[int] | bytes) -> Any:
    """View results arrive as a byte array holding UTF-8 JSON."""
    return json.loads(bytes(raw).decode("utf-8"))


class NearRpcClient(JsonRpcClient):
    """``query``/``call_function`` wrapper for view methods."""

    def __init__(self, url: str, verifying_contract: str = "intents.near", **kwargs):
        super().__init__(url, **kwargs)
        self.verifying_contract = verifying_contract

    async def _query(self, contract_id: str, method_name: str, args: dict) -> dict:
        return await self.call(
            "query",
            {
                "request_type": "call_function",
                "finality": "final",
                "account_id": contract_id,
                "method_name": method_name,
                "args_base64": encode_args(args),
            },
        ) or {}

    async def view(self, contract_id: str, method_name: str, args: dict) -> Any:
        result = await self._query(contract_id, method_name, args)
        raw = result.get("result")
        if raw is None:
            raise ExternalCallError(f"{contract_id}.{method_name} returned no result", details=result)
        return decode_result_bytes(raw)

    async def is_nonce_used(self, nonce: str, signer_id: str) -> bool:
        used = await self.view(
            self.verifying_contract,
            "is_nonce_used",
            {"nonce": nonce, "account_id": signer_id},
        )
        return bool(used)

    async def fetch_batch_balances(self, account_id: str, token_ids: list[str]) -> list[str]:
        """Balances in base units, parallel to ``token_ids``.

        A missing result is treated as all-zero balances.
        """
        result = await self._query(
            self.verifying_contract,
            "mt_batch_balance_of",
            {"account_id": account_id, "token_ids": token_ids},
        )
        raw = result.get("result")
        if not raw:
            logger.warning("Balance lookup for %s returned no data", account_id)
            return ["0"] * len(token_ids)
        balances = decode_result_bytes(raw)
        if not isinstance(balances, list) or len(balances) != len(token_ids):
            raise ExternalCallError("mt_batch_balance_of returned a mismatched balance list", details=balances)
        return [str(b) for b in balances]
