"""Change-method contract calls relayed through the signing gateway."""

import base64
import binascii
import json
import logging
from typing import Any, Protocol

import httpx

from fluxfolio.errors.exceptions import ExternalCallError

logger = logging.getLogger(__name__)


class ContractCaller(Protocol):
    async def function_call(
        self,
        signer_id: str,
        contract_id: str,
        method_name: str,
        args: dict,
        gas: str,
        attached_deposit: str = "0",
    ) -> dict: ...


def decode_success_value(outcome: dict) -> str:
    """Return the base64 ``SuccessValue`` of a call outcome as UTF-8 text."""
    status = (outcome or {}).get("status") or {}
    if not isinstance(status, dict) or "SuccessValue" not in status:
        raise ExternalCallError("Contract call failed or returned no data", details=status or outcome)
    try:
        return base64.b64decode(status["SuccessValue"]).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError) as exc:
        raise ExternalCallError(f"Undecodable SuccessValue: {exc}") from exc


def decode_success_json(outcome: dict) -> Any:
    text = decode_success_value(outcome)
    try:
        return json.loads(text)
    except ValueError as exc:
        raise ExternalCallError("SuccessValue is not JSON", details=text) from exc


class ContractGatewayClient:
    """Submits ``functionCall`` requests to the gateway holding the account keys."""

    def __init__(self, url: str, timeout: float = 60.0, http_client: httpx.AsyncClient | None = None):
        self.url = url
        self._client = http_client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = http_client is None

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def function_call(
        self,
        signer_id: str,
        contract_id: str,
        method_name: str,
        args: dict,
        gas: str,
        attached_deposit: str = "0",
    ) -> dict:
        body = {
            "signerId": signer_id,
            "contractId": contract_id,
            "methodName": method_name,
            "args": args,
            "gas": gas,
            "attachedDeposit": attached_deposit,
        }
        logger.info("Calling %s.%s as %s", contract_id, method_name, signer_id)
        try:
            response = await self._client.post(self.url, json=body)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPError as exc:
            raise ExternalCallError(f"{contract_id}.{method_name} call failed: {exc}") from exc
        except ValueError as exc:
            raise ExternalCallError(f"{contract_id}.{method_name} returned a non-JSON body") from exc
