"""Minimal JSON-RPC 2.0 transport over httpx."""

import logging
from typing import Any

import httpx

from fluxfolio.errors.exceptions import ExternalCallError

logger = logging.getLogger(__name__)


class JsonRpcClient:
    """POSTs ``{jsonrpc, id, method, params}`` and returns ``result``.

    Transport failures, non-2xx responses, JSON-RPC ``error`` members and
    responses without a ``result`` all raise ``error_cls``.
    """

    error_cls: type[ExternalCallError] = ExternalCallError

    def __init__(
        self,
        url: str,
        timeout: float = 30.0,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.url = url
        self._timeout = timeout
        self._client = http_client
        self._owns_client = http_client is None

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def call(self, method: str, params: Any, request_id: str | int = "dontcare") -> Any:
        body = {"jsonrpc": "2.0", "id": request_id, "method": method, "params": params}
        try:
            response = await self._http().post(self.url, json=body)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as exc:
            raise self.error_cls(f"{method} request to {self.url} failed: {exc}") from exc
        except ValueError as exc:
            raise self.error_cls(f"{method} returned a non-JSON body") from exc

        if data.get("error"):
            raise self.error_cls(f"{method} returned an error", details=data["error"])
        if "result" not in data:
            raise self.error_cls(f"{method} response has no result")
        return data["result"]
