"""Settlement relay client: quotes, intent publication and settlement polling."""

import asyncio
import logging

from fluxfolio.clients.jsonrpc import JsonRpcClient
from fluxfolio.errors.exceptions import FinalizationTimeoutError, JobCancelledError, RelayUnavailableError
from fluxfolio.models.enums import IntentStatus
from fluxfolio.models.intents import FinalizeResult, IntentStatusResult, Quote, SignedEnvelope

logger = logging.getLogger(__name__)

SETTLED_STATUSES = frozenset({IntentStatus.FINALIZED.value, IntentStatus.SETTLED.value})
TERMINAL_STATUSES = SETTLED_STATUSES | {IntentStatus.NOT_FOUND_OR_NOT_VALID_ANYMORE.value}


class RelayClient(JsonRpcClient):
    """JSON-RPC client for the solver relay.

    Publishing is never retried here; callers decide what a failed publish
    means for their job.
    """

    error_cls = RelayUnavailableError

    def __init__(
        self,
        url: str,
        max_attempts: int = 8,
        base_delay: float = 1.0,
        **kwargs,
    ):
        super().__init__(url, **kwargs)
        self.max_attempts = max_attempts
        self.base_delay = base_delay

    async def fetch_quote(
        self,
        asset_in: str,
        asset_out: str,
        exact_amount_in: str,
        min_deadline_ms: int = 120000,
    ) -> list[Quote]:
        logger.info("Requesting quote %s -> %s for %s", asset_in, asset_out, exact_amount_in)
        result = await self.call(
            "quote",
            [
                {
                    "defuse_asset_identifier_in": asset_in,
                    "defuse_asset_identifier_out": asset_out,
                    "exact_amount_in": exact_amount_in,
                    "min_deadline_ms": min_deadline_ms,
                }
            ],
        )
        return [Quote.model_validate(q) for q in (result or [])]

    async def best_quote(self, asset_in: str, asset_out: str, exact_amount_in: str, min_deadline_ms: int = 120000) -> Quote:
        """Highest ``amount_out`` among the solver responses."""
        quotes = await self.fetch_quote(asset_in, asset_out, exact_amount_in, min_deadline_ms)
        if not quotes:
            raise RelayUnavailableError(f"No quotes for {asset_in} -> {asset_out} ({exact_amount_in})")
        return max(quotes, key=lambda q: int(q.amount_out))

    async def publish_intent(self, envelope: SignedEnvelope, quote_hashes: list[str]) -> str:
        result = await self.call(
            "publish_intent",
            [{"quote_hashes": list(quote_hashes), "signed_data": envelope.to_relay()}],
        )
        status = (result or {}).get("status")
        intent_hash = (result or {}).get("intent_hash")
        if not intent_hash:
            raise RelayUnavailableError(
                f"publish_intent was not accepted (status={status})",
                details=result,
            )
        logger.info("Published intent %s (status=%s)", intent_hash, status)
        return intent_hash

    async def get_intent_status(self, intent_hash: str) -> IntentStatusResult:
        result = await self.call("get_status", [{"intent_hash": intent_hash}])
        return IntentStatusResult.model_validate(result or {"status": "UNKNOWN"})

    async def finalize_intent(
        self,
        intent_hash: str,
        cancel_event: asyncio.Event | None = None,
    ) -> FinalizeResult:
        """Poll until the intent reaches a terminal status.

        Sleeps ``base_delay * 2**attempt`` between checks and gives up with
        ``FinalizationTimeoutError`` after ``max_attempts`` checks. Setting
        ``cancel_event`` aborts the wait with ``JobCancelledError``.
        """
        status = await self.get_intent_status(intent_hash)
        attempt = 1
        while status.status not in TERMINAL_STATUSES:
            if attempt >= self.max_attempts:
                raise FinalizationTimeoutError(intent_hash, attempt, status.status)
            delay = self.base_delay * 2 ** (attempt - 1)
            if cancel_event is None:
                await asyncio.sleep(delay)
            else:
                try:
                    await asyncio.wait_for(cancel_event.wait(), timeout=delay)
                except asyncio.TimeoutError:
                    pass
                else:
                    raise JobCancelledError(intent_hash)
            status = await self.get_intent_status(intent_hash)
            attempt += 1
            logger.debug("Intent %s status %s (check %d)", intent_hash, status.status, attempt)

        settled = status.status in SETTLED_STATUSES
        return FinalizeResult(
            finalized=status.status,
            hash=(status.intent_hash or intent_hash) if settled else None,
            attempts=attempt,
        )
