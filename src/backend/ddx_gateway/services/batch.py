"""
Bounded-concurrency batch dispatcher.

Fans a list of independent cases out to providers with at most N in flight.
Workers pull the next index from a shared cursor; claiming is synchronous
(no await between read and increment), so on the event loop no two workers
can claim the same index. Each item's failure is recorded in its own slot
and never reaches its siblings.
"""
from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, List, Optional, Sequence

from pydantic import ValidationError

from ddx_gateway.config import GatewayConfig
from ddx_gateway.errors import BadRequestError, GatewayError
from ddx_gateway.models.schemas import (
    BatchItem,
    BatchResponse,
    BatchResult,
    BatchSummary,
    DiagnoseOptions,
    EngineInfo,
)

logger = logging.getLogger(__name__)


class BatchDispatcher:
    """
    Runs a batch of diagnose calls against the registry.

    Usage:
        dispatcher = BatchDispatcher(gateway)
        response = await dispatcher.run(items, provider="isabel", model=None)
    """

    def __init__(self, config: GatewayConfig, concurrency: Optional[int] = None):
        self.config = config
        self.concurrency = max(1, concurrency or config.batch_concurrency)

    async def run(
        self,
        items: Sequence[Any],
        provider: Optional[str] = None,
        model: Optional[str] = None,
    ) -> BatchResponse:
        """
        Diagnose every item and return results in submission order.

        Args:
            items: Raw batch items (dicts or BatchItem); each is validated on
                its own so one malformed item fails only its slot.
            provider: Request-level provider, used when an item names none.
            model: Request-level model, used when an item names none.
        """
        total = len(items)
        results: List[Optional[BatchResult]] = [None] * total
        cursor = 0

        def claim() -> Optional[int]:
            nonlocal cursor
            if cursor >= total:
                return None
            index = cursor
            cursor += 1
            return index

        async def worker() -> None:
            while True:
                index = claim()
                if index is None:
                    return
                results[index] = await self._process(index, items[index], provider, model)

        start = time.monotonic()
        workers = min(self.concurrency, total)
        logger.info(f"Batch started: {total} items, {workers} workers")
        await asyncio.gather(*(worker() for _ in range(workers)))

        final = [r for r in results if r is not None]
        ok = sum(1 for r in final if r.ok)
        summary = BatchSummary(total=total, ok=ok, failed=total - ok)
        logger.info(
            f"Batch finished in {int((time.monotonic() - start) * 1000)}ms: "
            f"{summary.ok} ok, {summary.failed} failed"
        )
        return BatchResponse(summary=summary, results=final)

    async def _process(
        self,
        index: int,
        raw: Any,
        request_provider: Optional[str],
        request_model: Optional[str],
    ) -> BatchResult:
        meta = raw.get("meta") if isinstance(raw, dict) else getattr(raw, "meta", None)
        try:
            item = self._validate(raw)
            name = item.provider or request_provider or self.config.default_provider
            provider = self.config.registry.require(name)
            output = await provider.diagnose(
                item.input, DiagnoseOptions(model=item.model or request_model)
            )
            if not output.engine.name:
                output = output.model_copy(update={"engine": EngineInfo(name=name)})
            return BatchResult(index=index, ok=True, output=output, meta=item.meta)
        except GatewayError as e:
            logger.warning(f"Batch item {index} failed: {e.code} ({e.message})")
            return BatchResult(
                index=index, ok=False, error=e.message, error_code=e.code, meta=meta
            )
        except Exception as e:
            # A provider bug must not take its siblings down with it
            logger.exception(f"Batch item {index} crashed: {e}")
            return BatchResult(
                index=index, ok=False, error=str(e) or type(e).__name__,
                error_code="internal_error", meta=meta,
            )

    @staticmethod
    def _validate(raw: Any) -> BatchItem:
        if isinstance(raw, BatchItem):
            return raw
        try:
            return BatchItem.model_validate(raw)
        except ValidationError as e:
            raise BadRequestError.from_validation(e) from e
