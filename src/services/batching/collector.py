"""Coalesces concurrent single submissions into batches.

A pending batch is dispatched as soon as it reaches the current maximum
batch size, or when ``batch_timeout`` seconds have passed since its first
submission, whichever comes first. A submitter never waits longer than the
timeout plus the batch's own processing time.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable

from src.core.models import TranslationRequest

logger = logging.getLogger(__name__)

DispatchFn = Callable[[list[TranslationRequest]], Awaitable[list[str]]]


class RequestCollector:
    """Accumulates requests and hands them to ``dispatch`` in batches.

    Args:
        dispatch: Coroutine translating a batch, results in input order.
        max_batch_size: Callable returning the current batch size limit,
            read on every submission so degradation takes effect at once.
        batch_timeout: Seconds a partial batch may wait to fill.
    """

    def __init__(
        self,
        dispatch: DispatchFn,
        max_batch_size: Callable[[], int],
        batch_timeout: float,
    ) -> None:
        self._dispatch = dispatch
        self._max_batch_size = max_batch_size
        self._batch_timeout = batch_timeout
        self._pending: list[tuple[TranslationRequest, asyncio.Future]] = []
        self._timer: asyncio.Task | None = None
        self._inflight: set[asyncio.Task] = set()

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    async def submit(self, request: TranslationRequest) -> str:
        """Queue one request and wait for its translation."""
        future: asyncio.Future = asyncio.get_running_loop().create_future()
        self._pending.append((request, future))

        if len(self._pending) >= self._max_batch_size():
            self._flush_now()
        elif self._timer is None:
            self._timer = asyncio.create_task(self._flush_after_timeout())

        return await future

    async def drain(self) -> None:
        """Dispatch anything pending and wait for all in-flight batches."""
        self._flush_now()
        if self._inflight:
            await asyncio.gather(*self._inflight, return_exceptions=True)

    def _take_pending(self) -> list[tuple[TranslationRequest, asyncio.Future]]:
        batch, self._pending = self._pending, []
        return batch

    def _flush_now(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        batch = self._take_pending()
        if not batch:
            return
        task = asyncio.create_task(self._dispatch_batch(batch))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)

    async def _flush_after_timeout(self) -> None:
        await asyncio.sleep(self._batch_timeout)
        self._timer = None
        if self._pending:
            logger.debug("Batch timeout reached; dispatching %d pending requests", len(self._pending))
            self._flush_now()

    async def _dispatch_batch(self, batch: list[tuple[TranslationRequest, asyncio.Future]]) -> None:
        # Submitters that were cancelled while waiting drop out of the batch
        live = [(request, future) for request, future in batch if not future.done()]
        if not live:
            return

        try:
            results = await self._dispatch([request for request, _ in live])
        except Exception as exc:
            for _, future in live:
                if not future.done():
                    future.set_exception(exc)
            return

        for (_, future), result in zip(live, results, strict=True):
            if not future.done():
                future.set_result(result)
