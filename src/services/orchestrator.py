"""Translation orchestration facade.

Single entry point for callers: checks the cache, de-duplicates misses,
hands them to the batch processor, recovers from failures through the
recovery controller and writes successful translations back to the cache.

Usage::

    context = create_context()
    await context.start()
    text = await context.orchestrator.translate("Hello", "en", "zh")
    await context.aclose()
"""

import asyncio
import logging
from time import perf_counter

from src.core.config import get_settings
from src.core.exceptions import (
    BackendError,
    EmptyTextError,
    InvalidInputError,
    NetworkError,
    NoAvailableServiceError,
    TransRelayError,
)
from src.core.models import (
    BatchStrategy,
    ErrorContext,
    PerformanceReport,
    RequestPriority,
    ServiceType,
    TranslationRequest,
)
from src.core.utils import detect_language
from src.services.batching import BatchProcessor, RequestCollector
from src.services.cache import TranslationCache
from src.services.performance import DegradationController, PerformanceMetrics
from src.services.recovery import RecoveryController
from src.services.registry import ServiceRegistry

logger = logging.getLogger(__name__)


def _as_typed_error(exc: Exception) -> TransRelayError:
    if isinstance(exc, TransRelayError):
        return exc
    return BackendError(str(exc) or type(exc).__name__)


class TranslationOrchestrator:
    """Routes translation requests through cache, batcher and backends.

    Args:
        cache: Translation cache owned by this facade.
        registry: Registered backends and their health.
        batcher: Batch processor, limits driven by ``degradation``.
        metrics: Rolling request outcomes for the degradation controller.
        degradation: System-wide performance level.
        recovery: Applies recovery decisions to failed batches.
        strategy: Batch strategy for ``translate_batch``.
        request_timeout: Seconds allowed per upstream call.
        batch_timeout: Seconds ``submit`` waits for a batch to fill.
    """

    def __init__(
        self,
        cache: TranslationCache,
        registry: ServiceRegistry,
        batcher: BatchProcessor,
        metrics: PerformanceMetrics,
        degradation: DegradationController,
        recovery: RecoveryController,
        strategy: BatchStrategy | None = None,
        request_timeout: float | None = None,
        batch_timeout: float | None = None,
    ) -> None:
        settings = get_settings()
        self.cache = cache
        self.registry = registry
        self.batcher = batcher
        self.metrics = metrics
        self.degradation = degradation
        self.recovery = recovery
        self._strategy = strategy or BatchStrategy(settings.batch_strategy)
        self._request_timeout = (
            request_timeout if request_timeout is not None else settings.request_timeout
        )
        self._collector = RequestCollector(
            dispatch=self.translate_batch,
            max_batch_size=lambda: self.batcher.max_batch_size,
            batch_timeout=batch_timeout if batch_timeout is not None else settings.batch_timeout,
        )
        # fingerprint -> future resolved by the call that owns the upstream request
        self._inflight: dict[str, asyncio.Future] = {}
        self._background: set[asyncio.Task] = set()
        self._recovery_task: asyncio.Task | None = None

    # ------------------------------------------------------------------
    # Caller-facing API
    # ------------------------------------------------------------------

    async def translate(
        self,
        text: str,
        source_language: str,
        target_language: str,
        priority: RequestPriority = RequestPriority.normal,
    ) -> str:
        """Translate one text. Served from the cache when possible."""
        request = TranslationRequest(
            text=text,
            source_language=source_language,
            target_language=target_language,
            priority=priority,
        )
        results = await self.translate_batch([request], priority)
        return results[0]

    async def submit(
        self,
        text: str,
        source_language: str,
        target_language: str,
        priority: RequestPriority = RequestPriority.normal,
    ) -> str:
        """Translate one text, batched with other concurrent submissions."""
        if not text.strip():
            raise EmptyTextError()
        request = TranslationRequest(
            text=text,
            source_language=source_language,
            target_language=target_language,
            priority=priority,
        )
        return await self._collector.submit(request)

    async def translate_batch(
        self,
        requests: list[TranslationRequest],
        priority: RequestPriority = RequestPriority.normal,
    ) -> list[str]:
        """Translate many texts, returning results in input order.

        Cache hits short-circuit. Identical misses are sent once, and misses
        already in flight from another call are joined rather than re-sent.

        Raises:
            EmptyTextError: If any request text is blank.
            TransRelayError: The typed failure left after recovery.
        """
        if not requests:
            return []
        if any(not r.text.strip() for r in requests):
            raise EmptyTextError()

        results: list[str | None] = [None] * len(requests)
        owned: dict[str, list[int]] = {}
        joined: dict[str, list[int]] = {}

        for index, request in enumerate(requests):
            cached = self.cache.get(request.text, request.source_language, request.target_language)
            if cached is not None:
                results[index] = cached
                continue
            key = TranslationCache.fingerprint(
                request.text, request.source_language, request.target_language
            )
            if key in owned:
                owned[key].append(index)
            elif key in joined or key in self._inflight:
                joined.setdefault(key, []).append(index)
            else:
                owned[key] = [index]

        if owned:
            await self._translate_misses(requests, owned, results, priority)

        for key, indices in joined.items():
            translation = await asyncio.shield(self._inflight_or_cached(key, requests[indices[0]]))
            for index in indices:
                results[index] = translation

        return results  # type: ignore[return-value]

    async def translate_with_context(
        self,
        text: str,
        context: str,
        source_language: str,
        target_language: str,
    ) -> str:
        """Translate with surrounding context; never merged with other texts.

        Without context this is ``translate``. Contextual results are not
        cached since the plain fingerprint does not cover the context.
        """
        if not text.strip():
            raise EmptyTextError()
        if not context.strip():
            return await self.translate(text, source_language, target_language)

        try:
            return await self.recovery.execute_with_recovery(
                lambda: self._dispatch(
                    text, source_language, target_language, RequestPriority.normal, context
                ),
                lambda: self._translate_with_candidates(
                    text, source_language, target_language, context
                ),
                context=ErrorContext.single_request,
            )
        except Exception as exc:
            error = _as_typed_error(exc)
            self._schedule_recovery(error)
            if error is exc:
                raise
            raise error from exc

    def detect_language(self, text: str) -> str:
        return detect_language(text)

    async def test_connectivity(self) -> bool:
        """Translate "Hello" en->zh through the current best service."""
        try:
            result = await self._dispatch("Hello", "en", "zh", RequestPriority.normal)
        except Exception as exc:
            logger.warning("Connectivity test failed: %s", exc)
            return False
        return bool(result.strip())

    def get_performance_report(self) -> PerformanceReport:
        return self.degradation.get_performance_report(self.recovery.get_statistics())

    async def aclose(self) -> None:
        """Flush pending submissions and wait for background recovery."""
        await self._collector.drain()
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)

    # ------------------------------------------------------------------
    # Miss handling
    # ------------------------------------------------------------------

    async def _translate_misses(
        self,
        requests: list[TranslationRequest],
        owned: dict[str, list[int]],
        results: list[str | None],
        priority: RequestPriority,
    ) -> None:
        loop = asyncio.get_running_loop()
        futures = {key: loop.create_future() for key in owned}
        self._inflight.update(futures)
        unique = [requests[indices[0]] for indices in owned.values()]

        try:
            translations = await self.recovery.execute_with_recovery(
                lambda: self.batcher.process_batch(unique, self._strategy, priority, self._dispatch),
                lambda: self._sequential_fallback(unique),
            )
        except asyncio.CancelledError:
            self._fail_futures(futures, BackendError("In-flight translation was cancelled"))
            raise
        except Exception as exc:
            error = _as_typed_error(exc)
            self._fail_futures(futures, error)
            self._schedule_recovery(error)
            if error is exc:
                raise
            raise error from exc
        finally:
            for key in futures:
                self._inflight.pop(key, None)

        for (key, indices), request, translation in zip(
            owned.items(), unique, translations, strict=True
        ):
            self.cache.put(
                request.text, request.source_language, request.target_language, translation
            )
            for index in indices:
                results[index] = translation
            futures[key].set_result(translation)

    @staticmethod
    def _fail_futures(futures: dict[str, asyncio.Future], error: TransRelayError) -> None:
        for future in futures.values():
            future.set_exception(error)
            future.exception()  # joined callers re-raise it; mark retrieved

    def _inflight_or_cached(self, key: str, request: TranslationRequest) -> asyncio.Future:
        future = self._inflight.get(key)
        if future is not None:
            return future
        # Owner finished before we looked; its result is in the cache
        done = asyncio.get_running_loop().create_future()
        cached = self.cache.get(request.text, request.source_language, request.target_language)
        if cached is not None:
            done.set_result(cached)
        else:
            done.set_exception(BackendError("In-flight translation did not complete"))
        return done

    async def _sequential_fallback(self, requests: list[TranslationRequest]) -> list[str]:
        """One request at a time, trying every candidate service in turn."""
        return [
            await self._translate_with_candidates(
                r.text, r.source_language, r.target_language
            )
            for r in requests
        ]

    async def _translate_with_candidates(
        self,
        text: str,
        source_language: str,
        target_language: str,
        context: str | None = None,
    ) -> str:
        candidates = self.registry.candidates()
        if not candidates:
            raise NoAvailableServiceError()

        last_error: Exception | None = None
        for service in candidates:
            try:
                return await self._invoke(
                    service, text, source_language, target_language, context
                )
            except (EmptyTextError, InvalidInputError):
                raise
            except Exception as exc:
                logger.warning("Fallback via %s failed: %s", service.display_name, exc)
                last_error = exc
        raise last_error  # type: ignore[misc]

    def _schedule_recovery(self, error: TransRelayError) -> None:
        """Start automatic recovery unless a run is already in progress."""
        if self._recovery_task is not None and not self._recovery_task.done():
            logger.debug("Automatic recovery already running; not scheduling for %s", error.code)
            return
        task = asyncio.create_task(self.recovery.attempt_automatic_recovery(error))
        self._recovery_task = task
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    # ------------------------------------------------------------------
    # Backend invocation
    # ------------------------------------------------------------------

    async def _dispatch(
        self,
        text: str,
        source_language: str,
        target_language: str,
        priority: RequestPriority,
        context: str | None = None,
    ) -> str:
        """Send one upstream call to the best available service."""
        service = self.registry.get_best_service() or self.registry.default_service()
        if service is None:
            raise NoAvailableServiceError()
        logger.debug("Dispatching %s request to %s", priority.name, service.display_name)
        return await self._invoke(service, text, source_language, target_language, context)

    async def _invoke(
        self,
        service: ServiceType,
        text: str,
        source_language: str,
        target_language: str,
        context: str | None = None,
    ) -> str:
        provider = self.registry.get_provider(service)
        start = perf_counter()
        try:
            translation = await asyncio.wait_for(
                provider.translate(text, source_language, target_language, context=context),
                timeout=self._request_timeout,
            )
        except TimeoutError as exc:
            self._record_failure(service, perf_counter() - start)
            raise NetworkError(
                f"{service.display_name} timed out after {self._request_timeout:.0f}s"
            ) from exc
        except Exception:
            self._record_failure(service, perf_counter() - start)
            raise

        elapsed = perf_counter() - start
        self.registry.record_success(service, elapsed)
        self.metrics.record_request(success=True, response_time=elapsed)
        logger.debug("%s translated %d chars in %.3fs", service.display_name, len(text), elapsed)
        return translation

    def _record_failure(self, service: ServiceType, elapsed: float) -> None:
        self.registry.record_failure(service)
        self.metrics.record_request(success=False, response_time=elapsed)
