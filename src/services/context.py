"""Orchestration context: builds and owns every orchestration component.

There are no module-level singletons in the service layer; one
``OrchestrationContext`` wires the cache, registry, health monitor,
batcher, metrics, degradation and recovery controllers and the facade,
and runs their periodic background tasks between ``start()`` and
``aclose()``.

Usage::

    context = create_context()
    await context.start()
    try:
        await context.orchestrator.translate("Hello", "en", "zh")
    finally:
        await context.aclose()
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable

from src.core.config import Settings, get_settings
from src.core.models import BatchStrategy, ServiceType
from src.services.batching import BatchProcessor
from src.services.cache import TranslationCache
from src.services.orchestrator import TranslationOrchestrator
from src.services.performance import DegradationController, PerformanceMetrics
from src.services.recovery import RecoveryController
from src.services.registry import HealthMonitor, ServiceRegistry
from src.services.translation import BaseTranslationProvider, create_provider

logger = logging.getLogger(__name__)


class OrchestrationContext:
    """Holds the wired orchestration components and their background tasks.

    Args:
        providers: Backends to register, in descending selection priority.
        settings: Configuration (defaults to ``get_settings()``).
        sleep: Awaitable sleep used by recovery delays.
    """

    def __init__(
        self,
        providers: dict[ServiceType, BaseTranslationProvider],
        settings: Settings | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.settings = settings = settings or get_settings()
        self.cache = TranslationCache(
            capacity=settings.cache_capacity,
            max_bytes=settings.cache_max_bytes,
            ttl_seconds=settings.cache_ttl_seconds,
            frequency_weight=settings.cache_frequency_weight,
        )
        self.registry = ServiceRegistry()
        for rank, (service_type, provider) in enumerate(providers.items()):
            self.registry.register_service(
                service_type, provider, priority=len(providers) - rank
            )

        self.health_monitor = HealthMonitor(
            self.registry,
            interval=settings.health_check_interval,
            timeout=settings.request_timeout,
        )
        self.batcher = BatchProcessor(
            max_batch_size=settings.batch_size,
            max_concurrency=settings.max_concurrent_requests,
        )
        self.metrics = PerformanceMetrics(window_seconds=settings.metrics_window_seconds)
        self.degradation = DegradationController(
            self.batcher, self.metrics, interval=settings.metrics_interval
        )
        self.recovery = RecoveryController(
            self.degradation,
            self.health_monitor,
            max_attempts=settings.recovery_max_attempts,
            sleep=sleep,
        )
        self.orchestrator = TranslationOrchestrator(
            cache=self.cache,
            registry=self.registry,
            batcher=self.batcher,
            metrics=self.metrics,
            degradation=self.degradation,
            recovery=self.recovery,
            strategy=BatchStrategy(settings.batch_strategy),
            request_timeout=settings.request_timeout,
            batch_timeout=settings.batch_timeout,
        )

        self._stop_event = asyncio.Event()
        self._maintenance_task: asyncio.Task | None = None

    @property
    def is_running(self) -> bool:
        return self._maintenance_task is not None and not self._maintenance_task.done()

    async def start(self) -> None:
        """Launch health monitoring, metrics sampling and cache maintenance."""
        if self.is_running:
            return
        self.health_monitor.start()
        self.degradation.start()
        self._stop_event = asyncio.Event()
        self._maintenance_task = asyncio.create_task(self._cache_maintenance_loop())
        logger.info(
            "Orchestration started with %d service(s): %s",
            len(self.registry.services()),
            ", ".join(s.display_name for s in self.registry.services()),
        )

    async def aclose(self) -> None:
        """Stop background tasks, flush pending work and close providers."""
        self._stop_event.set()
        if self._maintenance_task is not None:
            await self._maintenance_task
            self._maintenance_task = None
        await self.health_monitor.stop()
        await self.degradation.stop()
        await self.orchestrator.aclose()

        for provider in self.registry.providers():
            try:
                await provider.aclose()
            except Exception:
                logger.warning("Failed to close provider %s", type(provider).__name__, exc_info=True)
        logger.info("Orchestration stopped")

    async def _cache_maintenance_loop(self) -> None:
        interval = self.settings.cache_maintenance_interval
        try:
            while not self._stop_event.is_set():
                try:
                    await asyncio.wait_for(self._stop_event.wait(), timeout=interval)
                except TimeoutError:
                    removed = self.cache.cleanup_expired_entries()
                    weight = self.cache.optimize_eviction_policy()
                    logger.debug(
                        "Cache maintenance: %d expired, frequency weight %.2f", removed, weight
                    )
        except Exception:
            logger.exception("Cache maintenance loop crashed")


def create_context(
    settings: Settings | None = None,
    providers: dict[ServiceType, BaseTranslationProvider] | None = None,
) -> OrchestrationContext:
    """Build a context, creating providers from configuration when not given.

    Providers are registered in the order of ``translation_providers``;
    unknown names are skipped with a warning.
    """
    settings = settings or get_settings()
    if providers is None:
        providers = {}
        for name in settings.provider_names:
            try:
                service_type = ServiceType(name)
            except ValueError:
                logger.warning("Ignoring unknown translation provider: %s", name)
                continue
            providers[service_type] = create_provider(name)
    return OrchestrationContext(providers, settings=settings)
