"""
System-wide degradation control.

The controller samples ``SystemMetrics`` on a fixed interval and moves the
performance level between ``optimal``, ``degraded`` and ``minimal``. The
batch processor's size and concurrency limits are a pure function of the
level (see ``limits_for_level``). Entering degradation uses the trigger
thresholds, leaving it uses the stricter exit thresholds, so the level does
not flap around a single boundary.

Listeners subscribed with ``subscribe()`` receive a ``DegradationEvent``
when degradation starts or ends.
"""

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable

from src.core.config import get_settings
from src.core.models import (
    DegradationEvent,
    DegradationEventKind,
    DegradationReason,
    ErrorRecoveryStats,
    PerformanceLevel,
    PerformanceLimits,
    PerformanceReport,
    SystemMetrics,
)
from src.services.batching.batcher import BatchProcessor
from src.services.performance.metrics import PerformanceMetrics

logger = logging.getLogger(__name__)

Listener = Callable[[DegradationEvent], Awaitable[None] | None]


def limits_for_level(level: PerformanceLevel, batch_size: int, concurrency: int) -> PerformanceLimits:
    """Full limits at optimal, halved at degraded, 1 at minimal."""
    if level == PerformanceLevel.optimal:
        return PerformanceLimits(batch_size=batch_size, concurrency=concurrency)
    if level == PerformanceLevel.degraded:
        return PerformanceLimits(
            batch_size=max(1, batch_size // 2), concurrency=max(1, concurrency // 2)
        )
    return PerformanceLimits(batch_size=1, concurrency=1)


class DegradationController:
    """Owns the process-wide performance level.

    Args:
        batcher: Batch processor whose limits follow the level.
        metrics: Source of ``SystemMetrics`` samples.
        interval: Seconds between samples.
    """

    def __init__(
        self,
        batcher: BatchProcessor,
        metrics: PerformanceMetrics,
        interval: float | None = None,
    ) -> None:
        settings = get_settings()
        self._batcher = batcher
        self._metrics = metrics
        self._interval = interval if interval is not None else settings.metrics_interval
        self._base_batch_size = batcher.max_batch_size
        self._base_concurrency = batcher.max_concurrency

        self._error_rate_threshold = settings.error_rate_threshold
        self._response_time_threshold = settings.response_time_threshold
        self._exit_error_rate = settings.exit_error_rate
        self._exit_response_time = settings.exit_response_time
        self._minimal_error_rate = settings.minimal_error_rate

        self._level = PerformanceLevel.optimal
        self._reason: DegradationReason | None = None
        self._last_metrics = SystemMetrics()
        self._listeners: list[Listener] = []
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task | None = None
        self._apply_limits()

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def level(self) -> PerformanceLevel:
        return self._level

    @property
    def degradation_active(self) -> bool:
        return self._level != PerformanceLevel.optimal

    @property
    def limits(self) -> PerformanceLimits:
        return limits_for_level(self._level, self._base_batch_size, self._base_concurrency)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a sync or async listener. Returns an unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def activate_degradation_mode(self, reason: DegradationReason) -> None:
        """Enter ``degraded``. No-op when already degraded or minimal."""
        if self.degradation_active:
            logger.debug("Degradation already active (%s); ignoring %s", self._level, reason)
            return
        await self._set_level(PerformanceLevel.degraded, reason)

    async def deactivate_degradation_mode(self) -> None:
        """Return to ``optimal`` with full limits."""
        if not self.degradation_active:
            return
        await self._set_level(PerformanceLevel.optimal, None)

    async def evaluate(self, metrics: SystemMetrics) -> PerformanceLevel:
        """Apply trigger / exit policy to one metrics sample."""
        self._last_metrics = metrics
        triggered = (
            metrics.error_rate > self._error_rate_threshold
            or metrics.average_response_time > self._response_time_threshold
        )

        if triggered:
            reason = (
                DegradationReason.error_rate
                if metrics.error_rate > self._error_rate_threshold
                else DegradationReason.response_time
            )
            target = (
                PerformanceLevel.minimal
                if metrics.error_rate > self._minimal_error_rate
                else PerformanceLevel.degraded
            )
            if target != self._level:
                await self._set_level(target, reason)
        elif self.degradation_active and self._should_exit(metrics):
            await self.deactivate_degradation_mode()
        elif self._level == PerformanceLevel.minimal:
            await self._set_level(PerformanceLevel.degraded, self._reason)

        return self._level

    async def sample(self) -> PerformanceLevel:
        """Take one metrics sample and evaluate it."""
        return await self.evaluate(self._metrics.get_current_metrics())

    def _should_exit(self, metrics: SystemMetrics) -> bool:
        return (
            metrics.error_rate < self._exit_error_rate
            and metrics.average_response_time < self._exit_response_time
        )

    async def _set_level(self, level: PerformanceLevel, reason: DegradationReason | None) -> None:
        was_active = self.degradation_active
        previous = self._level
        self._level = level
        self._reason = reason
        self._apply_limits()

        if level == PerformanceLevel.optimal:
            logger.info("Degradation mode deactivated")
        else:
            logger.warning(
                "Performance level %s -> %s (reason: %s)", previous, level, reason
            )

        if not was_active and self.degradation_active:
            await self._broadcast(
                DegradationEvent(kind=DegradationEventKind.started, level=level, reason=reason)
            )
        elif was_active and not self.degradation_active:
            await self._broadcast(
                DegradationEvent(kind=DegradationEventKind.ended, level=level)
            )

    def _apply_limits(self) -> None:
        limits = self.limits
        self._batcher.set_max_batch_size(limits.batch_size)
        self._batcher.set_max_concurrency(limits.concurrency)

    async def _broadcast(self, event: DegradationEvent) -> None:
        for listener in list(self._listeners):
            try:
                result = listener(event)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.warning("Degradation listener failed (non-fatal)", exc_info=True)

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def get_performance_report(
        self, recovery_stats: ErrorRecoveryStats | None = None
    ) -> PerformanceReport:
        return PerformanceReport(
            current_level=self._level,
            degradation_mode=self.degradation_active,
            limits=self.limits,
            batch_processing_stats=self._batcher.get_statistics(),
            system_metrics=self._last_metrics,
            recovery_stats=recovery_stats or ErrorRecoveryStats(),
        )

    # ------------------------------------------------------------------
    # Background sampling
    # ------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.is_running:
            return
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._sampling_loop())

    async def stop(self) -> None:
        self._stop_event.set()
        if self._task is not None:
            await self._task
            self._task = None

    async def _sampling_loop(self) -> None:
        logger.info("Performance sampling started (interval %.0fs)", self._interval)
        try:
            while not self._stop_event.is_set():
                try:
                    await asyncio.wait_for(self._stop_event.wait(), timeout=self._interval)
                except TimeoutError:
                    await self.sample()
        except Exception:
            logger.exception("Performance sampling loop crashed")
        finally:
            logger.info("Performance sampling stopped")
