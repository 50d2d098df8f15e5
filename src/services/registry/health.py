"""Periodic health checks for registered translation backends.

Runs as an independent ``asyncio.Task`` that probes every service on a
fixed interval (60s by default) and writes the outcome into the registry.
A failing probe marks the service unhealthy; it never raises.
"""

import asyncio
import logging
from time import perf_counter

from src.core.config import get_settings
from src.core.models import ServiceHealthStatus, ServiceType
from src.services.registry.registry import ServiceRegistry

logger = logging.getLogger(__name__)


class HealthMonitor:
    """Owns the health state of every service in a registry.

    Args:
        registry: Registry whose services are probed and updated.
        interval: Seconds between health-check rounds.
        timeout: Per-probe timeout in seconds.
    """

    def __init__(
        self,
        registry: ServiceRegistry,
        interval: float | None = None,
        timeout: float | None = None,
    ) -> None:
        settings = get_settings()
        self._registry = registry
        self._interval = interval if interval is not None else settings.health_check_interval
        self._timeout = timeout if timeout is not None else settings.request_timeout
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task | None = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def check_service(self, service_type: ServiceType) -> ServiceHealthStatus:
        """Probe one service and record the result."""
        provider = self._registry.get_provider(service_type)
        start = perf_counter()
        try:
            await asyncio.wait_for(provider.health_check(), timeout=self._timeout)
            status = ServiceHealthStatus.healthy(response_time=perf_counter() - start)
        except Exception as exc:
            logger.warning("Health check failed for %s: %s", service_type.display_name, exc)
            status = ServiceHealthStatus.unhealthy(error=str(exc) or type(exc).__name__)
        self._registry.update_health(service_type, status)
        return status

    async def run_health_checks(self) -> dict[ServiceType, ServiceHealthStatus]:
        """Probe all registered services concurrently."""
        services = self._registry.services()
        statuses = await asyncio.gather(*(self.check_service(s) for s in services))
        return dict(zip(services, statuses, strict=True))

    def start(self) -> None:
        """Launch the background monitoring loop (first round runs immediately)."""
        if self.is_running:
            return
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._monitor_loop())

    async def stop(self) -> None:
        """Signal the loop to stop and wait for it to finish."""
        self._stop_event.set()
        if self._task is not None:
            await self._task
            self._task = None

    async def _monitor_loop(self) -> None:
        logger.info("Health monitoring started (interval %.0fs)", self._interval)
        try:
            while not self._stop_event.is_set():
                await self.run_health_checks()
                try:
                    await asyncio.wait_for(self._stop_event.wait(), timeout=self._interval)
                except TimeoutError:
                    pass  # Interval elapsed, probe again
        except Exception:
            logger.exception("Health monitoring loop crashed")
        finally:
            logger.info("Health monitoring stopped")
