"""
In-memory registry of translation backends.

Tracks each backend's provider, selection priority, latest health status
and rolling call metrics, and picks the best candidate per request.
Health is written only by ``HealthMonitor`` through ``update_health``.
"""

import logging
from dataclasses import dataclass, field
from threading import Lock

from src.core.exceptions import ServiceNotRegisteredError
from src.core.models import (
    HealthState,
    ServiceHealthStatus,
    ServiceMetrics,
    ServiceStatus,
    ServiceType,
    TranslationRequest,
)
from src.services.translation.base import BaseTranslationProvider

logger = logging.getLogger(__name__)


@dataclass
class _ServiceRecord:
    service_type: ServiceType
    provider: BaseTranslationProvider
    priority: int
    health: ServiceHealthStatus = field(default_factory=ServiceHealthStatus)
    metrics: ServiceMetrics = field(default_factory=ServiceMetrics)


class ServiceRegistry:
    """Thread-safe registry keyed by ``ServiceType``.

    Registering an existing type replaces its provider and priority but
    keeps the accumulated health and metrics.
    """

    def __init__(self) -> None:
        self._lock = Lock()
        self._services: dict[ServiceType, _ServiceRecord] = {}

    # -------------------------
    # Registration
    # -------------------------

    def register_service(
        self,
        service_type: ServiceType,
        provider: BaseTranslationProvider,
        priority: int = 0,
    ) -> None:
        with self._lock:
            record = self._services.get(service_type)
            if record is not None:
                record.provider = provider
                record.priority = priority
                return
            self._services[service_type] = _ServiceRecord(
                service_type=service_type, provider=provider, priority=priority
            )
        logger.info("Registered service: %s (priority %d)", service_type.display_name, priority)

    def unregister_service(self, service_type: ServiceType) -> bool:
        with self._lock:
            return self._services.pop(service_type, None) is not None

    def get_provider(self, service_type: ServiceType) -> BaseTranslationProvider:
        """Return the provider for a service.

        Raises:
            ServiceNotRegisteredError: If the type was never registered.
        """
        with self._lock:
            record = self._services.get(service_type)
        if record is None:
            raise ServiceNotRegisteredError(service_type.value)
        return record.provider

    def services(self) -> list[ServiceType]:
        with self._lock:
            return list(self._services)

    def providers(self) -> list[BaseTranslationProvider]:
        with self._lock:
            return [r.provider for r in self._services.values()]

    # -------------------------
    # Selection
    # -------------------------

    def get_best_service(self, request: TranslationRequest | None = None) -> ServiceType | None:
        """Highest-priority healthy service; ties go to the fastest.

        Returns None when no service is healthy; callers then use
        ``default_service()`` or fail.
        """
        with self._lock:
            healthy = [r for r in self._services.values() if r.health.is_healthy]
            if not healthy:
                return None
            best = min(healthy, key=self._rank_key)
            return best.service_type

    def default_service(self) -> ServiceType | None:
        """Highest-priority registered service regardless of health."""
        with self._lock:
            if not self._services:
                return None
            return max(self._services.values(), key=lambda r: r.priority).service_type

    def candidates(self, deprioritize: ServiceType | None = None) -> list[ServiceType]:
        """All services ordered for a fallback pass.

        Healthy first, then unknown, then unhealthy; within a group by
        priority then speed. ``deprioritize`` is moved to the end.
        """
        state_order = {HealthState.healthy: 0, HealthState.unknown: 1, HealthState.unhealthy: 2}
        with self._lock:
            records = sorted(
                self._services.values(),
                key=lambda r: (state_order[r.health.state], *self._rank_key(r)),
            )
        ordered = [r.service_type for r in records]
        if deprioritize in ordered:
            ordered.remove(deprioritize)
            ordered.append(deprioritize)
        return ordered

    @staticmethod
    def _rank_key(record: _ServiceRecord) -> tuple[int, float]:
        return (-record.priority, record.metrics.average_response_time)

    # -------------------------
    # Health & metrics
    # -------------------------

    def update_health(self, service_type: ServiceType, status: ServiceHealthStatus) -> None:
        with self._lock:
            record = self._services.get(service_type)
            if record is None:
                return
            previous = record.health.state
            record.health = status
        if previous != status.state:
            logger.info(
                "Service %s health %s -> %s", service_type.display_name, previous, status.state
            )

    def get_health(self, service_type: ServiceType) -> ServiceHealthStatus:
        with self._lock:
            record = self._services.get(service_type)
            return record.health if record else ServiceHealthStatus()

    def record_success(self, service_type: ServiceType, response_time: float) -> None:
        with self._lock:
            record = self._services.get(service_type)
            if record is None:
                return
            m = record.metrics
            m.total_requests += 1
            m.successful_requests += 1
            m.average_response_time += (
                response_time - m.average_response_time
            ) / m.successful_requests

    def record_failure(self, service_type: ServiceType) -> None:
        with self._lock:
            record = self._services.get(service_type)
            if record is None:
                return
            record.metrics.total_requests += 1
            record.metrics.failed_requests += 1

    def snapshot(self) -> list[ServiceStatus]:
        with self._lock:
            return [
                ServiceStatus(
                    service_type=r.service_type,
                    display_name=r.service_type.display_name,
                    priority=r.priority,
                    health=r.health,
                    metrics=r.metrics.model_copy(),
                )
                for r in sorted(self._services.values(), key=self._rank_key)
            ]
