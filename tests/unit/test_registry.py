"""Unit tests for the service registry and health monitor."""

import asyncio

import pytest

from src.core.exceptions import ServiceNotRegisteredError
from src.core.models import HealthState, ServiceHealthStatus, ServiceType
from src.services.registry import HealthMonitor, ServiceRegistry

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def registry(provider_factory):
    reg = ServiceRegistry()
    reg.register_service(ServiceType.qianwen, provider_factory(), priority=3)
    reg.register_service(ServiceType.claude, provider_factory(), priority=2)
    reg.register_service(ServiceType.ollama, provider_factory(), priority=1)
    return reg


# ---------------------------------------------------------------------------
# ServiceRegistry
# ---------------------------------------------------------------------------


class TestRegistration:
    def test_services_listed(self, registry):
        assert set(registry.services()) == {
            ServiceType.qianwen,
            ServiceType.claude,
            ServiceType.ollama,
        }

    def test_reregister_keeps_health_and_metrics(self, registry, provider_factory):
        registry.update_health(ServiceType.claude, ServiceHealthStatus.healthy(0.2))
        registry.record_success(ServiceType.claude, 0.5)
        replacement = provider_factory()

        registry.register_service(ServiceType.claude, replacement, priority=10)

        assert registry.get_provider(ServiceType.claude) is replacement
        assert registry.get_health(ServiceType.claude).is_healthy
        status = next(s for s in registry.snapshot() if s.service_type == ServiceType.claude)
        assert status.priority == 10
        assert status.metrics.total_requests == 1

    def test_unknown_service_raises(self):
        with pytest.raises(ServiceNotRegisteredError):
            ServiceRegistry().get_provider(ServiceType.qianwen)

    def test_unregister(self, registry):
        assert registry.unregister_service(ServiceType.ollama) is True
        assert registry.unregister_service(ServiceType.ollama) is False
        assert ServiceType.ollama not in registry.services()

    def test_new_service_health_is_unknown(self, registry):
        assert registry.get_health(ServiceType.qianwen).state == HealthState.unknown


class TestSelection:
    def test_no_healthy_service_returns_none(self, registry):
        assert registry.get_best_service() is None

    def test_highest_priority_healthy_wins(self, registry):
        registry.update_health(ServiceType.claude, ServiceHealthStatus.healthy(0.1))
        registry.update_health(ServiceType.ollama, ServiceHealthStatus.healthy(0.1))
        assert registry.get_best_service() == ServiceType.claude

    def test_unhealthy_service_skipped(self, registry):
        registry.update_health(ServiceType.qianwen, ServiceHealthStatus.unhealthy("down"))
        registry.update_health(ServiceType.ollama, ServiceHealthStatus.healthy(0.1))
        assert registry.get_best_service() == ServiceType.ollama

    def test_ties_go_to_faster_service(self, provider_factory):
        reg = ServiceRegistry()
        reg.register_service(ServiceType.qianwen, provider_factory(), priority=1)
        reg.register_service(ServiceType.claude, provider_factory(), priority=1)
        for service in (ServiceType.qianwen, ServiceType.claude):
            reg.update_health(service, ServiceHealthStatus.healthy(0.1))
        reg.record_success(ServiceType.qianwen, 2.0)
        reg.record_success(ServiceType.claude, 0.5)

        assert reg.get_best_service() == ServiceType.claude

    def test_default_service_ignores_health(self, registry):
        registry.update_health(ServiceType.qianwen, ServiceHealthStatus.unhealthy("down"))
        assert registry.default_service() == ServiceType.qianwen

    def test_default_service_empty_registry(self):
        assert ServiceRegistry().default_service() is None

    def test_candidates_order_by_health_then_priority(self, registry):
        registry.update_health(ServiceType.qianwen, ServiceHealthStatus.unhealthy("down"))
        registry.update_health(ServiceType.ollama, ServiceHealthStatus.healthy(0.1))

        assert registry.candidates() == [
            ServiceType.ollama,
            ServiceType.claude,
            ServiceType.qianwen,
        ]

    def test_candidates_deprioritize(self, registry):
        assert registry.candidates(deprioritize=ServiceType.qianwen)[-1] == ServiceType.qianwen


class TestMetrics:
    def test_success_and_failure_counts(self, registry):
        registry.record_success(ServiceType.qianwen, 1.0)
        registry.record_success(ServiceType.qianwen, 3.0)
        registry.record_failure(ServiceType.qianwen)

        status = next(s for s in registry.snapshot() if s.service_type == ServiceType.qianwen)
        assert status.metrics.total_requests == 3
        assert status.metrics.successful_requests == 2
        assert status.metrics.failed_requests == 1
        assert status.metrics.average_response_time == pytest.approx(2.0)

    def test_snapshot_sorted_by_priority(self, registry):
        order = [s.service_type for s in registry.snapshot()]
        assert order == [ServiceType.qianwen, ServiceType.claude, ServiceType.ollama]


# ---------------------------------------------------------------------------
# HealthMonitor
# ---------------------------------------------------------------------------


class TestHealthMonitor:
    @pytest.mark.asyncio
    async def test_healthy_probe(self, registry):
        monitor = HealthMonitor(registry, interval=60, timeout=1)
        status = await monitor.check_service(ServiceType.qianwen)

        assert status.is_healthy
        assert status.response_time is not None
        assert registry.get_health(ServiceType.qianwen).is_healthy

    @pytest.mark.asyncio
    async def test_failing_probe_marks_unhealthy(self, registry):
        provider = registry.get_provider(ServiceType.claude)
        provider.health_check.side_effect = ConnectionError("refused")
        monitor = HealthMonitor(registry, interval=60, timeout=1)

        status = await monitor.check_service(ServiceType.claude)

        assert status.state == HealthState.unhealthy
        assert "refused" in status.error

    @pytest.mark.asyncio
    async def test_probe_timeout_marks_unhealthy(self, registry):
        async def hang():
            await asyncio.sleep(10)

        registry.get_provider(ServiceType.ollama).health_check.side_effect = hang
        monitor = HealthMonitor(registry, interval=60, timeout=0.01)

        status = await monitor.check_service(ServiceType.ollama)

        assert status.state == HealthState.unhealthy
        assert status.error == "TimeoutError"

    @pytest.mark.asyncio
    async def test_run_health_checks_covers_every_service(self, registry):
        registry.get_provider(ServiceType.claude).health_check.side_effect = RuntimeError("x")
        monitor = HealthMonitor(registry, interval=60, timeout=1)

        statuses = await monitor.run_health_checks()

        assert set(statuses) == set(registry.services())
        assert statuses[ServiceType.qianwen].is_healthy
        assert not statuses[ServiceType.claude].is_healthy

    @pytest.mark.asyncio
    async def test_loop_runs_first_round_immediately(self, registry):
        monitor = HealthMonitor(registry, interval=60, timeout=1)
        monitor.start()
        await asyncio.sleep(0.05)
        assert monitor.is_running
        await monitor.stop()

        assert not monitor.is_running
        assert registry.get_health(ServiceType.qianwen).is_healthy
