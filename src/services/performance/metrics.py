"""Rolling request metrics and host resource usage.

Request outcomes are kept in a bounded time window; ``get_current_metrics``
turns them into a ``SystemMetrics`` sample together with memory and CPU
usage read through psutil.
"""

import logging
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass

import psutil

from src.core.config import get_settings
from src.core.models import SystemMetrics

logger = logging.getLogger(__name__)


@dataclass
class _Sample:
    timestamp: float
    success: bool
    response_time: float


def read_system_usage() -> tuple[float, float]:
    """Return (memory_usage, cpu_usage) as fractions of 1.0."""
    try:
        memory = psutil.virtual_memory().percent / 100.0
        cpu = psutil.cpu_percent(interval=None) / 100.0
    except Exception:
        logger.debug("psutil probe failed; reporting zero usage", exc_info=True)
        return (0.0, 0.0)
    return (memory, cpu)


class PerformanceMetrics:
    """Collects upstream call outcomes for degradation decisions.

    Args:
        window_seconds: Age beyond which samples are discarded.
        max_samples: Hard cap on retained samples.
        clock: Monotonic time source.
        system_probe: Returns (memory_usage, cpu_usage); psutil by default.
    """

    def __init__(
        self,
        window_seconds: float | None = None,
        max_samples: int = 500,
        clock: Callable[[], float] = time.monotonic,
        system_probe: Callable[[], tuple[float, float]] = read_system_usage,
    ) -> None:
        settings = get_settings()
        self._window = window_seconds if window_seconds is not None else settings.metrics_window_seconds
        self._samples: deque[_Sample] = deque(maxlen=max_samples)
        self._clock = clock
        self._system_probe = system_probe

    def record_request(self, success: bool, response_time: float) -> None:
        self._samples.append(
            _Sample(timestamp=self._clock(), success=success, response_time=response_time)
        )

    def reset(self) -> None:
        self._samples.clear()

    def get_current_metrics(self) -> SystemMetrics:
        self._prune()
        samples = list(self._samples)
        memory, cpu = self._system_probe()
        if not samples:
            return SystemMetrics(memory_usage=memory, cpu_usage=cpu)

        failures = sum(1 for s in samples if not s.success)
        successes = [s.response_time for s in samples if s.success]
        return SystemMetrics(
            error_rate=failures / len(samples),
            average_response_time=sum(successes) / len(successes) if successes else 0.0,
            memory_usage=memory,
            cpu_usage=cpu,
            sample_size=len(samples),
        )

    def _prune(self) -> None:
        cutoff = self._clock() - self._window
        while self._samples and self._samples[0].timestamp < cutoff:
            self._samples.popleft()
