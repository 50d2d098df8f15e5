"""
Registry module - Translation backend registry and health monitoring.
"""

from .health import HealthMonitor
from .registry import ServiceRegistry

__all__ = ["HealthMonitor", "ServiceRegistry"]
