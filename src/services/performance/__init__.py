"""
Performance module - Request metrics and degradation control.
"""

from .degradation import DegradationController, limits_for_level
from .metrics import PerformanceMetrics

__all__ = ["DegradationController", "PerformanceMetrics", "limits_for_level"]
