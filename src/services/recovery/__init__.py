"""
Recovery module - Error classification and recovery policy execution.
"""

from .classifier import classify_error, decide_recovery
from .controller import RecoveryController

__all__ = ["RecoveryController", "classify_error", "decide_recovery"]
