"""
Recovery controller: applies classified recovery decisions.

Two independent loops live here and they never nest:

* ``execute_with_recovery`` re-sends a failed batch. Its only retry budget
  is ``RecoveryDecision.max_retries`` of the failure's classification,
  waiting ``RecoveryDecision.delay`` between attempts. Fallback and
  degrade decisions hand over to the caller's sequential fallback path.
* ``attempt_automatic_recovery`` repairs the system, not a request: it
  probes backend health or switches on degradation, up to
  ``max_attempts`` times with ``2^attempt`` seconds of backoff.
"""

import asyncio
import logging
from collections import Counter
from collections.abc import Awaitable, Callable
from typing import TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    retry_if_exception_type,
    retry_if_result,
    stop_after_attempt,
    wait_exponential,
)

from src.core.config import get_settings
from src.core.models import (
    DegradationReason,
    ErrorClassification,
    ErrorContext,
    ErrorRecoveryStats,
    RecoveryAction,
    RecoveryDecision,
)
from src.services.performance.degradation import DegradationController
from src.services.recovery.classifier import classify_error, decide_recovery
from src.services.registry.health import HealthMonitor

logger = logging.getLogger(__name__)

T = TypeVar("T")
SleepFn = Callable[[float], Awaitable[None]]


def _decision_for(retry_state: RetryCallState) -> RecoveryDecision:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    if exc is None:
        return decide_recovery(ErrorClassification.unknown)
    return decide_recovery(classify_error(exc))


def _retry_budget_exhausted(retry_state: RetryCallState) -> bool:
    return retry_state.attempt_number > _decision_for(retry_state).max_retries


def _decision_delay(retry_state: RetryCallState) -> float:
    return _decision_for(retry_state).delay


class RecoveryController:
    """Classifies failures and carries out the matching recovery action.

    Args:
        degradation: Controller switched on by ``degrade`` decisions.
        health_monitor: Used to probe backends during automatic recovery.
        max_attempts: Default attempt budget of ``attempt_automatic_recovery``.
        sleep: Awaitable sleep; injectable so tests do not wait.
    """

    def __init__(
        self,
        degradation: DegradationController,
        health_monitor: HealthMonitor,
        max_attempts: int | None = None,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self._degradation = degradation
        self._health_monitor = health_monitor
        self._max_attempts = max_attempts or get_settings().recovery_max_attempts
        self._sleep = sleep

        self._total_errors = 0
        self._by_classification: Counter[str] = Counter()
        self._recovery_attempts = 0
        self._successful_recoveries = 0

    # ------------------------------------------------------------------
    # Classification
    # ------------------------------------------------------------------

    def classify(self, error: BaseException) -> ErrorClassification:
        return classify_error(error)

    def decide(self, classification: ErrorClassification) -> RecoveryDecision:
        return decide_recovery(classification)

    def classify_and_decide(
        self,
        error: BaseException,
        context: ErrorContext = ErrorContext.batch_processing,
    ) -> RecoveryDecision:
        """Classify, record statistics and return the policy decision."""
        decision = decide_recovery(classify_error(error))
        self._total_errors += 1
        self._by_classification[decision.classification.value] += 1
        logger.info(
            "Error during %s classified as %s -> %s (delay %.0fs, retries %d): %s",
            context,
            decision.classification,
            decision.action,
            decision.delay,
            decision.max_retries,
            error,
        )
        return decision

    # ------------------------------------------------------------------
    # Request-level recovery
    # ------------------------------------------------------------------

    async def execute_with_recovery(
        self,
        operation: Callable[[], Awaitable[T]],
        fallback: Callable[[], Awaitable[T]],
        context: ErrorContext = ErrorContext.batch_processing,
    ) -> T:
        """Run ``operation`` and recover from failures by policy.

        * retry: re-run ``operation`` after the decision delay until its
          ``max_retries`` are used up, then raise the last error.
        * fallback: wait the decision delay, then return ``fallback()``.
        * degrade: activate degradation, wait, then return ``fallback()``.
        * fail: raise immediately.
        """

        def should_retry(exc: BaseException) -> bool:
            return self.classify_and_decide(exc, context).action == RecoveryAction.retry

        # Cancellation is not an upstream failure: never classified or retried
        retrying = AsyncRetrying(
            retry=retry_if_exception_type(Exception) & retry_if_exception(should_retry),
            stop=_retry_budget_exhausted,
            wait=_decision_delay,
            sleep=self._sleep,
            reraise=True,
        )

        attempts = 0

        async def tracked() -> T:
            nonlocal attempts
            attempts += 1
            return await operation()

        try:
            result = await retrying(tracked)
        except Exception as exc:
            decision = decide_recovery(classify_error(exc))
            if decision.action in (RecoveryAction.retry, RecoveryAction.fail):
                raise

            self._recovery_attempts += 1
            if decision.action == RecoveryAction.degrade:
                await self._degradation.activate_degradation_mode(
                    DegradationReason.api_quota
                    if decision.classification == ErrorClassification.api_limit
                    else DegradationReason.error_rate
                )
            if decision.delay:
                await self._sleep(decision.delay)
            logger.info("Falling back to sequential processing after %s", decision.classification)
            result = await fallback()
            self._successful_recoveries += 1
            return result

        if attempts > 1:
            self._recovery_attempts += 1
            self._successful_recoveries += 1
        return result

    # ------------------------------------------------------------------
    # System-level recovery
    # ------------------------------------------------------------------

    async def attempt_automatic_recovery(
        self, error: BaseException, max_attempts: int | None = None
    ) -> bool:
        """Try to restore service after ``error``.

        Returns:
            True once an attempt succeeds, False when the budget runs out
            or the decision is ``fail``.
        """
        decision = decide_recovery(classify_error(error))
        if decision.action == RecoveryAction.fail:
            logger.info("No automatic recovery for %s", decision.classification)
            return False

        attempts = max_attempts or self._max_attempts
        retrying = AsyncRetrying(
            stop=stop_after_attempt(attempts),
            wait=wait_exponential(multiplier=2),
            retry=retry_if_result(lambda ok: not ok) | retry_if_exception_type(Exception),
            retry_error_callback=lambda _state: False,
            sleep=self._sleep,
            before_sleep=lambda state: logger.info(
                "Recovery attempt %d/%d failed", state.attempt_number, attempts
            ),
        )
        ok = await retrying(self._execute_action, decision)

        self._recovery_attempts += 1
        if ok:
            self._successful_recoveries += 1
            logger.info("Automatic recovery successful")
        else:
            logger.warning("Automatic recovery failed after %d attempts", attempts)
        return ok

    async def _execute_action(self, decision: RecoveryDecision) -> bool:
        if decision.action == RecoveryAction.degrade:
            await self._degradation.activate_degradation_mode(
                DegradationReason.api_quota
                if decision.classification == ErrorClassification.api_limit
                else DegradationReason.error_rate
            )
            return True
        if decision.action in (RecoveryAction.retry, RecoveryAction.fallback):
            statuses = await self._health_monitor.run_health_checks()
            return any(status.is_healthy for status in statuses.values())
        return False

    # ------------------------------------------------------------------
    # Statistics
    # ------------------------------------------------------------------

    def get_statistics(self) -> ErrorRecoveryStats:
        return ErrorRecoveryStats(
            total_errors=self._total_errors,
            by_classification=dict(self._by_classification),
            recovery_attempts=self._recovery_attempts,
            successful_recoveries=self._successful_recoveries,
            recovery_rate=(
                self._successful_recoveries / self._recovery_attempts
                if self._recovery_attempts
                else 0.0
            ),
        )
