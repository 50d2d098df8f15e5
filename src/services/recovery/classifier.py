"""
Error classification and the fixed recovery policy table.

``classify_error`` is a pure function: typed errors map directly, upstream
HTTP statuses come next, and free-form messages are matched against
keyword patterns last. Anything unrecognized is ``unknown``.
"""

import re

from src.core.exceptions import (
    AuthenticationError,
    EmptyTextError,
    InvalidInputError,
    MissingAPIKeyError,
    NetworkError,
    NoAvailableServiceError,
    RateLimitedError,
    ServiceError,
    ServiceUnavailableError,
)
from src.core.models import ErrorClassification, RecoveryAction, RecoveryDecision

_RECOVERY_POLICY: dict[ErrorClassification, tuple[RecoveryAction, float, int]] = {
    ErrorClassification.network: (RecoveryAction.retry, 2.0, 3),
    ErrorClassification.api_limit: (RecoveryAction.degrade, 60.0, 1),
    ErrorClassification.authentication: (RecoveryAction.fallback, 0.0, 0),
    ErrorClassification.service_unavailable: (RecoveryAction.fallback, 5.0, 2),
    ErrorClassification.invalid_input: (RecoveryAction.fail, 0.0, 0),
    ErrorClassification.unknown: (RecoveryAction.retry, 1.0, 2),
}

# Checked in order; first match wins
_TYPE_RULES: list[tuple[tuple[type[BaseException], ...], ErrorClassification]] = [
    ((EmptyTextError, InvalidInputError), ErrorClassification.invalid_input),
    ((RateLimitedError,), ErrorClassification.api_limit),
    ((AuthenticationError, MissingAPIKeyError), ErrorClassification.authentication),
    ((ServiceUnavailableError, NoAvailableServiceError), ErrorClassification.service_unavailable),
    ((NetworkError, ConnectionError, TimeoutError), ErrorClassification.network),
]

_STATUS_RULES: dict[int, ErrorClassification] = {
    400: ErrorClassification.invalid_input,
    401: ErrorClassification.authentication,
    403: ErrorClassification.authentication,
    413: ErrorClassification.invalid_input,
    422: ErrorClassification.invalid_input,
    429: ErrorClassification.api_limit,
    500: ErrorClassification.service_unavailable,
    502: ErrorClassification.service_unavailable,
    503: ErrorClassification.service_unavailable,
    504: ErrorClassification.service_unavailable,
}

_MESSAGE_RULES: list[tuple[re.Pattern[str], ErrorClassification]] = [
    (
        re.compile(r"network|connection|connect|timed? ?out|unreachable|dns|socket"),
        ErrorClassification.network,
    ),
    (
        re.compile(r"rate.?limit|quota|too many requests|throttl|\b429\b"),
        ErrorClassification.api_limit,
    ),
    (
        re.compile(r"unauthori[sz]ed|authenticat|api key|forbidden|credential|\b40[13]\b"),
        ErrorClassification.authentication,
    ),
    (
        re.compile(r"unavailable|overloaded|maintenance|\b50[234]\b"),
        ErrorClassification.service_unavailable,
    ),
    (
        re.compile(r"invalid input|malformed|empty|bad request|unsupported language|\b4(00|22)\b"),
        ErrorClassification.invalid_input,
    ),
]


def classify_error(error: BaseException) -> ErrorClassification:
    """Map an exception onto the recovery taxonomy."""
    for types, classification in _TYPE_RULES:
        if isinstance(error, types):
            return classification

    if isinstance(error, ServiceError) and error.upstream_status in _STATUS_RULES:
        return _STATUS_RULES[error.upstream_status]

    message = str(error).lower()
    for pattern, classification in _MESSAGE_RULES:
        if pattern.search(message):
            return classification
    return ErrorClassification.unknown


def decide_recovery(classification: ErrorClassification) -> RecoveryDecision:
    """Look up the fixed recovery policy for a classification."""
    action, delay, max_retries = _RECOVERY_POLICY[classification]
    return RecoveryDecision(
        classification=classification,
        action=action,
        delay=delay,
        max_retries=max_retries,
    )
