"""
TransRelay exception hierarchy.

All application-specific exceptions inherit from TransRelayError,
enabling centralized error handling in the API middleware layer and
typed classification in the recovery layer.
"""

from datetime import UTC, datetime


class TransRelayError(Exception):
    """Base exception for all TransRelay errors."""

    def __init__(
        self,
        detail: str = "An unexpected error occurred",
        code: str = "TRANSRELAY_ERROR",
        status_code: int = 500,
    ) -> None:
        self.detail = detail
        self.code = code
        self.status_code = status_code
        self.timestamp = datetime.now(UTC).isoformat()
        super().__init__(detail)


class MissingAPIKeyError(TransRelayError):
    """Raised when a provider is used without its API key configured."""

    def __init__(self, provider: str) -> None:
        super().__init__(
            detail=f"No API key configured for {provider}",
            code="NO_API_KEY",
            status_code=500,
        )


class EmptyTextError(TransRelayError):
    """Raised when the text to translate is empty or whitespace."""

    def __init__(self) -> None:
        super().__init__(
            detail="Text is empty",
            code="EMPTY_TEXT",
            status_code=400,
        )


class InvalidInputError(TransRelayError):
    """Raised for malformed translation input (e.g. unsupported language)."""

    def __init__(self, detail: str = "Invalid translation input") -> None:
        super().__init__(detail=detail, code="INVALID_INPUT", status_code=400)


# ---------------------------------------------------------------------------
# Upstream backend failures
# ---------------------------------------------------------------------------


class ServiceError(TransRelayError):
    """Raised by a translation provider when the upstream call fails.

    ``upstream_status`` carries the backend's HTTP status when one exists.
    """

    def __init__(
        self,
        detail: str = "Translation service error",
        code: str = "SERVICE_ERROR",
        status_code: int = 502,
        upstream_status: int | None = None,
    ) -> None:
        self.upstream_status = upstream_status
        super().__init__(detail=detail, code=code, status_code=status_code)


class NetworkError(ServiceError):
    """Transport-level failure: connection refused, DNS, timeout."""

    def __init__(self, detail: str = "Network error") -> None:
        super().__init__(
            detail=f"Network error: {detail}",
            code="NETWORK_ERROR",
            status_code=503,
        )


class BackendError(ServiceError):
    """Non-2xx response or unparseable payload from the backend."""

    def __init__(self, detail: str = "API error", upstream_status: int | None = None) -> None:
        super().__init__(
            detail=f"API error: {detail}",
            code="BACKEND_ERROR",
            status_code=502,
            upstream_status=upstream_status,
        )


class RateLimitedError(ServiceError):
    """The backend rejected the call because of quota or rate limits."""

    def __init__(self, detail: str = "Rate limited by API") -> None:
        super().__init__(
            detail=detail,
            code="RATE_LIMITED",
            status_code=429,
            upstream_status=429,
        )


class AuthenticationError(ServiceError):
    """The backend rejected the configured credentials."""

    def __init__(self, detail: str = "Authentication with the API failed") -> None:
        super().__init__(
            detail=detail,
            code="AUTHENTICATION_ERROR",
            status_code=502,
            upstream_status=401,
        )


class ServiceUnavailableError(ServiceError):
    """The backend reported itself unavailable (5xx, maintenance)."""

    def __init__(self, detail: str = "Translation service unavailable") -> None:
        super().__init__(
            detail=detail,
            code="SERVICE_UNAVAILABLE",
            status_code=503,
            upstream_status=503,
        )


# ---------------------------------------------------------------------------
# Orchestration failures
# ---------------------------------------------------------------------------


class NoAvailableServiceError(TransRelayError):
    """Raised when no translation backend is registered."""

    def __init__(self) -> None:
        super().__init__(
            detail="No translation service available",
            code="NO_AVAILABLE_SERVICE",
            status_code=503,
        )


class ServiceNotRegisteredError(TransRelayError):
    """Raised when a service type has no registered provider."""

    def __init__(self, service_type: str) -> None:
        super().__init__(
            detail=f"Service {service_type} not registered",
            code="SERVICE_NOT_REGISTERED",
            status_code=404,
        )


class MergeSplitError(TransRelayError):
    """A merged translation could not be split back into its segments."""

    def __init__(self, expected: int, received: int) -> None:
        self.expected = expected
        self.received = received
        super().__init__(
            detail=f"Merged translation returned {received} segments, expected {expected}",
            code="MERGE_SPLIT_ERROR",
            status_code=502,
        )
