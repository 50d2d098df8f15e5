"""
Pydantic v2 models shared by the orchestration services and the API layer.

Core:   TranslationRequest, MergedRequest, priorities and strategies
Health: ServiceType, ServiceHealthStatus, ServiceMetrics
Errors: ErrorClassification, RecoveryDecision
Perf:   PerformanceLevel, SystemMetrics, PerformanceReport
API:    request / response bodies
"""

from datetime import UTC, datetime
from enum import IntEnum, StrEnum
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field


def _utcnow() -> datetime:
    return datetime.now(UTC)


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


class HealthResponse(BaseModel):
    """GET /health response."""

    status: str = "ok"
    version: str = "0.1.0"
    timestamp: datetime


# ---------------------------------------------------------------------------
# Translation requests
# ---------------------------------------------------------------------------


class RequestPriority(IntEnum):
    """Ordered request priority; merging allows a one-step difference."""

    low = 1
    normal = 2
    high = 3
    critical = 4


class TranslationRequest(BaseModel):
    """A single text to translate. Immutable once created."""

    model_config = ConfigDict(frozen=True)

    text: str
    source_language: str
    target_language: str
    priority: RequestPriority = RequestPriority.normal
    submitted_at: datetime = Field(default_factory=_utcnow)
    id: UUID = Field(default_factory=uuid4)

    @property
    def language_pair(self) -> tuple[str, str]:
        return (self.source_language, self.target_language)


class MergedRequest(BaseModel):
    """Compatible requests combined into one upstream call.

    ``indices`` are positions in the batch passed to the merger, in the
    same order as ``requests``, so results can be de-multiplexed.
    """

    model_config = ConfigDict(frozen=True)

    requests: list[TranslationRequest]
    indices: list[int]
    merged_text: str
    priority: RequestPriority

    @property
    def source_language(self) -> str:
        return self.requests[0].source_language

    @property
    def target_language(self) -> str:
        return self.requests[0].target_language

    def __len__(self) -> int:
        return len(self.requests)


class BatchStrategy(StrEnum):
    """How ``BatchProcessor.process_batch`` executes a batch."""

    sequential = "sequential"
    parallel = "parallel"
    merged = "merged"
    adaptive = "adaptive"


# ---------------------------------------------------------------------------
# Service registry
# ---------------------------------------------------------------------------


class ServiceType(StrEnum):
    """Known translation backends."""

    qianwen = "qianwen"
    claude = "claude"
    ollama = "ollama"

    @property
    def display_name(self) -> str:
        return {
            ServiceType.qianwen: "Qianwen",
            ServiceType.claude: "Claude",
            ServiceType.ollama: "Ollama",
        }[self]


class HealthState(StrEnum):
    """Per-service health: unknown -> healthy <-> unhealthy."""

    unknown = "unknown"
    healthy = "healthy"
    unhealthy = "unhealthy"


class ServiceHealthStatus(BaseModel):
    """Latest health-check outcome for one service."""

    model_config = ConfigDict(frozen=True)

    state: HealthState = HealthState.unknown
    response_time: float | None = None
    error: str | None = None
    checked_at: datetime | None = None

    @classmethod
    def healthy(cls, response_time: float) -> "ServiceHealthStatus":
        return cls(
            state=HealthState.healthy,
            response_time=response_time,
            checked_at=_utcnow(),
        )

    @classmethod
    def unhealthy(cls, error: str) -> "ServiceHealthStatus":
        return cls(state=HealthState.unhealthy, error=error, checked_at=_utcnow())

    @property
    def is_healthy(self) -> bool:
        return self.state == HealthState.healthy


class ServiceMetrics(BaseModel):
    """Rolling call statistics for one service."""

    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    average_response_time: float = 0.0


class ServiceStatus(BaseModel):
    """Read-only snapshot of a registered service (GET /services)."""

    service_type: ServiceType
    display_name: str
    priority: int
    health: ServiceHealthStatus
    metrics: ServiceMetrics


# ---------------------------------------------------------------------------
# Error classification & recovery
# ---------------------------------------------------------------------------


class ErrorClassification(StrEnum):
    """Fixed failure taxonomy driving recovery decisions."""

    network = "network"
    api_limit = "api_limit"
    authentication = "authentication"
    service_unavailable = "service_unavailable"
    invalid_input = "invalid_input"
    unknown = "unknown"


class RecoveryAction(StrEnum):
    retry = "retry"
    fallback = "fallback"
    degrade = "degrade"
    fail = "fail"


class ErrorContext(StrEnum):
    """Where a failure was observed."""

    batch_processing = "batch_processing"
    single_request = "single_request"
    health_check = "health_check"
    cache_operation = "cache_operation"


class RecoveryDecision(BaseModel):
    """Policy outcome for a classified error.

    ``delay`` is in seconds; ``max_retries`` bounds how many times the failed
    batch may be re-sent for this decision.
    """

    model_config = ConfigDict(frozen=True)

    classification: ErrorClassification
    action: RecoveryAction
    delay: float
    max_retries: int


class ErrorRecoveryStats(BaseModel):
    total_errors: int = 0
    by_classification: dict[str, int] = Field(default_factory=dict)
    recovery_attempts: int = 0
    successful_recoveries: int = 0
    recovery_rate: float = 0.0


# ---------------------------------------------------------------------------
# Performance & degradation
# ---------------------------------------------------------------------------


class PerformanceLevel(StrEnum):
    optimal = "optimal"
    degraded = "degraded"
    minimal = "minimal"


class DegradationReason(StrEnum):
    error_rate = "error_rate"
    response_time = "response_time"
    system_load = "system_load"
    api_quota = "api_quota"
    network_issues = "network_issues"


class DegradationEventKind(StrEnum):
    started = "started"
    ended = "ended"


class DegradationEvent(BaseModel):
    """Broadcast to subscribers when degradation mode toggles."""

    kind: DegradationEventKind
    level: PerformanceLevel
    reason: DegradationReason | None = None
    timestamp: datetime = Field(default_factory=_utcnow)


class PerformanceLimits(BaseModel):
    """Batch size and concurrency allowed at a performance level."""

    model_config = ConfigDict(frozen=True)

    batch_size: int
    concurrency: int


class SystemMetrics(BaseModel):
    """One sample of aggregate health. Usage values are fractions 0..1."""

    error_rate: float = 0.0
    average_response_time: float = 0.0
    memory_usage: float = 0.0
    cpu_usage: float = 0.0
    sample_size: int = 0


class BatchProcessingStats(BaseModel):
    total_batches: int = 0
    successful_batches: int = 0
    failed_batches: int = 0
    merged_groups: int = 0
    average_batch_size: float = 0.0
    average_processing_time: float = 0.0


class CacheStats(BaseModel):
    entries: int = 0
    total_size: int = 0
    capacity: int = 0
    hits: int = 0
    misses: int = 0
    evictions: int = 0
    expirations: int = 0
    hit_rate: float = 0.0
    frequency_weight: float = 0.0


class PerformanceReport(BaseModel):
    """Observability snapshot (GET /performance)."""

    timestamp: datetime = Field(default_factory=_utcnow)
    current_level: PerformanceLevel
    degradation_mode: bool
    limits: PerformanceLimits
    batch_processing_stats: BatchProcessingStats
    system_metrics: SystemMetrics
    recovery_stats: ErrorRecoveryStats


# ---------------------------------------------------------------------------
# API bodies
# ---------------------------------------------------------------------------


class TranslateRequestBody(BaseModel):
    """POST /translate request body."""

    text: str = Field(max_length=5000)
    source_language: str = Field(min_length=2, max_length=16)
    target_language: str = Field(min_length=2, max_length=16)
    priority: RequestPriority = RequestPriority.normal
    context: str = Field(default="", max_length=2000)


class TranslateResponse(BaseModel):
    translated_text: str
    source_language: str
    target_language: str


class BatchTranslateItem(BaseModel):
    text: str = Field(max_length=5000)
    source_language: str = Field(min_length=2, max_length=16)
    target_language: str = Field(min_length=2, max_length=16)
    priority: RequestPriority = RequestPriority.normal


class BatchTranslateRequestBody(BaseModel):
    """POST /translate/batch request body."""

    requests: list[BatchTranslateItem] = Field(max_length=100)
    priority: RequestPriority = RequestPriority.normal


class BatchTranslateResponse(BaseModel):
    translations: list[str] = Field(default_factory=list)


class DetectLanguageRequest(BaseModel):
    text: str = Field(max_length=5000)


class DetectLanguageResponse(BaseModel):
    language: str


class ErrorResponse(BaseModel):
    """Standard error envelope."""

    detail: str
    code: str
    timestamp: str
