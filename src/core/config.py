"""
Application configuration via pydantic-settings.

Loads values from .env file with sensible defaults for local development.
Use ``get_settings()`` to obtain the cached singleton instance.
"""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """TransRelay settings loaded from environment / .env file.

    All settings can be overridden via environment variables or a `.env` file.
    Field names map directly to env var names (case-insensitive).

    Attributes:
        translation_providers: Comma-separated backends to register, in
            descending selection priority ("qianwen,claude,ollama").
        cache_capacity: Maximum number of cached translations.
        batch_size: Maximum requests per batch at the optimal level.
        error_rate_threshold: Error rate that switches on degradation mode.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # Silently ignore unrecognized env vars
    )

    # --- Translation providers ---
    # First entry gets the highest selection priority
    translation_providers: str = "qianwen"
    request_timeout: float = 30.0  # Seconds per upstream call

    # Qianwen (DashScope text-generation API)
    dashscope_api_key: str = ""  # Required when "qianwen" is registered
    qianwen_base_url: str = (
        "https://dashscope.aliyuncs.com/api/v1/services/aigc/text-generation/generation"
    )
    qianwen_model: str = "qwen-turbo"

    # Claude (Anthropic API) settings
    claude_api_key: str = ""  # Required when "claude" is registered
    claude_model: str = "claude-sonnet-4-20250514"

    # Ollama (local LLM) settings
    ollama_base_url: str = "http://localhost:11434"
    ollama_model: str = "llama3.2"

    # --- Translation cache ---
    cache_capacity: int = 1000  # Max entries
    cache_max_bytes: int = 0  # 0 = no byte budget
    cache_ttl_seconds: float = 86400.0
    cache_frequency_weight: float = 0.3  # 0.0 = pure LRU, 1.0 = pure LFU
    cache_low_hit_rate: float = 0.3  # Below this, lean towards LFU
    cache_high_hit_rate: float = 0.7  # Above this, lean towards LRU
    cache_weight_step: float = 0.1
    cache_max_frequency_weight: float = 0.8
    cache_min_samples: int = 50  # Lookups needed before the policy is retuned
    cache_maintenance_interval: float = 300.0

    # --- Batching ---
    batch_size: int = 5
    batch_timeout: float = 2.0  # Seconds to wait for a batch to fill
    max_concurrent_requests: int = 3
    batch_strategy: str = "adaptive"  # sequential, parallel, merged, adaptive

    # --- Health & metrics ---
    health_check_interval: float = 60.0
    metrics_interval: float = 30.0
    metrics_window_seconds: float = 300.0

    # --- Degradation ---
    error_rate_threshold: float = 0.3
    response_time_threshold: float = 5.0
    exit_error_rate: float = 0.15
    exit_response_time: float = 4.0
    minimal_error_rate: float = 0.6

    # --- Recovery ---
    recovery_max_attempts: int = 3

    # --- Application ---
    app_host: str = "0.0.0.0"  # Bind address for the FastAPI server
    app_port: int = 8000
    log_level: str = "INFO"  # Python logging level

    @property
    def provider_names(self) -> list[str]:
        """Configured provider names, stripped and lower-cased."""
        return [
            name.strip().lower()
            for name in self.translation_providers.split(",")
            if name.strip()
        ]


@lru_cache
def get_settings() -> Settings:
    """Return a cached Settings singleton.

    Uses ``functools.lru_cache`` so the .env file is read only once.
    Subsequent calls return the same ``Settings`` instance.

    Returns:
        Settings: The application-wide configuration object.
    """
    return Settings()
