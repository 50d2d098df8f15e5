"""
Translation module - Upstream translation backend abstraction layer.

Factory function for creating provider instances based on configuration.
"""

from .base import SEGMENT_SEPARATOR, BaseTranslationProvider

__all__ = ["BaseTranslationProvider", "SEGMENT_SEPARATOR", "create_provider"]


def create_provider(provider: str, **kwargs) -> BaseTranslationProvider:
    """
    Factory function to create a translation provider by name.

    Args:
        provider: Provider name ("qianwen", "claude", "ollama")
        **kwargs: Provider-specific configuration

    Returns:
        BaseTranslationProvider implementation instance

    Raises:
        ValueError: If provider is unknown
    """
    if provider == "qianwen":
        from .qianwen import QianwenProvider

        return QianwenProvider(**kwargs)
    elif provider == "claude":
        from .claude import ClaudeTranslationProvider

        return ClaudeTranslationProvider(**kwargs)
    elif provider == "ollama":
        from .ollama import OllamaTranslationProvider

        return OllamaTranslationProvider(**kwargs)
    else:
        raise ValueError(f"Unknown translation provider: {provider}")
