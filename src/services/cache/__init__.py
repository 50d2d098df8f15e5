"""
Cache module - Translation cache and pluggable storage backends.
"""

from .base import BaseCacheStorage, CacheEntry
from .memory import InMemoryCacheStorage
from .translation_cache import TranslationCache

__all__ = ["BaseCacheStorage", "CacheEntry", "InMemoryCacheStorage", "TranslationCache"]
