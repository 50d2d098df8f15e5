"""
Abstract storage interface for the translation cache.

``TranslationCache`` owns fingerprinting, expiry and eviction; a storage
backend only keeps ``CacheEntry`` objects by key. Backends may raise on
outage; the cache turns every storage fault into a miss.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass
class CacheEntry:
    """A cached translation plus the usage data eviction is based on.

    Timestamps are epoch seconds from the cache's clock.
    """

    key: str
    translation: str
    created_at: float
    last_accessed: float
    access_count: int = 0
    size: int = 0


class BaseCacheStorage(ABC):
    """Interface that every cache storage backend must implement."""

    @abstractmethod
    def get(self, key: str) -> CacheEntry | None:
        """Return the entry stored under ``key``, or None."""

    @abstractmethod
    def set(self, key: str, entry: CacheEntry) -> None:
        """Insert or overwrite the entry stored under ``key``."""

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Remove ``key``. Returns True if something was removed."""

    @abstractmethod
    def entries(self) -> list[CacheEntry]:
        """Return a snapshot list of all stored entries."""

    @abstractmethod
    def clear(self) -> None:
        """Remove every entry."""

    @abstractmethod
    def __len__(self) -> int: ...
