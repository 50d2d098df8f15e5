"""In-process dictionary storage for the translation cache."""

from src.services.cache.base import BaseCacheStorage, CacheEntry


class InMemoryCacheStorage(BaseCacheStorage):
    """Dict-backed storage. Not thread-safe on its own; the cache locks around it."""

    def __init__(self) -> None:
        self._entries: dict[str, CacheEntry] = {}

    def get(self, key: str) -> CacheEntry | None:
        return self._entries.get(key)

    def set(self, key: str, entry: CacheEntry) -> None:
        self._entries[key] = entry

    def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def entries(self) -> list[CacheEntry]:
        return list(self._entries.values())

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
