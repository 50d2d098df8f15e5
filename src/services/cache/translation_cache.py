"""
Content-keyed translation cache with hybrid LRU/LFU eviction.

Entries are keyed by a SHA-256 fingerprint of (stripped text, source
language, target language). Eviction ranks entries by a weighted mix of
recency and access frequency; ``optimize_eviction_policy()`` retunes the
weight from the observed hit rate.

The cache is never a hard dependency: any storage fault is logged and
treated as a miss (reads) or a no-op (writes).
"""

import hashlib
import logging
import threading
import time
from collections.abc import Callable, Collection, Iterable

from src.core.config import get_settings
from src.core.models import CacheStats
from src.services.cache.base import BaseCacheStorage, CacheEntry
from src.services.cache.memory import InMemoryCacheStorage

logger = logging.getLogger(__name__)

_KEY_SEPARATOR = "\x1f"


def _dense_ranks(values: list[float]) -> list[float]:
    """Map values to [0, 1] by dense rank; equal values share a rank."""
    distinct = sorted(set(values))
    if len(distinct) <= 1:
        return [0.0] * len(values)
    position = {v: i / (len(distinct) - 1) for i, v in enumerate(distinct)}
    return [position[v] for v in values]


class TranslationCache:
    """Bounded translation cache.

    Args:
        storage: Storage backend (defaults to in-memory).
        capacity: Maximum number of entries.
        max_bytes: Maximum total size estimate in bytes (0 = unbounded).
        ttl_seconds: Age after which an entry is considered expired.
        frequency_weight: Initial LFU weight of the eviction score.
        clock: Time source returning epoch seconds (injectable for tests).
    """

    def __init__(
        self,
        storage: BaseCacheStorage | None = None,
        capacity: int | None = None,
        max_bytes: int | None = None,
        ttl_seconds: float | None = None,
        frequency_weight: float | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        settings = get_settings()
        self._storage = storage if storage is not None else InMemoryCacheStorage()
        self._capacity = max(1, capacity if capacity is not None else settings.cache_capacity)
        self._max_bytes = max_bytes if max_bytes is not None else settings.cache_max_bytes
        self._ttl = ttl_seconds if ttl_seconds is not None else settings.cache_ttl_seconds
        self._frequency_weight = (
            frequency_weight if frequency_weight is not None else settings.cache_frequency_weight
        )
        self._low_hit_rate = settings.cache_low_hit_rate
        self._high_hit_rate = settings.cache_high_hit_rate
        self._weight_step = settings.cache_weight_step
        self._max_weight = settings.cache_max_frequency_weight
        self._min_samples = settings.cache_min_samples
        self._clock = clock
        self._lock = threading.Lock()

        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._expirations = 0
        # Lookups since the last policy tuning
        self._window_hits = 0
        self._window_misses = 0

    # ------------------------------------------------------------------
    # Keys
    # ------------------------------------------------------------------

    @staticmethod
    def fingerprint(text: str, source_language: str, target_language: str) -> str:
        """Deterministic key for a translation. Case is preserved."""
        normalized = text.strip()
        raw = _KEY_SEPARATOR.join((source_language, target_language, normalized))
        return hashlib.sha256(raw.encode("utf-8")).hexdigest()

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def frequency_weight(self) -> float:
        return self._frequency_weight

    # ------------------------------------------------------------------
    # Lookup / insert
    # ------------------------------------------------------------------

    def get(self, text: str, source_language: str, target_language: str) -> str | None:
        """Return the cached translation, or None on miss / expiry / fault."""
        key = self.fingerprint(text, source_language, target_language)
        now = self._clock()
        with self._lock:
            try:
                entry = self._storage.get(key)
                if entry is not None and self._is_expired(entry, now):
                    self._storage.delete(key)
                    self._expirations += 1
                    entry = None
                if entry is not None:
                    entry.last_accessed = now
                    entry.access_count += 1
                    self._storage.set(key, entry)
            except Exception:
                logger.warning("Cache storage lookup failed; treating as miss", exc_info=True)
                entry = None

            if entry is None:
                self._misses += 1
                self._window_misses += 1
                return None

            self._hits += 1
            self._window_hits += 1
        logger.debug("Cache hit for %s", key[:12])
        return entry.translation

    def put(
        self,
        text: str,
        source_language: str,
        target_language: str,
        translation: str,
    ) -> None:
        """Insert or overwrite an entry, evicting if capacity is exceeded."""
        with self._lock:
            try:
                key = self._store(text, source_language, target_language, translation)
                self._evict_if_needed(protected={key})
            except Exception:
                logger.warning("Cache storage write failed; entry dropped", exc_info=True)

    def preload(self, entries: Iterable[tuple[str, str, str, str]]) -> int:
        """Bulk insert ``(text, source, target, translation)`` tuples.

        Eviction runs once after all inserts instead of per entry.

        Returns:
            Number of entries written.
        """
        written = 0
        loaded: set[str] = set()
        with self._lock:
            try:
                for text, source_language, target_language, translation in entries:
                    loaded.add(self._store(text, source_language, target_language, translation))
                    written += 1
                self._evict_if_needed(protected=loaded)
            except Exception:
                logger.warning(
                    "Cache preload interrupted after %d entries", written, exc_info=True
                )
        logger.info("Preloaded %d translations into cache", written)
        return written

    def invalidate(self, text: str, source_language: str, target_language: str) -> bool:
        """Remove one entry. Returns True if it existed."""
        key = self.fingerprint(text, source_language, target_language)
        with self._lock:
            try:
                return self._storage.delete(key)
            except Exception:
                logger.warning("Cache storage delete failed", exc_info=True)
                return False

    def clear(self) -> None:
        with self._lock:
            try:
                self._storage.clear()
            except Exception:
                logger.warning("Cache storage clear failed", exc_info=True)

    def __len__(self) -> int:
        try:
            return len(self._storage)
        except Exception:
            return 0

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def cleanup_expired_entries(self) -> int:
        """Purge entries older than the TTL regardless of capacity pressure.

        Returns:
            Number of entries removed.
        """
        now = self._clock()
        removed = 0
        with self._lock:
            try:
                for entry in self._storage.entries():
                    if self._is_expired(entry, now) and self._storage.delete(entry.key):
                        removed += 1
            except Exception:
                logger.warning("Cache expiry sweep failed", exc_info=True)
            self._expirations += removed
        if removed:
            logger.info("Removed %d expired cache entries", removed)
        return removed

    def optimize_eviction_policy(self) -> float:
        """Retune the LFU weight of the eviction score from recent hit rate.

        A low hit rate with skewed access counts means a few hot entries are
        being pushed out by one-off lookups, so frequency gets more weight.
        A high hit rate moves the policy back towards plain recency.

        Returns:
            The frequency weight now in effect.
        """
        with self._lock:
            lookups = self._window_hits + self._window_misses
            if lookups < self._min_samples:
                return self._frequency_weight

            hit_rate = self._window_hits / lookups
            try:
                counts = [e.access_count for e in self._storage.entries()]
            except Exception:
                logger.warning("Cache storage scan failed during policy tuning", exc_info=True)
                counts = []
            mean = sum(counts) / len(counts) if counts else 0.0
            skewed = mean > 0 and max(counts) >= 2 * mean

            previous = self._frequency_weight
            if hit_rate < self._low_hit_rate and skewed:
                self._frequency_weight = min(self._max_weight, previous + self._weight_step)
            elif hit_rate > self._high_hit_rate:
                self._frequency_weight = max(0.0, previous - self._weight_step)

            self._window_hits = 0
            self._window_misses = 0

        if self._frequency_weight != previous:
            logger.info(
                "Cache eviction weight %.2f -> %.2f (hit rate %.2f)",
                previous,
                self._frequency_weight,
                hit_rate,
            )
        return self._frequency_weight

    def stats(self) -> CacheStats:
        with self._lock:
            try:
                entries = self._storage.entries()
            except Exception:
                entries = []
            lookups = self._hits + self._misses
            return CacheStats(
                entries=len(entries),
                total_size=sum(e.size for e in entries),
                capacity=self._capacity,
                hits=self._hits,
                misses=self._misses,
                evictions=self._evictions,
                expirations=self._expirations,
                hit_rate=self._hits / lookups if lookups else 0.0,
                frequency_weight=self._frequency_weight,
            )

    # ------------------------------------------------------------------
    # Internals (caller holds the lock)
    # ------------------------------------------------------------------

    def _is_expired(self, entry: CacheEntry, now: float) -> bool:
        return self._ttl > 0 and now - entry.created_at > self._ttl

    def _store(
        self,
        text: str,
        source_language: str,
        target_language: str,
        translation: str,
    ) -> str:
        key = self.fingerprint(text, source_language, target_language)
        now = self._clock()
        previous = self._storage.get(key)
        self._storage.set(
            key,
            CacheEntry(
                key=key,
                translation=translation,
                created_at=now,
                last_accessed=now,
                access_count=previous.access_count if previous else 0,
                size=len(text.strip().encode("utf-8")) + len(translation.encode("utf-8")),
            ),
        )
        return key

    def _over_budget(self, count: int, total_size: int) -> bool:
        if count > self._capacity:
            return True
        return self._max_bytes > 0 and total_size > self._max_bytes

    def _evict_if_needed(self, protected: Collection[str] = ()) -> None:
        """Evict until within budget.

        Keys in ``protected`` were just written; they are only evicted once
        every other entry is gone.
        """
        entries = self._storage.entries()
        count = len(entries)
        total_size = sum(e.size for e in entries)
        if not self._over_budget(count, total_size):
            return

        order = self._eviction_order(entries)
        order.sort(key=lambda e: e.key in protected)
        for entry in order:
            if not self._over_budget(count, total_size):
                break
            if self._storage.delete(entry.key):
                count -= 1
                total_size -= entry.size
                self._evictions += 1
                logger.debug("Evicted cache entry %s", entry.key[:12])

    def _eviction_order(self, entries: list[CacheEntry]) -> list[CacheEntry]:
        """Entries sorted most-evictable first.

        Lowest hybrid score first; ties prefer the larger entry, then the
        less used one.
        """
        recency = _dense_ranks([e.last_accessed for e in entries])
        frequency = _dense_ranks([float(e.access_count) for e in entries])
        w = self._frequency_weight
        scored = [
            ((1 - w) * r + w * f, -e.size, e.access_count, i)
            for i, (e, r, f) in enumerate(zip(entries, recency, frequency, strict=True))
        ]
        scored.sort()
        return [entries[item[3]] for item in scored]
