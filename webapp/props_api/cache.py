"""
Caching utilities for the Prop Analytics API.

Design Pattern: Cache-Aside Pattern (get-or-compute) with optional file persistence
Algorithm: Dictionary-based cache with timestamp expiration + per-key in-flight fills
Big O: O(1) for get/set operations, O(n) for save/load/prune where n = cache size

Expired entries are not dropped on read: they stay available to
``get_stale`` (the fallback path) until ``prune`` removes entries older than
the stale-retention window.

Environment Variables:
    CACHE: Set to "false" to disable all caching (default: "true")
           Usage: CACHE=false uvicorn props_api.main:app --reload --port 8000
"""

import asyncio
import fnmatch
import json
import os
import pickle
import time
from dataclasses import dataclass, field, fields, is_dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional, TypeVar, Union

from . import config
from .logging_config import get_logger, DEBUG_MODE

logger = get_logger(__name__)

T = TypeVar("T")

# Global cache enable/disable flag (can be disabled via CACHE=false environment variable)
CACHE_ENABLED = os.environ.get("CACHE", "true").lower() not in ("false", "0", "no", "off")

if not CACHE_ENABLED:
    logger.warning("[CACHE] Caching is DISABLED (CACHE environment variable set to false)")

# Cache directory for optional persistence (survives server reloads)
CACHE_DIR = Path(os.environ.get("PROPS_API_CACHE_DIR", Path(__file__).parent.parent / ".cache"))


class CacheTTL(str, Enum):
    """TTL classes, ordered by how quickly the underlying data goes stale."""
    SHORT = "short"    # prop analysis for a specific line
    MEDIUM = "medium"  # per-player season views
    LONG = "long"      # league-wide aggregates

    @property
    def seconds(self) -> int:
        return {
            CacheTTL.SHORT: config.CACHE_TTL_SHORT,
            CacheTTL.MEDIUM: config.CACHE_TTL_MEDIUM,
            CacheTTL.LONG: config.CACHE_TTL_LONG,
        }[self]


TTLLike = Union[int, float, CacheTTL, None]


@dataclass
class CacheEntry:
    value: Any
    stored_at: float
    ttl_seconds: float

    @property
    def expires_at(self) -> float:
        return self.stored_at + self.ttl_seconds

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


@dataclass
class _InflightFill:
    """Per-key lock plus the fill task shared by every caller of that key."""
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    waiters: int = 0
    task: Optional[asyncio.Task] = None


def _normalize_key_part(value: Any) -> Any:
    """Turn a key component into a JSON-stable, order-insensitive form."""
    if isinstance(value, Enum):
        return _normalize_key_part(value.value)
    if isinstance(value, bool) or value is None or isinstance(value, str):
        return value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        value = float(value)
    if isinstance(value, float):
        return int(value) if value.is_integer() else value
    if isinstance(value, int):
        return value
    if is_dataclass(value) and not isinstance(value, type):
        return {f.name: _normalize_key_part(getattr(value, f.name)) for f in fields(value)}
    if isinstance(value, dict):
        return {str(k): _normalize_key_part(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        items = [_normalize_key_part(v) for v in value]
        return sorted(items, key=lambda item: json.dumps(item, sort_keys=True))
    return str(value)


def _is_empty(value: Any) -> bool:
    return value is None or (isinstance(value, (list, tuple, set, frozenset, dict)) and not value)


def build_cache_key(namespace: str, *parts: Any, **params: Any) -> str:
    """
    Build a deterministic cache key.

    Logically identical requests map to the same key: keyword params are
    sorted, ``None``/empty params are dropped, unordered collections are
    sorted and dates are ISO-formatted.

    Examples:
        >>> build_cache_key("prop-analysis", 237, "pts", 20.0, excluded_player_ids=[9, 3])
        'prop-analysis:237:pts:20:{"excluded_player_ids":[3,9]}'
    """
    segments = [namespace]
    segments.extend(json.dumps(_normalize_key_part(p), sort_keys=True).strip('"') for p in parts)
    clean = {}
    for name, value in params.items():
        normalized = _normalize_key_part(value)
        if isinstance(normalized, dict):
            normalized = {k: v for k, v in normalized.items() if not _is_empty(v)}
        if not _is_empty(normalized):
            clean[name] = normalized
    if clean:
        segments.append(json.dumps(clean, sort_keys=True, separators=(",", ":")))
    return ":".join(segments)


class SimpleCache:
    """
    In-memory cache with TTL (time-to-live), stale reads and optional file persistence.

    Design Pattern: Cache-Aside + Persistence Layer
    Algorithm: Dictionary-based cache with timestamp expiration + pickle serialization
    Big O: O(1) for get/set operations, O(n) for save/load where n = cache size
    """
    def __init__(
        self,
        ttl_seconds: int = config.CACHE_TTL_SHORT,
        cache_file: Optional[str] = None,
        stale_retention_seconds: int = config.CACHE_STALE_RETENTION_SECONDS,
        clock: Callable[[], float] = time.time,
        enabled: bool = CACHE_ENABLED,
    ):
        self.cache: dict[str, CacheEntry] = {}
        self.default_ttl = ttl_seconds
        self.cache_file = cache_file
        self.stale_retention_seconds = stale_retention_seconds
        self.clock = clock
        self.enabled = enabled
        self._inflight: dict[str, _InflightFill] = {}
        self._hits = 0
        self._misses = 0
        self._sets = 0
        if cache_file:
            self._load_from_disk()

    def _get_cache_path(self) -> Optional[Path]:
        if not self.cache_file:
            return None
        return CACHE_DIR / self.cache_file

    def _load_from_disk(self) -> None:
        """Load cache from disk if it exists, keeping entries still inside stale retention."""
        cache_path = self._get_cache_path()
        if not cache_path or not cache_path.exists():
            return
        try:
            with open(cache_path, "rb") as f:
                loaded: dict[str, CacheEntry] = pickle.load(f)
        except Exception as e:
            logger.warning(f"[CACHE] Failed to load cache from {cache_path}: {e}")
            return
        now = self.clock()
        self.cache = {
            k: v for k, v in loaded.items()
            if now - v.expires_at < self.stale_retention_seconds
        }
        logger.info(f"[CACHE] Loaded {len(self.cache)} cache entries from {cache_path.name}")

    def _save_to_disk(self) -> None:
        cache_path = self._get_cache_path()
        if not cache_path:
            return
        try:
            CACHE_DIR.mkdir(parents=True, exist_ok=True)
            with open(cache_path, "wb") as f:
                pickle.dump(self.cache, f)
            if DEBUG_MODE:
                logger.debug(f"[CACHE] Saved {len(self.cache)} cache entries to {cache_path.name}")
        except (OSError, pickle.PicklingError) as e:
            logger.warning(f"[CACHE] Failed to save cache to {cache_path}: {e}")

    def _resolve_ttl(self, ttl: TTLLike) -> float:
        if ttl is None:
            return self.default_ttl
        if isinstance(ttl, CacheTTL):
            return ttl.seconds
        return ttl

    def _fresh_entry(self, key: str) -> Optional[CacheEntry]:
        entry = self.cache.get(key)
        if entry is None:
            if DEBUG_MODE:
                logger.debug(f"[CACHE] MISS: {key[:80]}")
            return None
        if entry.is_expired(self.clock()):
            if DEBUG_MODE:
                logger.debug(f"[CACHE] EXPIRED: {key[:80]} (ttl: {entry.ttl_seconds}s)")
            return None
        return entry

    def get(self, key: str, default: Any = None) -> Any:
        """Return the cached value if present and unexpired, else ``default``."""
        if not self.enabled:
            return default
        entry = self._fresh_entry(key)
        if entry is None:
            self._misses += 1
            return default
        self._hits += 1
        return entry.value

    def get_stale(self, key: str, default: Any = None) -> Any:
        """Return a cached value even if it has expired. Used only by the fallback path."""
        entry = self.cache.get(key)
        if entry is None:
            return default
        return entry.value

    def set(self, key: str, value: Any, ttl: TTLLike = None) -> None:
        """Store value in cache with the current timestamp."""
        if not self.enabled:
            return
        actual_ttl = self._resolve_ttl(ttl)
        self.cache[key] = CacheEntry(value=value, stored_at=self.clock(), ttl_seconds=actual_ttl)
        self._sets += 1
        if DEBUG_MODE:
            logger.debug(f"[CACHE] SET: {key[:80]} (ttl: {actual_ttl}s)")
        # Save to disk periodically (every 10th set to avoid too much I/O)
        if self.cache_file and self._sets % 10 == 0:
            self._save_to_disk()

    async def get_or_set(
        self,
        key: str,
        compute_fn: Callable[[], Awaitable[T]],
        ttl: TTLLike = None,
        bypass: bool = False,
    ) -> T:
        """
        Return the cached value for ``key`` or compute, store and return it.

        Concurrent misses on the same key wait on one in-flight computation.
        ``bypass=True`` skips the lookup and always recomputes.
        """
        if not self.enabled:
            return await compute_fn()

        if not bypass:
            entry = self._fresh_entry(key)
            if entry is not None:
                self._hits += 1
                return entry.value

        fill = self._inflight.get(key)
        if fill is None:
            fill = self._inflight[key] = _InflightFill()
        fill.waiters += 1
        try:
            async with fill.lock:
                if not bypass:
                    # Another caller may have populated it while we waited
                    entry = self._fresh_entry(key)
                    if entry is not None:
                        self._hits += 1
                        return entry.value
                if fill.task is None or fill.task.done():
                    self._misses += 1
                    fill.task = asyncio.ensure_future(self._fill(key, compute_fn, ttl))
                    fill.task.add_done_callback(lambda task: self._fill_done(key, fill, task))
                # A cancelled caller must not cancel the fill other callers rely on
                return await asyncio.shield(fill.task)
        finally:
            fill.waiters -= 1
            self._release_fill(key, fill)

    async def _fill(self, key: str, compute_fn: Callable[[], Awaitable[T]], ttl: TTLLike) -> T:
        start_time = time.time()
        value = await compute_fn()
        logger.debug(f"[CACHE] Computed {key[:80]} in {time.time() - start_time:.3f}s")
        self.set(key, value, ttl)
        return value

    def _fill_done(self, key: str, fill: "_InflightFill", task: asyncio.Task) -> None:
        if not task.cancelled():
            exc = task.exception()
            if exc is not None and fill.waiters == 0:
                logger.warning(f"[CACHE] Background fill for {key[:80]} failed: {type(exc).__name__}: {exc}")
        self._release_fill(key, fill)

    def _release_fill(self, key: str, fill: "_InflightFill") -> None:
        # Keep the entry while anyone waits on the lock or the fill is still running
        if fill.waiters > 0 or (fill.task is not None and not fill.task.done()):
            return
        if self._inflight.get(key) is fill:
            del self._inflight[key]

    def save(self) -> None:
        """Force save cache to disk immediately."""
        self._save_to_disk()

    def clear(self) -> None:
        """Clear all cached entries and counters."""
        self.cache.clear()
        self._hits = self._misses = self._sets = 0
        self._save_to_disk()

    def invalidate(self, key_pattern: str) -> int:
        """
        Invalidate entries matching a pattern.

        Patterns containing ``*`` are glob-matched (e.g. ``'prop-analysis:237:*'``),
        anything else is a substring match.
        """
        if "*" in key_pattern:
            keys_to_remove = [k for k in self.cache if fnmatch.fnmatchcase(k, key_pattern)]
        else:
            keys_to_remove = [k for k in self.cache if key_pattern in k]
        for k in keys_to_remove:
            del self.cache[k]
        if keys_to_remove:
            logger.info(f"[CACHE] Invalidated {len(keys_to_remove)} entries matching {key_pattern!r}")
            self._save_to_disk()
        return len(keys_to_remove)

    def prune(self) -> int:
        """Drop entries that expired longer ago than the stale-retention window."""
        now = self.clock()
        expired = [
            k for k, v in self.cache.items()
            if now - v.expires_at >= self.stale_retention_seconds
        ]
        for k in expired:
            del self.cache[k]
        if expired:
            logger.info(f"[CACHE] Pruned {len(expired)} stale entries")
        return len(expired)

    def stats(self) -> dict[str, Any]:
        lookups = self._hits + self._misses
        return {
            "enabled": self.enabled,
            "size": len(self.cache),
            "hits": self._hits,
            "misses": self._misses,
            "sets": self._sets,
            "hit_rate": round(self._hits / lookups * 100, 1) if lookups else 0.0,
        }


# Process-wide cache (constructed on first use, swappable for tests)
_cache: Optional[SimpleCache] = None


def get_cache() -> SimpleCache:
    global _cache
    if _cache is None:
        _cache = SimpleCache()
        logger.info(f"[CACHE] Cache initialized (enabled={_cache.enabled})")
    return _cache


def set_cache(cache: Optional[SimpleCache]) -> None:
    """Replace the process-wide cache; ``None`` resets it to a fresh instance on next use."""
    global _cache
    _cache = cache
