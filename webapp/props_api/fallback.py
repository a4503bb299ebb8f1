"""
Fallback coordinator - serve a degraded answer when the primary computation fails.

Design Pattern: Fallback / Circuit-State Pattern
Algorithm: try primary -> stale cache entry -> caller-supplied default
Big O: O(1) beyond the cost of the primary call

No retries happen here; retry policy belongs to the caller or the ingestion
layer. ValidationError is re-raised untouched because bad input is the
caller's problem, not an outage.
"""

import time
from dataclasses import asdict, dataclass
from typing import Any, Awaitable, Callable, Optional, TypeVar

from .cache import SimpleCache, get_cache
from .errors import ValidationError
from .logging_config import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass
class FallbackState:
    is_fallback_mode: bool = False
    last_error: Optional[str] = None
    last_error_time: Optional[float] = None
    failure_count: int = 0


class FallbackCoordinator:
    def __init__(self, cache: Optional[SimpleCache] = None, clock: Callable[[], float] = time.time):
        self._cache = cache
        self.clock = clock
        self.state = FallbackState()

    @property
    def cache(self) -> SimpleCache:
        return self._cache if self._cache is not None else get_cache()

    def get_state(self) -> dict[str, Any]:
        return asdict(self.state)

    def reset(self) -> None:
        self.state = FallbackState()

    def _record_failure(self, exc: BaseException) -> None:
        self.state.is_fallback_mode = True
        self.state.last_error = f"{type(exc).__name__}: {exc}"
        self.state.last_error_time = self.clock()
        self.state.failure_count += 1

    async def with_fallback(
        self,
        primary_fn: Callable[[], Awaitable[T]],
        cache_key: str,
        default_value: T,
    ) -> T:
        """
        Await ``primary_fn``; on failure return the cached value for
        ``cache_key`` (expired or not) or, failing that, ``default_value``.
        """
        try:
            result = await primary_fn()
        except ValidationError:
            raise
        except Exception as e:
            self._record_failure(e)
            logger.error(f"[FALLBACK] Primary failed for {cache_key[:80]}: {type(e).__name__}: {e}", exc_info=True)
            stale = self.cache.get_stale(cache_key)
            if stale is not None:
                logger.warning(f"[FALLBACK] Serving cached value for {cache_key[:80]}")
                return stale
            logger.warning(f"[FALLBACK] No cached value for {cache_key[:80]}, serving default")
            return default_value

        if self.state.is_fallback_mode:
            logger.info("[FALLBACK] Primary path recovered, leaving fallback mode")
            self.reset()
        return result


# Process-wide coordinator
_coordinator: Optional[FallbackCoordinator] = None


def get_fallback_coordinator() -> FallbackCoordinator:
    global _coordinator
    if _coordinator is None:
        _coordinator = FallbackCoordinator()
    return _coordinator
