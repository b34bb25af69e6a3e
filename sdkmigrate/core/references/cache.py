"""Thread-safe read-through cache for assembly -> package lookups.

Shared by every worker in a migration run.  Two workers missing the same
key at once may both compute it; the last write wins and both results are
equivalent, so the loader runs outside the lock.

Usage:
    cache = ResolutionCache()
    candidate = cache.get_or_load(("Newtonsoft.Json", "net472"), loader)
    cache.clear()
"""

import logging
import threading
from typing import Any, Callable, Dict, Hashable, Tuple

logger = logging.getLogger(__name__)

_MISSING = object()


class ResolutionCache:
    """Read-through cache keyed by ``(assembly_name, target_framework)``."""

    def __init__(self):
        self._cache: Dict[Hashable, Any] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    @staticmethod
    def make_key(assembly_name: str, target_framework: str) -> Tuple[str, str]:
        return (assembly_name.lower(), (target_framework or "").lower())

    def get_or_load(self, key: Hashable, loader: Callable[[], Any]) -> Any:
        """Return the cached value for ``key`` or compute it with ``loader``.

        ``None`` results are cached too (a negative lookup is still an answer).
        """
        with self._lock:
            value = self._cache.get(key, _MISSING)
            if value is not _MISSING:
                self._hits += 1
                logger.debug(f"Resolution cache hit for {key}")
                return value
            self._misses += 1

        value = loader()

        with self._lock:
            self._cache[key] = value
        return value

    def invalidate(self, key: Hashable) -> None:
        with self._lock:
            self._cache.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()
            self._hits = 0
            self._misses = 0

    def get_stats(self) -> Dict[str, int]:
        with self._lock:
            return {
                "entries": len(self._cache),
                "hits": self._hits,
                "misses": self._misses,
            }
