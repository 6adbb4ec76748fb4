"""In-memory resolution cache shared by the workers of one run."""

from __future__ import annotations

import threading

from geoenrich.common.constants import CACHE_KEY_PRECISION
from geoenrich.common.models import CoordinatePair, ResolvedLocation


def cache_key(pair: CoordinatePair, precision: int = CACHE_KEY_PRECISION) -> str:
    return f"{pair.latitude:.{precision}f},{pair.longitude:.{precision}f}"


class ResolutionCache:
    """Map from quantized coordinates to resolved locations.

    Reads and writes serialize on one whole-cache lock. Entries are never
    evicted; a concurrent second write for the same key replaces the first
    with an equivalent value.
    """

    def __init__(self, precision: int = CACHE_KEY_PRECISION) -> None:
        self.precision = precision
        self._entries: dict[str, ResolvedLocation] = {}
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, pair: CoordinatePair) -> ResolvedLocation | None:
        key = cache_key(pair, self.precision)
        with self._lock:
            location = self._entries.get(key)
            if location is None:
                self.misses += 1
            else:
                self.hits += 1
        return location

    def put(self, pair: CoordinatePair, location: ResolvedLocation) -> None:
        key = cache_key(pair, self.precision)
        with self._lock:
            self._entries[key] = location
