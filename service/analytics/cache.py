"""
Shared in-memory cache for per-window analysis results.

Entries are keyed by (start_ts, end_ts), expire after `expiry_seconds` and the
cache holds at most `max_entries` windows (oldest evicted first). Concurrent
requests for the same window share one in-flight computation: the first caller
computes, later callers wait on the same Future.
"""
import logging
import threading
import time
from collections import OrderedDict
from concurrent.futures import Future
from typing import Any, Callable, Dict, Tuple

logger = logging.getLogger(__name__)

WindowKey = Tuple[int, int]


class WindowCache:
    def __init__(self, expiry_seconds: int = 3600, max_entries: int = 64,
                 clock: Callable[[], float] = time.monotonic):
        self.expiry_seconds = expiry_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: "OrderedDict[WindowKey, Tuple[float, Any]]" = OrderedDict()
        self._in_flight: Dict[WindowKey, Future] = {}
        self.hits = 0
        self.misses = 0

    def _get_valid(self, key: WindowKey):
        entry = self._entries.get(key)
        if entry is None:
            return None
        stored_at, value = entry
        if self._clock() - stored_at >= self.expiry_seconds:
            del self._entries[key]
            return None
        return entry

    def get(self, key: WindowKey) -> Any:
        with self._lock:
            entry = self._get_valid(key)
            return entry[1] if entry else None

    def get_or_compute(self, key: WindowKey, compute: Callable[[], Any]) -> Any:
        """Cached value for `key`, computing it once if missing or expired."""
        with self._lock:
            entry = self._get_valid(key)
            if entry is not None:
                self.hits += 1
                return entry[1]
            future = self._in_flight.get(key)
            owner = future is None
            if owner:
                self.misses += 1
                future = Future()
                self._in_flight[key] = future

        if not owner:
            return future.result()

        try:
            value = compute()
        except BaseException as e:
            with self._lock:
                self._in_flight.pop(key, None)
            future.set_exception(e)
            raise

        with self._lock:
            self._entries[key] = (self._clock(), value)
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_entries:
                evicted, _ = self._entries.popitem(last=False)
                logger.info(f"[WINDOW CACHE] Evicted window {evicted[0]}-{evicted[1]}")
            self._in_flight.pop(key, None)
        future.set_result(value)
        return value

    def clear(self) -> int:
        """Drop every cached window. Returns number of entries cleared."""
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
        logger.info(f"[WINDOW CACHE] Cleared {count} entries")
        return count

    def info(self) -> Dict[str, Any]:
        with self._lock:
            now = self._clock()
            valid_entries = sum(1 for stored_at, _ in self._entries.values()
                                if now - stored_at < self.expiry_seconds)
            return {
                'total_entries': len(self._entries),
                'valid_entries': valid_entries,
                'in_flight': len(self._in_flight),
                'max_entries': self.max_entries,
                'expiry_seconds': self.expiry_seconds,
                'hits': self.hits,
                'misses': self.misses,
            }
