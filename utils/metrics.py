import threading
from collections import deque
from datetime import datetime
from typing import Any, Dict, Optional

# Rolling window per operation for percentile calculations
MAX_DURATIONS = 10_000


class _OperationStats:
    def __init__(self):
        self.total_requests = 0
        self.successful_requests = 0
        self.failed_requests = 0
        self.durations: deque[float] = deque(maxlen=MAX_DURATIONS)
        self.total_duration_ms = 0.0
        self.min_duration_ms: Optional[float] = None
        self.max_duration_ms = 0.0

    def add(self, duration_ms: float, success: bool) -> None:
        self.total_requests += 1
        if success:
            self.successful_requests += 1
        else:
            self.failed_requests += 1
        self.durations.append(duration_ms)
        self.total_duration_ms += duration_ms
        if self.min_duration_ms is None or duration_ms < self.min_duration_ms:
            self.min_duration_ms = duration_ms
        self.max_duration_ms = max(self.max_duration_ms, duration_ms)

    def percentile(self, fraction: float) -> float:
        if not self.durations:
            return 0.0
        ordered = sorted(self.durations)
        idx = min(int(len(ordered) * fraction), len(ordered) - 1)
        return ordered[idx]

    def to_dict(self) -> Dict[str, Any]:
        avg = self.total_duration_ms / self.total_requests if self.total_requests else 0.0
        return {
            'total_requests': self.total_requests,
            'successful_requests': self.successful_requests,
            'failed_requests': self.failed_requests,
            'min_ms': round(self.min_duration_ms or 0.0, 2),
            'max_ms': round(self.max_duration_ms, 2),
            'avg_ms': round(avg, 2),
            'p50_ms': round(self.percentile(0.50), 2),
            'p95_ms': round(self.percentile(0.95), 2),
        }


class SearchMetrics:
    """
    Thread-safe performance counters for searches.

    Tracks per-operation latency/success (e.g. "search:statute") and
    per-source cache hits and misses. One instance is created at startup and
    handed to the dispatcher and the cache.
    """

    def __init__(self):
        """Initialize a new SearchMetrics instance with zeroed counters."""
        self._lock = threading.Lock()
        self.reset()

    def reset(self) -> None:
        """Reset all counters."""
        with self._lock:
            self._operations: Dict[str, _OperationStats] = {}
            self._cache_hits: Dict[str, int] = {}
            self._cache_misses: Dict[str, int] = {}
            self._started_at = datetime.now()

    def record_operation(self, name: str, duration_ms: float, success: bool) -> None:
        """
        Record one completed operation.

        Args:
            name: Operation name, e.g. "search:precedent"
            duration_ms: Wall-clock duration in milliseconds
            success: Whether the operation produced a usable result
        """
        with self._lock:
            stats = self._operations.setdefault(name, _OperationStats())
            stats.add(duration_ms, success)

    def record_cache_hit(self, source: str) -> None:
        with self._lock:
            self._cache_hits[source] = self._cache_hits.get(source, 0) + 1

    def record_cache_miss(self, source: str) -> None:
        with self._lock:
            self._cache_misses[source] = self._cache_misses.get(source, 0) + 1

    def cache_hit_rate(self, source: Optional[str] = None) -> float:
        with self._lock:
            if source is None:
                hits = sum(self._cache_hits.values())
                misses = sum(self._cache_misses.values())
            else:
                hits = self._cache_hits.get(source, 0)
                misses = self._cache_misses.get(source, 0)
        total = hits + misses
        return hits / total if total else 0.0

    def get_summary(self) -> Dict[str, Any]:
        """
        Get a summary of all collected metrics.

        Returns:
            A dictionary with operation statistics, cache statistics and timestamp.
        """
        with self._lock:
            operations = {name: stats.to_dict() for name, stats in self._operations.items()}
            sources = sorted(set(self._cache_hits) | set(self._cache_misses))
            cache = {
                source: {
                    'hits': self._cache_hits.get(source, 0),
                    'misses': self._cache_misses.get(source, 0),
                }
                for source in sources
            }
            started_at = self._started_at
        for counts in cache.values():
            total = counts['hits'] + counts['misses']
            counts['hit_rate'] = round(counts['hits'] / total, 4) if total else 0.0
        return {
            'operations': operations,
            'cache': cache,
            'started_at': started_at.isoformat(),
            'timestamp': datetime.now().isoformat(),
        }

    def format_summary(self) -> str:
        """
        Format the metrics summary as a human-readable string.

        Returns:
            A formatted multi-line string.
        """
        stats = self.get_summary()
        lines = []
        for name, op in sorted(stats['operations'].items()):
            lines.append(
                f"{name}: {op['successful_requests']}/{op['total_requests']} ok, "
                f"avg {op['avg_ms']}ms, p95 {op['p95_ms']}ms"
            )
        for source, counts in stats['cache'].items():
            lines.append(
                f"cache[{source}]: {counts['hits']} hits, {counts['misses']} misses "
                f"({counts['hit_rate']:.0%})"
            )
        return "\n".join(lines) if lines else "No searches recorded"
