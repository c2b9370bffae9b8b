"""
Thread-safe counters for the processor.

Worker threads update these concurrently; checkpoint restore merges
into them additively.
"""

import threading
from typing import Mapping


class AtomicCounter:
    """An integer guarded by a lock."""

    def __init__(self, value: int = 0) -> None:
        self._value = value
        self._lock = threading.Lock()

    def get(self) -> int:
        with self._lock:
            return self._value

    def add(self, amount: int) -> int:
        with self._lock:
            self._value += amount
            return self._value

    def set(self, value: int) -> None:
        with self._lock:
            self._value = value


class StatsRegistry:
    """Two-level ``bucket -> key -> count`` mapping."""

    def __init__(self) -> None:
        self._stats: dict[str, dict[str, int]] = {}
        self._lock = threading.Lock()

    def increment(self, bucket: str, key: str, amount: int = 1) -> None:
        with self._lock:
            counts = self._stats.setdefault(bucket, {})
            counts[key] = counts.get(key, 0) + amount

    def add_stats(self, substats: Mapping[str, Mapping[str, int]]) -> None:
        """Add every count in ``substats``, creating buckets lazily."""
        with self._lock:
            for bucket, values in substats.items():
                counts = self._stats.setdefault(bucket, {})
                for key, amount in values.items():
                    counts[key] = counts.get(key, 0) + int(amount)

    def get(self, bucket: str, key: str) -> int:
        with self._lock:
            return self._stats.get(bucket, {}).get(key, 0)

    def snapshot(self) -> dict[str, dict[str, int]]:
        """Deep copy of the current counts."""
        with self._lock:
            return {bucket: dict(values) for bucket, values in self._stats.items()}
