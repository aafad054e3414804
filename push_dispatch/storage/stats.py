from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from collections import defaultdict


class StatStorage(ABC):
    """Platform-scoped push counters shared by concurrent dispatches."""

    @abstractmethod
    def add_success(self, platform: str, count: int) -> None:
        raise NotImplementedError

    @abstractmethod
    def add_error(self, platform: str, count: int) -> None:
        raise NotImplementedError

    @abstractmethod
    def snapshot(self) -> dict:
        raise NotImplementedError

    @abstractmethod
    def reset(self) -> None:
        raise NotImplementedError


class MemoryStatStorage(StatStorage):
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._total = 0
        self._success: dict[str, int] = defaultdict(int)
        self._error: dict[str, int] = defaultdict(int)

    def add_success(self, platform: str, count: int) -> None:
        if count <= 0:
            return
        with self._lock:
            self._success[platform] += count
            self._total += count

    def add_error(self, platform: str, count: int) -> None:
        if count <= 0:
            return
        with self._lock:
            self._error[platform] += count
            self._total += count

    def success(self, platform: str) -> int:
        with self._lock:
            return self._success.get(platform, 0)

    def errors(self, platform: str) -> int:
        with self._lock:
            return self._error.get(platform, 0)

    def snapshot(self) -> dict:
        with self._lock:
            platforms = sorted(set(self._success) | set(self._error))
            return {
                "total_count": self._total,
                **{
                    platform: {
                        "push_success": self._success.get(platform, 0),
                        "push_error": self._error.get(platform, 0),
                    }
                    for platform in platforms
                },
            }

    def reset(self) -> None:
        with self._lock:
            self._total = 0
            self._success.clear()
            self._error.clear()
