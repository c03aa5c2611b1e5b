"""
In-process Queue Store backend.

Suitable for a single relay process (one worker). Expiry is evaluated
lazily against an injectable monotonic clock.
"""

import asyncio
import time
from typing import Callable

from .queue_store import QueueStore


class MemoryQueueStore(QueueStore):
    """Dictionary backed store with per-key expiry"""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self.clock = clock
        self._values: dict[str, str] = {}
        self._expires_at: dict[str, float] = {}
        self._lock = asyncio.Lock()

    def _purge(self, key: str) -> None:
        expires_at = self._expires_at.get(key)
        if expires_at is not None and self.clock() >= expires_at:
            self._values.pop(key, None)
            self._expires_at.pop(key, None)

    def _read(self, key: str) -> str | None:
        self._purge(key)
        return self._values.get(key)

    def _write(self, key: str, value: str, ttl_seconds: float | None = None) -> None:
        self._values[key] = value
        if ttl_seconds is None:
            self._expires_at.pop(key, None)
        else:
            self._expires_at[key] = self.clock() + ttl_seconds

    def _remove(self, key: str) -> bool:
        self._purge(key)
        self._expires_at.pop(key, None)
        return self._values.pop(key, None) is not None

    async def get(self, key: str) -> str | None:
        async with self._lock:
            return self._read(key)

    async def set(self, key: str, value: str, ttl_seconds: float | None = None) -> None:
        async with self._lock:
            self._write(key, value, ttl_seconds)

    async def delete(self, key: str) -> bool:
        async with self._lock:
            return self._remove(key)

    async def compare_and_set(self, key: str, expected: str | None, value: str) -> bool:
        async with self._lock:
            if self._read(key) != expected:
                return False
            self._write(key, value)
            return True

    async def compare_and_delete(self, key: str, expected: str) -> bool:
        async with self._lock:
            if self._read(key) != expected:
                return False
            return self._remove(key)

    async def list_prefix(self, prefix: str) -> list[tuple[str, str]]:
        async with self._lock:
            keys = [key for key in self._values if key.startswith(prefix)]
            entries = []
            for key in sorted(keys):
                value = self._read(key)
                if value is not None:
                    entries.append((key, value))
            return entries

    async def ping(self) -> bool:
        return True

    def __len__(self) -> int:
        for key in list(self._values):
            self._purge(key)
        return len(self._values)
