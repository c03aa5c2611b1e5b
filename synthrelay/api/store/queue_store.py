"""
Queue Store Abstraction for synthrelay

A shared, TTL-capable key/value store holding the single active-controller
record, the per-recipient queued handshake messages and the session records.
Every relay instance talks to the same store, so it is the only source of
truth for the controller lock and the queue.
"""

from abc import ABC, abstractmethod


class QueueStoreError(RuntimeError):
    """Raised by a backend when the store cannot serve an operation."""


class QueueStore(ABC):
    """Abstract base class for queue store backends"""

    @abstractmethod
    async def get(self, key: str) -> str | None:
        """
        Read a value

        Args:
            key: Store key

        Returns:
            The value, or None when the key is absent or expired
        """
        pass

    @abstractmethod
    async def set(self, key: str, value: str, ttl_seconds: float | None = None) -> None:
        """
        Write a value, optionally expiring after `ttl_seconds`

        Args:
            key: Store key
            value: Value to store
            ttl_seconds: Optional time to live
        """
        pass

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """
        Delete a key

        Returns:
            True if the key existed
        """
        pass

    @abstractmethod
    async def compare_and_set(self, key: str, expected: str | None, value: str) -> bool:
        """
        Atomically write `value` only if the current value equals `expected`
        (None meaning the key must be absent)

        Returns:
            True if the write happened
        """
        pass

    @abstractmethod
    async def compare_and_delete(self, key: str, expected: str) -> bool:
        """
        Atomically delete `key` only if its current value equals `expected`

        Returns:
            True if the key was deleted
        """
        pass

    @abstractmethod
    async def list_prefix(self, prefix: str) -> list[tuple[str, str]]:
        """
        List the unexpired entries whose key starts with `prefix`

        Returns:
            (key, value) pairs sorted by key
        """
        pass

    @abstractmethod
    async def ping(self) -> bool:
        """Check that the backend is reachable"""
        pass

    async def close(self) -> None:
        """Release backend resources"""
        return None
