"""
Redis Queue Store backend.

Shared by every relay instance; compare-and-swap operations run as Lua
scripts so they are atomic on the server.
"""

import re

import redis.asyncio as redis
from loguru import logger
from redis.exceptions import RedisError

from .queue_store import QueueStore, QueueStoreError

_COMPARE_AND_SET = """
if redis.call('GET', KEYS[1]) == ARGV[1] then
    redis.call('SET', KEYS[1], ARGV[2])
    return 1
end
return 0
"""

_COMPARE_AND_DELETE = """
if redis.call('GET', KEYS[1]) == ARGV[1] then
    return redis.call('DEL', KEYS[1])
end
return 0
"""

_GLOB_SPECIAL = re.compile(r"([*?\[\]\\])")


class RedisQueueStore(QueueStore):
    """redis-py backed store"""

    def __init__(self, redis_url: str, client: "redis.Redis | None" = None):
        self.redis_url = redis_url
        self.client = client or redis.from_url(
            redis_url,
            encoding="utf-8",
            decode_responses=True,
        )
        self._compare_and_set = self.client.register_script(_COMPARE_AND_SET)
        self._compare_and_delete = self.client.register_script(_COMPARE_AND_DELETE)

    async def get(self, key: str) -> str | None:
        try:
            return await self.client.get(key)
        except RedisError as e:
            raise QueueStoreError(f"GET {key} failed: {str(e)}") from e

    async def set(self, key: str, value: str, ttl_seconds: float | None = None) -> None:
        try:
            if ttl_seconds is None:
                await self.client.set(key, value)
            else:
                await self.client.set(key, value, px=max(1, int(ttl_seconds * 1000)))
        except RedisError as e:
            raise QueueStoreError(f"SET {key} failed: {str(e)}") from e

    async def delete(self, key: str) -> bool:
        try:
            return bool(await self.client.delete(key))
        except RedisError as e:
            raise QueueStoreError(f"DEL {key} failed: {str(e)}") from e

    async def compare_and_set(self, key: str, expected: str | None, value: str) -> bool:
        try:
            if expected is None:
                return bool(await self.client.set(key, value, nx=True))
            return bool(await self._compare_and_set(keys=[key], args=[expected, value]))
        except RedisError as e:
            raise QueueStoreError(f"Compare-and-set on {key} failed: {str(e)}") from e

    async def compare_and_delete(self, key: str, expected: str) -> bool:
        try:
            return bool(await self._compare_and_delete(keys=[key], args=[expected]))
        except RedisError as e:
            raise QueueStoreError(f"Compare-and-delete on {key} failed: {str(e)}") from e

    async def list_prefix(self, prefix: str) -> list[tuple[str, str]]:
        pattern = _GLOB_SPECIAL.sub(r"\\\1", prefix) + "*"
        try:
            keys = sorted([key async for key in self.client.scan_iter(match=pattern)])
            if not keys:
                return []
            values = await self.client.mget(keys)
        except RedisError as e:
            raise QueueStoreError(f"Listing {prefix} failed: {str(e)}") from e

        # Keys may expire between SCAN and MGET
        return [(key, value) for key, value in zip(keys, values) if value is not None]

    async def ping(self) -> bool:
        try:
            return bool(await self.client.ping())
        except RedisError as e:
            logger.error(f"Redis ping failed | URL: {self.redis_url} | Error: {str(e)}")
            return False

    async def close(self) -> None:
        await self.client.aclose()
        logger.info("Redis connection closed")
