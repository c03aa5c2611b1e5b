from synthrelay.api.store.memory_store import MemoryQueueStore
from synthrelay.tests.conftest import run


class TestMemoryQueueStore:
    """Memory backend of the queue store"""

    def test_set_get_delete(self, queue_store: MemoryQueueStore):
        async def scenario():
            await queue_store.set("k", "v")
            assert await queue_store.get("k") == "v"
            assert await queue_store.delete("k") is True
            assert await queue_store.delete("k") is False
            assert await queue_store.get("k") is None

        run(scenario())

    def test_entries_expire(self, queue_store: MemoryQueueStore, clock):
        async def scenario():
            await queue_store.set("short", "v", ttl_seconds=5)
            await queue_store.set("forever", "v")

            clock.advance(4.9)
            assert await queue_store.get("short") == "v"

            clock.advance(0.1)
            assert await queue_store.get("short") is None
            assert await queue_store.get("forever") == "v"

        run(scenario())

    def test_compare_and_set(self, queue_store: MemoryQueueStore):
        async def scenario():
            # None means "only if absent"
            assert await queue_store.compare_and_set("lock", None, "a") is True
            assert await queue_store.compare_and_set("lock", None, "b") is False
            assert await queue_store.compare_and_set("lock", "b", "c") is False
            assert await queue_store.compare_and_set("lock", "a", "b") is True
            assert await queue_store.get("lock") == "b"

        run(scenario())

    def test_compare_and_delete(self, queue_store: MemoryQueueStore):
        async def scenario():
            await queue_store.set("lock", "a")
            assert await queue_store.compare_and_delete("lock", "b") is False
            assert await queue_store.get("lock") == "a"
            assert await queue_store.compare_and_delete("lock", "a") is True
            assert await queue_store.get("lock") is None

        run(scenario())

    def test_list_prefix_is_sorted_and_skips_expired(self, queue_store: MemoryQueueStore, clock):
        async def scenario():
            await queue_store.set("p:2", "two")
            await queue_store.set("p:1", "one")
            await queue_store.set("p:3", "three", ttl_seconds=1)
            await queue_store.set("other:1", "x")

            clock.advance(2)
            return await queue_store.list_prefix("p:")

        assert run(scenario()) == [("p:1", "one"), ("p:2", "two")]

    def test_ping(self, queue_store: MemoryQueueStore):
        assert run(queue_store.ping()) is True
