import asyncio
import heapq
import itertools
from typing import Any

import pytest
from fastapi.testclient import TestClient

from synthrelay.api.api import api
from synthrelay.api.models.config_model import Config
from synthrelay.api.store.memory_store import MemoryQueueStore
from synthrelay.core.bootstrap import relay_initializer
from synthrelay.peer.data_channel import DataChannel
from synthrelay.peer.scheduler import Scheduler, TimerHandle


class ManualClock:
    """Monotonic clock for the memory store, moved by hand"""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class _ManualTimer(TimerHandle):
    def __init__(self, callback, interval_ms: int | None) -> None:
        self.callback = callback
        self.interval_ms = interval_ms
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler(Scheduler):
    """Scheduler whose time only moves on `advance`"""

    def __init__(self, start_ms: int = 0) -> None:
        self.now = start_ms
        self._queue: list[tuple[int, int, _ManualTimer]] = []
        self._sequence = itertools.count()

    def now_ms(self) -> int:
        return self.now

    def call_later(self, delay_seconds: float, callback) -> TimerHandle:
        timer = _ManualTimer(callback, None)
        heapq.heappush(self._queue, (self.now + int(delay_seconds * 1000), next(self._sequence), timer))
        return timer

    def call_every(self, interval_seconds: float, callback) -> TimerHandle:
        interval_ms = int(interval_seconds * 1000)
        timer = _ManualTimer(callback, interval_ms)
        heapq.heappush(self._queue, (self.now + interval_ms, next(self._sequence), timer))
        return timer

    def advance(self, ms: int) -> None:
        """Move time forward, firing due timers in order"""
        target = self.now + ms
        while self._queue and self._queue[0][0] <= target:
            due, _, timer = heapq.heappop(self._queue)
            if timer.cancelled:
                continue
            self.now = due
            if timer.interval_ms is not None:
                heapq.heappush(self._queue, (due + timer.interval_ms, next(self._sequence), timer))
            timer.callback()
        self.now = target

    def pending(self) -> int:
        return sum(1 for _, _, timer in self._queue if not timer.cancelled)


class FakePeerSocket:
    """In-memory stand-in for a control socket"""

    def __init__(self, fail: bool = False) -> None:
        self.sent: list[dict[str, Any]] = []
        self.open = True
        self.fail = fail

    @property
    def is_open(self) -> bool:
        return self.open

    async def send_json(self, message: dict[str, Any]) -> None:
        await asyncio.sleep(0)
        if self.fail:
            raise ConnectionError("socket closed")
        self.sent.append(message)

    def of_type(self, message_type: str) -> list[dict[str, Any]]:
        return [message for message in self.sent if message.get("type") == message_type]


class FakeDataChannel(DataChannel):
    """In-memory data channel recording what was sent"""

    def __init__(self, open: bool = True) -> None:
        self.open = open
        self.sent: list[str] = []

    @property
    def is_open(self) -> bool:
        return self.open

    def send(self, message: str) -> None:
        if not self.open:
            raise ConnectionError("data channel closed")
        self.sent.append(message)

    def close(self) -> None:
        self.open = False


def run(coroutine):
    return asyncio.run(coroutine)


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def queue_store(clock):
    return MemoryQueueStore(clock=clock)


@pytest.fixture
def scheduler():
    return ManualScheduler(start_ms=1000)


@pytest.fixture
def client():
    """Test client on a fresh in-memory runtime"""
    relay_initializer.load_objects(config=Config(), queue_store=MemoryQueueStore())

    with TestClient(api) as test_client:
        yield test_client


@pytest.fixture
def session_client(client):
    """Test client carrying a valid `session` cookie"""
    ValueStorage.session_id = run(relay_initializer.session_manager.create_session(ValueStorage.user_id))
    client.cookies.set("session", ValueStorage.session_id)
    return client


# Global storage class
class ValueStorage:
    """
    Value storage class for sharing constants across tests cases
    """

    user_id: str = "user-1"
    session_id: str | None = None
    controller_a: str = "controller-aaaa"
    controller_b: str = "controller-bbbb"
    synth_1: str = "synth-1"
    synth_2: str = "synth-2"
    offer_data: dict = {"type": "offer", "sdp": "v=0 fake-offer"}
