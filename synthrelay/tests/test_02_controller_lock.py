import asyncio

import pytest

from synthrelay.api.controller.controller_lock import (
    ControllerConflictError,
    ControllerLock,
    ControllerOwnershipError,
)
from synthrelay.core import constants
from synthrelay.tests.conftest import ValueStorage, run

A = ValueStorage.controller_a
B = ValueStorage.controller_b


class TestControllerLock:
    """Single active controller arbitration"""

    @pytest.fixture
    def kicks(self):
        return []

    @pytest.fixture
    def lock(self, queue_store, kicks):
        async def notifier(kicked_id, new_controller_id):
            kicks.append((kicked_id, new_controller_id))

        return ControllerLock(queue_store=queue_store, kick_notifier=notifier)

    def test_acquire_when_unlocked(self, lock: ControllerLock):
        result = run(lock.acquire(A))

        assert result.controller_id == A
        assert result.takeover is False
        assert run(lock.current_owner()) == A

    def test_acquire_is_idempotent_for_the_owner(self, lock: ControllerLock, kicks):
        async def scenario():
            await lock.acquire(A)
            return await lock.acquire(A)

        result = run(scenario())
        assert result.takeover is False
        assert kicks == []

    def test_conflict_carries_the_current_owner(self, lock: ControllerLock):
        async def scenario():
            await lock.acquire(A)
            await lock.acquire(B)

        with pytest.raises(ControllerConflictError) as exc_info:
            run(scenario())

        assert exc_info.value.current_owner == A
        assert exc_info.value.requested_by == B

    def test_forced_takeover_kicks_the_previous_owner(self, lock: ControllerLock, kicks):
        async def scenario():
            await lock.acquire(A)
            return await lock.acquire(B, force=True)

        result = run(scenario())

        assert result.takeover is True
        assert result.previous_owner == A
        assert kicks == [(A, B)]
        assert run(lock.current_owner()) == B

    def test_release_by_owner(self, lock: ControllerLock):
        async def scenario():
            await lock.acquire(A)
            return await lock.release(A)

        assert run(scenario()) == A
        assert run(lock.current_owner()) is None

    def test_release_is_idempotent(self, lock: ControllerLock):
        async def scenario():
            await lock.acquire(A)
            first = await lock.release(A)
            second = await lock.release(A)
            return first, second

        assert run(scenario()) == (A, None)

    def test_release_by_non_owner_is_rejected(self, lock: ControllerLock):
        async def scenario():
            await lock.acquire(A)
            await lock.release(B)

        with pytest.raises(ControllerOwnershipError):
            run(scenario())

        assert run(lock.current_owner()) == A

    def test_force_deactivate_with_successor_kicks_once(self, lock: ControllerLock, kicks):
        async def scenario():
            await lock.acquire(A)
            previous = await lock.release(constants.FORCE_DEACTIVATE, new_controller_id=B)
            await lock.acquire(B)
            return previous

        assert run(scenario()) == A
        assert kicks == [(A, B)]
        assert run(lock.current_owner()) == B

    def test_force_deactivate_without_successor_does_not_kick(self, lock: ControllerLock, kicks):
        async def scenario():
            await lock.acquire(A)
            return await lock.release(constants.FORCE_DEACTIVATE)

        assert run(scenario()) == A
        assert kicks == []

    def test_release_if_owner(self, lock: ControllerLock):
        async def scenario():
            await lock.acquire(A)
            not_owner = await lock.release_if_owner(B)
            owner = await lock.release_if_owner(A)
            return not_owner, owner

        assert run(scenario()) == (False, True)

    def test_concurrent_acquires_have_a_single_winner(self, lock: ControllerLock):
        contenders = [f"controller-{index}" for index in range(10)]

        async def scenario():
            return await asyncio.gather(
                *(lock.acquire(contender) for contender in contenders),
                return_exceptions=True,
            )

        results = run(scenario())
        winners = [result for result in results if not isinstance(result, Exception)]
        losers = [result for result in results if isinstance(result, ControllerConflictError)]

        assert len(winners) == 1
        assert len(losers) == len(contenders) - 1
        assert run(lock.current_owner()) == winners[0].controller_id
        assert {loser.current_owner for loser in losers} == {winners[0].controller_id}

    def test_notifier_failure_does_not_undo_takeover(self, queue_store):
        async def failing_notifier(kicked_id, new_controller_id):
            raise ConnectionError("relay down")

        lock = ControllerLock(queue_store=queue_store, kick_notifier=failing_notifier)

        async def scenario():
            await lock.acquire(A)
            return await lock.acquire(B, force=True)

        assert run(scenario()).takeover is True
        assert run(lock.current_owner()) == B
