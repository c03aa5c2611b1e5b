import json

import httpx
import pytest

from synthrelay.api.api import api
from synthrelay.api.controller.controller_lock import ControllerConflictError, ControllerOwnershipError
from synthrelay.api.store.queue_store import QueueStoreError
from synthrelay.core.bootstrap import relay_initializer
from synthrelay.peer.lock_client import LockClient
from synthrelay.tests.conftest import ValueStorage, run

A = ValueStorage.controller_a
B = ValueStorage.controller_b
BASE_URL = "http://relay.test"


def lock_client(controller_id: str, session_id: str) -> LockClient:
    return LockClient(
        base_url=BASE_URL,
        controller_id=controller_id,
        session_id=session_id,
        transport=httpx.ASGITransport(app=api),
    )


def test_conflict_then_kick(client):
    async def scenario():
        session_id = await relay_initializer.session_manager.create_session(ValueStorage.user_id)
        first = lock_client(A, session_id)
        second = lock_client(B, session_id)

        try:
            assert (await first.acquire())["controllerClientId"] == A

            with pytest.raises(ControllerConflictError) as conflict:
                await second.acquire()
            assert conflict.value.current_owner == A

            acquired = await second.kick()
            assert acquired["controllerClientId"] == B
            assert acquired["takeover"] is True

            with pytest.raises(ControllerOwnershipError):
                await first.release()

            return await second.status()
        finally:
            await first.close()
            await second.close()

    status = run(scenario())

    assert status["isCurrentClient"] is True
    assert status["controllerClientId"] == B


def test_kick_is_a_single_forced_acquire():
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append((request.method, json.loads(request.content)))
        return httpx.Response(200, json={"success": True, "controllerClientId": B, "takeover": True})

    async def scenario():
        controller = LockClient(base_url=BASE_URL, controller_id=B, transport=httpx.MockTransport(handler))
        try:
            return await controller.kick()
        finally:
            await controller.close()

    assert run(scenario())["takeover"] is True
    assert requests == [("POST", {"controllerClientId": B, "force": True})]


def test_release_frees_the_lock(client):
    async def scenario():
        session_id = await relay_initializer.session_manager.create_session(ValueStorage.user_id)
        controller = lock_client(A, session_id)
        try:
            await controller.acquire()
            released = await controller.release()
            return released, await controller.status()
        finally:
            await controller.close()

    released, status = run(scenario())

    assert released == {"success": True, "previousControllerId": A}
    assert status["active"] is False


def test_missing_session_is_rejected(client):
    async def scenario():
        controller = lock_client(A, "not-a-session")
        try:
            await controller.acquire()
        finally:
            await controller.close()

    with pytest.raises(httpx.HTTPStatusError) as error:
        run(scenario())
    assert error.value.response.status_code == 401


def test_store_outage_surfaces_as_store_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, json={"success": False, "error": "Queue store unavailable, retry shortly"})

    async def scenario():
        controller = LockClient(base_url=BASE_URL, controller_id=A, transport=httpx.MockTransport(handler))
        try:
            await controller.acquire()
        finally:
            await controller.close()

    with pytest.raises(QueueStoreError):
        run(scenario())
