from fastapi.testclient import TestClient

from synthrelay.core import constants
from synthrelay.core.bootstrap import relay_initializer
from synthrelay.tests.conftest import ValueStorage, run

route = "/api/controller/active"

A = ValueStorage.controller_a
B = ValueStorage.controller_b


def test_requires_a_session(client: TestClient):
    assert client.get(route, params={"clientId": A}).status_code == 401
    assert client.post(route, json={"controllerClientId": A}).status_code == 401
    assert client.request("DELETE", route, json={"controllerClientId": A}).status_code == 401


def test_unknown_session_is_rejected(client: TestClient):
    client.cookies.set("session", "not-a-session")
    assert client.post(route, json={"controllerClientId": A}).status_code == 401


def test_dev_user_only_in_dev_mode(client: TestClient):
    response = client.post(route, json={"controllerClientId": A, "userId": "dev-user-id"})
    assert response.status_code == 401

    relay_initializer.config.DEV_MODE = True
    response = client.post(route, json={"controllerClientId": A, "userId": "dev-user-id"})
    assert response.status_code == 200


def test_status_requires_client_id(session_client: TestClient):
    response = session_client.get(route)

    assert response.status_code == 400
    assert response.json()["success"] is False


def test_status_when_unlocked(session_client: TestClient):
    response = session_client.get(route, params={"clientId": A})

    assert response.status_code == 200
    assert response.json() == {
        "active": False,
        "isCurrentClient": False,
        "controllerClientId": None,
        "requestingClientId": A,
    }


def test_acquire_then_status(session_client: TestClient):
    response = session_client.post(route, json={"controllerClientId": A})

    assert response.status_code == 200
    assert response.json() == {"success": True, "controllerClientId": A, "takeover": False}

    status = session_client.get(route, params={"clientId": A}).json()
    assert status["active"] is True
    assert status["isCurrentClient"] is True


def test_acquire_requires_client_id(session_client: TestClient):
    response = session_client.post(route, json={})

    assert response.status_code == 400
    assert response.json() == {"success": False, "error": "Controller client ID is required"}


def test_acquire_conflict(session_client: TestClient):
    session_client.post(route, json={"controllerClientId": A})
    response = session_client.post(route, json={"controllerClientId": B})

    assert response.status_code == 409
    assert response.json() == {
        "success": False,
        "error": "Another controller is already active",
        "activeControllerClientId": A,
    }


def test_forced_acquire_reports_takeover(session_client: TestClient):
    session_client.post(route, json={"controllerClientId": A})
    response = session_client.post(route, json={"controllerClientId": B, "force": True})

    assert response.status_code == 200
    assert response.json()["takeover"] is True
    assert run(relay_initializer.controller_lock.current_owner()) == B


def test_release_by_owner(session_client: TestClient):
    session_client.post(route, json={"controllerClientId": A})
    response = session_client.request("DELETE", route, json={"controllerClientId": A})

    assert response.status_code == 200
    assert response.json() == {"success": True, "previousControllerId": A}


def test_release_when_unlocked_is_a_no_op(session_client: TestClient):
    response = session_client.request("DELETE", route, json={"controllerClientId": A})

    assert response.status_code == 200
    assert response.json() == {"success": True, "previousControllerId": None}


def test_release_by_non_owner_is_forbidden(session_client: TestClient):
    session_client.post(route, json={"controllerClientId": A})
    response = session_client.request("DELETE", route, json={"controllerClientId": B})

    assert response.status_code == 403
    assert response.json() == {"success": False, "error": "You are not the active controller client"}


def test_kick_flow_queues_notification_for_offline_owner(session_client: TestClient):
    session_client.post(route, json={"controllerClientId": A})

    response = session_client.request(
        "DELETE",
        route,
        json={"controllerClientId": constants.FORCE_DEACTIVATE, "newControllerClientId": B},
    )
    assert response.status_code == 200
    assert response.json()["previousControllerId"] == A

    response = session_client.post(route, json={"controllerClientId": B})
    assert response.status_code == 200

    pending = run(relay_initializer.message_queue.pending(A))
    assert [queued.payload for queued in pending] == [
        {"type": "controller-kicked", "newControllerId": B, "source": "system"}
    ]
