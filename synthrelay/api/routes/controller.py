"""Controller lock routes."""

from __future__ import annotations

from fastapi import APIRouter, Cookie
from fastapi.responses import JSONResponse
from loguru import logger

from synthrelay.api.controller.controller_lock import (
    ControllerConflictError,
    ControllerOwnershipError,
)
from synthrelay.api.dependencies import require_session, store_unavailable_response
from synthrelay.api.schemas import ControllerAcquireRequest, ControllerReleaseRequest
from synthrelay.api.store.queue_store import QueueStoreError
from synthrelay.core.bootstrap import relay_initializer

router = APIRouter()


def _bad_request(error: str) -> JSONResponse:
    return JSONResponse(status_code=400, content={"success": False, "error": error})


@router.get("/api/controller/active", status_code=200)
async def get_active_controller_route(
    clientId: str | None = None,
    session: str | None = Cookie(default=None),
):
    """
    Report the active controller and whether `clientId` holds the lock.

    Args:
        clientId (str): The requesting controller client id.
        session (str): The `session` cookie.
    """
    try:
        await require_session(session)

        if not clientId:
            return _bad_request("Client ID parameter is required")

        controller_id = await relay_initializer.controller_lock.current_owner()
    except QueueStoreError as e:
        return store_unavailable_response("get active controller", e)

    return {
        "active": controller_id is not None,
        "isCurrentClient": controller_id == clientId,
        "controllerClientId": controller_id,
        "requestingClientId": clientId,
    }


@router.post("/api/controller/active", status_code=200)
async def acquire_controller_route(
    request: ControllerAcquireRequest,
    session: str | None = Cookie(default=None),
):
    """
    Take the controller role.

    Returns:
        200 OK: The caller holds the lock (`takeover` when it forced one).
        409 CONFLICT: Another controller holds the lock and `force` was not set.
        400 BAD REQUEST: No `controllerClientId`.
    """
    try:
        user_id = await require_session(session, request.userId)

        if not request.controllerClientId:
            return _bad_request("Controller client ID is required")

        result = await relay_initializer.controller_lock.acquire(
            owner_id=request.controllerClientId,
            force=request.force,
        )
    except ControllerConflictError as e:
        return JSONResponse(
            status_code=409,
            content={
                "success": False,
                "error": "Another controller is already active",
                "activeControllerClientId": e.current_owner,
            },
        )
    except QueueStoreError as e:
        return store_unavailable_response("acquire controller", e)

    logger.debug(f"Controller lock granted over HTTP | User: '{user_id}' | Controller: '{result.controller_id}' | Takeover: {result.takeover}")

    return {
        "success": True,
        "controllerClientId": result.controller_id,
        "takeover": result.takeover,
    }


@router.delete("/api/controller/active", status_code=200)
async def release_controller_route(
    request: ControllerReleaseRequest,
    session: str | None = Cookie(default=None),
):
    """
    Release the controller role.

    `controllerClientId` may be the `force-deactivate` sentinel, in which
    case whoever holds the lock is deposed and, when `newControllerClientId`
    is given, told who replaces it.

    Returns:
        200 OK: Released, or nothing to release.
        403 FORBIDDEN: The caller does not own the lock.
        400 BAD REQUEST: No `controllerClientId`.
    """
    try:
        user_id = await require_session(session, request.userId)

        if not request.controllerClientId:
            return _bad_request("Controller client ID is required")

        previous_controller_id = await relay_initializer.controller_lock.release(
            owner_id=request.controllerClientId,
            new_controller_id=request.newControllerClientId,
        )
    except ControllerOwnershipError as e:
        return JSONResponse(status_code=403, content={"success": False, "error": str(e)})
    except QueueStoreError as e:
        return store_unavailable_response("release controller", e)

    logger.debug(f"Controller lock released over HTTP | User: '{user_id}' | Previous: '{previous_controller_id or 'none'}'")

    return {
        "success": True,
        "previousControllerId": previous_controller_id,
    }
