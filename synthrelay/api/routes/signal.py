"""Signaling routes: the control socket and its HTTP helpers."""

from __future__ import annotations

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse
from loguru import logger

from synthrelay.api.logger.msgs import warnings
from synthrelay.api.schemas import SignalSendRequest
from synthrelay.api.signaling.connection_registry import WebSocketPeerSocket
from synthrelay.api.signaling.signaling_relay import DELIVERED, QUEUED
from synthrelay.core.bootstrap import relay_initializer

router = APIRouter()


@router.websocket("/api/signal")
async def signal_websocket(websocket: WebSocket):
    """
    Control socket shared by controllers and synths.

    Every text frame is handed to the signaling relay. Malformed, binary or
    failing frames are logged and dropped without closing the socket. On
    close the peer's binding is removed and any controller lock it held is
    freed.
    """
    await websocket.accept()

    relay = relay_initializer.signaling_relay
    session = relay.open_session(WebSocketPeerSocket(websocket))
    client = f"{websocket.client.host}:{websocket.client.port}" if websocket.client else "unknown"
    logger.debug(f"Control socket opened | Client: {client}")

    try:
        while True:
            frame = await websocket.receive()
            if frame["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(code=frame.get("code", 1000))

            raw = frame.get("text")
            if raw is None:
                logger.warning(warnings.MALFORMED_SIGNAL_MESSAGE(session.peer_id, "<binary>", "binary frame"))
                continue

            try:
                await relay.handle_text(session, raw)
            except Exception as e:
                # The frame is dropped, the socket stays open
                logger.error(f"Control message failed | Peer: '{session.peer_id or 'unregistered'}' | Error: {str(e)}")
    except WebSocketDisconnect as e:
        logger.debug(f"Control socket closed | Peer: '{session.peer_id or 'unregistered'}' | Code: {e.code}")
    except Exception as e:
        logger.error(f"Control socket error | Peer: '{session.peer_id or 'unregistered'}' | Error: {str(e)}")
    finally:
        await relay.close_session(session)


@router.get("/api/signal/clients", status_code=200)
async def list_signal_clients_route():
    """List the peers bound on this relay instance."""
    registry = relay_initializer.connection_registry
    return {
        "success": True,
        "clients": registry.peer_ids(),
        "controllerConnections": registry.controller_connections(),
    }


@router.post("/api/signal/send", status_code=200)
async def send_signal_route(request: SignalSendRequest):
    """
    Deliver a message to a peer, or queue it when the peer is not connected.

    Returns:
        200 OK: `{success, delivered, queued}`.
        400 BAD REQUEST: Missing `target` or `message`.
        503 SERVICE UNAVAILABLE: Not delivered and the queue store is down.
    """
    if not request.target or not request.message:
        return JSONResponse(
            status_code=400,
            content={"success": False, "error": "Target and message are required"},
        )

    outcome = await relay_initializer.signaling_relay.route(request.target, request.message)
    if outcome not in (DELIVERED, QUEUED):
        return JSONResponse(
            status_code=503,
            content={"success": False, "error": "Queue store unavailable, retry shortly"},
            headers={"Retry-After": "1"},
        )

    return {
        "success": True,
        "delivered": outcome == DELIVERED,
        "queued": outcome == QUEUED,
    }
