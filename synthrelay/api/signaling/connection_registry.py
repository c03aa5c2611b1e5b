from typing import Any, Protocol

from fastapi import WebSocket
from loguru import logger
from starlette.websockets import WebSocketState


class PeerSocket(Protocol):
    """The part of a control socket the relay needs."""

    @property
    def is_open(self) -> bool: ...

    async def send_json(self, message: dict[str, Any]) -> None: ...


class WebSocketPeerSocket:
    """ Adapts a FastAPI `WebSocket` to `PeerSocket` """

    def __init__(self, websocket: WebSocket) -> None:
        self.websocket = websocket

    @property
    def is_open(self) -> bool:
        return (
            self.websocket.client_state == WebSocketState.CONNECTED
            and self.websocket.application_state == WebSocketState.CONNECTED
        )

    async def send_json(self, message: dict[str, Any]) -> None:
        await self.websocket.send_json(message)


class ConnectionRegistry:
    """
    Table of the control sockets bound on this relay instance.

    Bindings are instance-local and only used for direct delivery; the
    queue store stays the source of truth for everything shared.
    """

    def __init__(self) -> None:
        self._connections: dict[str, PeerSocket] = {}
        self._controller_connections: dict[str, list[str]] = {}

    def bind(self, peer_id: str, connection: PeerSocket) -> PeerSocket | None:
        """
        Bind `peer_id` to `connection`, replacing any previous binding.

        Returns:
            The connection previously bound to the id, if any.
        """
        previous = self._connections.get(peer_id)
        self._connections[peer_id] = connection
        if previous is not None and previous is not connection:
            logger.info(f"Peer binding replaced | ID: '{peer_id}'")
        return previous

    def lookup(self, peer_id: str) -> PeerSocket | None:
        """Return the live connection bound to `peer_id`."""
        connection = self._connections.get(peer_id)
        if connection is None or not connection.is_open:
            return None
        return connection

    def remove(self, peer_id: str, connection: PeerSocket) -> bool:
        """
        Remove the binding for `peer_id` if it still points at `connection`.

        Returns:
            bool: True if the binding was removed.
        """
        if self._connections.get(peer_id) is not connection:
            return False

        del self._connections[peer_id]
        self._controller_connections.pop(peer_id, None)
        return True

    def peer_ids(self) -> list[str]:
        return list(self._connections.keys())

    def set_controller_connections(self, controller_id: str, connections: list[str]) -> None:
        """Record the peers a controller reports as live over its data channels."""
        self._controller_connections[controller_id] = list(connections)

    def controller_connections(self) -> dict[str, list[str]]:
        return {controller_id: list(peers) for controller_id, peers in self._controller_connections.items()}

    async def send(self, peer_id: str, message: dict[str, Any]) -> bool:
        """
        Send a message to a peer bound on this instance.

        Returns:
            bool: False when the peer has no live socket or the send failed.
        """
        connection = self.lookup(peer_id)
        if connection is None:
            return False

        try:
            await connection.send_json(message)
        except Exception as e:
            logger.error(f"Direct send failed | Peer: '{peer_id}' | Type: {message.get('type', 'unknown')} | Error: {str(e)}")
            return False

        return True

    def __len__(self) -> int:
        return len(self._connections)

    def __contains__(self, peer_id: str) -> bool:
        return peer_id in self._connections
