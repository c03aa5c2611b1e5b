"""
Control-plane message router.

Peers open a control socket, register under an id and exchange handshake
messages (offer, answer, ice-candidate) plus controller hand-off
notifications. The relay never looks inside the handshake payload: it
forwards the envelope to a live socket or queues it for later.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

from loguru import logger

from synthrelay.api.controller.controller_lock import ControllerConflictError, ControllerLock
from synthrelay.api.logger.msgs import errors, info, warnings
from synthrelay.api.queue.message_queue import MessageQueue
from synthrelay.api.signaling.connection_registry import ConnectionRegistry, PeerSocket
from synthrelay.api.store.queue_store import QueueStoreError
from synthrelay.core import constants

DELIVERED = "delivered"
QUEUED = "queued"
DROPPED = "dropped"


@dataclass
class RelaySession:
    """Relay-side state of one control socket."""
    connection: PeerSocket
    peer_id: str | None = None


class SignalingRelay:
    """Routes control messages between peers registered on the relay."""

    def __init__(
        self,
        connection_registry: ConnectionRegistry,
        controller_lock: ControllerLock,
        message_queue: MessageQueue,
        controller_id_prefix: str = "controller-",
    ) -> None:
        self.connection_registry = connection_registry
        self.controller_lock = controller_lock
        self.message_queue = message_queue
        self.controller_id_prefix = controller_id_prefix

        self.controller_lock.set_kick_notifier(self.notify_kicked)

    def is_controller_id(self, peer_id: str) -> bool:
        """Role hint carried by the id prefix; not an authorization check."""
        return peer_id.startswith(self.controller_id_prefix)

    def open_session(self, connection: PeerSocket) -> RelaySession:
        return RelaySession(connection=connection)

    async def handle_text(self, session: RelaySession, raw: str) -> None:
        """
        Parse and dispatch one control-socket frame.

        Malformed frames are logged and dropped; the socket stays open.
        """
        if not raw:
            logger.warning(warnings.MALFORMED_SIGNAL_MESSAGE(session.peer_id, "", "empty frame"))
            return

        try:
            message = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning(warnings.MALFORMED_SIGNAL_MESSAGE(session.peer_id, raw, f"invalid JSON ({str(e)})"))
            return

        if not isinstance(message, dict) or not isinstance(message.get("type"), str) or not message["type"]:
            logger.warning(warnings.MALFORMED_SIGNAL_MESSAGE(session.peer_id, raw, "missing type"))
            return

        await self.dispatch(session, message)

    async def dispatch(self, session: RelaySession, message: dict[str, Any]) -> None:
        message_type = message["type"]

        if message_type == "register":
            peer_id = message.get("id")
            if not isinstance(peer_id, str) or not peer_id:
                logger.warning(warnings.MALFORMED_SIGNAL_MESSAGE(session.peer_id, json.dumps(message), "register without id"))
                return
            await self.register(session, peer_id)
            return

        if message_type == "heartbeat":
            return

        if session.peer_id is None:
            logger.warning(warnings.UNREGISTERED_PEER_MESSAGE(message_type))
            return

        if message_type == "get-controller":
            controller_id = await self.get_active_controller()
            await self._reply(session, {"type": "controller-info", "controllerId": controller_id})
            logger.debug(f"Sent controller info | Peer: '{session.peer_id}' | Controller: '{controller_id or 'none'}'")
            return

        if message_type in constants.SIGNAL_TYPES or message_type == "controller-kicked":
            target_id = message.get("target")
            if not isinstance(target_id, str) or not target_id:
                logger.warning(warnings.MISSING_SIGNAL_TARGET(message_type, session.peer_id))
                return

            if message_type == "controller-kicked":
                envelope = {
                    "type": message_type,
                    "newControllerId": message.get("newControllerId"),
                    "source": session.peer_id,
                }
            else:
                envelope = {
                    "type": message_type,
                    "data": message.get("data"),
                    "source": session.peer_id,
                }

            await self.route(target_id, envelope)
            return

        if message_type == "controller-connections":
            connections = message.get("connections") or []
            if not isinstance(connections, list):
                logger.warning(warnings.MALFORMED_SIGNAL_MESSAGE(session.peer_id, json.dumps(message), "connections is not a list"))
                return
            self.connection_registry.set_controller_connections(session.peer_id, [str(peer) for peer in connections])
            logger.debug(f"Controller connections updated | Controller: '{session.peer_id}' | Live peers: {len(connections)}")
            return

        logger.warning(warnings.UNKNOWN_SIGNAL_TYPE(message_type, session.peer_id))

    async def register(self, session: RelaySession, peer_id: str) -> None:
        """
        Bind the session's socket to `peer_id` (last writer wins), take the
        controller lock for controller ids and drain the peer's queue.
        """
        if session.peer_id is not None and session.peer_id != peer_id:
            self.connection_registry.remove(session.peer_id, session.connection)

        session.peer_id = peer_id
        self.connection_registry.bind(peer_id, session.connection)
        logger.info(info.INFO_PEER_REGISTERED(peer_id, len(self.connection_registry)))

        if self.is_controller_id(peer_id):
            try:
                await self.controller_lock.acquire(peer_id)
            except ControllerConflictError as e:
                await self._reply(session, {"type": "controller-conflict", "controllerId": e.current_owner})
            except QueueStoreError as e:
                logger.error(errors.ERROR_QUEUE_STORE_UNAVAILABLE("register controller", e))

        try:
            await self.message_queue.drain_on_register(peer_id, session.connection.send_json)
        except QueueStoreError as e:
            logger.error(errors.ERROR_QUEUE_STORE_UNAVAILABLE("drain queue", e))

    async def route(self, target_id: str, envelope: dict[str, Any]) -> str:
        """
        Forward an envelope to `target_id`, or queue it when the target has
        no live socket on this instance.

        Returns:
            str: "delivered", "queued" or "dropped" (store unavailable).
        """
        message_type = envelope.get("type", "unknown")
        source_id = envelope.get("source", "unknown")

        if await self.connection_registry.send(target_id, envelope):
            logger.info(info.INFO_SIGNAL_DELIVERED(message_type, source_id, target_id))
            return DELIVERED

        try:
            await self.message_queue.enqueue(target_id, envelope)
        except QueueStoreError as e:
            logger.error(errors.ERROR_QUEUE_STORE_UNAVAILABLE(f"queue {message_type} for '{target_id}'", e))
            return DROPPED

        logger.info(info.INFO_SIGNAL_QUEUED(message_type, source_id, target_id))
        return QUEUED

    async def get_active_controller(self) -> str | None:
        """Current controller id; None when unlocked or the store is down."""
        try:
            return await self.controller_lock.current_owner()
        except QueueStoreError as e:
            logger.error(errors.ERROR_QUEUE_STORE_UNAVAILABLE("get controller", e))
            return None

    async def notify_kicked(self, kicked_id: str, new_controller_id: str) -> None:
        """Tell a deposed controller who replaced it."""
        outcome = await self.route(
            kicked_id,
            {
                "type": "controller-kicked",
                "newControllerId": new_controller_id,
                "source": "system",
            },
        )
        logger.info(info.INFO_CONTROLLER_KICK_SENT(kicked_id, new_controller_id, outcome == QUEUED))

    async def close_session(self, session: RelaySession) -> None:
        """
        Drop relay state for a closed socket and free the controller lock
        if this peer held it.
        """
        if session.peer_id is None:
            return

        peer_id = session.peer_id
        removed = self.connection_registry.remove(peer_id, session.connection)
        session.peer_id = None
        if not removed:
            # A newer socket took over this id, it keeps the binding and the lock
            return

        logger.info(info.INFO_PEER_DISCONNECTED(peer_id, len(self.connection_registry)))

        try:
            await self.controller_lock.release_if_owner(peer_id)
        except QueueStoreError as e:
            logger.error(errors.ERROR_QUEUE_STORE_UNAVAILABLE("release controller on disconnect", e))

    async def _reply(self, session: RelaySession, message: dict[str, Any]) -> None:
        try:
            await session.connection.send_json(message)
        except Exception as e:
            logger.error(f"Reply failed | Peer: '{session.peer_id}' | Type: {message.get('type')} | Error: {str(e)}")
