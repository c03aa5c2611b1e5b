import itertools
import json
import time
import uuid
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from loguru import logger

from synthrelay.api.logger.msgs import info, warnings
from synthrelay.api.store.queue_store import QueueStore
from synthrelay.core import constants

_sequence = itertools.count()


def new_message_id() -> str:
    """Build a message id that sorts in enqueue order."""
    return f"{time.time_ns():020d}-{next(_sequence) % 1_000_000:06d}-{uuid.uuid4().hex[:8]}"


@dataclass
class QueuedMessage:
    """A handshake message waiting for its recipient to register"""
    recipient_id: str
    message_id: str
    payload: dict[str, Any]
    enqueued_at: float


class MessageQueue:
    """
    Store-and-forward queue for control messages addressed to peers that
    have no live socket. Entries expire after `ttl_seconds` and are
    delivered at most once.
    """

    def __init__(self, queue_store: QueueStore, ttl_seconds: float = 300):
        self.queue_store = queue_store
        self.ttl_seconds = ttl_seconds

    @staticmethod
    def _recipient_prefix(recipient_id: str) -> str:
        return f"{constants.MESSAGE_KEY_PREFIX}:{recipient_id}:"

    async def enqueue(self, recipient_id: str, message: dict[str, Any]) -> QueuedMessage:
        """
        Queue a message for an offline peer.

        Args:
            recipient_id (str): The peer the message is addressed to.
            message (dict): The envelope that would have been sent directly.

        Returns:
            QueuedMessage: The stored entry.
        """
        queued_message = QueuedMessage(
            recipient_id=recipient_id,
            message_id=new_message_id(),
            payload=message,
            enqueued_at=time.time(),
        )
        await self.queue_store.set(
            key=f"{self._recipient_prefix(recipient_id)}{queued_message.message_id}",
            value=json.dumps({"payload": message, "enqueuedAt": queued_message.enqueued_at}),
            ttl_seconds=self.ttl_seconds,
        )
        logger.debug(f"Message queued | Recipient: '{recipient_id}' | Type: {message.get('type', 'unknown')} | ID: {queued_message.message_id}")

        return queued_message

    async def pending(self, recipient_id: str) -> list[QueuedMessage]:
        """
        List the unexpired messages for a recipient in enqueue order.
        """
        prefix = self._recipient_prefix(recipient_id)
        queued_messages = []
        for key, value in await self.queue_store.list_prefix(prefix):
            try:
                entry = json.loads(value)
            except json.JSONDecodeError:
                logger.warning(f"Dropping unreadable queue entry | Key: {key}")
                await self.queue_store.delete(key)
                continue

            queued_messages.append(
                QueuedMessage(
                    recipient_id=recipient_id,
                    message_id=key[len(prefix):],
                    payload=entry["payload"],
                    enqueued_at=entry.get("enqueuedAt", 0.0),
                )
            )

        return queued_messages

    async def drain_on_register(
        self,
        recipient_id: str,
        send: Callable[[dict[str, Any]], Awaitable[None]],
    ) -> int:
        """
        Deliver every pending message for a peer that just registered.

        Each entry is claimed by deleting it before the send. Only the drain
        whose delete removed the key sends it, so overlapping drains for the
        same peer (a re-register, or two instances on one store) never
        deliver an entry twice. A failed send is not retried.

        Args:
            recipient_id (str): The peer that registered.
            send (Callable): Coroutine function sending one envelope.

        Returns:
            int: The number of messages sent without error.
        """
        delivered = 0
        failed = 0
        prefix = self._recipient_prefix(recipient_id)

        for queued_message in await self.pending(recipient_id):
            if not await self.queue_store.delete(f"{prefix}{queued_message.message_id}"):
                # Claimed by another drain, or expired
                continue

            try:
                await send(queued_message.payload)
                delivered += 1
            except Exception as e:
                failed += 1
                logger.warning(warnings.QUEUED_MESSAGE_SEND_FAILED(recipient_id, queued_message.message_id, e))

        if delivered or failed:
            logger.info(info.INFO_QUEUE_DRAINED(recipient_id, delivered, failed))

        return delivered
