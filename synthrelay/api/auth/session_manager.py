import json
import secrets
import time

from loguru import logger

from synthrelay.api.store.queue_store import QueueStore
from synthrelay.core import constants


class SessionManager:
    """
    Reads and writes login sessions in the queue store.

    Sessions are issued by the external login flow; the relay only checks
    that the `session` cookie names an unexpired record.
    """

    def __init__(self, queue_store: QueueStore, ttl_seconds: int = 60 * 60 * 24 * 7) -> None:
        self.queue_store = queue_store
        self.ttl_seconds = ttl_seconds

    @staticmethod
    def _key(session_id: str) -> str:
        return f"{constants.SESSION_KEY_PREFIX}:{session_id}"

    async def create_session(self, user_id: str) -> str:
        """
        Store a new session for `user_id`.

        Returns:
            str: The session id to hand out as the `session` cookie.
        """
        session_id = secrets.token_urlsafe(32)
        expires_at = int((time.time() + self.ttl_seconds) * 1000)
        await self.queue_store.set(
            key=self._key(session_id),
            value=json.dumps({"userId": user_id, "expiresAt": expires_at}),
            ttl_seconds=self.ttl_seconds,
        )
        logger.info(f"Session created | User: '{user_id}' | Expires at: {expires_at}")
        return session_id

    async def validate_session(self, session_id: str | None) -> str | None:
        """
        Check a session id.

        Returns:
            str | None: The session's user id, or None if unknown or expired.
        """
        if not session_id:
            return None

        raw_session = await self.queue_store.get(self._key(session_id))
        if raw_session is None:
            return None

        try:
            session = json.loads(raw_session)
        except json.JSONDecodeError:
            logger.warning(f"Unreadable session record | Session: {session_id[:6]}...")
            return None

        if session.get("expiresAt", 0) < int(time.time() * 1000):
            return None

        return session.get("userId")

    async def revoke_session(self, session_id: str) -> bool:
        return await self.queue_store.delete(self._key(session_id))
