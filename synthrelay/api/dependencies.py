"""
Shared dependencies for API routes.

Session checks and the store-unavailable response used by the controller
lock endpoints.
"""

from fastapi import HTTPException
from fastapi.responses import JSONResponse
from loguru import logger

from synthrelay.api.logger.msgs import errors
from synthrelay.api.store.queue_store import QueueStoreError
from synthrelay.core.bootstrap import relay_initializer

DEV_USER_ID = "dev-user-id"


def _session_preview(session_id: str | None) -> str:
    """
    Return a short, non-sensitive preview for logs.
    """
    if not session_id:
        return "<empty>"
    if len(session_id) <= 8:
        return "***"
    return f"{session_id[:4]}...{session_id[-4:]}"


async def require_session(session_id: str | None, user_id: str | None = None) -> str:
    """
    Check the caller's `session` cookie.

    Args:
        session_id (str | None): The `session` cookie value.
        user_id (str | None): Body `userId`, honoured only in dev mode.

    Returns:
        str: The session's user id.

    Raises:
        HTTPException: 401 without a valid session.
        QueueStoreError: The session could not be read.
    """
    if relay_initializer.config.DEV_MODE and user_id == DEV_USER_ID:
        logger.debug("Dev mode session accepted")
        return DEV_USER_ID

    session_user_id = await relay_initializer.session_manager.validate_session(session_id)
    if session_user_id is None:
        logger.warning(f"Session rejected | Session: {_session_preview(session_id)}")
        raise HTTPException(status_code=401, detail="Unauthorized")

    return session_user_id


def store_unavailable_response(operation: str, error: QueueStoreError) -> JSONResponse:
    """Log a store failure and build the 503 answer with a retry hint."""
    logger.error(errors.ERROR_QUEUE_STORE_UNAVAILABLE(operation, error))
    return JSONResponse(
        status_code=503,
        content={
            "success": False,
            "error": "Queue store unavailable, retry shortly",
        },
        headers={"Retry-After": "1"},
    )
