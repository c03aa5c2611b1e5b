"""HTTP client for the relay's controller lock endpoints."""

from __future__ import annotations

import asyncio
from typing import Any

import httpx
from loguru import logger

from synthrelay.api.controller.controller_lock import (
    ControllerConflictError,
    ControllerOwnershipError,
)
from synthrelay.api.store.queue_store import QueueStoreError

LOCK_PATH = "/api/controller/active"


class LockClient:
    """
    Talks to `/api/controller/active` with the caller's session cookie.

    Raises the same exceptions as the server-side lock so callers can
    handle a remote lock like a local one.
    """

    def __init__(
        self,
        base_url: str,
        controller_id: str,
        session_id: str | None = None,
        user_id: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.controller_id = controller_id
        self.user_id = user_id
        cookies = {"session": session_id} if session_id else None
        self.client = httpx.AsyncClient(
            base_url=base_url,
            cookies=cookies,
            transport=transport,
            timeout=10.0,
        )

    async def close(self) -> None:
        await self.client.aclose()

    async def status(self) -> dict[str, Any]:
        response = await self.client.get(LOCK_PATH, params={"clientId": self.controller_id})
        self._raise_for_status(response)
        return response.json()

    async def acquire(self, force: bool = False) -> dict[str, Any]:
        """
        Raises:
            ControllerConflictError: Another controller is active.
        """
        body: dict[str, Any] = {"controllerClientId": self.controller_id, "force": force}
        if self.user_id:
            body["userId"] = self.user_id

        response = await self.client.post(LOCK_PATH, json=body)
        if response.status_code == 409:
            raise ControllerConflictError(
                requested_by=self.controller_id,
                current_owner=response.json().get("activeControllerClientId"),
            )
        self._raise_for_status(response)
        return response.json()

    async def release(self, owner_id: str | None = None, new_controller_id: str | None = None) -> dict[str, Any]:
        """
        Raises:
            ControllerOwnershipError: This client does not hold the lock.
        """
        body: dict[str, Any] = {"controllerClientId": owner_id or self.controller_id}
        if new_controller_id:
            body["newControllerClientId"] = new_controller_id
        if self.user_id:
            body["userId"] = self.user_id

        # httpx only takes a body on DELETE through the generic request()
        response = await self.client.request("DELETE", LOCK_PATH, json=body)
        if response.status_code == 403:
            raise ControllerOwnershipError(requested_by=body["controllerClientId"], current_owner=None)
        self._raise_for_status(response)
        return response.json()

    async def kick(self, hold_seconds: float = 0.0) -> dict[str, Any]:
        """
        Replace the active controller with this one.

        Waits `hold_seconds` first (the hold-to-confirm delay), then takes
        the lock with a single forced acquire. The relay swaps the owner in
        one compare-and-swap and sends the kick to the deposed controller.
        """
        if hold_seconds > 0:
            await asyncio.sleep(hold_seconds)

        acquired = await self.acquire(force=True)
        logger.info(f"Controller kicked | New: '{self.controller_id}' | Takeover: {acquired.get('takeover')}")
        return acquired

    @staticmethod
    def _raise_for_status(response: httpx.Response) -> None:
        if response.status_code == 503:
            raise QueueStoreError(f"Relay store unavailable: {response.text[:200]}")
        response.raise_for_status()
