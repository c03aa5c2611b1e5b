from __future__ import annotations

from dataclasses import dataclass
from typing import Awaitable, Callable

from loguru import logger

from synthrelay.api.logger.msgs import info, warnings
from synthrelay.api.store.queue_store import QueueStore, QueueStoreError
from synthrelay.core import constants

KickNotifier = Callable[[str, str], Awaitable[None]]


class ControllerConflictError(ValueError):
    """The lock is held by another controller and the caller did not force."""

    def __init__(self, requested_by: str, current_owner: str) -> None:
        super().__init__(f"Another controller is already active: '{current_owner}'")
        self.requested_by = requested_by
        self.current_owner = current_owner


class ControllerOwnershipError(PermissionError):
    """A release was attempted by a caller that does not own the lock."""

    def __init__(self, requested_by: str, current_owner: str | None) -> None:
        super().__init__("You are not the active controller client")
        self.requested_by = requested_by
        self.current_owner = current_owner


@dataclass
class AcquireResult:
    controller_id: str
    takeover: bool = False
    previous_owner: str | None = None


class ControllerLock:
    """
    Enforces "at most one active controller" on top of the queue store.

    The lock has two states, Unlocked (no record) and Locked(owner). Every
    write is a compare-and-swap against the record read just before it, so
    concurrent acquires from two controllers cannot both win. A forced
    takeover calls the kick notifier with the deposed owner.
    """

    def __init__(
        self,
        queue_store: QueueStore,
        kick_notifier: KickNotifier | None = None,
        max_attempts: int = 8,
    ) -> None:
        self.queue_store = queue_store
        self.kick_notifier = kick_notifier
        self.max_attempts = max_attempts

    def set_kick_notifier(self, kick_notifier: KickNotifier) -> None:
        self.kick_notifier = kick_notifier

    async def current_owner(self) -> str | None:
        """Return the active controller id, or None when unlocked."""
        return await self.queue_store.get(constants.ACTIVE_CONTROLLER_KEY)

    async def acquire(self, owner_id: str, force: bool = False) -> AcquireResult:
        """
        Acquire the controller role.

        Args:
            owner_id (str): The controller client id.
            force (bool, default: False): Take the lock over from another owner.

        Returns:
            AcquireResult: The new owner and whether a takeover happened.

        Raises:
            ControllerConflictError: Locked by another owner and `force` is False.
            QueueStoreError: The store is unavailable or too contended.
        """
        for _ in range(self.max_attempts):
            current_owner = await self.current_owner()

            if current_owner == owner_id:
                return AcquireResult(controller_id=owner_id)

            if current_owner is not None and not force:
                logger.warning(warnings.CONTROLLER_CONFLICT(owner_id, current_owner))
                raise ControllerConflictError(requested_by=owner_id, current_owner=current_owner)

            swapped = await self.queue_store.compare_and_set(
                key=constants.ACTIVE_CONTROLLER_KEY,
                expected=current_owner,
                value=owner_id,
            )
            if not swapped:
                # Someone else wrote between our read and our swap, re-read
                continue

            logger.info(info.INFO_CONTROLLER_ACQUIRED(owner_id, current_owner))
            if current_owner is not None:
                await self._notify_kicked(current_owner, owner_id)

            return AcquireResult(
                controller_id=owner_id,
                takeover=current_owner is not None,
                previous_owner=current_owner,
            )

        raise QueueStoreError(f"Could not acquire the controller lock after {self.max_attempts} attempts")

    async def release(self, owner_id: str, new_controller_id: str | None = None) -> str | None:
        """
        Release the controller role.

        Releasing an unlocked lock is a no-op. The `force-deactivate`
        sentinel releases whoever holds the lock; with `new_controller_id`
        the deposed owner is also sent a kick notification.

        Args:
            owner_id (str): The caller's controller client id, or the sentinel.
            new_controller_id (str, optional): The controller taking over.

        Returns:
            str | None: The owner that held the lock before the call.

        Raises:
            ControllerOwnershipError: The caller is neither owner nor forcing.
        """
        forced = owner_id == constants.FORCE_DEACTIVATE

        for _ in range(self.max_attempts):
            current_owner = await self.current_owner()

            if current_owner is None:
                return None

            if current_owner != owner_id and not forced:
                logger.warning(warnings.CONTROLLER_RELEASE_REJECTED(owner_id, current_owner))
                raise ControllerOwnershipError(requested_by=owner_id, current_owner=current_owner)

            deleted = await self.queue_store.compare_and_delete(
                key=constants.ACTIVE_CONTROLLER_KEY,
                expected=current_owner,
            )
            if not deleted:
                continue

            logger.info(info.INFO_CONTROLLER_RELEASED(current_owner, forced))
            if forced and new_controller_id and new_controller_id != current_owner:
                await self._notify_kicked(current_owner, new_controller_id)

            return current_owner

        raise QueueStoreError(f"Could not release the controller lock after {self.max_attempts} attempts")

    async def release_if_owner(self, owner_id: str) -> bool:
        """
        Release the lock only when `owner_id` holds it; used on disconnect.

        Returns:
            bool: True if the lock was released.
        """
        released = await self.queue_store.compare_and_delete(
            key=constants.ACTIVE_CONTROLLER_KEY,
            expected=owner_id,
        )
        if released:
            logger.info(info.INFO_CONTROLLER_RELEASED(owner_id, False))
        return released

    async def _notify_kicked(self, kicked_id: str, new_controller_id: str) -> None:
        if self.kick_notifier is None:
            logger.debug(f"No kick notifier configured, '{kicked_id}' will not be told about '{new_controller_id}'")
            return

        try:
            await self.kick_notifier(kicked_id, new_controller_id)
        except Exception as e:
            # The lock already moved, a lost notification is not rolled back
            logger.error(f"Error sending kick notification | Kicked: '{kicked_id}' | Error: {str(e)}")
