"""
Synth-side reconnection supervisor.

Keeps a synth attached to whichever controller currently holds the lock:
it re-queries the relay after an unexpected close, periodically while
disconnected, and follows controller hand-offs.
"""

from __future__ import annotations

from typing import Callable

from loguru import logger

from synthrelay.peer.scheduler import Scheduler, TimerHandle

HANDOFF_CLOSE_DELAY_SECONDS = 0.5
HANDOFF_CONNECT_DELAY_SECONDS = 0.5


class ReconnectionSupervisor:
    """
    Decides when a synth asks the relay for the controller and when it
    starts a handshake.

    Args:
        scheduler (Scheduler): Clock and timers.
        request_controller (callable): Sends `get-controller` to the relay.
        connect (callable): Starts a handshake with the given controller id.
        close_connection (callable): Tears down the current peer connection.
        backoff_seconds (float): Wait after an unexpected close.
        check_seconds (float): Period of the reconnection check.
        refresh_seconds (float): Period of the controller refresh while
            disconnected.
        handshake_timeout_seconds (float): How long a started handshake may
            take before it counts as failed.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        request_controller: Callable[[], None],
        connect: Callable[[str], None],
        close_connection: Callable[[], None],
        backoff_seconds: float = 2.0,
        check_seconds: float = 10.0,
        refresh_seconds: float = 30.0,
        handshake_timeout_seconds: float = 15.0,
    ) -> None:
        self.scheduler = scheduler
        self.request_controller = request_controller
        self.connect = connect
        self.close_connection = close_connection
        self.backoff_seconds = backoff_seconds
        self.check_seconds = check_seconds
        self.refresh_seconds = refresh_seconds
        self.handshake_timeout_seconds = handshake_timeout_seconds

        self.target_controller_id: str | None = None
        self.connected: bool = False
        self.attempt_in_progress: bool = False
        self.attempted_controller_id: str | None = None
        self.user_disconnected: bool = False
        self.handoff_pending: bool = False

        self._timers: list[TimerHandle] = []
        self._handshake_timer: TimerHandle | None = None

    def start(self) -> None:
        """Ask for the controller now and start the periodic checks"""
        if not self._timers:
            self._timers.append(self.scheduler.call_every(self.check_seconds, self.check))
            self._timers.append(self.scheduler.call_every(self.refresh_seconds, self.refresh))
        self._request_controller()

    def stop(self) -> None:
        for timer in self._timers:
            timer.cancel()
        self._timers.clear()
        self._cancel_handshake_timer()

    def on_controller_info(self, controller_id: str | None) -> bool:
        """
        The relay answered `get-controller`.

        Returns:
            bool: True if a handshake was started.
        """
        if self.user_disconnected:
            logger.debug("Ignoring controller info, disconnected by user")
            return False

        if controller_id is None:
            logger.debug("No active controller")
            self.target_controller_id = None
            return False

        if self.connected and self.target_controller_id == controller_id:
            return False

        if self.attempt_in_progress or self.attempted_controller_id == controller_id:
            # One handshake attempt per discovered controller id
            return False

        self.target_controller_id = controller_id
        self.attempted_controller_id = controller_id
        self.attempt_in_progress = True
        logger.info(f"Connecting to controller | Controller: '{controller_id}'")
        self._cancel_handshake_timer()
        self._handshake_timer = self.scheduler.call_later(
            self.handshake_timeout_seconds,
            lambda: self._on_handshake_timeout(controller_id),
        )
        self.connect(controller_id)
        return True

    def on_connected(self, controller_id: str) -> None:
        self._cancel_handshake_timer()
        self.target_controller_id = controller_id
        self.connected = True
        self.attempt_in_progress = False

    def on_attempt_failed(self) -> None:
        """The handshake could not be completed; allow a new attempt after backoff"""
        self._cancel_handshake_timer()
        if not self.attempt_in_progress:
            return
        self.attempt_in_progress = False
        self.scheduler.call_later(self.backoff_seconds, self._after_backoff)

    def on_channel_closed(self) -> None:
        """
        The data channel to the controller closed.

        Outside a user disconnect or hand-off this clears the target and
        re-queries the relay after the backoff.
        """
        self.connected = False

        if self.user_disconnected or self.handoff_pending:
            return

        logger.info(f"Controller connection lost | Controller: '{self.target_controller_id}'")
        self.target_controller_id = None
        self.attempt_in_progress = False
        self.scheduler.call_later(self.backoff_seconds, self._after_backoff)

    def handoff(self, new_controller_id: str) -> None:
        """Leave the current controller and connect to `new_controller_id`"""
        if self.user_disconnected:
            return

        logger.info(f"Controller hand-off | From: '{self.target_controller_id}' | To: '{new_controller_id}'")
        self.handoff_pending = True
        self.scheduler.call_later(HANDOFF_CLOSE_DELAY_SECONDS, self._handoff_close)
        self.scheduler.call_later(
            HANDOFF_CLOSE_DELAY_SECONDS + HANDOFF_CONNECT_DELAY_SECONDS,
            lambda: self._handoff_connect(new_controller_id),
        )

    def user_disconnect(self) -> None:
        """Disconnect and stay disconnected until `manual_reconnect`"""
        self.user_disconnected = True
        self._cancel_handshake_timer()
        self.connected = False
        self.attempt_in_progress = False
        self.target_controller_id = None
        self.close_connection()

    def manual_reconnect(self) -> None:
        self.user_disconnected = False
        self.attempted_controller_id = None
        self.attempt_in_progress = False
        self._request_controller()

    def check(self) -> None:
        """Periodic reconnection check"""
        if self.connected or self.user_disconnected or self.attempt_in_progress or self.handoff_pending:
            return

        if self.target_controller_id is not None:
            self.attempted_controller_id = None
            self.on_controller_info(self.target_controller_id)
            return

        self._request_controller()

    def refresh(self) -> None:
        """Periodic controller refresh while disconnected"""
        if self.connected or self.user_disconnected or self.handoff_pending:
            return
        self._request_controller()

    def _after_backoff(self) -> None:
        self.attempt_in_progress = False
        self.attempted_controller_id = None
        if self.connected or self.user_disconnected:
            return
        self._request_controller()

    def _on_handshake_timeout(self, controller_id: str) -> None:
        self._handshake_timer = None
        if self.connected or not self.attempt_in_progress:
            return
        logger.warning(f"Handshake timed out | Controller: '{controller_id}' | Timeout: {self.handshake_timeout_seconds}s")
        self.close_connection()
        self.on_attempt_failed()

    def _cancel_handshake_timer(self) -> None:
        if self._handshake_timer is not None:
            self._handshake_timer.cancel()
            self._handshake_timer = None

    def _handoff_close(self) -> None:
        self._cancel_handshake_timer()
        self.connected = False
        self.close_connection()

    def _handoff_connect(self, new_controller_id: str) -> None:
        self.handoff_pending = False
        self.attempt_in_progress = False
        self.attempted_controller_id = None
        self.target_controller_id = None
        self.on_controller_info(new_controller_id)

    def _request_controller(self) -> None:
        try:
            self.request_controller()
        except Exception as e:
            logger.warning(f"Controller request failed | Error: {str(e)}")
