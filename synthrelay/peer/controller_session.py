"""
Controller peer session.

Tracks every synth attached over a data channel, pushes parameter changes
to them and reacts to being replaced by another controller.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

from loguru import logger

from synthrelay.peer.data_channel import ECHOED_PREFIX, PONG_PREFIX, DataChannel, decode_message
from synthrelay.peer.liveness import LivenessVerifier
from synthrelay.peer.synth_params import DEFAULT_SYNTH_PARAMS, OSCILLATOR_ENABLED, ordered_state

SignalSender = Callable[[dict[str, Any]], None]
LockReleaser = Callable[[], Awaitable[Any]]


@dataclass
class SynthClientRecord:
    peer_id: str
    connected: bool = False
    verified: bool = False
    latency_ms: int | None = None
    latency_stale: bool = False
    synth_params: dict[str, Any] = field(default_factory=lambda: dict(DEFAULT_SYNTH_PARAMS))
    is_muted: bool = True
    audio_state: str = "unknown"
    pending_note: bool = False
    last_seen: int | None = None


class ControllerSession:
    """
    The controller side of a session with many synths.

    Args:
        controller_id (str): This controller's peer id.
        liveness (LivenessVerifier): Verifier for the synth channels; its
            disconnect callback is taken over by the session.
        send_signal (callable): Sends a control message to the relay.
        release_lock (callable, optional): Releases the controller lock,
            awaited on hand-off.
        on_stopped (callable, optional): Called once the session stopped
            acting as controller.
    """

    def __init__(
        self,
        controller_id: str,
        liveness: LivenessVerifier,
        send_signal: SignalSender,
        release_lock: LockReleaser | None = None,
        on_stopped: Callable[[str], None] | None = None,
    ) -> None:
        self.controller_id = controller_id
        self.liveness = liveness
        self.send_signal = send_signal
        self.release_lock = release_lock
        self.on_stopped = on_stopped

        self.clients: dict[str, SynthClientRecord] = {}
        self.channels: dict[str, DataChannel] = {}
        self.active = True

        self.liveness.on_disconnected = self._on_peer_lost

    # ------------------------------------------------------------------
    # Data channel lifecycle
    # ------------------------------------------------------------------

    def attach_channel(self, peer_id: str, channel: DataChannel, handshake_channel: Any = None) -> SynthClientRecord:
        record = self.clients.get(peer_id) or SynthClientRecord(peer_id=peer_id)
        self.clients[peer_id] = record
        self.channels[peer_id] = channel
        self.liveness.add_peer(peer_id, data_channel=channel, handshake_channel=handshake_channel)
        return record

    def on_channel_open(self, peer_id: str) -> None:
        record = self.clients.get(peer_id)
        if record is None:
            logger.warning(f"Open event for unknown synth | Peer: '{peer_id}'")
            return

        record.connected = True
        record.last_seen = self.liveness.scheduler.now_ms()
        self.liveness.mark_open(peer_id, self.channels.get(peer_id))
        self._sync_latency(peer_id)
        logger.info(f"Synth connected | Peer: '{peer_id}' | Synths: {len(self.live_peer_ids())}")
        self.report_connections()

    def on_channel_close(self, peer_id: str) -> None:
        record = self.clients.get(peer_id)
        if record is None:
            return
        # Reports through `_on_peer_lost` when the peer was still connected
        self.liveness.mark_closed(peer_id)
        record.connected = False
        record.verified = False

    def detach(self, peer_id: str) -> None:
        self.on_channel_close(peer_id)
        self.liveness.remove_peer(peer_id)
        self.channels.pop(peer_id, None)
        self.clients.pop(peer_id, None)

    def on_channel_message(self, peer_id: str, raw: str) -> None:
        record = self.clients.get(peer_id)
        if record is None:
            return
        record.last_seen = self.liveness.scheduler.now_ms()

        if PONG_PREFIX in raw:
            self.liveness.handle_pong(peer_id, raw)
            self._sync_latency(peer_id)
            return

        if raw.startswith(ECHOED_PREFIX):
            logger.debug(f"Test ping echoed | Peer: '{peer_id}' | Message: {raw[:50]}")
            return

        message = decode_message(raw)
        if message is None:
            logger.debug(f"Unrecognised data channel frame | Peer: '{peer_id}' | Message: {raw[:50]}")
            return

        message_type = message.get("type")

        if message_type == "audio_state":
            self._handle_audio_state(record, message)
        elif message_type == "request_current_state":
            self.send_current_state(peer_id)
        elif message_type == "synth_param":
            record.synth_params[message.get("param")] = message.get("value")
        elif message_type in ("note_on", "note_off"):
            record.synth_params[OSCILLATOR_ENABLED] = message_type == "note_on"
        else:
            logger.debug(f"Unhandled data channel message | Peer: '{peer_id}' | Type: {message_type}")

    # ------------------------------------------------------------------
    # Outgoing control
    # ------------------------------------------------------------------

    def set_param(self, param: str, value: Any, peer_id: str | None = None) -> int:
        """
        Change a synth parameter on one synth, or on all when `peer_id` is None.

        Returns:
            int: Number of synths the change was sent to.
        """
        targets = [peer_id] if peer_id is not None else list(self.clients)
        sent = 0
        for target in targets:
            record = self.clients.get(target)
            if record is None:
                continue
            record.synth_params[param] = value
            if self._send(target, {"type": "synth_param", "param": param, "value": value}):
                sent += 1
        return sent

    def note_on(self, frequency: float, peer_id: str | None = None) -> int:
        targets = [peer_id] if peer_id is not None else list(self.clients)
        sent = 0
        for target in targets:
            record = self.clients.get(target)
            if record is None:
                continue
            record.synth_params[OSCILLATOR_ENABLED] = True
            record.synth_params["frequency"] = frequency
            if self._send(target, {"type": "note_on", "frequency": frequency}):
                sent += 1
        return sent

    def note_off(self, peer_id: str | None = None) -> int:
        targets = [peer_id] if peer_id is not None else list(self.clients)
        sent = 0
        for target in targets:
            record = self.clients.get(target)
            if record is None:
                continue
            record.synth_params[OSCILLATOR_ENABLED] = False
            if self._send(target, {"type": "note_off"}):
                sent += 1
        return sent

    def send_current_state(self, peer_id: str) -> int:
        """Replay the synth's parameters, `oscillatorEnabled` first when on"""
        record = self.clients.get(peer_id)
        if record is None:
            return 0

        sent = 0
        for param, value in ordered_state(record.synth_params):
            if self._send(peer_id, {"type": "synth_param", "param": param, "value": value}):
                sent += 1
        logger.debug(f"Replayed synth state | Peer: '{peer_id}' | Params: {sent}")
        return sent

    def live_peer_ids(self) -> list[str]:
        return self.liveness.live_peer_ids()

    def snapshot(self) -> list[SynthClientRecord]:
        """Client records with the latest liveness readings copied in"""
        for peer_id in self.clients:
            self._sync_latency(peer_id)
        return list(self.clients.values())

    def report_connections(self) -> None:
        """Tell the relay which synths are live over data channels"""
        self.send_signal({"type": "controller-connections", "connections": self.live_peer_ids()})

    # ------------------------------------------------------------------
    # Relay messages
    # ------------------------------------------------------------------

    async def handle_signal(self, message: dict[str, Any]) -> bool:
        """
        Handle the control messages addressed to the controller role.

        Returns:
            bool: True if the message was consumed here; handshake messages
            are left to the RTC layer.
        """
        message_type = message.get("type")

        if message_type == "controller-kicked":
            new_controller_id = message.get("newControllerId")
            if new_controller_id:
                await self.handoff(new_controller_id)
            return True

        if message_type == "controller-conflict":
            logger.warning(f"Controller lock held elsewhere | Controller: '{self.controller_id}' | Active: '{message.get('controllerId')}'")
            return True

        return False

    async def handoff(self, new_controller_id: str) -> int:
        """
        Step down in favour of `new_controller_id`: every open synth channel
        gets `controller_handoff`, the lock is released and the session stops.

        Returns:
            int: Number of synths notified; 0 when already stopped.
        """
        if not self.active:
            return 0
        self.active = False

        notified = 0
        for peer_id, channel in list(self.channels.items()):
            if not channel.is_open:
                continue
            if self._send(peer_id, {"type": "controller_handoff", "newControllerId": new_controller_id}):
                notified += 1
        logger.info(f"Controller kicked, hand-off sent | Controller: '{self.controller_id}' | New: '{new_controller_id}' | Synths notified: {notified}")

        if self.release_lock is not None:
            try:
                await self.release_lock()
            except Exception as e:
                # After a forced takeover the lock already belongs to the new controller
                logger.debug(f"Lock release after hand-off refused | Controller: '{self.controller_id}' | Error: {str(e)}")

        self.liveness.close()
        if self.on_stopped is not None:
            self.on_stopped(new_controller_id)
        return notified

    # ------------------------------------------------------------------

    def _handle_audio_state(self, record: SynthClientRecord, message: dict[str, Any]) -> None:
        was_muted = record.is_muted
        record.is_muted = bool(message.get("isMuted", record.is_muted))
        record.audio_state = message.get("audioState", record.audio_state)
        record.pending_note = bool(message.get("pendingNote", False))

        if was_muted and not record.is_muted and record.synth_params.get(OSCILLATOR_ENABLED):
            # The synth just unmuted; resend so it starts the note
            self._send(record.peer_id, {"type": "synth_param", "param": OSCILLATOR_ENABLED, "value": True})

    def _sync_latency(self, peer_id: str) -> None:
        record = self.clients.get(peer_id)
        peer = self.liveness.peers.get(peer_id)
        if record is None or peer is None:
            return
        record.verified = peer.verified
        record.latency_ms = peer.latency_ms
        record.latency_stale = peer.latency_stale

    def _on_peer_lost(self, peer_id: str, live_peers: list[str]) -> None:
        record = self.clients.get(peer_id)
        if record is not None:
            record.connected = False
            record.verified = False
        self.send_signal({"type": "controller-connections", "connections": live_peers})

    def _send(self, peer_id: str, message: dict[str, Any]) -> bool:
        channel = self.channels.get(peer_id)
        if channel is None or not channel.is_open:
            return False
        try:
            channel.send_json(message)
        except Exception as e:
            logger.warning(f"Data channel send failed | Peer: '{peer_id}' | Type: {message.get('type')} | Error: {str(e)}")
            return False
        return True
