"""
Controller-side liveness verification of synth data channels.

Each synth connection moves through CONNECTING -> OPEN -> VERIFIED, drops to
STALE when a ping goes unanswered, and ends DISCONNECTED once nothing has
been heard for longer than the connection timeout.
"""

from __future__ import annotations

import enum
import random
from dataclasses import dataclass
from typing import Any, Callable

from loguru import logger

from synthrelay.peer.data_channel import (
    DataChannel,
    parse_pong_timestamp,
    ping_message,
    self_test_message,
)
from synthrelay.peer.scheduler import Scheduler, TimerHandle

PLACEHOLDER_LATENCY_MS = 100

DisconnectedCallback = Callable[[str, list[str]], None]


class LivenessState(str, enum.Enum):
    CONNECTING = "connecting"
    OPEN = "open"
    VERIFIED = "verified"
    STALE = "stale"
    DISCONNECTED = "disconnected"


@dataclass
class PeerConnectionState:
    peer_id: str
    handshake_channel: Any = None
    data_channel: DataChannel | None = None
    connected: bool = False
    verified: bool = False
    last_ping_sent_at: int | None = None
    last_pong_at: int | None = None
    latency_ms: int | None = None
    latency_stale: bool = False
    state: LivenessState = LivenessState.CONNECTING
    ping_outstanding: bool = False


class LivenessVerifier:
    """
    Pings every open synth channel and tracks latency and staleness.

    Args:
        scheduler (Scheduler): Clock and timers.
        on_disconnected (callable): Called once per lost peer with the peer id
            and the ids still connected.
        ping_interval_ms (int): Minimum quiet time before a new ping.
        pong_timeout_ms (int): Time a ping may stay unanswered before the
            latency is flagged stale.
        connection_timeout_ms (int): Quiet time after which the peer is lost.
        verification_tick_ms (int): Period of the verification loop.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        on_disconnected: DisconnectedCallback | None = None,
        ping_interval_ms: int = 2000,
        pong_timeout_ms: int = 2000,
        connection_timeout_ms: int = 5000,
        verification_tick_ms: int = 1000,
        rng: random.Random | None = None,
    ) -> None:
        if connection_timeout_ms <= ping_interval_ms:
            raise ValueError("connection_timeout_ms must be greater than ping_interval_ms")

        self.scheduler = scheduler
        self.on_disconnected = on_disconnected
        self.ping_interval_ms = ping_interval_ms
        self.pong_timeout_ms = pong_timeout_ms
        self.connection_timeout_ms = connection_timeout_ms
        self.verification_tick_ms = verification_tick_ms
        self.rng = rng or random.Random()

        self.peers: dict[str, PeerConnectionState] = {}
        self._tick_timer: TimerHandle | None = None
        self._pong_timers: dict[str, TimerHandle] = {}

    def start(self) -> None:
        """Start the periodic verification loop"""
        if self._tick_timer is None:
            self._tick_timer = self.scheduler.call_every(self.verification_tick_ms / 1000, self.tick)

    def close(self) -> None:
        """Stop every timer; peer records are kept for inspection"""
        if self._tick_timer is not None:
            self._tick_timer.cancel()
            self._tick_timer = None

        for timer in self._pong_timers.values():
            timer.cancel()
        self._pong_timers.clear()

    def add_peer(
        self,
        peer_id: str,
        data_channel: DataChannel | None = None,
        handshake_channel: Any = None,
    ) -> PeerConnectionState:
        self._cancel_pong_timer(peer_id)
        peer = PeerConnectionState(
            peer_id=peer_id,
            data_channel=data_channel,
            handshake_channel=handshake_channel,
        )
        self.peers[peer_id] = peer
        return peer

    def remove_peer(self, peer_id: str) -> PeerConnectionState | None:
        self._cancel_pong_timer(peer_id)
        return self.peers.pop(peer_id, None)

    def live_peer_ids(self) -> list[str]:
        return [peer_id for peer_id, peer in self.peers.items() if peer.connected]

    def mark_open(self, peer_id: str, data_channel: DataChannel | None = None) -> None:
        """
        The data channel to `peer_id` opened: the peer counts as connected,
        its quiet time starts now and it is pinged right away.
        """
        peer = self.peers.get(peer_id) or self.add_peer(peer_id)
        if data_channel is not None:
            peer.data_channel = data_channel

        peer.connected = True
        peer.verified = False
        peer.state = LivenessState.OPEN
        peer.last_pong_at = self.scheduler.now_ms()
        peer.ping_outstanding = False
        logger.debug(f"Data channel open | Peer: '{peer_id}'")

        self.ping(peer_id)

    def ping(self, peer_id: str) -> bool:
        """
        Send `PING:<now>` to the peer.

        Falls back to a test ping when the channel is not ready.

        Returns:
            bool: True if a real ping went out.
        """
        peer = self.peers.get(peer_id)
        if peer is None:
            return False

        if peer.data_channel is None or not peer.data_channel.is_open:
            logger.debug(f"Cannot ping, data channel not ready | Peer: '{peer_id}'")
            self.send_test_ping(peer_id)
            return False

        now = self.scheduler.now_ms()
        try:
            peer.data_channel.send(ping_message(now))
        except Exception as e:
            logger.warning(f"Ping send failed | Peer: '{peer_id}' | Error: {str(e)}")
            return False

        peer.last_ping_sent_at = now
        peer.ping_outstanding = True

        self._cancel_pong_timer(peer_id)
        self._pong_timers[peer_id] = self.scheduler.call_later(
            self.pong_timeout_ms / 1000,
            lambda: self._on_pong_timeout(peer_id, now),
        )
        return True

    def send_test_ping(self, peer_id: str) -> int | None:
        """
        Send `TEST:<now>` and record a synthetic, non-stale latency of
        10 to 109 ms.

        Returns:
            int | None: The synthetic latency, None if nothing was sent.
        """
        peer = self.peers.get(peer_id)
        if peer is None or peer.data_channel is None or not peer.data_channel.is_open:
            logger.debug(f"Cannot send test ping, data channel not ready | Peer: '{peer_id}'")
            return None

        try:
            peer.data_channel.send(self_test_message(self.scheduler.now_ms()))
        except Exception as e:
            logger.warning(f"Test ping send failed | Peer: '{peer_id}' | Error: {str(e)}")
            return None

        peer.latency_ms = self.rng.randint(10, 109)
        peer.latency_stale = False
        return peer.latency_ms

    def handle_pong(self, peer_id: str, message: str) -> int | None:
        """
        Process a message containing `PONG:`.

        Returns:
            int | None: The measured latency, or None if the pong carried no
            timestamp (the latency is then flagged stale).
        """
        peer = self.peers.get(peer_id)
        if peer is None:
            return None

        if peer.state == LivenessState.DISCONNECTED:
            # Only `mark_open` brings a lost peer back
            logger.debug(f"Late pong from a disconnected peer ignored | Peer: '{peer_id}'")
            return None

        timestamp = parse_pong_timestamp(message)
        if timestamp is None:
            logger.debug(f"Pong without timestamp | Peer: '{peer_id}' | Message: {message[:50]}")
            self._mark_stale(peer)
            return None

        now = self.scheduler.now_ms()
        self._cancel_pong_timer(peer_id)

        peer.latency_ms = now - timestamp
        peer.latency_stale = False
        peer.last_pong_at = now
        peer.ping_outstanding = False
        peer.verified = True
        peer.connected = True
        peer.state = LivenessState.VERIFIED
        logger.debug(f"Latency measured | Peer: '{peer_id}' | Latency: {peer.latency_ms}ms")
        return peer.latency_ms

    def mark_closed(self, peer_id: str) -> None:
        """The channel reported close; report the loss like a timeout would"""
        peer = self.peers.get(peer_id)
        if peer is not None:
            self._disconnect(peer)

    def tick(self) -> None:
        """
        One verification pass: ping quiet peers and drop the ones silent
        for longer than the connection timeout.
        """
        now = self.scheduler.now_ms()

        for peer in list(self.peers.values()):
            if not peer.connected:
                continue

            quiet_for = now - (peer.last_pong_at or 0)

            if quiet_for > self.ping_interval_ms and not peer.ping_outstanding:
                self.ping(peer.peer_id)

            if quiet_for > self.connection_timeout_ms:
                logger.info(f"Connection timeout | Peer: '{peer.peer_id}' | Quiet for: {quiet_for}ms")
                self._disconnect(peer)

    def _on_pong_timeout(self, peer_id: str, sent_at: int) -> None:
        self._pong_timers.pop(peer_id, None)
        peer = self.peers.get(peer_id)
        if peer is None or not peer.ping_outstanding or peer.last_ping_sent_at != sent_at:
            return

        peer.ping_outstanding = False
        logger.debug(f"Ping timed out | Peer: '{peer_id}' | Sent at: {sent_at}")
        self._mark_stale(peer)

    def _mark_stale(self, peer: PeerConnectionState) -> None:
        if not peer.latency_ms or peer.latency_ms <= 0:
            peer.latency_ms = PLACEHOLDER_LATENCY_MS
        peer.latency_stale = True
        if peer.state != LivenessState.DISCONNECTED:
            peer.state = LivenessState.STALE

    def _disconnect(self, peer: PeerConnectionState) -> None:
        if not peer.connected:
            return

        self._cancel_pong_timer(peer.peer_id)
        peer.connected = False
        peer.verified = False
        peer.ping_outstanding = False
        peer.state = LivenessState.DISCONNECTED

        live_peers = self.live_peer_ids()
        logger.info(f"Peer marked disconnected | Peer: '{peer.peer_id}' | Live peers: {len(live_peers)}")

        if self.on_disconnected is not None:
            self.on_disconnected(peer.peer_id, live_peers)

    def _cancel_pong_timer(self, peer_id: str) -> None:
        timer = self._pong_timers.pop(peer_id, None)
        if timer is not None:
            timer.cancel()
