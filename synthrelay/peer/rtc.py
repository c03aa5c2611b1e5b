"""
aiortc runtime for controller and synth peers.

Wires the peer sessions to real peer connections: handshakes go through
the relay's control socket, parameters and liveness pings through an RTC data
channel. Needs the `rtc` extra.
"""

from __future__ import annotations

import asyncio
from typing import Any

import httpx
from aiortc import (
    RTCConfiguration,
    RTCDataChannel,
    RTCIceServer,
    RTCPeerConnection,
    RTCSessionDescription,
)
from aiortc.sdp import candidate_from_sdp
from loguru import logger

from synthrelay.api.controller.controller_lock import ControllerConflictError, ControllerOwnershipError
from synthrelay.api.ice.ice_servers_provider import FALLBACK_ICE_SERVERS
from synthrelay.api.models.config_model import Config
from synthrelay.peer.controller_session import ControllerSession
from synthrelay.peer.data_channel import DataChannel
from synthrelay.peer.liveness import LivenessVerifier
from synthrelay.peer.lock_client import LockClient
from synthrelay.peer.reconnection import ReconnectionSupervisor
from synthrelay.peer.scheduler import AsyncioScheduler
from synthrelay.peer.signaling_client import SignalingClient
from synthrelay.peer.synth_session import SynthSession

DATA_CHANNEL_LABEL = "synth"


class RTCDataChannelAdapter(DataChannel):
    """ Adapts an aiortc `RTCDataChannel` to `DataChannel` """

    def __init__(self, channel: RTCDataChannel) -> None:
        self.channel = channel

    @property
    def is_open(self) -> bool:
        return self.channel.readyState == "open"

    def send(self, message: str) -> None:
        self.channel.send(message)

    def close(self) -> None:
        self.channel.close()


def http_base_url(relay_url: str) -> str:
    """`ws://host:port/api/signal` -> `http://host:port`"""
    base = relay_url.split("/api/")[0]
    if base.startswith("wss://"):
        return "https://" + base[len("wss://"):]
    if base.startswith("ws://"):
        return "http://" + base[len("ws://"):]
    return base


async def fetch_ice_servers(base_url: str) -> list[dict[str, Any]]:
    try:
        async with httpx.AsyncClient(base_url=base_url, timeout=10.0) as client:
            response = await client.get("/api/ice-servers")
            response.raise_for_status()
            return response.json().get("iceServers") or FALLBACK_ICE_SERVERS
    except httpx.HTTPError as e:
        logger.warning(f"ICE server lookup failed, using fallback STUN | Error: {str(e)}")
        return FALLBACK_ICE_SERVERS


def build_configuration(ice_servers: list[dict[str, Any]]) -> RTCConfiguration:
    return RTCConfiguration(
        iceServers=[
            RTCIceServer(
                urls=server["urls"],
                username=server.get("username"),
                credential=server.get("credential"),
            )
            for server in ice_servers
        ]
    )


def description_payload(description: RTCSessionDescription) -> dict[str, str]:
    return {"type": description.type, "sdp": description.sdp}


async def add_remote_candidate(pc: RTCPeerConnection, data: dict[str, Any] | None) -> None:
    """Apply an `ice-candidate` payload sent by a browser or another peer"""
    if not data or not data.get("candidate"):
        return

    candidate_sdp = data["candidate"]
    if candidate_sdp.startswith("candidate:"):
        candidate_sdp = candidate_sdp[len("candidate:"):]

    candidate = candidate_from_sdp(candidate_sdp)
    candidate.sdpMid = data.get("sdpMid")
    candidate.sdpMLineIndex = data.get("sdpMLineIndex")
    await pc.addIceCandidate(candidate)


class ControllerPeer:
    """
    A controller process: holds the lock and answers synth offers.

    aiortc gathers every candidate before the local description is set, so
    the answer carries them all and no trickle candidates are sent.
    """

    def __init__(self, controller_id: str, relay_url: str, config: Config, session_id: str | None = None, force: bool = False) -> None:
        self.controller_id = controller_id
        self.relay_url = relay_url
        self.config = config
        self.force = force

        self.scheduler = AsyncioScheduler()
        self.signaling = SignalingClient(
            url=relay_url,
            peer_id=controller_id,
            on_message=self.on_signal,
            heartbeat_seconds=config.HEARTBEAT_SECONDS,
        )
        self.lock_client = LockClient(
            base_url=http_base_url(relay_url),
            controller_id=controller_id,
            session_id=session_id,
            user_id="dev-user-id" if config.DEV_MODE else None,
        )
        self.liveness = LivenessVerifier(
            scheduler=self.scheduler,
            ping_interval_ms=config.PING_INTERVAL_MS,
            pong_timeout_ms=config.PONG_TIMEOUT_MS,
            connection_timeout_ms=config.CONNECTION_TIMEOUT_MS,
            verification_tick_ms=config.VERIFICATION_TICK_MS,
        )
        self.session = ControllerSession(
            controller_id=controller_id,
            liveness=self.liveness,
            send_signal=self.signaling.send_soon,
            release_lock=self.lock_client.release,
            on_stopped=self._on_stopped,
        )

        self.peer_connections: dict[str, RTCPeerConnection] = {}
        self.rtc_configuration: RTCConfiguration | None = None
        self.stopped = asyncio.Event()

    async def run(self) -> None:
        self.rtc_configuration = build_configuration(await fetch_ice_servers(http_base_url(self.relay_url)))

        try:
            await self.lock_client.acquire(force=self.force)
        except ControllerConflictError as e:
            logger.error(f"Another controller is active | Active: '{e.current_owner}' | Use --force to take over")
            await self.lock_client.close()
            return

        self.liveness.start()
        signaling_task = asyncio.create_task(self.signaling.run())
        try:
            await self.stopped.wait()
        finally:
            await self.shutdown()
            await self.signaling.close()
            signaling_task.cancel()
            await asyncio.gather(signaling_task, return_exceptions=True)

    async def shutdown(self) -> None:
        self.liveness.close()
        self.scheduler.cancel_all()
        for pc in list(self.peer_connections.values()):
            await pc.close()
        self.peer_connections.clear()

        if self.session.active:
            try:
                await self.lock_client.release()
            except ControllerOwnershipError:
                pass
        await self.lock_client.close()

    async def on_signal(self, message: dict[str, Any]) -> None:
        if await self.session.handle_signal(message):
            return

        message_type = message.get("type")
        source = message.get("source")

        if message_type == "offer" and source:
            await self._answer(source, message.get("data") or {})
        elif message_type == "ice-candidate" and source in self.peer_connections:
            await add_remote_candidate(self.peer_connections[source], message.get("data"))

    async def _answer(self, synth_id: str, offer: dict[str, Any]) -> None:
        previous = self.peer_connections.pop(synth_id, None)
        if previous is not None:
            await previous.close()

        pc = RTCPeerConnection(configuration=self.rtc_configuration)
        self.peer_connections[synth_id] = pc

        @pc.on("datachannel")
        def on_datachannel(channel: RTCDataChannel) -> None:
            self.session.attach_channel(synth_id, RTCDataChannelAdapter(channel), handshake_channel=pc)

            @channel.on("message")
            def on_message(message: Any) -> None:
                if isinstance(message, str):
                    self.session.on_channel_message(synth_id, message)

            @channel.on("close")
            def on_close() -> None:
                self.session.on_channel_close(synth_id)

            # aiortc fires "datachannel" once the channel is usable
            self.session.on_channel_open(synth_id)

        @pc.on("connectionstatechange")
        async def on_connectionstatechange() -> None:
            if pc.connectionState in ("failed", "closed"):
                self.session.on_channel_close(synth_id)

        await pc.setRemoteDescription(RTCSessionDescription(sdp=offer.get("sdp"), type=offer.get("type", "offer")))
        await pc.setLocalDescription(await pc.createAnswer())
        self.signaling.send_soon({
            "type": "answer",
            "target": synth_id,
            "data": description_payload(pc.localDescription),
        })

    def _on_stopped(self, new_controller_id: str) -> None:
        logger.info(f"Controller stopped | New controller: '{new_controller_id}'")
        self.stopped.set()


class SynthPeer:
    """A synth process: follows the active controller and plays its parameters."""

    def __init__(self, synth_id: str, relay_url: str, config: Config, on_param=None) -> None:
        self.synth_id = synth_id
        self.relay_url = relay_url
        self.config = config

        self.scheduler = AsyncioScheduler()
        self.signaling = SignalingClient(
            url=relay_url,
            peer_id=synth_id,
            on_message=self.on_signal,
            heartbeat_seconds=config.HEARTBEAT_SECONDS,
        )
        self.supervisor = ReconnectionSupervisor(
            scheduler=self.scheduler,
            request_controller=self.signaling.request_controller,
            connect=self.connect,
            close_connection=self.close_connection,
            backoff_seconds=config.RECONNECT_BACKOFF_SECONDS,
            check_seconds=config.RECONNECT_CHECK_SECONDS,
            refresh_seconds=config.CONTROLLER_REFRESH_SECONDS,
            handshake_timeout_seconds=config.HANDSHAKE_TIMEOUT_SECONDS,
        )
        self.session = SynthSession(synth_id=synth_id, supervisor=self.supervisor, on_param=on_param)

        self.pc: RTCPeerConnection | None = None
        self.rtc_configuration: RTCConfiguration | None = None

    async def run(self) -> None:
        self.rtc_configuration = build_configuration(await fetch_ice_servers(http_base_url(self.relay_url)))
        signaling_task = asyncio.create_task(self.signaling.run())
        self.supervisor.start()
        try:
            await signaling_task
        finally:
            self.supervisor.stop()
            self.scheduler.cancel_all()
            if self.pc is not None:
                await self.pc.close()

    async def stop(self) -> None:
        self.supervisor.user_disconnect()
        await self.signaling.close()

    async def on_signal(self, message: dict[str, Any]) -> None:
        message_type = message.get("type")

        if message_type == "controller-info":
            self.supervisor.on_controller_info(message.get("controllerId"))
        elif message_type == "answer" and self.pc is not None:
            data = message.get("data") or {}
            await self.pc.setRemoteDescription(RTCSessionDescription(sdp=data.get("sdp"), type=data.get("type", "answer")))
        elif message_type == "ice-candidate" and self.pc is not None:
            await add_remote_candidate(self.pc, message.get("data"))

    def connect(self, controller_id: str) -> None:
        asyncio.ensure_future(self._connect(controller_id))

    def close_connection(self) -> None:
        pc, self.pc = self.pc, None
        if pc is not None:
            asyncio.ensure_future(pc.close())

    async def _connect(self, controller_id: str) -> None:
        if self.pc is not None:
            await self.pc.close()

        pc = RTCPeerConnection(configuration=self.rtc_configuration)
        self.pc = pc
        channel = pc.createDataChannel(DATA_CHANNEL_LABEL)
        adapter = RTCDataChannelAdapter(channel)
        self.session.attach_channel(controller_id, adapter)

        @pc.on("connectionstatechange")
        async def on_connectionstatechange() -> None:
            if pc.connectionState == "failed" and self.pc is pc and not self.supervisor.connected:
                logger.warning(f"Peer connection failed before the channel opened | Controller: '{controller_id}'")
                self.supervisor.on_attempt_failed()

        @channel.on("open")
        def on_open() -> None:
            self.session.on_channel_open()

        @channel.on("message")
        def on_message(message: Any) -> None:
            if isinstance(message, str):
                self.session.on_channel_message(message)

        @channel.on("close")
        def on_close() -> None:
            if self.session.channel is adapter:
                self.session.on_channel_close()

        try:
            await pc.setLocalDescription(await pc.createOffer())
        except Exception as e:
            logger.error(f"Offer creation failed | Controller: '{controller_id}' | Error: {str(e)}")
            self.supervisor.on_attempt_failed()
            return

        self.signaling.send_soon({
            "type": "offer",
            "target": controller_id,
            "data": description_payload(pc.localDescription),
        })
