"""
Synth peer session.

Answers liveness pings, applies the controller's parameters through an
engine callback and hands control changes to the reconnection supervisor.
"""

from __future__ import annotations

from typing import Any, Callable

from loguru import logger

from synthrelay.peer.data_channel import (
    PING_PREFIX,
    TEST_PREFIX,
    DataChannel,
    decode_message,
    echo_reply,
    pong_reply,
)
from synthrelay.peer.reconnection import ReconnectionSupervisor
from synthrelay.peer.synth_params import DEFAULT_SYNTH_PARAMS, OSCILLATOR_ENABLED, SYNTH_PARAM_NAMES

ParamCallback = Callable[[str, Any], None]


class SynthSession:
    """
    One synth's view of its controller connection.

    Args:
        synth_id (str): This synth's peer id.
        supervisor (ReconnectionSupervisor): Follows controller changes.
        on_param (callable, optional): Engine hook for parameter changes,
            notes arrive as `oscillatorEnabled` and `frequency` changes.
    """

    def __init__(
        self,
        synth_id: str,
        supervisor: ReconnectionSupervisor,
        on_param: ParamCallback | None = None,
    ) -> None:
        self.synth_id = synth_id
        self.supervisor = supervisor
        self.on_param = on_param

        self.controller_id: str | None = None
        self.channel: DataChannel | None = None
        self.params: dict[str, Any] = dict(DEFAULT_SYNTH_PARAMS)
        self.is_muted = True
        self.audio_state = "disabled"
        self.note_active = False

    def attach_channel(self, controller_id: str, channel: DataChannel) -> None:
        self.controller_id = controller_id
        self.channel = channel

    def on_channel_open(self) -> None:
        """Report the audio state and ask the controller for its parameters"""
        if self.controller_id is not None:
            self.supervisor.on_connected(self.controller_id)
        logger.info(f"Connected to controller | Synth: '{self.synth_id}' | Controller: '{self.controller_id}'")
        self.send_audio_state()
        self._send({"type": "request_current_state"})

    def on_channel_close(self) -> None:
        logger.info(f"Controller channel closed | Synth: '{self.synth_id}' | Controller: '{self.controller_id}'")
        self.channel = None
        self.supervisor.on_channel_closed()

    def on_channel_message(self, raw: str) -> None:
        if raw.startswith(PING_PREFIX):
            self._send_raw(pong_reply(raw))
            return

        if raw.startswith(TEST_PREFIX):
            self._send_raw(echo_reply(raw))
            return

        message = decode_message(raw)
        if message is None:
            logger.debug(f"Unrecognised data channel frame | Synth: '{self.synth_id}' | Message: {raw[:50]}")
            return

        message_type = message.get("type")

        if message_type == "synth_param":
            self.apply_param(message.get("param"), message.get("value"))
        elif message_type == "note_on":
            frequency = message.get("frequency")
            if frequency:
                self.apply_param("frequency", frequency)
            self.apply_param(OSCILLATOR_ENABLED, True)
        elif message_type == "note_off":
            self.apply_param(OSCILLATOR_ENABLED, False)
        elif message_type == "controller_handoff":
            new_controller_id = message.get("newControllerId")
            if new_controller_id:
                self.supervisor.handoff(new_controller_id)
        else:
            logger.debug(f"Unhandled data channel message | Synth: '{self.synth_id}' | Type: {message_type}")

    def apply_param(self, param: str | None, value: Any) -> None:
        if param not in SYNTH_PARAM_NAMES:
            logger.warning(f"Unknown synth parameter | Synth: '{self.synth_id}' | Param: {param}")
            return

        self.params[param] = value
        if param == OSCILLATOR_ENABLED:
            self.note_active = bool(value)
            if self.note_active and self.is_muted:
                # Note requested before audio is enabled, let the controller know
                self.send_audio_state()

        if self.on_param is not None:
            self.on_param(param, value)

    def set_audio_enabled(self, enabled: bool) -> None:
        """The local audio output was enabled or muted"""
        self.is_muted = not enabled
        self.audio_state = "running" if enabled else "disabled"
        self.send_audio_state()

    def send_audio_state(self) -> None:
        self._send({
            "type": "audio_state",
            "isMuted": self.is_muted,
            "audioState": self.audio_state,
            "pendingNote": self.note_active and self.is_muted,
        })

    def _send(self, message: dict[str, Any]) -> bool:
        if self.channel is None or not self.channel.is_open:
            return False
        try:
            self.channel.send_json(message)
        except Exception as e:
            logger.warning(f"Data channel send failed | Synth: '{self.synth_id}' | Type: {message.get('type')} | Error: {str(e)}")
            return False
        return True

    def _send_raw(self, message: str) -> None:
        if self.channel is None or not self.channel.is_open:
            return
        try:
            self.channel.send(message)
        except Exception as e:
            logger.warning(f"Ping reply failed | Synth: '{self.synth_id}' | Error: {str(e)}")
