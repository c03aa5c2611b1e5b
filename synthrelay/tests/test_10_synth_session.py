import json

import pytest

from synthrelay.peer.reconnection import ReconnectionSupervisor
from synthrelay.peer.synth_session import SynthSession
from synthrelay.tests.conftest import FakeDataChannel, ValueStorage

A = ValueStorage.controller_a
B = ValueStorage.controller_b


class TestSynthSession:
    """Synth side of the controller data channel"""

    @pytest.fixture
    def connects(self):
        return []

    @pytest.fixture
    def params(self):
        return []

    @pytest.fixture
    def supervisor(self, scheduler, connects):
        return ReconnectionSupervisor(
            scheduler=scheduler,
            request_controller=lambda: None,
            connect=connects.append,
            close_connection=lambda: None,
        )

    @pytest.fixture
    def session(self, supervisor, params):
        return SynthSession(
            synth_id=ValueStorage.synth_1,
            supervisor=supervisor,
            on_param=lambda param, value: params.append((param, value)),
        )

    @pytest.fixture
    def channel(self, session):
        channel = FakeDataChannel()
        session.attach_channel(A, channel)
        return channel

    def test_open_reports_audio_state_and_requests_state(self, session, channel, supervisor):
        session.on_channel_open()

        frames = [json.loads(frame) for frame in channel.sent]
        assert frames == [
            {"type": "audio_state", "isMuted": True, "audioState": "disabled", "pendingNote": False},
            {"type": "request_current_state"},
        ]
        assert supervisor.connected is True

    def test_ping_is_answered_with_pong(self, session, channel):
        session.on_channel_message("PING:1000")
        assert channel.sent == ["PONG:1000"]

    def test_test_ping_is_echoed(self, session, channel):
        session.on_channel_message("TEST:1000")
        assert channel.sent == ["ECHOED:TEST:1000"]

    def test_params_reach_the_engine(self, session, params):
        session.on_channel_message(json.dumps({"type": "synth_param", "param": "volume", "value": 0.3}))
        session.on_channel_message(json.dumps({"type": "synth_param", "param": "bogus", "value": 1}))

        assert params == [("volume", 0.3)]
        assert session.params["volume"] == 0.3

    def test_notes(self, session, params):
        session.on_channel_message(json.dumps({"type": "note_on", "frequency": 220.0}))
        session.on_channel_message(json.dumps({"type": "note_off"}))

        assert params == [("frequency", 220.0), ("oscillatorEnabled", True), ("oscillatorEnabled", False)]

    def test_muted_note_reports_pending(self, session, channel):
        session.on_channel_message(json.dumps({"type": "note_on", "frequency": 220.0}))

        assert json.loads(channel.sent[-1]) == {
            "type": "audio_state",
            "isMuted": True,
            "audioState": "disabled",
            "pendingNote": True,
        }

    def test_handoff_reaches_the_supervisor(self, session, channel, scheduler, connects, supervisor):
        supervisor.on_controller_info(A)
        session.on_channel_open()

        session.on_channel_message(json.dumps({"type": "controller_handoff", "newControllerId": B}))
        scheduler.advance(1000)

        assert connects == [A, B]
