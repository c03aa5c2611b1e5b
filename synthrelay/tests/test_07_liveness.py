import random

import pytest

from synthrelay.peer.data_channel import parse_pong_timestamp
from synthrelay.peer.liveness import PLACEHOLDER_LATENCY_MS, LivenessState, LivenessVerifier
from synthrelay.tests.conftest import FakeDataChannel, ManualScheduler, ValueStorage

SYNTH = ValueStorage.synth_1


class TestPongParsing:
    @pytest.mark.parametrize(
        "message, expected",
        [
            ("PONG:1000", 1000),
            ("prefix PONG:1234 suffix", 1234),
            ("PONG: 42", 42),
            ("PONG:abc", None),
            ("PING:1000", None),
        ],
    )
    def test_first_digit_run_after_marker(self, message, expected):
        assert parse_pong_timestamp(message) == expected


class TestLivenessVerifier:
    """Controller-side liveness state machine"""

    @pytest.fixture
    def lost(self):
        return []

    @pytest.fixture
    def verifier(self, scheduler: ManualScheduler, lost):
        verifier = LivenessVerifier(
            scheduler=scheduler,
            on_disconnected=lambda peer_id, live: lost.append((peer_id, live)),
            rng=random.Random(7),
        )
        verifier.start()
        return verifier

    @pytest.fixture
    def channel(self):
        return FakeDataChannel()

    def open_peer(self, verifier: LivenessVerifier, channel: FakeDataChannel, peer_id: str = SYNTH):
        verifier.add_peer(peer_id, data_channel=channel)
        verifier.mark_open(peer_id)
        return verifier.peers[peer_id]

    def test_rejects_timeout_not_above_ping_interval(self, scheduler):
        with pytest.raises(ValueError):
            LivenessVerifier(scheduler=scheduler, ping_interval_ms=2000, connection_timeout_ms=2000)

    def test_open_sends_an_immediate_ping(self, verifier, channel, scheduler):
        peer = self.open_peer(verifier, channel)

        assert peer.state == LivenessState.OPEN
        assert peer.connected is True
        assert peer.last_pong_at == scheduler.now
        assert channel.sent == ["PING:1000"]

    def test_latency_from_pong(self, verifier, channel, scheduler):
        peer = self.open_peer(verifier, channel)

        scheduler.advance(50)
        latency = verifier.handle_pong(SYNTH, "PONG:1000")

        assert latency == 50
        assert peer.latency_ms == 50
        assert peer.latency_stale is False
        assert peer.verified is True
        assert peer.state == LivenessState.VERIFIED

    def test_unanswered_ping_marks_stale_with_placeholder(self, verifier, channel, scheduler):
        peer = self.open_peer(verifier, channel)

        scheduler.advance(2000)

        assert peer.state == LivenessState.STALE
        assert peer.latency_stale is True
        assert peer.latency_ms == PLACEHOLDER_LATENCY_MS

    def test_stale_keeps_previous_latency(self, verifier, channel, scheduler):
        peer = self.open_peer(verifier, channel)
        scheduler.advance(30)
        verifier.handle_pong(SYNTH, "PONG:1000")

        # Next ping goes out at 4000 and times out at 6000
        scheduler.advance(5000)

        assert peer.latency_ms == 30
        assert peer.latency_stale is True
        assert peer.state == LivenessState.STALE

    def test_pong_without_digits_is_stale(self, verifier, channel):
        peer = self.open_peer(verifier, channel)

        assert verifier.handle_pong(SYNTH, "PONG:") is None
        assert peer.latency_stale is True
        assert peer.latency_ms == PLACEHOLDER_LATENCY_MS

    def test_pings_repeat_while_quiet(self, verifier, channel, scheduler):
        self.open_peer(verifier, channel)

        scheduler.advance(4500)

        pings = [message for message in channel.sent if message.startswith("PING:")]
        assert len(pings) >= 2

    def test_answered_pings_keep_peer_connected(self, verifier, channel, scheduler, lost):
        peer = self.open_peer(verifier, channel)

        for _ in range(10):
            scheduler.advance(1000)
            last_ping = [message for message in channel.sent if message.startswith("PING:")][-1]
            verifier.handle_pong(SYNTH, last_ping.replace("PING:", "PONG:"))

        assert peer.connected is True
        assert lost == []

    def test_disconnected_exactly_once(self, verifier, channel, scheduler, lost):
        other_channel = FakeDataChannel()
        self.open_peer(verifier, channel)
        self.open_peer(verifier, other_channel, peer_id=ValueStorage.synth_2)

        # Keep synth-2 alive while synth-1 goes silent
        for _ in range(12):
            scheduler.advance(1000)
            pings = [message for message in other_channel.sent if message.startswith("PING:")]
            verifier.handle_pong(ValueStorage.synth_2, pings[-1].replace("PING:", "PONG:"))

        assert lost == [(SYNTH, [ValueStorage.synth_2])]
        assert verifier.peers[SYNTH].state == LivenessState.DISCONNECTED
        assert verifier.live_peer_ids() == [ValueStorage.synth_2]

    def test_late_pong_does_not_revive_a_lost_peer(self, verifier, channel, scheduler, lost):
        self.open_peer(verifier, channel)
        first_ping = channel.sent[0]

        scheduler.advance(6000)
        assert lost == [(SYNTH, [])]

        assert verifier.handle_pong(SYNTH, first_ping.replace("PING:", "PONG:")) is None
        scheduler.advance(10_000)

        peer = verifier.peers[SYNTH]
        assert peer.state == LivenessState.DISCONNECTED
        assert peer.connected is False
        assert lost == [(SYNTH, [])]

        verifier.mark_open(SYNTH)
        assert peer.state == LivenessState.OPEN

    def test_channel_close_reports_once(self, verifier, channel, lost):
        self.open_peer(verifier, channel)

        verifier.mark_closed(SYNTH)
        verifier.mark_closed(SYNTH)

        assert lost == [(SYNTH, [])]

    def test_closed_channel_falls_back_to_test_ping(self, verifier, scheduler):
        channel = FakeDataChannel(open=False)
        verifier.add_peer(SYNTH, data_channel=channel)

        assert verifier.ping(SYNTH) is False
        assert channel.sent == []

    def test_test_ping_sets_plausible_latency(self, verifier, channel):
        peer = self.open_peer(verifier, channel)

        latency = verifier.send_test_ping(SYNTH)

        assert 10 <= latency <= 109
        assert peer.latency_stale is False
        assert channel.sent[-1] == "TEST:1000"

    def test_close_cancels_timers(self, verifier, channel, scheduler):
        self.open_peer(verifier, channel)

        verifier.close()

        assert scheduler.pending() == 0
