import asyncio
import json

from synthrelay.peer.signaling_client import SignalingClient
from synthrelay.tests.conftest import ValueStorage, run

SYNTH = ValueStorage.synth_1
RELAY_URL = "ws://relay.test/api/signal"


class RecordingWebSocket:
    def __init__(self) -> None:
        self.sent: list[dict] = []

    async def send(self, raw: str) -> None:
        self.sent.append(json.loads(raw))


def signaling_client(**kwargs) -> SignalingClient:
    return SignalingClient(url=RELAY_URL, peer_id=SYNTH, on_message=lambda message: None, **kwargs)


class TestOutgoingBuffer:
    """Messages waiting for the control socket"""

    def test_repeated_controller_requests_keep_only_the_latest(self):
        client = signaling_client()

        for _ in range(10):
            client.request_controller()

        assert client.pending_messages() == [{"type": "get-controller"}]

    def test_connection_reports_are_replaced(self):
        client = signaling_client()
        offer = {"type": "offer", "target": ValueStorage.controller_a, "data": ValueStorage.offer_data}

        client.send_soon({"type": "controller-connections", "connections": [SYNTH]})
        client.send_soon(offer)
        client.send_soon({"type": "controller-connections", "connections": []})

        assert client.pending_messages() == [offer, {"type": "controller-connections", "connections": []}]

    def test_buffer_is_bounded(self):
        client = signaling_client(max_outgoing=3)

        for index in range(5):
            client.send_soon({"type": "ice-candidate", "target": ValueStorage.controller_a, "data": index})

        assert [message["data"] for message in client.pending_messages()] == [2, 3, 4]

    def test_writer_flushes_in_order(self):
        async def scenario():
            client = signaling_client()
            websocket = RecordingWebSocket()
            client.request_controller()
            client.send_soon({"type": "offer", "target": ValueStorage.controller_a, "data": {}})

            writer = asyncio.create_task(client._writer(websocket))
            for _ in range(5):
                await asyncio.sleep(0)

            client.send_soon({"type": "heartbeat"})
            for _ in range(5):
                await asyncio.sleep(0)

            writer.cancel()
            await asyncio.gather(writer, return_exceptions=True)
            return websocket.sent, client.pending_messages()

        sent, pending = run(scenario())

        assert [message["type"] for message in sent] == ["get-controller", "offer", "heartbeat"]
        assert pending == []
