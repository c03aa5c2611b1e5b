from .connection_registry import ConnectionRegistry, PeerSocket, WebSocketPeerSocket
from .signaling_relay import DELIVERED, DROPPED, QUEUED, RelaySession, SignalingRelay

__all__ = [
    "ConnectionRegistry",
    "DELIVERED",
    "DROPPED",
    "PeerSocket",
    "QUEUED",
    "RelaySession",
    "SignalingRelay",
    "WebSocketPeerSocket",
]
