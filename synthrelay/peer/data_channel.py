"""
Peer-to-peer data channel interface and message helpers.

Synth parameters travel as JSON objects; liveness pings travel as bare
strings (`PING:<ts>`, `PONG:<ts>`, `TEST:<ts>`, `ECHOED:TEST:<ts>`).
"""

from __future__ import annotations

import json
import re
from abc import ABC, abstractmethod
from typing import Any

PING_PREFIX = "PING:"
PONG_PREFIX = "PONG:"
TEST_PREFIX = "TEST:"
ECHOED_PREFIX = "ECHOED:"

_DIGITS = re.compile(r"\d+")


class DataChannel(ABC):
    """
    The part of a data channel the peer sessions use.
    """

    @property
    @abstractmethod
    def is_open(self) -> bool:
        pass

    @abstractmethod
    def send(self, message: str) -> None:
        """Send a text frame; raises if the channel is not open"""
        pass

    @abstractmethod
    def close(self) -> None:
        pass

    def send_json(self, message: dict[str, Any]) -> None:
        self.send(json.dumps(message))


def ping_message(timestamp_ms: int) -> str:
    return f"{PING_PREFIX}{timestamp_ms}"


def pong_reply(ping: str) -> str:
    """Answer a ping by swapping its prefix and keeping the timestamp"""
    return ping.replace(PING_PREFIX, PONG_PREFIX, 1)


def self_test_message(timestamp_ms: int) -> str:
    return f"{TEST_PREFIX}{timestamp_ms}"


def echo_reply(message: str) -> str:
    return f"{ECHOED_PREFIX}{message}"


def parse_pong_timestamp(message: str) -> int | None:
    """
    Extract the timestamp of a pong.

    Any text containing `PONG:` counts; the timestamp is the first digit
    run after the marker.

    Returns:
        int | None: The timestamp, or None when there is no marker or digits.
    """
    marker = message.find(PONG_PREFIX)
    if marker < 0:
        return None

    match = _DIGITS.search(message, marker + len(PONG_PREFIX))
    if match is None:
        return None
    return int(match.group())


def decode_message(raw: str) -> dict[str, Any] | None:
    """Parse a JSON data channel frame, None if it is not a JSON object"""
    try:
        message = json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        return None
    if not isinstance(message, dict):
        return None
    return message
