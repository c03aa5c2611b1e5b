from typing import Any

import httpx
from loguru import logger

FALLBACK_ICE_SERVERS = [
    {"urls": "stun:stun.l.google.com:19302"},
    {"urls": "stun:stun1.l.google.com:19302"},
    {"urls": "stun:stun2.l.google.com:19302"},
]

TWILIO_TOKENS_URL = "https://api.twilio.com/2010-04-01/Accounts/{account_sid}/Tokens.json"


class IceServersProvider:
    """
    Hands out the ICE server list peers use to build their connections.

    With Twilio credentials configured it asks Twilio for short-lived TURN
    credentials; otherwise, or when Twilio fails, it returns public STUN
    servers.
    """

    def __init__(
        self,
        account_sid: str = "",
        auth_token: str = "",
        ttl_seconds: int = 3600,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.ttl_seconds = ttl_seconds
        self.transport = transport

    async def get_ice_servers(self) -> dict[str, Any]:
        """
        Returns:
            dict: `{"iceServers": [...], "source": ...}` and an `error` on
            fallback after a failed Twilio call.
        """
        if not self.account_sid or not self.auth_token:
            logger.debug("Missing Twilio credentials, using fallback STUN servers")
            return {"iceServers": FALLBACK_ICE_SERVERS, "source": "fallback"}

        try:
            async with httpx.AsyncClient(transport=self.transport, timeout=10.0) as client:
                response = await client.post(
                    TWILIO_TOKENS_URL.format(account_sid=self.account_sid),
                    auth=(self.account_sid, self.auth_token),
                    data={"Ttl": str(self.ttl_seconds)},
                )
        except httpx.HTTPError as e:
            logger.error(f"Twilio request failed | Error: {str(e)}")
            return self._fallback_after_error()

        if response.status_code >= 400:
            logger.error(f"Twilio API error | Status: {response.status_code} | Body: {response.text[:200]}")
            return self._fallback_after_error()

        ice_servers = response.json().get("ice_servers") or []
        return {
            "iceServers": [self._normalize(server) for server in ice_servers],
            "source": "twilio",
        }

    @staticmethod
    def _normalize(server: dict[str, Any]) -> dict[str, Any]:
        """Twilio returns `url` and `urls`, browsers and aiortc want `urls`."""
        normalized: dict[str, Any] = {"urls": server.get("urls") or server.get("url")}
        if server.get("username"):
            normalized["username"] = server["username"]
        if server.get("credential"):
            normalized["credential"] = server["credential"]
        return normalized

    @staticmethod
    def _fallback_after_error() -> dict[str, Any]:
        return {
            "iceServers": FALLBACK_ICE_SERVERS,
            "source": "fallback-after-error",
            "error": "Failed to retrieve Twilio ICE servers",
        }
