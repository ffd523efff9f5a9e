"""
Outbound message transport adapters.

The messaging channel itself is an external collaborator; the service only
needs `send(user_id, text) -> SendResult`. Send failures are reported in the
result, never raised into the conversation engine.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Protocol

import httpx

logger = logging.getLogger(__name__)


@dataclass
class SendResult:
    ok: bool
    error: Optional[str] = None


class MessageTransport(Protocol):
    async def send(self, user_id: str, text: str) -> SendResult:
        ...


class LoggingTransport:
    """Demo transport: logs replies instead of delivering them"""

    async def send(self, user_id: str, text: str) -> SendResult:
        preview = text if len(text) <= 80 else text[:77] + "..."
        logger.info(f" [log-only] -> {user_id}: {preview!r}")
        return SendResult(ok=True)


class HttpGatewayTransport:
    """Posts replies to a messaging gateway webhook"""

    def __init__(self, gateway_url: str, timeout: float = 5.0, client: Optional[httpx.AsyncClient] = None):
        self.gateway_url = gateway_url
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def send(self, user_id: str, text: str) -> SendResult:
        try:
            response = await self._client.post(self.gateway_url, json={"to": user_id, "text": text})
            response.raise_for_status()
            return SendResult(ok=True)
        except httpx.HTTPError as e:
            logger.warning(f"️ Gateway send to {user_id} failed: {e}")
            return SendResult(ok=False, error=str(e))

    async def close(self) -> None:
        await self._client.aclose()
