"""
Outbound customer webhooks.
"""
import logging
from typing import Any, Dict, Optional

import httpx

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0


class WebhookDispatcher:
    """POSTs JSON events to customer-configured URLs."""

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None, timeout: float = DEFAULT_TIMEOUT):
        self._transport = transport
        self.timeout = timeout

    async def post(
        self,
        url: str,
        payload: Dict[str, Any],
        agent_id: str,
        organization_id: str,
        event_type: str,
    ) -> httpx.Response:
        headers = {
            "Content-Type": "application/json",
            "X-Agent-UUID": agent_id,
            "X-Organization-UUID": organization_id,
            "X-Event-Type": event_type,
        }
        async with httpx.AsyncClient(transport=self._transport, timeout=self.timeout) as client:
            return await client.post(url, json=payload, headers=headers)

    async def deliver(self, url: str, payload: Dict[str, Any], agent_id: str, organization_id: str, event_type: str) -> bool:
        """Fire-and-forget variant: failures are logged, never raised."""
        try:
            response = await self.post(url, payload, agent_id, organization_id, event_type)
        except httpx.HTTPError as e:
            logger.error(f"Customer webhook to {url} failed: {str(e)}")
            return False
        if response.is_error:
            logger.error(f"Customer webhook to {url} returned {response.status_code}")
            return False
        logger.info(f"Customer webhook to {url} delivered ({response.status_code})")
        return True


_dispatcher: Optional[WebhookDispatcher] = None


def get_webhook_dispatcher() -> WebhookDispatcher:
    """FastAPI dependency returning the shared dispatcher."""
    global _dispatcher
    if _dispatcher is None:
        _dispatcher = WebhookDispatcher()
    return _dispatcher
