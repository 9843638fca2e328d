"""
Outbound WhatsApp notifications.

Sends plain text through the WhatsApp gateway
(``POST {base_url}/message/sendText/{instance}``). Rate limits and server
errors are retried with exponential backoff, capped at ``max_delay`` and
``max_attempts``. Client errors are not retried.
"""

import asyncio
import logging
from typing import Optional

import httpx

from agenda.config import get_settings

logger = logging.getLogger(__name__)

RETRYABLE_STATUS = {408, 429}


class WhatsAppNotifier:
    """Notifier collaborator backed by the WhatsApp gateway."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        instance: Optional[str] = None,
        max_attempts: Optional[int] = None,
        base_delay: Optional[float] = None,
        max_delay: Optional[float] = None,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """Initialize notifier.

        Args:
            base_url: Gateway base URL (defaults to settings)
            api_key: Gateway API key
            instance: Gateway instance name
            max_attempts: Attempt ceiling per message
            base_delay: First backoff delay in seconds
            max_delay: Backoff cap in seconds
            timeout: Request timeout in seconds
            client: Preconfigured HTTP client (tests)
        """
        settings = get_settings()
        self.base_url = base_url or settings.whatsapp_api_url
        self.api_key = api_key if api_key is not None else settings.whatsapp_api_key
        self.instance = instance or settings.whatsapp_instance
        self.max_attempts = max_attempts if max_attempts is not None else settings.notification_max_attempts
        self.base_delay = base_delay if base_delay is not None else settings.notification_base_delay
        self.max_delay = max_delay if max_delay is not None else settings.notification_max_delay
        self.timeout = timeout
        self._client = client

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                headers={"apikey": self.api_key},
            )
        return self._client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    def delay_for(self, attempt: int) -> float:
        """Backoff before retry number ``attempt`` (1-based)."""
        return min(self.base_delay * (2 ** (attempt - 1)), self.max_delay)

    async def send_text(self, contact: str, text: str) -> bool:
        """Deliver ``text`` to ``contact``.

        Returns:
            True if the gateway accepted the message
        """
        if not self.base_url:
            logger.warning("Skipping WhatsApp send: gateway URL not configured")
            return False

        client = await self._get_client()
        payload = {"number": contact, "text": text}

        for attempt in range(1, self.max_attempts + 1):
            try:
                response = await client.post(
                    f"/message/sendText/{self.instance}",
                    json=payload,
                )
                if response.is_success:
                    logger.debug(f"WhatsApp message delivered to {contact} (attempt {attempt})")
                    return True

                logger.warning(
                    f"WhatsApp send to {contact} failed: status={response.status_code} "
                    f"body={response.text[:200]}"
                )
                if response.status_code not in RETRYABLE_STATUS and response.status_code < 500:
                    return False

            except httpx.HTTPError as e:
                logger.warning(f"WhatsApp send to {contact} failed on attempt {attempt}: {e}")

            if attempt < self.max_attempts:
                await asyncio.sleep(self.delay_for(attempt))

        logger.error(f"Giving up on WhatsApp message to {contact} after {self.max_attempts} attempts")
        return False


# Singleton
_notifier: Optional[WhatsAppNotifier] = None


def get_notifier() -> Optional[WhatsAppNotifier]:
    """Get singleton WhatsAppNotifier, or None when no gateway is configured."""
    global _notifier
    if _notifier is None and get_settings().whatsapp_api_url:
        _notifier = WhatsAppNotifier()
    return _notifier


async def close_notifier() -> None:
    """Close the singleton notifier if it was created."""
    global _notifier
    if _notifier is not None:
        await _notifier.close()
        _notifier = None
