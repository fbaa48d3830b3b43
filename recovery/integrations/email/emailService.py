"""
Transactional Email via Resend
==============================

Sends HTML email through the Resend HTTP API using an ``httpx.AsyncClient``.

When no API key is configured the client runs in dev mode: the message is
logged instead of sent, so local environments never need credentials.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import httpx

logger = logging.getLogger(__name__)

RESEND_API_URL = "https://api.resend.com/emails"
DEFAULT_TIMEOUT_SECONDS = 10.0


class EmailDeliveryError(Exception):
    """Raised when the email provider rejects or fails a send."""


@dataclass(frozen=True)
class EmailResult:
    """Result of a single send."""
    delivered: bool
    message_id: Optional[str] = None
    dev_mode: bool = False


class EmailClient:
    """Minimal async Resend client."""

    def __init__(
        self,
        api_key: str,
        sender_email: str,
        sender_name: str,
        *,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._api_key = api_key
        self._from = f"{sender_name} <{sender_email}>"
        self._timeout = timeout
        self._transport = transport

    @property
    def dev_mode(self) -> bool:
        return not self._api_key

    async def send(self, to: str, subject: str, html: str) -> EmailResult:
        """Send one email.

        Raises:
            EmailDeliveryError: On transport failure or a non-2xx response.
        """
        if self.dev_mode:
            logger.info("[DEV MODE] Email to %s | Subject: %s", to, subject)
            return EmailResult(delivered=False, dev_mode=True)

        payload = {
            "from": self._from,
            "to": [to],
            "subject": subject,
            "html": html,
        }
        headers = {"Authorization": f"Bearer {self._api_key}"}

        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, transport=self._transport
            ) as client:
                response = await client.post(RESEND_API_URL, json=payload, headers=headers)
                response.raise_for_status()
        except httpx.HTTPError as exc:
            raise EmailDeliveryError(f"Failed to send email to {to}: {exc}") from exc

        message_id = response.json().get("id")
        logger.info("Email sent to %s | Subject: %s | id=%s", to, subject, message_id)
        return EmailResult(delivered=True, message_id=message_id)
