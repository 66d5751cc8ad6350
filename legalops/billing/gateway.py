from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

import httpx

"""Messaging gateway (WhatsApp/SMS through an HTTP send-message function).

The endpoint receives ``{"to": "+55...", "body": "..."}`` with a bearer token
and answers with the provider message id (``sid``).
"""

__all__ = [
    "SendResult",
    "MessagingGateway",
    "HttpMessagingGateway",
]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SendResult:
    success: bool
    provider_message_id: str | None = None
    error: str | None = None


class MessagingGateway(Protocol):
    def send(self, to_phone_e164: str, body: str) -> SendResult: ...


class HttpMessagingGateway:
    """MessagingGateway over httpx. Never raises for transport or API errors."""

    def __init__(
        self,
        url: str,
        token: str | None = None,
        timeout: float = 15.0,
        client: httpx.Client | None = None,
    ) -> None:
        self.url = url
        self.token = token
        self._client = client or httpx.Client(timeout=timeout)
        self._owns_client = client is None

    def send(self, to_phone_e164: str, body: str) -> SendResult:
        if not to_phone_e164.startswith("+"):
            return SendResult(False, error="phone number must be in E.164 format")

        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        try:
            response = self._client.post(
                self.url, json={"to": to_phone_e164, "body": body}, headers=headers
            )
        except httpx.HTTPError as e:
            logger.error(f"messaging request failed for {to_phone_e164}: {e}")
            return SendResult(False, error=str(e))

        if response.status_code >= 400:
            detail = response.text[:200]
            logger.error(f"messaging API error {response.status_code} for {to_phone_e164}: {detail}")
            return SendResult(False, error=f"API error {response.status_code}: {detail}")

        try:
            payload = response.json()
        except ValueError:
            payload = {}
        message_id = (payload.get("sid") or payload.get("id")) if isinstance(payload, dict) else None
        logger.debug(f"message sent to {to_phone_e164} sid={message_id}")
        return SendResult(True, provider_message_id=message_id)

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> HttpMessagingGateway:
        return self

    def __exit__(self, *exc) -> None:
        self.close()
