"""Outbound delivery of replies to the messaging channel."""

import logging
from typing import Any, Optional, Protocol

import requests

from .errors import UpstreamError

logger = logging.getLogger(__name__)


def format_chat_id(number: str) -> str:
    """Normalize a phone number or chat id to a direct-chat id."""
    if not number or not isinstance(number, str):
        raise ValueError("Invalid number parameter: must be a non-empty string")

    if "@c.us" in number or "@g.us" in number:
        return number

    return f"{number}@c.us"


class ChatTransport(Protocol):
    @property
    def ready(self) -> bool: ...

    def send_text(self, chat_id: str, text: str) -> dict[str, Any]: ...

    def send_image(self, chat_id: str, image: dict[str, Any], caption: str = "") -> dict[str, Any]: ...


class RelayTransport:
    """Posts outbound messages to an HTTP relay in front of the chat channel.

    `image` is one of {"url": ...} or {"data": base64, "mimetype": ...,
    "filename": ...}.
    """

    def __init__(self, relay_url: Optional[str], timeout: float = 15.0):
        self.relay_url = relay_url.rstrip("/") if relay_url else None
        self.timeout = timeout

    @property
    def ready(self) -> bool:
        return self.relay_url is not None

    def _post(self, payload: dict[str, Any]) -> dict[str, Any]:
        if self.relay_url is None:
            raise UpstreamError("Chat relay is not configured")

        try:
            response = requests.post(f"{self.relay_url}/messages", json=payload, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            raise UpstreamError(f"Chat relay request failed: {e}") from e

        try:
            result = response.json()
        except ValueError:
            result = {}
        return {"message_id": result.get("id"), "timestamp": result.get("timestamp"), "to": payload["to"]}

    def send_text(self, chat_id: str, text: str) -> dict[str, Any]:
        sent = self._post({"to": chat_id, "type": "text", "text": text})
        logger.info(f"Sent message to {chat_id}")
        return sent

    def send_image(self, chat_id: str, image: dict[str, Any], caption: str = "") -> dict[str, Any]:
        sent = self._post({"to": chat_id, "type": "image", "caption": caption, **image})
        logger.info(f"Sent image to {chat_id}")
        return sent
