"""Transportes de notificación SOS.

Cada transporte hace una única petición HTTP con timeout y devuelve un
`ChannelResult`. Los fallos (red, HTTP, API) nunca se lanzan: se
devuelven como resultado fallido para que el despacho siga con el
resto de canales.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional

import requests

from common.config import Settings
from .models import Channel, Coordinates

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChannelResult:
    ok: bool
    error: Optional[str] = None
    response: Optional[Dict[str, Any]] = None

    @classmethod
    def failed(cls, error: str) -> "ChannelResult":
        return cls(ok=False, error=error)


class ChannelTransport(ABC):
    """Interfaz de envío por un canal."""

    channel: Channel

    @abstractmethod
    def send_message(self, destination: str, text: str) -> ChannelResult:
        """Envía `text` a `destination`. No lanza excepciones."""

    def send_location(self, destination: str, coordinates: Coordinates) -> ChannelResult:
        return ChannelResult.failed(f"{self.channel.value} does not support locations")


def _post_json(url: str, payload: dict, timeout: float, headers: Optional[dict] = None):
    """POST JSON; devuelve (status_code, body | None, error | None)."""
    try:
        response = requests.post(url, json=payload, headers=headers, timeout=timeout)
    except requests.RequestException as e:
        return None, None, str(e)
    try:
        body = response.json()
    except ValueError:
        body = None
    return response.status_code, body, None


class TelegramTransport(ChannelTransport):
    channel = Channel.TELEGRAM

    def __init__(self, token: Optional[str], api_url: str = "https://api.telegram.org", timeout: float = 10.0):
        self._token = token
        self._api_url = api_url.rstrip("/")
        self._timeout = timeout

    @property
    def configured(self) -> bool:
        return bool(self._token)

    def _call(self, method: str, payload: dict) -> ChannelResult:
        if not self._token:
            logger.warning("[TELEGRAM] TELEGRAM_BOT_TOKEN not configured - skipping %s", method)
            return ChannelResult.failed("Telegram bot token not configured")

        status, body, error = _post_json(
            f"{self._api_url}/bot{self._token}/{method}", payload, self._timeout
        )
        if error is not None:
            logger.error("[TELEGRAM] %s failed: %s", method, error)
            return ChannelResult.failed(error)
        if not body or not body.get("ok"):
            description = (body or {}).get("description") or f"HTTP {status}"
            logger.warning("[TELEGRAM] %s rejected: %s", method, description)
            return ChannelResult(ok=False, error=description, response=body)
        return ChannelResult(ok=True, response=body)

    def send_message(self, destination: str, text: str) -> ChannelResult:
        result = self._call(
            "sendMessage",
            {"chat_id": destination, "text": text, "parse_mode": "HTML"},
        )
        if result.ok:
            logger.info("[TELEGRAM] Message sent chat_id=%s", destination)
        return result

    def send_location(self, destination: str, coordinates: Coordinates) -> ChannelResult:
        return self._call(
            "sendLocation",
            {"chat_id": destination, "latitude": coordinates.lat, "longitude": coordinates.lon},
        )


class WhatsAppTransport(ChannelTransport):
    """Canal telefónico vía WhatsApp Cloud API (`/{phone_number_id}/messages`)."""

    channel = Channel.WHATSAPP

    def __init__(
        self,
        api_url: str,
        token: Optional[str],
        phone_number_id: Optional[str],
        timeout: float = 10.0,
    ):
        self._api_url = api_url.rstrip("/")
        self._token = token
        self._phone_number_id = phone_number_id
        self._timeout = timeout

    @property
    def configured(self) -> bool:
        return bool(self._token and self._phone_number_id)

    def send_message(self, destination: str, text: str) -> ChannelResult:
        if not self.configured:
            logger.warning("[WHATSAPP] WHATSAPP_TOKEN/WHATSAPP_PHONE_NUMBER_ID not configured - skipping")
            return ChannelResult.failed("WhatsApp API not configured")

        status, body, error = _post_json(
            f"{self._api_url}/{self._phone_number_id}/messages",
            {
                "messaging_product": "whatsapp",
                "to": destination.lstrip("+"),
                "type": "text",
                "text": {"body": text},
            },
            self._timeout,
            headers={"Authorization": f"Bearer {self._token}"},
        )
        if error is not None:
            logger.error("[WHATSAPP] Send failed: %s", error)
            return ChannelResult.failed(error)
        if status is None or status >= 400:
            message = ((body or {}).get("error") or {}).get("message") or f"HTTP {status}"
            logger.warning("[WHATSAPP] Send rejected: %s", message)
            return ChannelResult(ok=False, error=message, response=body)

        logger.info("[WHATSAPP] Message sent to=%s", destination)
        return ChannelResult(ok=True, response=body)


def build_transports(settings: Settings) -> Dict[Channel, ChannelTransport]:
    return {
        Channel.WHATSAPP: WhatsAppTransport(
            api_url=settings.whatsapp_api_url,
            token=settings.whatsapp_token,
            phone_number_id=settings.whatsapp_phone_number_id,
            timeout=settings.channel_timeout_seconds,
        ),
        Channel.TELEGRAM: TelegramTransport(
            token=settings.telegram_bot_token,
            api_url=settings.telegram_api_url,
            timeout=settings.channel_timeout_seconds,
        ),
    }
