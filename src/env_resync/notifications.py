"""
Telegram notification sink for per-store outcomes.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Final

import requests

if TYPE_CHECKING:
    from .config import TelegramSettings

logger: logging.Logger = logging.getLogger(__name__)

_API_URL: Final[str] = "https://api.telegram.org/bot{api_key}/sendMessage"
_TIMEOUT_SECONDS: Final[int] = 30


class TelegramNotifier:
    """Sends messages to one Telegram chat through the Bot API.

    Delivery is fire-and-forget: transport errors are logged and dropped so
    that a notification outage never changes a store's outcome.
    """

    def __init__(self, api_key: str, chat_id: str, *, session: requests.Session | None = None) -> None:
        self._url: str = _API_URL.format(api_key=api_key)
        self.chat_id: str = chat_id
        self._session: requests.Session = session or requests.Session()

    @classmethod
    def from_settings(cls, settings: TelegramSettings | None) -> TelegramNotifier | None:
        if settings is None:
            return None
        return cls(settings.api_key, settings.chat_id)

    def notify(self, message: str) -> None:
        try:
            response = self._session.post(
                self._url,
                json={"chat_id": self.chat_id, "text": message},
                timeout=_TIMEOUT_SECONDS,
            )
            response.raise_for_status()
        except requests.RequestException as e:
            logger.warning(f"Failed to send Telegram notification: {e}")
            return
        logger.debug(f"Sent Telegram notification: {message}")

    def close(self) -> None:
        self._session.close()
