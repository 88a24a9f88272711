"""
Community announcements through the Telegram Bot API.
"""

from typing import Optional

import httpx

from src.config.common_settings import BOT_TOKEN, COMMUNITY_GROUP_ID
from src.utils.logger import logger

TELEGRAM_API_URL = "https://api.telegram.org"


class TelegramNotifier:
    """Posts Markdown messages to the community group.

    Without a bot token or group id the notifier is disabled and only logs.
    """

    def __init__(self, bot_token: Optional[str] = BOT_TOKEN, chat_id: Optional[str] = COMMUNITY_GROUP_ID,
                 timeout: float = 15, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.bot_token = bot_token
        self.chat_id = chat_id
        self.timeout = timeout
        self._transport = transport

    @property
    def enabled(self) -> bool:
        return bool(self.bot_token and self.chat_id)

    async def send(self, text: str, parse_mode: str = "Markdown") -> bool:
        if not self.enabled:
            logger.info("TelegramNotifier: disabled, not sending: %s", text.splitlines()[0] if text else "")
            return False

        url = f"{TELEGRAM_API_URL}/bot{self.bot_token}/sendMessage"
        payload = {"chat_id": self.chat_id, "text": text, "parse_mode": parse_mode}
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            try:
                response = await client.post(url, json=payload)
                response.raise_for_status()
            except httpx.HTTPStatusError as e:
                # The URL embeds the bot token; log the status only
                logger.error("TelegramNotifier: sendMessage failed with HTTP %s", e.response.status_code)
                return False
            except httpx.HTTPError as e:
                logger.error("TelegramNotifier: sendMessage failed: %s", type(e).__name__)
                return False
        logger.info("TelegramNotifier: sent message to %s", self.chat_id)
        return True
