"""Best-effort Discord webhook announcements."""

import logging
from typing import Optional

import requests

from comp_trader.config import NotificationConfig

logger = logging.getLogger(__name__)


class DiscordNotifier:
    """Posts messages to a Discord webhook. Does nothing without a URL."""

    def __init__(self, config: NotificationConfig,
                 session: Optional[requests.Session] = None, timeout: float = 10):
        self.config = config
        self.session = session or requests.Session()
        self.timeout = timeout

    @property
    def enabled(self) -> bool:
        return bool(self.config.webhook_url)

    def send(self, message: str, username: Optional[str] = None,
             avatar_url: Optional[str] = None) -> bool:
        if not self.enabled:
            return False

        payload = {
            "content": message,
            "username": username or self.config.username,
        }
        avatar = avatar_url or self.config.avatar_url
        if avatar:
            payload["avatar_url"] = avatar

        try:
            response = self.session.post(self.config.webhook_url, json=payload, timeout=self.timeout)
            response.raise_for_status()
            return True
        except requests.RequestException as e:
            logger.warning("Discord notification failed: %s", e)
            return False
