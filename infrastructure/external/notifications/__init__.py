from __future__ import annotations

from typing import Optional

import httpx

from application.ports.notifier import Notifier
from core.config import TelegramSettings
from .telegram import LoggingNotifier, TelegramNotifier


def build_notifier(cfg: TelegramSettings, *, http_client: Optional[httpx.AsyncClient] = None) -> Notifier:
    if cfg.enabled and cfg.bot_token and cfg.chat_id:
        return TelegramNotifier(cfg, http_client=http_client)
    return LoggingNotifier()


__all__ = ["TelegramNotifier", "LoggingNotifier", "build_notifier"]
