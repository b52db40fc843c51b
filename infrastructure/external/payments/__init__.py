"""
Factory for payment gateway clients.
"""
from __future__ import annotations

from typing import Optional

import httpx

from application.ports.payment_gateway import PaymentGateways
from core.settings import PaymentSettings, payment_settings
from .click_client import ClickClient
from .payme_client import PaymeClient
from .uzum_client import UzumClient


def build_payment_gateways(
    settings: Optional[PaymentSettings] = None,
    *,
    http_client: Optional[httpx.AsyncClient] = None,
) -> PaymentGateways:
    cfg = settings or payment_settings
    timeouts = cfg.timeouts.model_dump()
    retry = {"max": cfg.retry.max, "base": cfg.retry.base_backoff}
    common = {"timeouts": timeouts, "retry": retry, "http_client": http_client}
    return PaymentGateways(
        payme=PaymeClient(cfg.payme, **common),
        click=ClickClient(cfg.click, **common),
        uzum=UzumClient(cfg.uzum, **common),
    )


__all__ = ["PaymentGateways", "PaymeClient", "ClickClient", "UzumClient", "build_payment_gateways"]
