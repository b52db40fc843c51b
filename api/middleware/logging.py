"""
Access logging with latency.

Provider callbacks are tagged with the provider name and always log which
fields arrived; full bodies are logged only in DEBUG with body logging on,
truncated and with credentials and customer contact data masked.
"""
import json
import re
import time
from typing import Any, Optional
from urllib.parse import parse_qs

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from core.config import settings
from core.logging_config import get_logger


logger = get_logger(__name__)

_CALLBACK_PATH = re.compile(r"/payments/(payme|click|uzum)/")


class LoggingMiddleware(BaseHTTPMiddleware):
    SKIP_PATHS = {"/health", "/docs", "/redoc", "/openapi.json"}

    MASKED_FIELDS = {
        "password", "token", "secret", "secret_key", "authorization",
        "sign", "sign_string", "signature", "phone", "card_number",
    }

    def __init__(self, app: ASGIApp):
        super().__init__(app)
        self.log_bodies = bool(settings.LOG_REQUEST_BODY_ENABLE_BY_DEFAULT and settings.DEBUG)
        self.max_body_bytes = settings.LOG_REQUEST_BODY_MAX_BYTES

    async def dispatch(self, request: Request, call_next):
        path = request.url.path
        if path in self.SKIP_PATHS:
            return await call_next(request)

        started = time.perf_counter()
        fields = await self._describe(request)
        logger.info("request_started", **fields)

        try:
            response = await call_next(request)
        except Exception as exc:
            logger.error(
                "request_failed",
                duration=round(time.perf_counter() - started, 4),
                error_type=type(exc).__name__,
                error=str(exc),
                exc_info=True,
                **fields,
            )
            raise

        duration = time.perf_counter() - started
        self._log_completed(response, duration, fields)
        response.headers["X-Process-Time"] = f"{duration:.3f}"
        return response

    async def _describe(self, request: Request) -> dict[str, Any]:
        fields: dict[str, Any] = {"method": request.method, "path": request.url.path}
        if request.query_params:
            fields["query_params"] = self._mask(dict(request.query_params))

        provider = self._callback_provider(request.url.path)
        if provider is not None:
            fields["provider"] = provider

        if request.method in ("POST", "PUT", "PATCH") and (provider is not None or self.log_bodies):
            body = await self._parse_body(request)
            if isinstance(body, dict) and provider is not None:
                fields["body_fields"] = sorted(body)
            if body is not None and self.log_bodies:
                fields["body"] = self._mask(body)
        return fields

    @staticmethod
    def _callback_provider(path: str) -> Optional[str]:
        match = _CALLBACK_PATH.search(path)
        return match.group(1) if match else None

    async def _parse_body(self, request: Request) -> Any:
        raw = await request.body()
        if not raw:
            return None
        text = raw[: self.max_body_bytes].decode("utf-8", errors="ignore")
        content_type = request.headers.get("content-type", "").lower()
        if "application/json" in content_type:
            try:
                return json.loads(text)
            except ValueError:
                return text
        if "application/x-www-form-urlencoded" in content_type:
            return {k: v[0] if len(v) == 1 else v for k, v in parse_qs(text).items()}
        return text

    def _mask(self, data: Any) -> Any:
        if isinstance(data, dict):
            return {k: "***" if str(k).lower() in self.MASKED_FIELDS else self._mask(v) for k, v in data.items()}
        if isinstance(data, list):
            return [self._mask(v) for v in data]
        return data

    @staticmethod
    def _log_completed(response: Response, duration: float, fields: dict[str, Any]) -> None:
        status_code = response.status_code
        payload = {"status_code": status_code, "duration": round(duration, 4), **fields}
        if status_code < 400:
            logger.info("request_completed", **payload)
        elif status_code < 500:
            logger.warning("request_client_error", **payload)
        else:
            logger.error("request_server_error", **payload)
