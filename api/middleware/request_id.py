"""
Request context middleware.

Assigns the request id (caller's X-Request-ID or a fresh uuid), resolves the
client address used by the webhook allowlist, and binds both into the
structlog context for the lifetime of the request.
"""
import uuid
from typing import Optional

import structlog
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from core.settings import payment_settings


class RequestIDMiddleware(BaseHTTPMiddleware):
    HEADER_NAME = "X-Request-ID"

    def __init__(self, app: ASGIApp, trust_forwarded_for: Optional[bool] = None):
        super().__init__(app)
        if trust_forwarded_for is None:
            trust_forwarded_for = payment_settings.webhook.trust_forwarded_for
        self.trust_forwarded_for = trust_forwarded_for

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get(self.HEADER_NAME) or str(uuid.uuid4())
        client_ip = self.resolve_client_ip(request)

        request.state.request_id = request_id
        request.state.client_ip = client_ip

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id, client_ip=client_ip)

        response = await call_next(request)
        response.headers[self.HEADER_NAME] = request_id
        return response

    def resolve_client_ip(self, request: Request) -> str:
        if self.trust_forwarded_for:
            forwarded = request.headers.get("X-Forwarded-For")
            if forwarded:
                return forwarded.split(",")[0].strip()
            real_ip = request.headers.get("X-Real-IP")
            if real_ip:
                return real_ip.strip()
        return request.client.host if request.client else "unknown"
