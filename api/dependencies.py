"""
API dependencies: caller identity and access to the services built in the lifespan.
"""
from typing import Optional

import jwt
from fastapi import Depends, Header, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from application.services.cart_service import CartService
from application.services.checkout_service import CheckoutService
from application.services.order_service import OrderService
from application.services.payment_service import PaymentService
from application.services.uzum_webhook_service import UzumWebhookService
from core.config import settings
from core.exceptions import TokenExpiredException, UnauthorizedException
from core.logging_config import get_logger
from infrastructure.container import Services

import structlog


logger = get_logger(__name__)

# tokens are issued elsewhere; this service only verifies them
http_bearer = HTTPBearer(
    scheme_name="Bearer",
    description="JWT Bearer token authentication",
    auto_error=False,
)


def decode_user_id(token: str) -> str:
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise TokenExpiredException()
    except jwt.PyJWTError as e:
        logger.warning("invalid_access_token", error=str(e))
        raise UnauthorizedException("Invalid token")

    user_id = payload.get("sub")
    if not user_id:
        raise UnauthorizedException("Token has no subject")
    return str(user_id)


async def get_optional_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(http_bearer),
) -> Optional[str]:
    if credentials is None or not credentials.credentials:
        return None
    user_id = decode_user_id(credentials.credentials)
    structlog.contextvars.bind_contextvars(user_id=user_id)
    return user_id


async def get_current_user_id(user_id: Optional[str] = Depends(get_optional_user_id)) -> str:
    if user_id is None:
        raise UnauthorizedException("Authentication credentials were not provided")
    return user_id


async def get_guest_token(x_guest_id: Optional[str] = Header(default=None, alias="X-Guest-Id")) -> Optional[str]:
    return x_guest_id or None


def get_services(request: Request) -> Services:
    return request.app.state.services


def get_payment_service(services: Services = Depends(get_services)) -> PaymentService:
    return services.payments


def get_uzum_webhook_service(services: Services = Depends(get_services)) -> UzumWebhookService:
    return services.uzum_webhooks


def get_checkout_service(services: Services = Depends(get_services)) -> CheckoutService:
    return services.checkout


def get_order_service(services: Services = Depends(get_services)) -> OrderService:
    return services.orders


def get_cart_service(services: Services = Depends(get_services)) -> CartService:
    return services.carts
