"""
Hashing and signature primitives used by the payment provider adapters.

MD5 exists only because one provider's documented signing scheme requires it.
"""
from __future__ import annotations

import base64
import hashlib
import hmac
import secrets
import time
from typing import Union

KeyLike = Union[str, bytes]


def _to_bytes(value: KeyLike, *, what: str) -> bytes:
    if isinstance(value, bytes):
        return value
    if isinstance(value, str):
        return value.encode("utf-8")
    raise TypeError(f"{what} must be str or bytes, got {type(value).__name__}")


def _key_bytes(key: KeyLike) -> bytes:
    raw = _to_bytes(key, what="key")
    if not raw:
        raise ValueError("signing key must not be empty")
    return raw


def hmac_sha256(message: KeyLike, key: KeyLike) -> str:
    return hmac.new(_key_bytes(key), _to_bytes(message, what="message"), hashlib.sha256).hexdigest()


def sha256(message: KeyLike) -> str:
    return hashlib.sha256(_to_bytes(message, what="message")).hexdigest()


def md5(message: KeyLike) -> str:
    return hashlib.md5(_to_bytes(message, what="message")).hexdigest()


def constant_time_equals(a: str | None, b: str | None) -> bool:
    if a is None or b is None:
        return False
    return hmac.compare_digest(a.encode("utf-8"), b.encode("utf-8"))


def verify_signature(message: KeyLike, signature: str | None, key: KeyLike) -> bool:
    """Recompute HMAC-SHA256 over `message` and compare in constant time."""
    expected = hmac_sha256(message, key)
    return constant_time_equals(expected, (signature or "").lower())


def basic_auth_header(username: str, password: str) -> str:
    token = base64.b64encode(f"{username}:{password}".encode("utf-8")).decode("ascii")
    return f"Basic {token}"


def verify_basic_auth(header: str | None, username: str, password: str) -> bool:
    """Check an `Authorization: Basic ...` header against configured credentials."""
    if not header or not username or not password:
        return False
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "basic" or not token:
        return False
    try:
        decoded = base64.b64decode(token.strip(), validate=True).decode("utf-8")
    except (ValueError, UnicodeDecodeError):
        return False
    given_user, sep, given_password = decoded.partition(":")
    if not sep:
        return False
    user_ok = constant_time_equals(given_user, username)
    password_ok = constant_time_equals(given_password, password)
    return user_ok and password_ok


def generate_opaque_id(prefix: str = "TXN") -> str:
    """Random correlation token, e.g. TXN-1718000000000-9f86d081884c7d65."""
    return f"{prefix}-{int(time.time() * 1000)}-{secrets.token_hex(8)}"
