import base64
import hashlib
import hmac

import pytest

from shared.crypto import (
    basic_auth_header,
    constant_time_equals,
    generate_opaque_id,
    hmac_sha256,
    md5,
    sha256,
    verify_basic_auth,
    verify_signature,
)


def test_digests_match_hashlib():
    assert md5("abc") == hashlib.md5(b"abc").hexdigest()
    assert sha256(b"abc") == hashlib.sha256(b"abc").hexdigest()
    assert hmac_sha256("msg", "key") == hmac.new(b"key", b"msg", hashlib.sha256).hexdigest()


def test_hmac_rejects_empty_key_and_bad_types():
    with pytest.raises(ValueError):
        hmac_sha256("msg", "")
    with pytest.raises(TypeError):
        sha256(123)  # type: ignore[arg-type]


def test_verify_signature_detects_tampering():
    sig = hmac_sha256("txn-1" + "order-1" + "150000", "secret")
    assert verify_signature("txn-1order-1150000", sig, "secret")
    assert verify_signature("txn-1order-1150000", sig.upper(), "secret")
    assert not verify_signature("txn-1order-1150001", sig, "secret")
    assert not verify_signature("txn-1order-1150000", None, "secret")


def test_constant_time_equals_handles_none():
    assert constant_time_equals("a", "a")
    assert not constant_time_equals("a", "b")
    assert not constant_time_equals(None, "a")


def test_basic_auth_round_trip_and_rejections():
    header = basic_auth_header("Paycom", "k3y:with:colons")
    assert verify_basic_auth(header, "Paycom", "k3y:with:colons")
    assert not verify_basic_auth(header, "Paycom", "other")
    assert not verify_basic_auth("Bearer abc", "Paycom", "k3y:with:colons")
    assert not verify_basic_auth("Basic !!!notbase64", "Paycom", "x")
    no_colon = "Basic " + base64.b64encode(b"justuser").decode()
    assert not verify_basic_auth(no_colon, "justuser", "x")
    assert not verify_basic_auth(header, "Paycom", "")


def test_opaque_ids_are_unique_and_prefixed():
    first, second = generate_opaque_id(), generate_opaque_id("ORD")
    assert first.startswith("TXN-")
    assert second.startswith("ORD-")
    assert first != generate_opaque_id()
