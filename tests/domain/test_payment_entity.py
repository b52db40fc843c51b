import pytest

from domain.common.exceptions import (
    DomainValidationException,
    InvalidStatusTransitionException,
    PaymentNotRefundableException,
)
from domain.payment.entity import (
    Payment,
    PaymentMethod,
    PaymentStatus,
    ProviderTransaction,
    ProviderTransactionStatus,
)


def _payment(**overrides) -> Payment:
    data = dict(user_id="u1", order_id="o1", amount=120_000, currency="UZS", method=PaymentMethod.PAYME)
    data.update(overrides)
    return Payment.open(**data)


def test_open_payment_is_pending_with_utc_timestamps():
    p = _payment()
    assert p.status is PaymentStatus.PENDING
    assert p.transaction_id is None
    assert p.created_at.tzinfo is not None
    assert p.completed_at is None


@pytest.mark.parametrize("amount", [-1, 1.5, True])
def test_amount_must_be_non_negative_int(amount):
    with pytest.raises(DomainValidationException):
        _payment(amount=amount)


def test_currency_must_be_three_letters():
    with pytest.raises(DomainValidationException):
        _payment(currency="SUM1")


def test_completion_sets_completed_at():
    p = _payment()
    p.transition_to(PaymentStatus.COMPLETED)
    assert p.status is PaymentStatus.COMPLETED
    assert p.completed_at == p.updated_at


@pytest.mark.parametrize(
    "start,target",
    [
        (PaymentStatus.FAILED, PaymentStatus.COMPLETED),
        (PaymentStatus.REFUNDED, PaymentStatus.COMPLETED),
        (PaymentStatus.COMPLETED, PaymentStatus.PENDING),
        (PaymentStatus.PENDING, PaymentStatus.REFUNDED),
    ],
)
def test_forbidden_transitions_raise(start, target):
    p = _payment()
    p.status = start
    with pytest.raises(InvalidStatusTransitionException):
        p.transition_to(target)


def test_final_statuses():
    p = _payment()
    assert not p.is_final()
    p.status = PaymentStatus.FAILED
    assert p.is_final()
    p.status = PaymentStatus.REFUNDED
    assert p.is_final()


def test_transaction_id_is_write_once():
    p = _payment()
    p.assign_transaction_id("TXN-1")
    p.assign_transaction_id("TXN-1")
    with pytest.raises(DomainValidationException):
        p.assign_transaction_id("TXN-2")


def test_refund_requires_completed_payment_with_transaction():
    p = _payment()
    with pytest.raises(PaymentNotRefundableException):
        p.ensure_refundable()
    p.transition_to(PaymentStatus.COMPLETED)
    with pytest.raises(PaymentNotRefundableException):
        p.ensure_refundable()
    p.assign_transaction_id("TXN-9")
    p.ensure_refundable()


def test_provider_transaction_lifecycle_is_replay_safe():
    record = ProviderTransaction.record(
        transaction_id="TXN-1",
        service_id="",
        account="TXN-1",
        amount=1000,
        payment_id="p1",
        status=ProviderTransactionStatus.PENDING,
    )
    record.mark_created("uzum-42")
    assert record.status is ProviderTransactionStatus.CREATED
    assert record.transaction_id == "uzum-42"

    assert record.confirm(payment_source="UZCARD") is True
    assert record.confirm(payment_source="HUMO") is False
    assert record.payment_source == "UZCARD"

    assert record.reverse() is True
    assert record.reverse() is False
    times = record.times_ms()
    assert times["confirm_time"] <= times["reverse_time"]


def test_provider_transaction_cannot_confirm_before_create():
    record = ProviderTransaction.record(
        transaction_id="TXN-1",
        service_id="",
        account="TXN-1",
        amount=1000,
        payment_id="p1",
        status=ProviderTransactionStatus.PENDING,
    )
    with pytest.raises(DomainValidationException):
        record.confirm()
