from infrastructure.tasks import celery_app
from infrastructure.tasks.config import CELERY_BEAT_SCHEDULE
from infrastructure.tasks.tasks import payments


def test_reconciliation_is_scheduled_on_payments_queue():
    entry = CELERY_BEAT_SCHEDULE["payments-reconcile-pending"]
    assert entry["task"] == "payments.reconcile_pending"
    assert entry["schedule"] > 0
    assert "payments-reconcile-pending" in celery_app.conf.beat_schedule


def test_payment_tasks_are_registered():
    assert payments.reconcile_pending.name == "payments.reconcile_pending"
    assert payments.check_status.name == "payments.check_status"
    assert celery_app.conf.task_routes["payments.*"] == {"queue": "payments"}
    assert celery_app.conf.task_serializer == "json"
