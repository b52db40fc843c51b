"""Celery beat schedule.

The reconciliation sweep interval comes from PAYMENT__RECONCILIATION__INTERVAL_SECONDS.
"""
from __future__ import annotations

from core.settings import payment_settings

CELERY_BEAT_SCHEDULE = {
    "payments-reconcile-pending": {
        "task": "payments.reconcile_pending",
        "schedule": float(payment_settings.reconciliation.interval_seconds),
        "options": {"queue": "payments"},
    },
}
