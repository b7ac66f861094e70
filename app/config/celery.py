"""
Celery configuration for the property ledger.

The worker runs the scheduled finance jobs:
- finance.tasks.accrue_monthly_rent: rent accrual for every active lease,
  on FINANCE_MONTHLY_ACCRUAL_DAY
- finance.tasks.rebuild_all_debtors: nightly rebuild of debtor projections

The schedule lives in CELERY_BEAT_SCHEDULE (settings) and is stored by
django-celery-beat's database scheduler.

Usage:
    celery -A config worker -l info
    celery -A config beat -l info

For more information, see:
https://docs.celeryq.dev/en/stable/django/first-steps-with-django.html
"""

import os

from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

app = Celery("config")

# All Celery settings are prefixed with CELERY_ in settings.py
app.config_from_object("django.conf:settings", namespace="CELERY")

# Picks up finance/tasks.py
app.autodiscover_tasks()
