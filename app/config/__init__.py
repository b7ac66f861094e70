# =============================================================================
# Project Configuration Package
# =============================================================================
# Settings and the Celery application for the property ledger.
#
# The Celery app is imported here so that shared_task functions bind to it
# as soon as Django starts.
# =============================================================================

from config.celery import app as celery_app

__all__ = ("celery_app",)
