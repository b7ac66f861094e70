"""
Django settings for the property ledger.

This is the single settings file for all environments. Configuration is driven
by environment variables using django-environ.

Environment files:
    - .env.development: Development settings (DEBUG=True)
    - .env.production: Production settings (DEBUG=False)

The file read is named by ENV_FILE; variables already present in the
environment always win.

Finance settings:
    FINANCE_DUPLICATE_WINDOW_SECONDS  Recency window of the duplicate guard
    FINANCE_ALLOCATION_LOCK_TTL       Per-student allocation lock TTL (seconds)
    FINANCE_ALLOCATION_LOCK_TIMEOUT   How long to wait for that lock (seconds)
    FINANCE_DEFAULT_PAYMENT_METHOD    Method assumed when a payment names none
    FINANCE_MONTHLY_ACCRUAL_DAY       Day of month the rent accrual runs
    FINANCE_LOOKUP_CACHE_TTL          TTL of the residence/vendor lookup cache

For the full list of settings and their values, see:
https://docs.djangoproject.com/en/5.2/ref/settings/
"""

import os
from pathlib import Path

import environ
from celery.schedules import crontab

# =============================================================================
# Path Configuration
# =============================================================================
BASE_DIR = Path(__file__).resolve().parent.parent

# =============================================================================
# Environment Configuration
# =============================================================================
env = environ.Env(
    DEBUG=(bool, False),
    ALLOWED_HOSTS=(list, []),
    LOG_LEVEL=(str, "INFO"),
)

env_file = os.environ.get("ENV_FILE", BASE_DIR.parent / ".env.development")
if Path(env_file).exists():
    environ.Env.read_env(env_file)

# =============================================================================
# Core Settings
# =============================================================================
# SECURITY WARNING: keep the secret key used in production secret!
SECRET_KEY = env("SECRET_KEY")

DEBUG = env("DEBUG")

ALLOWED_HOSTS = env("ALLOWED_HOSTS")

# =============================================================================
# Application Definition
# =============================================================================
INSTALLED_APPS = [
    # Django core apps
    "django.contrib.auth",
    "django.contrib.contenttypes",
    # Third-party apps
    "django_celery_beat",
    # Local apps
    "core",
    "authentication",
    "properties",
    "finance",
]

# =============================================================================
# Database Configuration
# =============================================================================
# Using psycopg3 (not psycopg2)
DATABASES = {
    "default": env.db(
        "DATABASE_URL",
        default="postgres://postgres:postgres@db:5432/ledger_dev",
    ),
}

if DATABASES["default"]["ENGINE"] == "django.db.backends.postgresql":
    DATABASES["default"]["OPTIONS"] = {
        "connect_timeout": 10,
    }

# =============================================================================
# Cache Configuration
# =============================================================================
# Redis also backs the per-student allocation lock (finance.locks)
CACHES = {
    "default": {
        "BACKEND": "django_redis.cache.RedisCache",
        "LOCATION": env("REDIS_URL", default="redis://redis:6379/0"),
        "OPTIONS": {
            "CLIENT_CLASS": "django_redis.client.DefaultClient",
        },
    }
}

# =============================================================================
# Authentication Configuration
# =============================================================================
AUTH_USER_MODEL = "authentication.User"

AUTH_PASSWORD_VALIDATORS = [
    {"NAME": "django.contrib.auth.password_validation.MinimumLengthValidator"},
    {"NAME": "django.contrib.auth.password_validation.CommonPasswordValidator"},
]

# =============================================================================
# Finance Configuration
# =============================================================================
# Events with the same source, source id and metadata inside this window are
# treated as retries of one event
FINANCE_DUPLICATE_WINDOW_SECONDS = env.int(
    "FINANCE_DUPLICATE_WINDOW_SECONDS", default=60
)

# Payment allocation for one student is serialized by a Redis lock
FINANCE_ALLOCATION_LOCK_TTL = env.int("FINANCE_ALLOCATION_LOCK_TTL", default=30)
FINANCE_ALLOCATION_LOCK_TIMEOUT = env.float(
    "FINANCE_ALLOCATION_LOCK_TIMEOUT", default=10.0
)

FINANCE_DEFAULT_PAYMENT_METHOD = env(
    "FINANCE_DEFAULT_PAYMENT_METHOD", default="Cash"
)

FINANCE_MONTHLY_ACCRUAL_DAY = env.int("FINANCE_MONTHLY_ACCRUAL_DAY", default=1)

# Lookups only (residences, vendors by name); balances are never cached
FINANCE_LOOKUP_CACHE_TTL = env.int("FINANCE_LOOKUP_CACHE_TTL", default=300)

# =============================================================================
# Celery Configuration
# =============================================================================
CELERY_BROKER_URL = env("CELERY_BROKER_URL", default="redis://redis:6379/1")
CELERY_RESULT_BACKEND = env("CELERY_RESULT_BACKEND", default="redis://redis:6379/1")
CELERY_ACCEPT_CONTENT = ["json"]
CELERY_TASK_SERIALIZER = "json"
CELERY_RESULT_SERIALIZER = "json"
CELERY_TIMEZONE = "UTC"
CELERY_TASK_TRACK_STARTED = True
CELERY_TASK_TIME_LIMIT = 30 * 60  # 30 minutes
CELERY_BEAT_SCHEDULER = "django_celery_beat.schedulers:DatabaseScheduler"

CELERY_BEAT_SCHEDULE = {
    "accrue-monthly-rent": {
        "task": "finance.tasks.accrue_monthly_rent",
        "schedule": crontab(
            minute=30,
            hour=0,
            day_of_month=FINANCE_MONTHLY_ACCRUAL_DAY,
        ),
    },
    "rebuild-all-debtors": {
        "task": "finance.tasks.rebuild_all_debtors",
        "schedule": crontab(minute=0, hour=2),
    },
}

# =============================================================================
# Internationalization
# =============================================================================
LANGUAGE_CODE = "en-us"
TIME_ZONE = env("TIME_ZONE", default="UTC")
USE_I18N = True
USE_TZ = True

# =============================================================================
# Default Primary Key Field Type
# =============================================================================
DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

# =============================================================================
# Logging Configuration
# =============================================================================
LOG_LEVEL = env("LOG_LEVEL")

# Log file name determined by service (worker, beat)
LOG_FILE_NAME = env("LOG_FILE_NAME", default="ledger.log")
LOG_DIR = BASE_DIR / "logs"

LOG_DIR.mkdir(parents=True, exist_ok=True)

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "verbose": {
            "format": "{levelname} {asctime} {module} {process:d} {thread:d} {message}",
            "style": "{",
        },
        "file": {
            "format": "[{asctime}] {levelname} {name} {module}:{lineno} - {message}",
            "style": "{",
            "datefmt": "%Y-%m-%d %H:%M:%S",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "verbose",
        },
        "file": {
            # Max 10MB per file, 5 backups
            "level": "DEBUG",
            "class": "logging.handlers.RotatingFileHandler",
            "filename": LOG_DIR / LOG_FILE_NAME,
            "maxBytes": 10 * 1024 * 1024,
            "backupCount": 5,
            "formatter": "file",
            "encoding": "utf-8",
        },
    },
    "root": {
        "handlers": ["console", "file"],
        "level": LOG_LEVEL,
    },
    "loggers": {
        "django": {
            "handlers": ["console", "file"],
            "level": LOG_LEVEL,
            "propagate": False,
        },
        "celery": {
            "handlers": ["console", "file"],
            "level": LOG_LEVEL,
            "propagate": False,
        },
        # Postings, fallbacks and duplicate short-circuits
        "finance": {
            "handlers": ["console", "file"],
            "level": env("FINANCE_LOG_LEVEL", default=LOG_LEVEL),
            "propagate": False,
        },
    },
}
