"""
Django settings for the payment gateway project.

Values come from the environment (optionally a ``.env`` file at the
project root), so the same settings module serves development, tests and
production.
"""
from pathlib import Path
import os
from celery.schedules import crontab
from dotenv import load_dotenv

# ───────────── BASE / ENV ─────────────
BASE_DIR = Path(__file__).resolve().parent.parent
load_dotenv(BASE_DIR / ".env")


def _to_bool(v, default=False):
    if v is None:
        return default
    if isinstance(v, bool):
        return v
    s = str(v).strip().lower()
    return s in ("1", "true", "t", "yes", "y", "on")


def env_str(key, default=""):
    return os.getenv(key, default)


def env_bool(key, default=False):
    return _to_bool(env_str(key, None), default)


def env_int(key, default=0):
    v = env_str(key, None)
    try:
        return int(v) if v is not None else default
    except ValueError:
        return default


def env_list(key, default=""):
    return [item.strip() for item in env_str(key, default).split(",") if item.strip()]


# ───────────── Base Config ─────────────
SECRET_KEY = env_str("SECRET_KEY", "django-insecure-change-me")
DEBUG = env_bool("DEBUG", False)
ALLOWED_HOSTS = env_list("ALLOWED_HOSTS", "localhost,127.0.0.1,testserver")

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

# ───────────── Installed Apps ─────────────
INSTALLED_APPS = [
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    "rest_framework",
    "payment_gateway",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]

# ───────────── Templates ─────────────
ROOT_URLCONF = "config.urls"
TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.debug",
                "django.template.context_processors.request",
                "django.contrib.auth.context_processors.auth",
                "django.contrib.messages.context_processors.messages",
            ],
        },
    },
]

# ───────────── Database / Cache ─────────────
DATABASES = {
    "default": {
        "ENGINE": env_str("DB_ENGINE", "django.db.backends.sqlite3"),
        "NAME": env_str("DB_NAME", str(BASE_DIR / "db.sqlite3")),
        "USER": env_str("DB_USER", ""),
        "PASSWORD": env_str("DB_PASSWORD", ""),
        "HOST": env_str("DB_HOST", ""),
        "PORT": env_str("DB_PORT", ""),
    }
}

# Rate limits and gateway switches are stored here; use a shared cache in production
CACHES = {
    "default": {
        "BACKEND": env_str("CACHE_BACKEND", "django.core.cache.backends.locmem.LocMemCache"),
        "LOCATION": env_str("CACHE_LOCATION", "payment-gateway"),
    }
}

# ───────────── REST framework ─────────────
REST_FRAMEWORK = {
    "DEFAULT_AUTHENTICATION_CLASSES": (
        "rest_framework.authentication.SessionAuthentication",
        "rest_framework.authentication.BasicAuthentication",
    ),
    "DEFAULT_PERMISSION_CLASSES": (
        "rest_framework.permissions.AllowAny",
    ),
}

# ───────────── i18n / TZ ─────────────
LANGUAGE_CODE = "en-us"
TIME_ZONE = env_str("TIME_ZONE", "Africa/Johannesburg")
USE_I18N = True
USE_TZ = True

STATIC_URL = "/static/"
STATIC_ROOT = BASE_DIR / "staticfiles"

# ───────────── Email ─────────────
EMAIL_BACKEND = env_str("EMAIL_BACKEND", "django.core.mail.backends.console.EmailBackend")
EMAIL_HOST = env_str("EMAIL_HOST", "localhost")
EMAIL_PORT = env_int("EMAIL_PORT", 25)
EMAIL_HOST_USER = env_str("EMAIL_HOST_USER", "")
EMAIL_HOST_PASSWORD = env_str("EMAIL_HOST_PASSWORD", "")
EMAIL_USE_TLS = env_bool("EMAIL_USE_TLS", False)
DEFAULT_FROM_EMAIL = env_str("DEFAULT_FROM_EMAIL", "payments@example.com")
SERVER_EMAIL = DEFAULT_FROM_EMAIL
SITE_NAME = env_str("SITE_NAME", "Payment Gateway")

# mail_admins() recipients for webhook failures
ADMINS = [("Payments", email) for email in env_list("ADMIN_EMAILS")]

# ───────────── Celery ─────────────
CELERY_BROKER_URL = env_str("CELERY_BROKER_URL", "redis://localhost:6379/0")
CELERY_RESULT_BACKEND = env_str("CELERY_RESULT_BACKEND", "redis://localhost:6379/0")
CELERY_ACCEPT_CONTENT = ["json"]
CELERY_TASK_SERIALIZER = "json"
CELERY_RESULT_SERIALIZER = "json"
CELERY_TIMEZONE = TIME_ZONE
CELERY_TASK_ALWAYS_EAGER = env_bool("CELERY_TASK_ALWAYS_EAGER", False)

CELERY_BEAT_SCHEDULE = {
    "process-recurring-payments": {
        "task": "payment_gateway.tasks.process_recurring_payments",
        "schedule": crontab(minute=0),
    },
    "retry-failed-payments": {
        "task": "payment_gateway.tasks.retry_failed_payments",
        "schedule": crontab(minute="*/15"),
    },
    "expire-grace-periods": {
        "task": "payment_gateway.tasks.expire_grace_periods",
        "schedule": crontab(minute=30, hour=0),
    },
}

# ───────────── Payment gateways ─────────────
PAYMENT_GATEWAY = {
    "default": env_str("PAYMENT_GATEWAY_DEFAULT", "payfast"),
    "environment": env_str("PAYMENT_GATEWAY_ENV", "production"),
    "gateways": {
        "payfast": {
            "enabled": env_bool("PAYFAST_ENABLED", True),
            "merchant_id": env_str("PAYFAST_MERCHANT_ID"),
            "merchant_key": env_str("PAYFAST_MERCHANT_KEY"),
            "passphrase": env_str("PAYFAST_PASSPHRASE"),
            "test_mode": env_bool("PAYFAST_TEST_MODE", True),
            "return_url": env_str("PAYFAST_RETURN_URL"),
            "cancel_url": env_str("PAYFAST_CANCEL_URL"),
            "notify_url": env_str("PAYFAST_NOTIFY_URL"),
        },
        "paystack": {
            "enabled": env_bool("PAYSTACK_ENABLED", False),
            "public_key": env_str("PAYSTACK_PUBLIC_KEY"),
            "secret_key": env_str("PAYSTACK_SECRET_KEY"),
            "merchant_email": env_str("PAYSTACK_MERCHANT_EMAIL"),
            "callback_url": env_str("PAYSTACK_CALLBACK_URL"),
            "test_mode": env_bool("PAYSTACK_TEST_MODE", True),
        },
        "paypal": {
            "enabled": env_bool("PAYPAL_ENABLED", False),
            "client_id": env_str("PAYPAL_CLIENT_ID"),
            "client_secret": env_str("PAYPAL_CLIENT_SECRET"),
            "mode": env_str("PAYPAL_MODE", "sandbox"),
            "webhook_id": env_str("PAYPAL_WEBHOOK_ID"),
            "test_mode": env_bool("PAYPAL_TEST_MODE", True),
        },
        "stripe": {
            "enabled": env_bool("STRIPE_ENABLED", False),
            "publishable_key": env_str("STRIPE_PUBLISHABLE_KEY"),
            "secret_key": env_str("STRIPE_SECRET_KEY"),
            "webhook_secret": env_str("STRIPE_WEBHOOK_SECRET"),
            "test_mode": env_bool("STRIPE_TEST_MODE", True),
        },
        "ozow": {
            "enabled": env_bool("OZOW_ENABLED", False),
            "site_code": env_str("OZOW_SITE_CODE"),
            "private_key": env_str("OZOW_PRIVATE_KEY"),
            "api_key": env_str("OZOW_API_KEY"),
            "test_mode": env_bool("OZOW_TEST_MODE", True),
        },
        "zapper": {
            "enabled": env_bool("ZAPPER_ENABLED", False),
            "merchant_id": env_str("ZAPPER_MERCHANT_ID"),
            "site_id": env_str("ZAPPER_SITE_ID"),
            "api_key": env_str("ZAPPER_API_KEY"),
            "api_secret": env_str("ZAPPER_API_SECRET"),
            "test_mode": env_bool("ZAPPER_TEST_MODE", True),
        },
        "crypto": {
            "enabled": env_bool("CRYPTO_ENABLED", False),
            "provider": env_str("CRYPTO_PROVIDER", "coinbase"),
            "api_key": env_str("CRYPTO_API_KEY"),
            "api_secret": env_str("CRYPTO_API_SECRET"),
            "webhook_secret": env_str("CRYPTO_WEBHOOK_SECRET"),
            "test_mode": env_bool("CRYPTO_TEST_MODE", True),
        },
        "eft": {
            "enabled": env_bool("EFT_ENABLED", False),
            "bank_name": env_str("EFT_BANK_NAME"),
            "account_name": env_str("EFT_ACCOUNT_NAME"),
            "account_number": env_str("EFT_ACCOUNT_NUMBER"),
            "branch_code": env_str("EFT_BRANCH_CODE"),
            "reference_prefix": env_str("EFT_REFERENCE_PREFIX", "LISO"),
            "payment_window_hours": env_int("EFT_PAYMENT_WINDOW_HOURS", 24),
            "verification_code": env_str("EFT_VERIFICATION_CODE"),
            "webhook_secret": env_str("EFT_WEBHOOK_SECRET"),
            "test_mode": env_bool("EFT_TEST_MODE", True),
        },
        "vodapay": {
            "enabled": env_bool("VODAPAY_ENABLED", False),
            "merchant_id": env_str("VODAPAY_MERCHANT_ID"),
            "api_key": env_str("VODAPAY_API_KEY"),
            "api_secret": env_str("VODAPAY_API_SECRET"),
            "test_mode": env_bool("VODAPAY_TEST_MODE", True),
        },
        "snapscan": {
            "enabled": env_bool("SNAPSCAN_ENABLED", False),
            "merchant_id": env_str("SNAPSCAN_MERCHANT_ID"),
            "api_key": env_str("SNAPSCAN_API_KEY"),
            "api_secret": env_str("SNAPSCAN_API_SECRET"),
            "test_mode": env_bool("SNAPSCAN_TEST_MODE", True),
        },
    },
    "transaction": {
        "currency": env_str("PAYMENT_CURRENCY", "ZAR"),
        "min_amount": env_str("PAYMENT_MIN_AMOUNT", "1.00"),
        "max_amount": env_str("PAYMENT_MAX_AMOUNT", "1000000.00"),
    },
    "webhooks": {
        "enabled": env_bool("PAYMENT_WEBHOOKS_ENABLED", True),
        "signature_verification": env_bool("PAYMENT_WEBHOOK_SIGNATURE_VERIFICATION", True),
    },
    "security": {
        "rate_limit": env_int("PAYMENT_RATE_LIMIT", 60),
        "rate_limit_period": env_int("PAYMENT_RATE_LIMIT_PERIOD", 1),
        "ip_whitelist": env_list("PAYMENT_IP_WHITELIST"),
    },
    "notifications": {
        "email": env_bool("PAYMENT_NOTIFICATION_EMAIL", True),
        "admin_email": env_str("PAYMENT_ADMIN_EMAIL"),
    },
    "recurring": {
        "grace_period_days": env_int("PAYMENT_GRACE_PERIOD_DAYS", 3),
        "retry_attempts": env_int("PAYMENT_RETRY_ATTEMPTS", 3),
        "retry_interval_hours": env_int("PAYMENT_RETRY_INTERVAL_HOURS", 24),
    },
    "logging": {
        "level": env_str("PAYMENT_LOG_LEVEL", "INFO"),
    },
}

# ───────────── Logging ─────────────
LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "verbose": {
            "format": "[{levelname}] {asctime} {name} :: {message}",
            "style": "{",
        },
    },
    "handlers": {
        "console": {"class": "logging.StreamHandler", "formatter": "verbose"},
    },
    "loggers": {
        "django": {"handlers": ["console"], "level": "INFO", "propagate": False},
        "payment_gateway": {
            "handlers": ["console"],
            "level": PAYMENT_GATEWAY["logging"]["level"],
            "propagate": False,
        },
        "celery": {"handlers": ["console"], "level": "INFO", "propagate": False},
    },
    "root": {"handlers": ["console"], "level": "WARNING"},
}
