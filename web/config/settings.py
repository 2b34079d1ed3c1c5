"""Django settings for the orders web application.

Every tunable is read from the environment with a development default.
"""

import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


SECRET_KEY = os.getenv("DJANGO_SECRET_KEY", "dev-insecure-secret-key")
DEBUG = _env_bool("DJANGO_DEBUG", "false")
ALLOWED_HOSTS = [h for h in os.getenv("DJANGO_ALLOWED_HOSTS", "*").split(",") if h]

INSTALLED_APPS = [
    "django.contrib.contenttypes",
    "django.contrib.auth",
    "rest_framework",
    "apps.orders",
    "apps.reviews",
]

MIDDLEWARE = [
    "gateway.middleware.RequestIdMiddleware",
    "gateway.middleware.ApiSizeLimitMiddleware",
    "django.middleware.security.SecurityMiddleware",
    "django.middleware.common.CommonMiddleware",
]

ROOT_URLCONF = "config.urls"
WSGI_APPLICATION = "config.wsgi.application"

DB_ENGINE = os.getenv("DB_ENGINE", "sqlite")
if DB_ENGINE == "postgres":
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.postgresql",
            "NAME": os.getenv("DB_NAME", "orders"),
            "USER": os.getenv("DB_USER", "orders_user"),
            "PASSWORD": os.getenv("DB_PASSWORD", "orders-pass"),
            "HOST": os.getenv("DB_HOST", "orders-db"),
            "PORT": os.getenv("DB_PORT", "5432"),
            "CONN_MAX_AGE": int(os.getenv("DB_CONN_MAX_AGE", "60")),
        }
    }
else:
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.sqlite3",
            "NAME": os.getenv("DB_NAME", str(BASE_DIR / "db.sqlite3")),
        }
    }

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"
USE_TZ = True
TIME_ZONE = "UTC"

# ---- Downstream services ----
CATALOG_BASE_URL = os.getenv("CATALOG_BASE_URL", "http://catalog:8000")
IDENTITY_BASE_URL = os.getenv("IDENTITY_BASE_URL", "http://identity:8000")
USE_HTTP_ADAPTERS = _env_bool("USE_HTTP_ADAPTERS", "true")

HTTP_TIMEOUT_SECS = float(os.getenv("HTTP_TIMEOUT_SECS", "2.0"))
HTTP_RETRY_MAX = int(os.getenv("HTTP_RETRY_MAX", "2"))
HTTP_RETRY_BACKOFF_BASE = float(os.getenv("HTTP_RETRY_BACKOFF_BASE", "0.15"))
HTTP_RETRY_MAX_SLEEP = float(os.getenv("HTTP_RETRY_MAX_SLEEP", "0.5"))
HTTP_CIRCUIT_FAIL_THRESHOLD = int(os.getenv("HTTP_CIRCUIT_FAIL_THRESHOLD", "5"))
HTTP_CIRCUIT_RESET_TIMEOUT = float(os.getenv("HTTP_CIRCUIT_RESET_TIMEOUT", "30"))

ENRICHMENT_MAX_WORKERS = int(os.getenv("ENRICHMENT_MAX_WORKERS", "8"))
CHECKOUT_MUTABLE_WINDOW_HOURS = int(os.getenv("CHECKOUT_MUTABLE_WINDOW_HOURS", "24"))
API_MAX_BYTES = int(os.getenv("API_MAX_BYTES", str(1 * 1024 * 1024)))

# ---- REST framework ----
_READ_RATE = os.getenv("API_READ_RATE", "600/min")
_WRITE_RATE = os.getenv("API_WRITE_RATE", "120/min")

REST_FRAMEWORK = {
    "DEFAULT_RENDERER_CLASSES": ["rest_framework.renderers.JSONRenderer"],
    "DEFAULT_PARSER_CLASSES": ["rest_framework.parsers.JSONParser"],
    "DEFAULT_AUTHENTICATION_CLASSES": ["gateway.authentication.TrustedHeaderAuthentication"],
    "DEFAULT_PERMISSION_CLASSES": ["rest_framework.permissions.AllowAny"],
    "UNAUTHENTICATED_USER": None,
    "DEFAULT_THROTTLE_RATES": {
        f"{family}_{kind}": _READ_RATE if kind == "read" else _WRITE_RATE
        for family in ("baskets", "checkouts", "order_lines", "reviews", "comments")
        for kind in ("read", "write")
    },
}

CACHES = {
    "default": {"BACKEND": "django.core.cache.backends.locmem.LocMemCache"},
}

# ---- Logging ----
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "filters": {
        "request_id": {"()": "gateway.logging_filters.RequestIdFilter"},
    },
    "formatters": {
        "json": {
            "()": "pythonjsonlogger.jsonlogger.JsonFormatter",
            "fmt": "%(asctime)s %(levelname)s %(name)s %(message)s %(request_id)s",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "json",
            "filters": ["request_id"],
        },
    },
    "root": {"handlers": ["console"], "level": LOG_LEVEL},
    "loggers": {
        "django": {"handlers": ["console"], "level": "WARNING", "propagate": False},
    },
}
