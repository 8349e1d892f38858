"""
Django settings for the hostelara project.

Development values are read from a `.env` file when one exists next to
`manage.py`. In production set real environment variables instead.
"""
import os
import sys
from pathlib import Path

import dj_database_url
from dotenv import load_dotenv

# -----------------------------------------------------------------------------
# Base paths & .env loading
# -----------------------------------------------------------------------------
BASE_DIR = Path(__file__).resolve().parent.parent

# Apps live under apps/ and import each other as top-level packages
sys.path.insert(0, str(BASE_DIR / "apps"))

env_path = BASE_DIR / ".env"
if env_path.exists():
    load_dotenv(dotenv_path=env_path)

# -----------------------------------------------------------------------------
# Core flags & security baseline
# -----------------------------------------------------------------------------
ENV = os.getenv("ENV", "dev")

DEBUG = os.getenv("DEBUG", "0").lower() in {"1", "true", "yes"}

ALLOWED_HOSTS = [
    h.strip() for h in os.getenv("ALLOWED_HOSTS", "127.0.0.1,localhost,testserver").split(",") if h.strip()
]

SECRET_KEY = os.getenv("SECRET_KEY") or "replace-me-with-a-secure-secret-key"

if ENV == "prod":
    if DEBUG:
        raise RuntimeError("DEBUG must be 0 in prod")
    if SECRET_KEY == "replace-me-with-a-secure-secret-key":
        raise RuntimeError("SECRET_KEY must be set securely in prod")

# -----------------------------------------------------------------------------
# Applications
# -----------------------------------------------------------------------------
INSTALLED_APPS = [
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    # Local apps
    "utils",
    "core",
    "boarding",
    "students",
    "ledger",
    "fees",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "utils.middleware.AuditContextMiddleware",
]

ROOT_URLCONF = "hostelara.urls"

WSGI_APPLICATION = "hostelara.wsgi.application"

# -----------------------------------------------------------------------------
# Database
# Priority:
#   1) DATABASE_URL (parsed by dj_database_url)
#   2) SQLite fallback
# Lock waits are bounded so a stuck database surfaces as an error.
# -----------------------------------------------------------------------------
DB_CONN_MAX_AGE = int(os.getenv("DB_CONN_MAX_AGE", "60"))
DB_LOCK_TIMEOUT_MS = int(os.getenv("DB_LOCK_TIMEOUT_MS", "5000"))
DB_STATEMENT_TIMEOUT_MS = int(os.getenv("DB_STATEMENT_TIMEOUT_MS", "30000"))

database_url = os.getenv("DATABASE_URL", "").strip()
if database_url:
    DATABASES = {
        "default": dj_database_url.parse(database_url, conn_max_age=DB_CONN_MAX_AGE)
    }
else:
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.sqlite3",
            "NAME": (BASE_DIR / "db.sqlite3").as_posix(),
        }
    }

_engine = DATABASES["default"]["ENGINE"]
if "postgresql" in _engine:
    DATABASES["default"].setdefault("OPTIONS", {})["options"] = (
        f"-c lock_timeout={DB_LOCK_TIMEOUT_MS} -c statement_timeout={DB_STATEMENT_TIMEOUT_MS}"
    )
elif "sqlite" in _engine:
    DATABASES["default"].setdefault("OPTIONS", {})["timeout"] = DB_LOCK_TIMEOUT_MS / 1000

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

# -----------------------------------------------------------------------------
# Internationalization
# -----------------------------------------------------------------------------
LANGUAGE_CODE = "en-us"
TIME_ZONE = os.getenv("TIME_ZONE", "Asia/Kathmandu")
USE_I18N = True
USE_TZ = True

# -----------------------------------------------------------------------------
# Hostel billing profile
# Injected into services through core.config.HostelProfile.from_settings()
# -----------------------------------------------------------------------------
HOSTEL_PROFILE = {
    "name": os.getenv("HOSTEL_NAME", "Hostel"),
    "currency": os.getenv("HOSTEL_CURRENCY", "NPR"),
    "minor_units_per_major": int(os.getenv("HOSTEL_MINOR_UNITS", "100")),
    "invoice_prefix": os.getenv("HOSTEL_INVOICE_PREFIX", "BL"),
    "invoice_due_day": int(os.getenv("HOSTEL_INVOICE_DUE_DAY", "15")),
    "checkout_due_days": int(os.getenv("HOSTEL_CHECKOUT_DUE_DAYS", "0")),
    "prorate_partial_months": os.getenv("HOSTEL_PRORATE", "1").lower() in {"1", "true", "yes"},
    "balance_tolerance": int(os.getenv("HOSTEL_BALANCE_TOLERANCE", "0")),
}

# -----------------------------------------------------------------------------
# Logging
# -----------------------------------------------------------------------------
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "verbose": {
            "format": "{asctime} [{levelname}] {name}: {message}",
            "style": "{",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "verbose",
        },
    },
    "root": {
        "handlers": ["console"],
        "level": LOG_LEVEL,
    },
    "loggers": {
        "django.db.backends": {
            "level": "WARNING",
        },
        "financial_audit": {
            "handlers": ["console"],
            "level": "INFO",
            "propagate": False,
        },
    },
}
