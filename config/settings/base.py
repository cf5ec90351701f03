"""
Django base settings for the Dokusho catalog ingestion service.

This module contains settings common to all environments.
For more information on this file, see
https://docs.djangoproject.com/en/4.2/topics/settings/
"""

import os
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# Build paths inside the project like this: BASE_DIR / 'subdir'.
BASE_DIR = Path(__file__).resolve().parent.parent.parent


def env_list(name, default=""):
    """Comma separated environment variable as a list of non-empty items."""
    return [item.strip() for item in os.getenv(name, default).split(",") if item.strip()]


# SECURITY WARNING: keep the secret key used in production secret!
SECRET_KEY = os.getenv(
    "SECRET_KEY",
    "django-insecure-dokusho-dev-key-change-in-production"
)

# SECURITY WARNING: don't run with debug turned on in production!
DEBUG = os.getenv("DEBUG", "True") == "True"

ALLOWED_HOSTS = env_list("ALLOWED_HOSTS", "localhost,127.0.0.1")


# Application definition

INSTALLED_APPS = [
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    # Third-party apps
    "rest_framework",
    "drf_spectacular",
    # Local apps
    "catalog",
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

WSGI_APPLICATION = "config.wsgi.application"


# Database
# Configured in environment-specific settings (development.py, production.py, test.py)

DATABASES = {
    # Override in environment-specific settings
}


# Password validation
# https://docs.djangoproject.com/en/4.2/ref/settings/#auth-password-validators

AUTH_PASSWORD_VALIDATORS = [
    {
        "NAME": "django.contrib.auth.password_validation.UserAttributeSimilarityValidator",
    },
    {
        "NAME": "django.contrib.auth.password_validation.MinimumLengthValidator",
    },
    {
        "NAME": "django.contrib.auth.password_validation.CommonPasswordValidator",
    },
    {
        "NAME": "django.contrib.auth.password_validation.NumericPasswordValidator",
    },
]


# Internationalization

LANGUAGE_CODE = "en-us"

TIME_ZONE = "UTC"

USE_I18N = True

USE_TZ = True


# Static files (CSS, JavaScript, Images)

STATIC_URL = "static/"
STATIC_ROOT = BASE_DIR / "staticfiles"

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"


# Object storage for covers and chapter pages
# https://docs.djangoproject.com/en/4.2/ref/settings/#storages

CATALOG_MEDIA_ROOT = os.getenv("CATALOG_MEDIA_ROOT", str(BASE_DIR / "media"))
CATALOG_MEDIA_URL = os.getenv("CATALOG_MEDIA_URL", "http://localhost:8000/media/")

STORAGES = {
    "default": {
        "BACKEND": "django.core.files.storage.FileSystemStorage",
    },
    "staticfiles": {
        "BACKEND": "django.contrib.staticfiles.storage.StaticFilesStorage",
    },
    "catalog": {
        "BACKEND": "django.core.files.storage.FileSystemStorage",
        "OPTIONS": {
            "location": CATALOG_MEDIA_ROOT,
            "base_url": CATALOG_MEDIA_URL,
        },
    },
}


# Redis Cache Configuration
# Configured in environment-specific settings

CACHES = {
    # Override in environment-specific settings
}


# Celery Configuration
# https://docs.celeryproject.org/en/stable/django/first-steps-with-django.html

CELERY_BROKER_URL = os.getenv("CELERY_BROKER_URL", "redis://localhost:6379/1")
CELERY_RESULT_BACKEND = os.getenv("CELERY_RESULT_BACKEND", "redis://localhost:6379/1")
CELERY_ACCEPT_CONTENT = ["json"]
CELERY_TASK_SERIALIZER = "json"
CELERY_RESULT_SERIALIZER = "json"
CELERY_TIMEZONE = TIME_ZONE
CELERY_TASK_TRACK_STARTED = True
CELERY_TASK_TIME_LIMIT = 30 * 60  # 30 minutes max for a chapter upload

# Jobs are acknowledged after they run so a killed worker does not lose them
CELERY_TASK_ACKS_LATE = True
CELERY_WORKER_PREFETCH_MULTIPLIER = 1


# Django REST Framework Configuration
# https://www.django-rest-framework.org/

REST_FRAMEWORK = {
    "DEFAULT_AUTHENTICATION_CLASSES": [
        "rest_framework.authentication.SessionAuthentication",
        "rest_framework.authentication.BasicAuthentication",
    ],
    "DEFAULT_PERMISSION_CLASSES": [
        "rest_framework.permissions.IsAdminUser",
    ],
    "DEFAULT_SCHEMA_CLASS": "drf_spectacular.openapi.AutoSchema",
    "DEFAULT_PAGINATION_CLASS": "rest_framework.pagination.PageNumberPagination",
    "PAGE_SIZE": 100,
}


# DRF Spectacular (OpenAPI/Swagger) Configuration

SPECTACULAR_SETTINGS = {
    "TITLE": "Dokusho Catalog API",
    "DESCRIPTION": "Catalog ingestion, job queues and serie lifecycle administration",
    "VERSION": "1.0.0",
    "SERVE_INCLUDE_SCHEMA": False,
}


# Logging Configuration
# https://docs.djangoproject.com/en/4.2/topics/logging/

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "verbose": {
            "format": "{levelname} {asctime} {module} {message}",
            "style": "{",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "verbose",
        },
    },
    "loggers": {
        "django": {
            "handlers": ["console"],
            "level": os.getenv("LOG_LEVEL", "INFO"),
        },
        "catalog": {
            "handlers": ["console"],
            "level": os.getenv("LOG_LEVEL", "INFO"),
        },
    },
}


# Email
# https://docs.djangoproject.com/en/4.2/topics/email/

EMAIL_BACKEND = os.getenv("EMAIL_BACKEND", "django.core.mail.backends.smtp.EmailBackend")
EMAIL_HOST = os.getenv("EMAIL_HOST", "localhost")
EMAIL_PORT = int(os.getenv("EMAIL_PORT", "25"))
EMAIL_HOST_USER = os.getenv("EMAIL_HOST_USER", "")
EMAIL_HOST_PASSWORD = os.getenv("EMAIL_HOST_PASSWORD", "")
EMAIL_USE_TLS = os.getenv("EMAIL_USE_TLS", "False") == "True"
DEFAULT_FROM_EMAIL = os.getenv("DEFAULT_FROM_EMAIL", "Dokusho <noreply@dokusho.local>")


# Sentry Configuration
# https://docs.sentry.io/platforms/python/guides/django/

SENTRY_DSN = os.getenv("SENTRY_DSN", "")
SENTRY_ENVIRONMENT = os.getenv("SENTRY_ENVIRONMENT", "development")
SENTRY_TRACES_SAMPLE_RATE = float(os.getenv("SENTRY_TRACES_SAMPLE_RATE", "0.1"))

# Initialize Sentry (an empty DSN disables it)
import sentry_sdk

from catalog.monitoring.sentry_integration import before_send

sentry_sdk.init(
    dsn=SENTRY_DSN,
    traces_sample_rate=SENTRY_TRACES_SAMPLE_RATE,
    environment=SENTRY_ENVIRONMENT,
    before_send=before_send,
)


# External services

# Byparr (browser automation proxy for anti-bot protected catalogs)
BYPARR_URL = os.getenv("BYPARR_URL", "http://localhost:8191")

# Suwayomi server; empty disables the Suwayomi adapters
SUWAYOMI_URL = os.getenv("SUWAYOMI_URL", "")
SUWAYOMI_DISABLED_SOURCES = env_list("SUWAYOMI_DISABLED_SOURCES")

# WeebCentral is fetched through Byparr when its anti-bot page is up
WEEBCENTRAL_USE_BYPARR = os.getenv("WEEBCENTRAL_USE_BYPARR", "False") == "True"

# Meilisearch
MEILI_HOST = os.getenv("MEILI_HOST", "http://localhost:7700")
MEILI_MASTER_KEY = os.getenv("MEILI_MASTER_KEY", "")


# Catalog Configuration

# Adapter ids registered but never enabled
FORCE_DISABLE_SOURCE = env_list("FORCE_DISABLE_SOURCE")

# Languages chapters are imported in, and the language used for display fields
ENABLED_LANGUAGES = env_list("ENABLED_LANGUAGES", "En")
PRIMARY_LANGUAGE = os.getenv("PRIMARY_LANGUAGE", "En")
FALLBACK_PRIMARY_LANGUAGE = os.getenv("FALLBACK_PRIMARY_LANGUAGE", "En")

# Default timeout for HTTP requests (seconds)
CATALOG_REQUEST_TIMEOUT = int(os.getenv("CATALOG_REQUEST_TIMEOUT", "30"))

# Download attempts per image
CATALOG_IMAGE_RETRIES = int(os.getenv("CATALOG_IMAGE_RETRIES", "5"))

# Days between a soft delete and the hard delete
SOFT_DELETE_DELAY_DAYS = int(os.getenv("SOFT_DELETE_DELAY_DAYS", "7"))


# Update scheduler

SCHEDULER_FETCH_LATEST_CRON = os.getenv("SCHEDULER_FETCH_LATEST_CRON", "*/30 * * * *")
SCHEDULER_REFRESH_ALL_CRON = os.getenv("SCHEDULER_REFRESH_ALL_CRON", "0 3 * * 0")
SCHEDULER_MAX_PAGES = int(os.getenv("SCHEDULER_MAX_PAGES", "5"))
SCHEDULER_FINGERPRINT_SIZE = int(os.getenv("SCHEDULER_FINGERPRINT_SIZE", "50"))
SCHEDULER_RECENTLY_CHECKED_MS = int(os.getenv("SCHEDULER_RECENTLY_CHECKED_MS", "900000"))
SCHEDULER_REFRESH_SPREAD_MS = int(os.getenv("SCHEDULER_REFRESH_SPREAD_MS", "86400000"))


# Monitoring Configuration

# Consecutive import failure threshold - alert after N failures per source
CATALOG_FAILURE_THRESHOLD = int(os.getenv("CATALOG_FAILURE_THRESHOLD", "5"))
