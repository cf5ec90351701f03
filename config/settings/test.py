"""
Test settings for the Dokusho catalog ingestion service.

Uses in-memory SQLite, in-memory object storage and eager Celery for
fast test execution.
"""

from .base import *

# Test mode
DEBUG = False

ALLOWED_HOSTS = ["localhost", "127.0.0.1", "testserver"]

# Test database - in-memory SQLite for speed
DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": ":memory:",
    }
}

# Test Cache - use local memory cache
CACHES = {
    "default": {
        "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
        "LOCATION": "unique-snowflake",
    }
}

# Test storage - nothing touches the filesystem
STORAGES["catalog"] = {
    "BACKEND": "django.core.files.storage.InMemoryStorage",
    "OPTIONS": {
        "base_url": "https://media.test/",
    },
}

# Test Celery - run tasks synchronously
CELERY_BROKER_URL = "memory://"
CELERY_RESULT_BACKEND = "cache+memory://"
CELERY_TASK_ALWAYS_EAGER = True
CELERY_TASK_EAGER_PROPAGATES = True

# Test logging - minimal output
LOGGING["loggers"]["django"]["level"] = "WARNING"
LOGGING["loggers"]["catalog"]["level"] = "WARNING"

# Password validators disabled for faster tests
AUTH_PASSWORD_VALIDATORS = []

# Use faster password hasher for tests
PASSWORD_HASHERS = [
    "django.contrib.auth.hashers.MD5PasswordHasher",
]

# Emails are collected in django.core.mail.outbox
EMAIL_BACKEND = "django.core.mail.backends.locmem.EmailBackend"

# Disable Sentry in tests
SENTRY_DSN = ""

# External services are mocked in tests
SUWAYOMI_URL = ""
MEILI_HOST = "http://meili.test"
MEILI_MASTER_KEY = "test-key"

# Fail fast
CATALOG_REQUEST_TIMEOUT = 5
CATALOG_IMAGE_RETRIES = 1
