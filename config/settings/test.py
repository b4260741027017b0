# config/settings/test.py
from .base import *  # noqa

DEBUG = False
SECRET_KEY = "test-secret-key"

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": ":memory:",
    }
}

PASSWORD_HASHERS = ["django.contrib.auth.hashers.MD5PasswordHasher"]

CACHES = {
    "default": {
        "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
        "LOCATION": "qm-test",
    }
}

REST_FRAMEWORK["DEFAULT_THROTTLE_RATES"] = {
    "token_create": "1000/min",
    "queue_status": "1000/min",
    "auth": "1000/min",
}

QUEUE_ENGINE = {**QUEUE_ENGINE, "NOTIFIER": "qm_core.notifications.hub.RecordingNotifier"}

LOGGING["loggers"]["qm_core"]["level"] = "WARNING"
# let pytest caplog see engine logs
LOGGING["loggers"]["qm_core"]["propagate"] = True
