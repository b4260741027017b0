# config/settings/ci.py
# Test settings against a real PostgreSQL server, so row locks and
# skip_locked behave as in production:
#   DJANGO_SETTINGS_MODULE=config.settings.ci pytest
import os

from .test import *  # noqa

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.postgresql",
        "NAME": os.getenv("DB_NAME", "qm"),
        "USER": os.getenv("DB_USER", "qm"),
        "PASSWORD": os.getenv("DB_PASSWORD", "qm"),
        "HOST": os.getenv("DB_HOST", "127.0.0.1"),
        "PORT": os.getenv("DB_PORT", "5432"),
        "TEST": {"NAME": os.getenv("DB_TEST_NAME", "test_qm")},
    }
}
