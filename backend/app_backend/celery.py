"""Celery application for background dispatch work (expiry sweep, re-dispatch)."""

import os

from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "app_backend.settings")

app = Celery("app_backend")

# Load config from Django settings, using CELERY_ prefix
app.config_from_object("django.conf:settings", namespace="CELERY")

# Auto-discover tasks.py from all installed apps
app.autodiscover_tasks()
