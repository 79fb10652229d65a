"""
Celery application for background billing jobs.

Broker and result backend default to the project's Redis (REDIS_URL), so a
deployment that already configures the cache needs no extra settings.
Configuration is read from Django settings under the ``CELERY_`` prefix.

Start a worker with:

    celery -A backend worker -l info
"""

import os

from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "backend.settings")

app = Celery("backend", include=["elearning.notifications.tasks"])
app.config_from_object("django.conf:settings", namespace="CELERY")
