"""
Celery configuration for the escrow backend.

Celery drives the background side of webhook handling:
- Reprocessing individual webhook events (escrow.tasks.process_webhook_event)
- Periodic retry of failed events and reset of stuck ones, scheduled by
  django-celery-beat (see escrow/migrations/0002_add_webhook_schedules.py)

This configuration uses Redis as both the message broker and result backend.
Tasks are auto-discovered from all installed Django apps.

Usage:
    from escrow.tasks import process_webhook_event

    process_webhook_event.delay(str(webhook_event.id))

For more information, see:
https://docs.celeryq.dev/en/stable/django/first-steps-with-django.html
"""

import os

from celery import Celery

# Set the default Django settings module for the Celery worker
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

app = Celery("config")

# All Celery settings are prefixed with CELERY_ in settings.py
app.config_from_object("django.conf:settings", namespace="CELERY")

# Looks for a tasks.py module in each installed app
app.autodiscover_tasks()
