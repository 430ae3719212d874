"""
Celery configuration for the payment gateway project.

Workers run the notification emails and the periodic billing jobs
(renewals, retries and grace period expiry) scheduled in
``CELERY_BEAT_SCHEDULE``.
"""
import os
from celery import Celery

# Set the default Django settings module for the 'celery' program.
os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'config.settings')

app = Celery('config')

# All celery-related configuration keys use the `CELERY_` prefix in settings.
app.config_from_object('django.conf:settings', namespace='CELERY')

# Picks up payment_gateway/tasks.py
app.autodiscover_tasks()
