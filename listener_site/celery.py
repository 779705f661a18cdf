# listener_site/celery.py
"""
Celery configuration for the remote sync pipeline (skip/switch jobs,
notifications, outbound subscription pushes).
"""

import os
from celery import Celery

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'listener_site.settings')

app = Celery('listener_site')

# Load configuration from Django settings with 'CELERY' namespace
app.config_from_object('django.conf:settings', namespace='CELERY')

# Auto-discover tasks from all registered Django apps
app.autodiscover_tasks()
