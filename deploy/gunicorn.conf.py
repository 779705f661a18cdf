# ==============================================================================
# Gunicorn Configuration for the Subscription Listener
# ==============================================================================
# Run with: gunicorn -c deploy/gunicorn.conf.py listener_site.wsgi:application

import multiprocessing
import os

# Server socket - Use PORT from environment (Railway/Heroku) or default to 8000
port = os.environ.get("PORT", "8000")
bind = f"0.0.0.0:{port}"
backlog = 2048

# Worker processes
# Request handlers only enqueue sync jobs; remote calls happen in Celery
workers = int(os.environ.get("WEB_CONCURRENCY", multiprocessing.cpu_count() * 2 + 1))
worker_class = "sync"
timeout = 30
keepalive = 5
max_requests = 1000
max_requests_jitter = 50

# Process naming
proc_name = "subscription-listener"

# Logging - Use stdout/stderr for cloud platforms
accesslog = "-"
errorlog = "-"
loglevel = "info"
access_log_format = '%(h)s %(l)s %(u)s %(t)s "%(r)s" %(s)s %(b)s "%(f)s" "%(a)s" %(L)s'

# Security
limit_request_line = 4094
limit_request_fields = 100
limit_request_field_size = 8190

# Server mechanics
daemon = False
pidfile = None

# Environment
raw_env = [
    "DJANGO_SETTINGS_MODULE=listener_site.settings",
]
