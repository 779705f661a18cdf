from pathlib import Path
import json
import os
from dotenv import load_dotenv
from celery.schedules import crontab

# Load environment variables from .env file
load_dotenv()

# Build paths inside the project like this: BASE_DIR / 'subdir'.
BASE_DIR = Path(__file__).resolve().parent.parent


# ==============================================================================
# SECURITY SETTINGS (ENVIRONMENT-BASED)
# ==============================================================================

# Load from .env; fall back to insecure default for development only
SECRET_KEY = os.getenv(
    'DJANGO_SECRET_KEY',
    'django-insecure-3q!v8l0m#k2xj$w9n6r@p4t7z1c5b0d&f8h2g6s9e4a7u3y1'
)

DEBUG = os.getenv('DEBUG', 'True') == 'True'

ALLOWED_HOSTS = os.getenv('ALLOWED_HOSTS', '*').split(',')

if not DEBUG:
    SECURE_SSL_REDIRECT = os.getenv('SECURE_SSL_REDIRECT', 'True') == 'True'
    SECURE_PROXY_SSL_HEADER = ('HTTP_X_FORWARDED_PROTO', 'https')
    SECURE_CONTENT_TYPE_NOSNIFF = True


# ==============================================================================
# APPLICATION CONFIGURATION
# ==============================================================================

INSTALLED_APPS = [
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',

    # Local apps
    'subscriptions',  # Subscription replica, eligibility rules, remote sync
]


MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'whitenoise.middleware.WhiteNoiseMiddleware',  # Serve admin static files
    'django.contrib.sessions.middleware.SessionMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
    'django.contrib.messages.middleware.MessageMiddleware',
    'django.middleware.clickjacking.XFrameOptionsMiddleware',
]

ROOT_URLCONF = 'listener_site.urls'

TEMPLATES = [
    {
        'BACKEND': 'django.template.backends.django.DjangoTemplates',
        'DIRS': [],
        'APP_DIRS': True,
        'OPTIONS': {
            'context_processors': [
                'django.template.context_processors.request',
                'django.contrib.auth.context_processors.auth',
                'django.contrib.messages.context_processors.messages',
            ],
        },
    },
]

WSGI_APPLICATION = 'listener_site.wsgi.application'

STATIC_URL = 'static/'
STATIC_ROOT = BASE_DIR / 'staticfiles'

if not DEBUG:
    # WhiteNoise serves collected static files without a separate web server
    STORAGES = {
        "default": {
            "BACKEND": "django.core.files.storage.FileSystemStorage",
        },
        "staticfiles": {
            "BACKEND": "whitenoise.storage.CompressedManifestStaticFilesStorage",
        },
    }


# ==============================================================================
# DATABASE CONFIGURATION
# ==============================================================================
# Supports DATABASE_URL (Railway/Heroku) or SQLite

import dj_database_url

DATABASE_URL = os.getenv('DATABASE_URL', '')

if DATABASE_URL:
    DATABASES = {
        'default': dj_database_url.config(
            default=DATABASE_URL,
            conn_max_age=600,
            conn_health_checks=True,
        )
    }
else:
    # Default: SQLite for local development
    DATABASES = {
        'default': {
            'ENGINE': 'django.db.backends.sqlite3',
            'NAME': BASE_DIR / 'db.sqlite3',
        }
    }


# ==============================================================================
# CELERY CONFIGURATION
# ==============================================================================

# For development: Run tasks synchronously without needing Redis
# Set to False in production when you have a proper Celery worker setup
CELERY_TASK_ALWAYS_EAGER = os.getenv('CELERY_TASK_ALWAYS_EAGER', 'True').lower() == 'true'
CELERY_TASK_EAGER_PROPAGATES = True  # Propagate exceptions in eager mode

CELERY_BROKER_URL = os.getenv('CELERY_BROKER_URL', 'redis://localhost:6379/0')
CELERY_RESULT_BACKEND = os.getenv('CELERY_RESULT_BACKEND', 'redis://localhost:6379/1')

CELERY_ACCEPT_CONTENT = ['json']
CELERY_TASK_SERIALIZER = 'json'
CELERY_RESULT_SERIALIZER = 'json'
CELERY_TIMEZONE = 'UTC'
CELERY_TASK_TRACK_STARTED = True
CELERY_TASK_TIME_LIMIT = 10 * 60
CELERY_TASK_SOFT_TIME_LIMIT = 8 * 60

# Redelivery is the queue's job: ack after the task body ran, requeue on worker loss
CELERY_TASK_ACKS_LATE = True
CELERY_TASK_REJECT_ON_WORKER_LOST = True
CELERY_WORKER_PREFETCH_MULTIPLIER = 1

# Sync jobs are routed per subscription partition at dispatch time
# (recharge_sync.0 .. recharge_sync.N-1); each partition queue is consumed
# by a single-concurrency worker.
CELERY_TASK_ROUTES = {
    'subscriptions.tasks.send_notification': {'queue': 'notifications'},
    'subscriptions.tasks.push_subscription': {'queue': 'recharge_push'},
}

CELERY_BEAT_SCHEDULE = {
    'redeliver-stale-sync-jobs': {
        'task': 'subscriptions.tasks.redeliver_stale_jobs',
        'schedule': crontab(minute='*/10'),
    },
}


# ==============================================================================
# CACHE CONFIGURATION
# ==============================================================================

# Local memory cache for development; Redis in production (shared sync locks)
REDIS_URL = os.getenv('REDIS_URL', '')

if REDIS_URL:
    CACHES = {
        'default': {
            'BACKEND': 'django_redis.cache.RedisCache',
            'LOCATION': REDIS_URL,
            'OPTIONS': {
                'CLIENT_CLASS': 'django_redis.client.DefaultClient',
            }
        }
    }
else:
    CACHES = {
        'default': {
            'BACKEND': 'django.core.cache.backends.locmem.LocMemCache',
            'LOCATION': 'subscription-listener',
        }
    }


# ==============================================================================
# INTERNATIONALIZATION
# ==============================================================================

LANGUAGE_CODE = 'en-us'
# Remote ledger timestamps are naive and expressed in this zone
TIME_ZONE = os.getenv('TIME_ZONE', 'America/Los_Angeles')
USE_I18N = True
USE_TZ = True


# ==============================================================================
# LOGGING CONFIGURATION
# ==============================================================================

LOGS_DIR = BASE_DIR / 'logs'
LOGS_DIR.mkdir(exist_ok=True)

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'verbose': {
            'format': '{levelname} {asctime} {module} {process:d} {thread:d} {message}',
            'style': '{',
        },
        'simple': {
            'format': '{levelname} {asctime} {message}',
            'style': '{',
        },
    },
    'handlers': {
        'console': {
            'level': 'DEBUG',
            'class': 'logging.StreamHandler',
            'formatter': 'simple'
        },
        'file': {
            'level': 'INFO',
            'class': 'logging.FileHandler',
            'filename': LOGS_DIR / 'listener.log',
            'formatter': 'verbose',
        },
        'sync_file': {
            'level': 'INFO',
            'class': 'logging.FileHandler',
            'filename': LOGS_DIR / 'sync_worker.log',
            'formatter': 'verbose',
        },
    },
    'loggers': {
        'django': {
            'handlers': ['console', 'file'],
            'level': 'INFO',
        },
        'celery': {
            'handlers': ['console', 'file'],
            'level': 'INFO',
        },
        'subscriptions': {
            'handlers': ['console', 'file'],
            'level': os.getenv('SUBSCRIPTIONS_LOG_LEVEL', 'DEBUG'),
        },
        'subscriptions.services.sync_worker': {
            'handlers': ['sync_file'],
            'level': 'INFO',
        },
    },
}


# ==============================================================================
# DEFAULT PRIMARY KEY
# ==============================================================================

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'


# ==============================================================================
# RECHARGE (REMOTE LEDGER)
# ==============================================================================

RECHARGE_API_URL = os.getenv('RECHARGE_API_URL', 'https://api.rechargeapps.com')
RECHARGE_ACCESS_TOKEN = os.getenv('RECHARGE_ACCESS_TOKEN', '')
REMOTE_LEDGER_TIMEOUT = int(os.getenv('REMOTE_LEDGER_TIMEOUT', '80'))  # seconds


# ==============================================================================
# SKIP / SWITCH POLICY
# ==============================================================================

# Skips must be requested before this day of the month
SKIP_CUTOFF_DAY = int(os.getenv('SKIP_CUTOFF_DAY', '5'))

# Alternate product for a switch when none is requested: {"<product_id>": <alt_id>}
ALTERNATE_PRODUCTS = {
    int(product_id): int(alt_id)
    for product_id, alt_id in json.loads(os.getenv('ALTERNATE_PRODUCTS', '{}')).items()
}


# ==============================================================================
# SYNC QUEUE
# ==============================================================================

SYNC_QUEUE_PARTITIONS = int(os.getenv('SYNC_QUEUE_PARTITIONS', '4'))
SYNC_LOCK_TIMEOUT = int(os.getenv('SYNC_LOCK_TIMEOUT', '300'))  # seconds
SYNC_RETRY_COUNTDOWN = int(os.getenv('SYNC_RETRY_COUNTDOWN', '15'))  # seconds
SYNC_REDELIVERY_AFTER = int(os.getenv('SYNC_REDELIVERY_AFTER', '900'))  # seconds


# ==============================================================================
# EMAIL CONFIGURATION
# ==============================================================================

EMAIL_BACKEND = os.getenv('EMAIL_BACKEND', 'django.core.mail.backends.console.EmailBackend')
EMAIL_HOST = os.getenv('EMAIL_HOST', 'smtp.gmail.com')
EMAIL_PORT = int(os.getenv('EMAIL_PORT', '587'))
EMAIL_USE_TLS = os.getenv('EMAIL_USE_TLS', 'True') == 'True'
EMAIL_HOST_USER = os.getenv('EMAIL_HOST_USER', '')
EMAIL_HOST_PASSWORD = os.getenv('EMAIL_HOST_PASSWORD', '')
DEFAULT_FROM_EMAIL = os.getenv('DEFAULT_FROM_EMAIL', 'Subscriptions <noreply@example.com>')
CUSTOMER_SERVICE_EMAIL = os.getenv('CUSTOMER_SERVICE_EMAIL', 'support@example.com')
