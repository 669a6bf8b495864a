"""
Base Django settings for the dispatch backend.

Environment-specific modules (prod.py, test.py) star-import this one and
override what they need. Every value can be overridden from the environment.
"""

import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent.parent

SECRET_KEY = os.getenv("DJANGO_SECRET_KEY", "dev-secret-key-change-in-production")
DEBUG = os.getenv("DJANGO_DEBUG", "true").lower() == "true"
ALLOWED_HOSTS = os.getenv("ALLOWED_HOSTS", "localhost,127.0.0.1").split(",")


# ---------------------- Applications ----------------------

INSTALLED_APPS = [
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",

    # Third party
    "channels",
    "rest_framework",

    # Local apps
    "accounts",
    "drivers",
    "orders.apps.OrdersConfig",
    "dispatch.apps.DispatchConfig",
    "realtime",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]

ROOT_URLCONF = "app_backend.urls"
ASGI_APPLICATION = "app_backend.asgi.application"

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.request",
                "django.contrib.auth.context_processors.auth",
                "django.contrib.messages.context_processors.messages",
            ],
        },
    },
]

AUTH_USER_MODEL = "accounts.User"
DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"


# ---------------------- Database ----------------------

if os.getenv("POSTGRES_DB"):
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.postgresql",
            "NAME": os.getenv("POSTGRES_DB"),
            "USER": os.getenv("POSTGRES_USER", "postgres"),
            "PASSWORD": os.getenv("POSTGRES_PASSWORD", ""),
            "HOST": os.getenv("POSTGRES_HOST", "localhost"),
            "PORT": os.getenv("POSTGRES_PORT", "5432"),
        }
    }
else:
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.sqlite3",
            "NAME": BASE_DIR / "db.sqlite3",
        }
    }


# ---------------------- Internationalization / static ----------------------

LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_I18N = True
USE_TZ = True

STATIC_URL = "static/"
STATIC_ROOT = BASE_DIR / "staticfiles"


# ---------------------- REST framework ----------------------

REST_FRAMEWORK = {
    "DEFAULT_AUTHENTICATION_CLASSES": [
        "rest_framework.authentication.SessionAuthentication",
    ],
    "DEFAULT_PERMISSION_CLASSES": [
        "rest_framework.permissions.IsAuthenticated",
    ],
}


# ---------------------- Redis / Channels / Cache ----------------------

REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")

CHANNEL_LAYERS = {
    "default": {
        "BACKEND": "channels.layers.InMemoryChannelLayer",
    }
}

CACHES = {
    "default": {
        "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
        "LOCATION": "dispatch-default",
    }
}


# ---------------------- Celery ----------------------

CELERY_BROKER_URL = os.getenv("CELERY_BROKER_URL", REDIS_URL)
CELERY_RESULT_BACKEND = os.getenv("CELERY_RESULT_BACKEND", REDIS_URL)
CELERY_ACCEPT_CONTENT = ["json"]
CELERY_TASK_SERIALIZER = "json"
CELERY_RESULT_SERIALIZER = "json"
CELERY_TIMEZONE = TIME_ZONE


# ---------------------- Dispatch ----------------------

DISPATCH_CLAIM_WINDOW_SECONDS = int(os.getenv("DISPATCH_CLAIM_WINDOW_SECONDS", 300))
DISPATCH_MAX_RADIUS_KM = float(os.getenv("DISPATCH_MAX_RADIUS_KM", 15))
DISPATCH_MAX_CANDIDATES = int(os.getenv("DISPATCH_MAX_CANDIDATES", 5))
DISPATCH_MAX_ATTEMPTS = int(os.getenv("DISPATCH_MAX_ATTEMPTS", 2))
DISPATCH_RADIUS_EXPANSION = float(os.getenv("DISPATCH_RADIUS_EXPANSION", 1.5))
DISPATCH_RATING_TIE_KM = float(os.getenv("DISPATCH_RATING_TIE_KM", 1.0))
DISPATCH_NOTIFY_TIMEOUT_SECONDS = float(os.getenv("DISPATCH_NOTIFY_TIMEOUT_SECONDS", 5))
DISPATCH_PROVIDER_TIMEOUT_SECONDS = float(os.getenv("DISPATCH_PROVIDER_TIMEOUT_SECONDS", 3))
DISPATCH_SWEEP_INTERVAL_SECONDS = int(os.getenv("DISPATCH_SWEEP_INTERVAL_SECONDS", 30))
DISPATCH_FALLBACK_SPEED_KMH = float(os.getenv("DISPATCH_FALLBACK_SPEED_KMH", 30))
DISPATCH_GEOCODER_COUNTRY = os.getenv("DISPATCH_GEOCODER_COUNTRY", "ca")
DISPATCH_GEOCODE_CACHE_TTL = int(os.getenv("DISPATCH_GEOCODE_CACHE_TTL", 86400))
DISPATCH_AUTO_DISPATCH = os.getenv("DISPATCH_AUTO_DISPATCH", "true").lower() == "true"

DISPATCH_NOTIFIER_BACKEND = os.getenv(
    "DISPATCH_NOTIFIER_BACKEND", "realtime.notifications.ChannelLayerNotifier"
)
DISPATCH_ASSIGNMENT_STORE = os.getenv(
    "DISPATCH_ASSIGNMENT_STORE",
    "services.dispatch_management.store.DjangoAssignmentStore",
)

CELERY_BEAT_SCHEDULE = {
    "sweep-expired-assignments": {
        "task": "dispatch.tasks.sweep_expired_assignments_task",
        "schedule": float(DISPATCH_SWEEP_INTERVAL_SECONDS),
    },
}

# External providers
MAPBOX_ACCESS_TOKEN = os.getenv("MAPBOX_ACCESS_TOKEN", "")
MAPBOX_BASE_URL = os.getenv("MAPBOX_BASE_URL", "https://api.mapbox.com")
FCM_SERVER_KEY = os.getenv("FCM_SERVER_KEY", "")
FCM_SEND_URL = os.getenv("FCM_SEND_URL", "https://fcm.googleapis.com/fcm/send")


# ---------------------- Logging ----------------------

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "verbose": {
            "format": "{levelname} {asctime} {name} {process:d} {thread:d} {message}",
            "style": "{",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "verbose",
        },
    },
    "root": {
        "handlers": ["console"],
        "level": os.getenv("LOG_LEVEL", "INFO"),
    },
    "loggers": {
        "django": {
            "handlers": ["console"],
            "level": os.getenv("DJANGO_LOG_LEVEL", "INFO"),
            "propagate": False,
        },
        "celery": {
            "handlers": ["console"],
            "level": "INFO",
            "propagate": False,
        },
    },
}
