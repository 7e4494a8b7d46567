"""Django settings for the Dictask project."""

from pathlib import Path

import environ

BASE_DIR = Path(__file__).resolve().parent.parent

env = environ.Env(
    DEBUG=(bool, False),
)
environ.Env.read_env(BASE_DIR / ".env")

SECRET_KEY = env("DJANGO_SECRET_KEY", default="django-insecure-dictask-dev")
DEBUG = env("DEBUG")
ALLOWED_HOSTS = env.list("ALLOWED_HOSTS", default=["*"])

INSTALLED_APPS = [
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    "rest_framework",
    "planner",
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

ROOT_URLCONF = "config.urls"

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.debug",
                "django.template.context_processors.request",
                "django.contrib.auth.context_processors.auth",
                "django.contrib.messages.context_processors.messages",
            ],
        },
    },
]

WSGI_APPLICATION = "config.wsgi.application"

DATABASES = {"default": env.db("DATABASE_URL", default=f"sqlite:///{BASE_DIR / 'db.sqlite3'}")}

LANGUAGE_CODE = "en-us"
# Day keys are computed from local calendar fields; this is the local zone.
TIME_ZONE = env("TIME_ZONE", default="UTC")
USE_I18N = True
USE_TZ = True

STATIC_URL = "static/"
DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

REST_FRAMEWORK = {
    "DEFAULT_AUTHENTICATION_CLASSES": [],
    "DEFAULT_PERMISSION_CLASSES": [],
    "UNAUTHENTICATED_USER": None,
}

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "simple": {"format": "%(asctime)s %(levelname)s [%(name)s] %(message)s"},
    },
    "handlers": {
        "console": {"class": "logging.StreamHandler", "formatter": "simple"},
    },
    "root": {"handlers": ["console"], "level": env("LOG_LEVEL", default="INFO")},
}

# Celery
CELERY_BROKER_URL = env("REDIS_URL", default="redis://localhost:6379/0")
CELERY_RESULT_BACKEND = env("REDIS_URL", default="redis://localhost:6379/0")
CELERY_ACCEPT_CONTENT = ["json"]
CELERY_TASK_SERIALIZER = "json"
CELERY_RESULT_SERIALIZER = "json"

# ClickUp
CLICKUP_API_URL = env("CLICKUP_API_URL", default="https://api.clickup.com/api/v2")
CLICKUP_API_TOKEN = env("CLICKUP_API_TOKEN", default="")
CLICKUP_TEAM_ID = env("CLICKUP_TEAM_ID", default=env("CLICKUP_WORKSPACE_ID", default=""))
CLICKUP_LIST_ID = env("CLICKUP_LIST_ID", default="")
CLICKUP_TIMEOUT = env.float("CLICKUP_TIMEOUT", default=15.0)

# Firebase Realtime Database
FIREBASE_DATABASE_URL = env("FIREBASE_DATABASE_URL", default="")
FIREBASE_API_KEY = env("FIREBASE_API_KEY", default="")
FIREBASE_EMAIL = env("FIREBASE_EMAIL", default="")
FIREBASE_PASSWORD = env("FIREBASE_PASSWORD", default="")
FIREBASE_DATABASE_SECRET = env("FIREBASE_DATABASE_SECRET", default="")

# LLM
LLM_MODEL_PATH = env(
    "LLM_MODEL_PATH",
    default=str(BASE_DIR / "models" / "Phi-3.5-mini-instruct-Q4_K_M.gguf"),
)
LLM_N_CTX = env.int("LLM_N_CTX", default=2048)
LLM_N_THREADS = env.int("LLM_N_THREADS", default=2)

# Agenda
AGENDA_UNDER_HOURS = env.float("AGENDA_UNDER_HOURS", default=6.5)
AGENDA_OVER_HOURS = env.float("AGENDA_OVER_HOURS", default=8.0)
AGENDA_BANNER_SECONDS = env.float("AGENDA_BANNER_SECONDS", default=4.0)
