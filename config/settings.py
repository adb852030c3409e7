import math
import os
import dj_database_url
import sentry_sdk
from sentry_sdk.integrations.django import DjangoIntegration


# Build paths inside the project like this: os.path.join(BASE_DIR, ...)
BASE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))


# SECURITY WARNING: keep the secret key used in production secret!
SECRET_KEY = os.environ.get("DJANGO_SECRET") or "dev-secret-8f#k2w(q!brew*0t@u1m^"

# SECURITY WARNING: don't run with debug turned on in production!
DEBUG = bool(os.environ.get("DJANGO_DEBUG"))
INTERNAL_IPS = ("127.0.0.1",)

# Application definition

INSTALLED_APPS = (
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    "brew",
)

MIDDLEWARE = (
    "brew.middleware.request_logging_middleware",
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
)


# Sentry
def init_sentry(dsn, release=""):
    "Report unhandled exceptions and ERROR log records to Sentry"
    if not dsn:
        return False
    sentry_sdk.init(dsn=dsn, integrations=[DjangoIntegration()], release=release)
    return True


SENTRY_DSN = os.environ.get("SENTRY_DSN")
init_sentry(SENTRY_DSN, release=os.environ.get("HEROKU_SLUG_COMMIT", ""))


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


# Database
# https://docs.djangoproject.com/en/stable/ref/settings/#databases

# Every counter store call is bounded by this
BREW_STORE_TIMEOUT_MS = int(os.environ.get("BREW_STORE_TIMEOUT_MS") or 3000)

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": os.path.join(BASE_DIR, "db.sqlite3"),
    },
}

if "DATABASE_URL" in os.environ:
    # Parse database configuration from $DATABASE_URL
    DATABASES["default"] = dj_database_url.config()


def bound_database_calls(database, timeout_ms):
    "Make every query and every connection attempt give up after timeout_ms"
    options = database.setdefault("OPTIONS", {})
    if database["ENGINE"] == "django.db.backends.postgresql":
        options["options"] = "-c statement_timeout=%d" % timeout_ms
        # libpq takes whole seconds and treats anything under 2 as 2
        options["connect_timeout"] = max(2, math.ceil(timeout_ms / 1000))
    elif database["ENGINE"] == "django.db.backends.sqlite3":
        options["timeout"] = timeout_ms / 1000
        # Concurrent test writers need a real file, not shared memory
        database.setdefault("TEST", {}).setdefault(
            "NAME", os.path.join(BASE_DIR, "test_db.sqlite3")
        )
    return database


bound_database_calls(DATABASES["default"], BREW_STORE_TIMEOUT_MS)

# Internationalization

LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_I18N = True
USE_TZ = True
DEFAULT_AUTO_FIELD = "django.db.models.AutoField"

# Honor the 'X-Forwarded-Proto' header for request.is_secure()
SECURE_PROXY_SSL_HEADER = ("HTTP_X_FORWARDED_PROTO", "https")

# Allow all host headers
ALLOWED_HOSTS = ["*"]

STATIC_ROOT = os.path.join(BASE_DIR, "staticfiles")
STATIC_URL = "/static/"


# Logging
LOG_LEVEL = os.environ.get("DJANGO_LOG_LEVEL", "INFO").upper()

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "simple": {
            "format": "%(asctime)s %(levelname)s %(name)s: %(message)s",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "simple",
        },
    },
    "loggers": {
        "brew": {
            "handlers": ["console"],
            "level": LOG_LEVEL,
            "propagate": False,
        },
    },
}


# Homebrew bottle tracking

# Release host for each project we publish bottles for. Override with
# BREW_RELEASE_BASES="rona=https://github.com/rona-rs/rona,other=https://..."
BREW_RELEASE_BASES = {
    "rona": "https://github.com/rona-rs/rona",
    "clean-dev-dirs": "https://github.com/clean-dev-dirs/clean-dev-dirs",
}
if os.environ.get("BREW_RELEASE_BASES"):
    BREW_RELEASE_BASES = dict(
        pair.strip().split("=", 1)
        for pair in os.environ["BREW_RELEASE_BASES"].split(",")
        if "=" in pair
    )

# Platform tags newer than the ones brew/platforms.py knows about
BREW_EXTRA_PLATFORM_TAGS = [
    tag.strip()
    for tag in os.environ.get("BREW_EXTRA_PLATFORM_TAGS", "").split(",")
    if tag.strip()
]
