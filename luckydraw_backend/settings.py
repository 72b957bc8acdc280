"""Django settings for the lucky draw backend.

Values come from the environment, falling back to a ``.env`` file in the
project root. ``DATABASE_URL`` may point at MySQL/MariaDB; without it a local
SQLite file is used.
"""

import os
from pathlib import Path
from typing import Dict, Optional
from urllib.parse import parse_qs, unquote, urlparse

BASE_DIR = Path(__file__).resolve().parent.parent


def _read_env_file(path: Path) -> Dict[str, str]:
    values: Dict[str, str] = {}
    if not path.exists():
        return values
    for raw in path.read_text(encoding="utf-8").splitlines():
        line = raw.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        values[key.strip()] = value.strip().strip('"').strip("'")
    return values


_ENV_FILE = _read_env_file(BASE_DIR / ".env")


def env(name: str, default: Optional[str] = None) -> Optional[str]:
    return os.environ.get(name, _ENV_FILE.get(name, default))


def env_float(name: str, default: float) -> float:
    value = env(name)
    return float(value) if value not in (None, "") else default


def _database_from_url(url: Optional[str]) -> Dict[str, object]:
    if not url:
        return {
            "ENGINE": "django.db.backends.sqlite3",
            "NAME": BASE_DIR / "db.sqlite3",
        }
    parsed = urlparse(url)
    if parsed.scheme not in {"mysql", "mariadb"}:
        raise ValueError("DATABASE_URL must use mysql:// or mariadb://")
    qs = parse_qs(parsed.query)
    charset = (qs.get("charset", ["utf8mb4"]) or ["utf8mb4"])[0]
    return {
        "ENGINE": "django.db.backends.mysql",
        "NAME": (parsed.path or "/").lstrip("/"),
        "USER": unquote(parsed.username or ""),
        "PASSWORD": unquote(parsed.password or ""),
        "HOST": parsed.hostname or "localhost",
        "PORT": str(parsed.port or 3306),
        "OPTIONS": {"charset": charset},
    }


SECRET_KEY = env("DJANGO_SECRET_KEY", "luckydraw-dev-secret-key")
DEBUG = env("DJANGO_DEBUG", "true").lower() in {"1", "true", "yes"}
ALLOWED_HOSTS = [
    host.strip()
    for host in (env("DJANGO_ALLOWED_HOSTS", "*") or "").split(",")
    if host.strip()
]

INSTALLED_APPS = [
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    "luckydraw.apps.LuckyDrawConfig",
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

ROOT_URLCONF = "luckydraw_backend.urls"
WSGI_APPLICATION = "luckydraw_backend.wsgi.application"

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

DATABASES = {"default": _database_from_url(env("DATABASE_URL"))}
DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_I18N = True
USE_TZ = True

STATIC_URL = "static/"
MEDIA_URL = "/media/"
MEDIA_ROOT = Path(env("LUCKYDRAW_MEDIA_ROOT", str(BASE_DIR / "media")))

# Accept uploads up to the largest per-endpoint limit.
DATA_UPLOAD_MAX_MEMORY_SIZE = 10 * 1024 * 1024
FILE_UPLOAD_MAX_MEMORY_SIZE = 10 * 1024 * 1024

REDIS_URL = env("REDIS_URL")
LUCKYDRAW_CHANGES_CHANNEL = env("LUCKYDRAW_CHANGES_CHANNEL", "luckydraw:changes")

LUCKYDRAW_DRAW_LOCK_TIMEOUT = env_float("LUCKYDRAW_DRAW_LOCK_TIMEOUT", 5)
LUCKYDRAW_STORE_LOCK_TIMEOUT = env_float("LUCKYDRAW_STORE_LOCK_TIMEOUT", 5)
LUCKYDRAW_REEL_DURATION = env_float("LUCKYDRAW_REEL_DURATION", 5.0)
LUCKYDRAW_REEL_NOISE = int(env_float("LUCKYDRAW_REEL_NOISE", 40))
LUCKYDRAW_PARTICIPANT_MAX_BYTES = 5 * 1024 * 1024
LUCKYDRAW_UPLOAD_MAX_BYTES = 10 * 1024 * 1024

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "simple": {"format": "%(asctime)s %(levelname)s %(name)s: %(message)s"},
    },
    "handlers": {
        "console": {"class": "logging.StreamHandler", "formatter": "simple"},
    },
    "loggers": {
        "luckydraw": {
            "handlers": ["console"],
            "level": env("LUCKYDRAW_LOG_LEVEL", "INFO"),
            "propagate": False,
        },
    },
}
