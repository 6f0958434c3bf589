"""Application settings and environment helpers."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Iterable, List
from urllib.parse import urlparse

from dotenv import load_dotenv

load_dotenv(override=False)

logger = logging.getLogger(__name__)


def _require_env(name: str) -> str:
    """Return a required environment variable or raise an error."""

    value = os.getenv(name)
    if not value:
        logger.critical("Missing required environment variable: %s", name)
        raise RuntimeError(f"Missing required environment variable: {name}")
    return value


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise RuntimeError(f"{name} must be an integer") from exc


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise RuntimeError(f"{name} must be a number") from exc


def _split_csv(raw: str | None) -> List[str]:
    if not raw:
        return []
    return [item.strip() for item in raw.split(",") if item.strip()]


def _unique(values: Iterable[str]) -> List[str]:
    seen = set()
    ordered: List[str] = []
    for value in values:
        if value not in seen:
            seen.add(value)
            ordered.append(value)
    return ordered


def _host_of(url: str) -> str:
    return (urlparse(url).hostname or "").lower()


# Token signing --------------------------------------------------------------
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "RS256").strip().upper()
if JWT_ALGORITHM not in {"RS256", "HS256"}:
    raise RuntimeError("JWT_ALGORITHM must be RS256 or HS256")

JWT_KEY_ID = os.getenv("JWT_KEY_ID", "key-1")
JWT_RETIRED_JWKS = os.getenv("JWT_RETIRED_JWKS", "")

if JWT_ALGORITHM == "RS256":
    JWT_RSA_PRIVATE_KEY = _require_env("JWT_RSA_PRIVATE_KEY")
    JWT_SECRET = os.getenv("JWT_SECRET", "")
else:
    JWT_RSA_PRIVATE_KEY = os.getenv("JWT_RSA_PRIVATE_KEY", "")
    JWT_SECRET = _require_env("JWT_SECRET")
    if len(JWT_SECRET) < 32:
        raise RuntimeError("JWT_SECRET must be at least 32 characters long")

JWT_ISSUER = os.getenv("JWT_ISSUER", "portal.localhost")
JWT_AUDIENCE = _split_csv(os.getenv("JWT_AUDIENCE"))
PERM_VERSION = _env_int("PERM_VERSION", 1)


# Access control -------------------------------------------------------------
ADMIN_EMAILS = _unique(
    email.lower() for email in _split_csv(os.getenv("ADMIN_EMAILS"))
)


# Frontend and redirects -----------------------------------------------------
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:5173").rstrip("/")
BASE_URL = os.getenv("BASE_URL", "").rstrip("/")

# Post-login and SSO redirects may only target these hosts.
ALLOWED_REDIRECT_HOSTS = _unique(
    [
        _host_of(FRONTEND_URL),
        *(host.lower() for host in JWT_AUDIENCE),
        *(host.lower() for host in _split_csv(os.getenv("ALLOWED_REDIRECT_HOSTS"))),
    ]
)

_local_dev_origins = [
    "http://localhost:5173",
    "http://127.0.0.1:5173",
]

ALLOWED_CORS_ORIGINS = _unique(
    [
        FRONTEND_URL,
        *_split_csv(os.getenv("ALLOWED_CORS_ORIGINS")),
        *_local_dev_origins,
    ]
)


# OAuth providers ------------------------------------------------------------
GOOGLE_CLIENT_ID = os.getenv("GOOGLE_CLIENT_ID", "")
GOOGLE_CLIENT_SECRET = os.getenv("GOOGLE_CLIENT_SECRET", "")
QQ_APP_ID = os.getenv("QQ_APP_ID", "")
QQ_APP_KEY = os.getenv("QQ_APP_KEY", "")
OAUTH_HTTP_TIMEOUT = _env_float("OAUTH_HTTP_TIMEOUT", 10.0)


# Runtime behaviour ----------------------------------------------------------
_PROJECT_ROOT = Path(__file__).resolve().parents[2]
DATABASE_URL = os.getenv(
    "DATABASE_URL", f"sqlite:///{_PROJECT_ROOT / 'data' / 'app.db'}"
)

COOKIE_DOMAIN = os.getenv("COOKIE_DOMAIN") or None
COOKIE_SECURE = _env_bool("COOKIE_SECURE", False)
COOKIE_SAMESITE = os.getenv("COOKIE_SAMESITE", "lax")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()


__all__ = [
    "ADMIN_EMAILS",
    "ALLOWED_CORS_ORIGINS",
    "ALLOWED_REDIRECT_HOSTS",
    "BASE_URL",
    "COOKIE_DOMAIN",
    "COOKIE_SAMESITE",
    "COOKIE_SECURE",
    "DATABASE_URL",
    "FRONTEND_URL",
    "GOOGLE_CLIENT_ID",
    "GOOGLE_CLIENT_SECRET",
    "JWT_ALGORITHM",
    "JWT_AUDIENCE",
    "JWT_ISSUER",
    "JWT_KEY_ID",
    "JWT_RETIRED_JWKS",
    "JWT_RSA_PRIVATE_KEY",
    "JWT_SECRET",
    "LOG_LEVEL",
    "OAUTH_HTTP_TIMEOUT",
    "PERM_VERSION",
    "QQ_APP_ID",
    "QQ_APP_KEY",
]
