"""Core configuration and infrastructure helpers."""

from .config import (
    ADMIN_EMAILS,
    ALLOWED_CORS_ORIGINS,
    ALLOWED_REDIRECT_HOSTS,
    BASE_URL,
    COOKIE_DOMAIN,
    COOKIE_SAMESITE,
    COOKIE_SECURE,
    DATABASE_URL,
    FRONTEND_URL,
    GOOGLE_CLIENT_ID,
    GOOGLE_CLIENT_SECRET,
    JWT_ALGORITHM,
    JWT_AUDIENCE,
    JWT_ISSUER,
    JWT_KEY_ID,
    JWT_RETIRED_JWKS,
    JWT_RSA_PRIVATE_KEY,
    JWT_SECRET,
    LOG_LEVEL,
    OAUTH_HTTP_TIMEOUT,
    PERM_VERSION,
    QQ_APP_ID,
    QQ_APP_KEY,
)
from .database import engine, get_session, init_db
from .logging_config import setup_logging
from .time import Clock, as_utc, unix_seconds, utcnow

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
    "Clock",
    "as_utc",
    "engine",
    "get_session",
    "init_db",
    "setup_logging",
    "unix_seconds",
    "utcnow",
]
