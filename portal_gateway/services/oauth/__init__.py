"""OAuth provider adapters."""

from __future__ import annotations

from typing import Dict, Optional

import httpx

from .base import OAuthProvider, ProviderProfile, ProviderTokens
from .google import GoogleProvider
from .qq import QQProvider
from .state import (
    STATE_COOKIE,
    STATE_MAX_AGE,
    OAuthState,
    is_allowed_redirect,
    new_state,
    parse_state,
    resolve_redirect,
    states_match,
    with_query,
)


def build_providers(
    *,
    google_client_id: str = "",
    google_client_secret: str = "",
    qq_app_id: str = "",
    qq_app_key: str = "",
    timeout: float = 10.0,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Dict[str, OAuthProvider]:
    """Every known provider keyed by name; unconfigured ones report ``configured = False``."""

    return {
        "google": GoogleProvider(
            google_client_id, google_client_secret, timeout=timeout, transport=transport
        ),
        "qq": QQProvider(qq_app_id, qq_app_key, timeout=timeout, transport=transport),
    }


__all__ = [
    "GoogleProvider",
    "OAuthProvider",
    "OAuthState",
    "ProviderProfile",
    "ProviderTokens",
    "QQProvider",
    "STATE_COOKIE",
    "STATE_MAX_AGE",
    "build_providers",
    "is_allowed_redirect",
    "new_state",
    "parse_state",
    "resolve_redirect",
    "states_match",
    "with_query",
]
