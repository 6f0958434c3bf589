"""OAuth ``state`` values and redirect-target validation.

A state is ``{nonce}`` or ``{nonce}|{base64url(json)}`` where the JSON part
carries the post-login redirect and, for account linking, the id of the user
who started the flow. The whole string is mirrored in a short-lived cookie
and must come back from the provider unchanged.
"""

from __future__ import annotations

import base64
import binascii
import hmac
import json
import logging
import secrets
from dataclasses import dataclass
from typing import Iterable, Optional
from urllib.parse import parse_qsl, urlencode, urlparse, urlsplit, urlunsplit

logger = logging.getLogger(__name__)

STATE_COOKIE = "oauth_state"
STATE_MAX_AGE = 600
NONCE_BYTES = 32


@dataclass(frozen=True)
class OAuthState:
    nonce: str
    redirect: Optional[str] = None
    link_user_id: Optional[str] = None

    @property
    def is_link(self) -> bool:
        return self.link_user_id is not None

    def encode(self) -> str:
        extra = {}
        if self.redirect:
            extra["redirect"] = self.redirect
        if self.link_user_id:
            extra["link"] = self.link_user_id
        if not extra:
            return self.nonce
        packed = json.dumps(extra, separators=(",", ":")).encode("utf-8")
        return f"{self.nonce}|{base64.urlsafe_b64encode(packed).decode('ascii').rstrip('=')}"


def new_state(redirect: Optional[str] = None, link_user_id: Optional[str] = None) -> OAuthState:
    return OAuthState(
        nonce=secrets.token_hex(NONCE_BYTES), redirect=redirect, link_user_id=link_user_id
    )


def parse_state(raw: Optional[str]) -> Optional[OAuthState]:
    if not raw:
        return None
    nonce, sep, packed = raw.partition("|")
    if not nonce:
        return None
    if not sep:
        return OAuthState(nonce=nonce)
    try:
        extra = json.loads(base64.urlsafe_b64decode(packed + "=" * (-len(packed) % 4)))
    except (binascii.Error, ValueError):
        return None
    if not isinstance(extra, dict):
        return None
    redirect = extra.get("redirect")
    link = extra.get("link")
    return OAuthState(
        nonce=nonce,
        redirect=redirect if isinstance(redirect, str) else None,
        link_user_id=link if isinstance(link, str) else None,
    )


def states_match(returned: Optional[str], stored: Optional[str]) -> bool:
    """Byte-for-byte, constant-time comparison of callback and cookie state."""

    if not returned or not stored:
        return False
    return hmac.compare_digest(returned.encode("utf-8"), stored.encode("utf-8"))


def is_allowed_redirect(url: Optional[str], allowed_hosts: Iterable[str]) -> bool:
    if not url:
        return False
    parsed = urlparse(url)
    if parsed.scheme not in {"http", "https"}:
        return False
    host = (parsed.hostname or "").lower()
    return bool(host) and host in {h.lower() for h in allowed_hosts}


def resolve_redirect(
    url: Optional[str], default: str, allowed_hosts: Iterable[str]
) -> str:
    """Pick a safe post-login destination; anything unrecognised falls back to ``default``."""

    if not url:
        return default
    if url.startswith("/") and not url.startswith(("//", "/\\")):
        return default.rstrip("/") + url
    if is_allowed_redirect(url, allowed_hosts):
        return url
    logger.warning("Rejected redirect target %s", url[:100])
    return default


def with_query(url: str, **params: str) -> str:
    parts = urlsplit(url)
    query = parse_qsl(parts.query, keep_blank_values=True)
    query = [(k, v) for k, v in query if k not in params]
    query.extend(params.items())
    return urlunsplit(parts._replace(query=urlencode(query)))


__all__ = [
    "OAuthState",
    "STATE_COOKIE",
    "STATE_MAX_AGE",
    "is_allowed_redirect",
    "new_state",
    "parse_state",
    "resolve_redirect",
    "states_match",
    "with_query",
]
