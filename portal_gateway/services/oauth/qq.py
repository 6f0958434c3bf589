"""QQ Connect OAuth 2.0 adapter.

QQ answers the token endpoint form-encoded, the OpenID endpoint as JSONP and
only returns an email with an extra grant, so profiles fall back to
``{openid}@qq.com``.
"""

from __future__ import annotations

import json
import logging
import re
from datetime import timedelta
from typing import Any, Dict, Optional
from urllib.parse import parse_qs

from authlib.oauth2.rfc6749.parameters import prepare_grant_uri

from ...core.time import utcnow
from .base import OAuthProvider, ProviderProfile, ProviderTokens

logger = logging.getLogger(__name__)

AUTHORIZE_URL = "https://graph.qq.com/oauth2.0/authorize"
TOKEN_URL = "https://graph.qq.com/oauth2.0/token"
OPENID_URL = "https://graph.qq.com/oauth2.0/me"
USERINFO_URL = "https://graph.qq.com/user/get_user_info"
SCOPES = "get_user_info"

_JSONP = re.compile(r"^\s*callback\(\s*(\{.*\})\s*\);?\s*$", re.DOTALL)


def parse_jsonp(body: str) -> Optional[Dict[str, Any]]:
    """Unwrap ``callback({...});``. Returns None if ``body`` is not JSONP."""

    match = _JSONP.match(body)
    if not match:
        return None
    try:
        data = json.loads(match.group(1))
    except ValueError:
        return None
    return data if isinstance(data, dict) else None


def normalize_qq_email(open_id: str, email: Optional[str]) -> str:
    if email and email.strip():
        return email.strip().lower()
    return f"{open_id}@qq.com"


class QQProvider(OAuthProvider):
    name = "qq"

    def build_authorization_url(self, redirect_uri: str, state: str) -> str:
        url = prepare_grant_uri(
            AUTHORIZE_URL,
            self.client_id,
            "code",
            redirect_uri=redirect_uri,
            scope=SCOPES,
            state=state,
        )
        logger.info("[qq] Built authorization URL, state %s...", state[:8])
        return url

    async def exchange_code(self, code: str, redirect_uri: str) -> ProviderTokens:
        logger.info("[qq] Exchanging authorization code")
        response = await self._get(
            TOKEN_URL,
            params={
                "grant_type": "authorization_code",
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "code": code,
                "redirect_uri": redirect_uri,
            },
            step="token exchange",
        )
        body = response.text

        error = parse_jsonp(body)
        if error is not None:
            raise self._fail("token exchange", str(error.get("error_description") or error.get("error")))

        fields = {key: values[0] for key, values in parse_qs(body).items() if values}
        if fields.get("error"):
            raise self._fail("token exchange", fields["error"])
        access_token = fields.get("access_token")
        if not access_token:
            raise self._fail("token exchange", "no access_token returned")

        expires_at = None
        expires_in = fields.get("expires_in", "")
        if expires_in.isdigit():
            expires_at = utcnow() + timedelta(seconds=int(expires_in))
        return ProviderTokens(
            access_token=access_token,
            refresh_token=fields.get("refresh_token"),
            expires_at=expires_at,
        )

    async def fetch_open_id(self, access_token: str) -> str:
        response = await self._get(
            OPENID_URL, params={"access_token": access_token}, step="openid lookup"
        )
        data = parse_jsonp(response.text)
        if data is None:
            raise self._fail("openid lookup", "response is not JSONP")
        if data.get("error"):
            raise self._fail("openid lookup", str(data.get("error_description") or data["error"]))
        open_id = str(data.get("openid") or "").strip()
        if not open_id:
            raise self._fail("openid lookup", "no openid returned")
        return open_id

    async def fetch_profile(self, tokens: ProviderTokens) -> ProviderProfile:
        open_id = await self.fetch_open_id(tokens.access_token)
        response = await self._get(
            USERINFO_URL,
            params={
                "access_token": tokens.access_token,
                "oauth_consumer_key": self.client_id,
                "openid": open_id,
            },
            step="profile fetch",
        )
        try:
            data = response.json()
        except ValueError as exc:
            raise self._fail("profile fetch", "response is not JSON") from exc
        if not isinstance(data, dict):
            raise self._fail("profile fetch", "unexpected response shape")
        if data.get("ret", 0) != 0:
            raise self._fail("profile fetch", str(data.get("msg") or data.get("ret")))

        email = normalize_qq_email(open_id, data.get("email"))
        if not data.get("email"):
            logger.info("[qq] No email for %s, using %s", open_id, email)

        picture = (
            data.get("figureurl_qq_2")
            or data.get("figureurl_qq_1")
            or data.get("figureurl_2")
            or None
        )
        name = str(data.get("nickname") or "").strip() or f"QQ user {open_id[:6]}"
        return ProviderProfile(
            provider=self.name,
            provider_user_id=open_id,
            email=email,
            name=name,
            picture=picture,
            email_verified=bool(data.get("email")),
        )


__all__ = ["QQProvider", "normalize_qq_email", "parse_jsonp"]
