"""Google OAuth 2.0 adapter."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

import httpx
from authlib.common.errors import AuthlibBaseError
from authlib.integrations.httpx_client import AsyncOAuth2Client
from authlib.oauth2.rfc6749.parameters import prepare_grant_uri

from .base import OAuthProvider, ProviderProfile, ProviderTokens

logger = logging.getLogger(__name__)

AUTHORIZE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
TOKEN_URL = "https://oauth2.googleapis.com/token"
USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"
SCOPES = "openid email profile"


class GoogleProvider(OAuthProvider):
    name = "google"

    def build_authorization_url(self, redirect_uri: str, state: str) -> str:
        url = prepare_grant_uri(
            AUTHORIZE_URL,
            self.client_id,
            "code",
            redirect_uri=redirect_uri,
            scope=SCOPES,
            state=state,
            access_type="online",
        )
        logger.info("[google] Built authorization URL, state %s...", state[:8])
        return url

    async def exchange_code(self, code: str, redirect_uri: str) -> ProviderTokens:
        logger.info("[google] Exchanging authorization code")
        try:
            async with AsyncOAuth2Client(
                client_id=self.client_id,
                client_secret=self.client_secret,
                redirect_uri=redirect_uri,
                token_endpoint_auth_method="client_secret_post",
                timeout=self.timeout,
                transport=self.transport,
            ) as client:
                token = await client.fetch_token(
                    TOKEN_URL, code=code, grant_type="authorization_code"
                )
        except AuthlibBaseError as exc:
            raise self._fail("token exchange", str(exc)) from exc
        except (httpx.HTTPError, ValueError) as exc:
            raise self._fail("token exchange", str(exc)) from exc

        access_token = token.get("access_token")
        if not access_token:
            raise self._fail("token exchange", "no access_token returned")

        expires_at = None
        if token.get("expires_at"):
            expires_at = datetime.fromtimestamp(int(token["expires_at"]), tz=timezone.utc)
        return ProviderTokens(
            access_token=access_token,
            refresh_token=token.get("refresh_token"),
            expires_at=expires_at,
        )

    async def fetch_profile(self, tokens: ProviderTokens) -> ProviderProfile:
        response = await self._get(
            USERINFO_URL,
            headers={"Authorization": f"Bearer {tokens.access_token}"},
            step="profile fetch",
        )
        try:
            data = response.json()
        except ValueError as exc:
            raise self._fail("profile fetch", "response is not JSON") from exc
        if not isinstance(data, dict):
            raise self._fail("profile fetch", "unexpected response shape")

        provider_user_id = str(data.get("id") or "").strip()
        email = str(data.get("email") or "").strip().lower()
        if not provider_user_id or not email:
            raise self._fail("profile fetch", "id or email missing")

        verified = bool(data.get("verified_email"))
        if not verified:
            logger.warning("[google] Email %s is not verified", email)

        name = str(data.get("name") or "").strip() or email.split("@")[0]
        logger.info("[google] Fetched profile for %s", email)
        return ProviderProfile(
            provider=self.name,
            provider_user_id=provider_user_id,
            email=email,
            name=name,
            picture=data.get("picture") or None,
            email_verified=verified,
        )


__all__ = ["GoogleProvider"]
