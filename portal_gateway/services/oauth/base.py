"""Provider-neutral OAuth types and the adapter base class."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

import httpx

from ...core.errors import ProviderError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0


@dataclass(frozen=True)
class ProviderTokens:
    """What a successful code exchange yields."""

    access_token: str
    refresh_token: Optional[str] = None
    expires_at: Optional[datetime] = None


@dataclass(frozen=True)
class ProviderProfile:
    """Normalized identity; the only shape the identity resolver sees."""

    provider: str
    provider_user_id: str
    email: str
    name: str
    picture: Optional[str] = None
    email_verified: bool = False


class OAuthProvider:
    """Three-legged authorization-code flow for one external provider."""

    name = ""

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.client_id = client_id
        self.client_secret = client_secret
        self.timeout = timeout
        self.transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.client_id and self.client_secret)

    def build_authorization_url(self, redirect_uri: str, state: str) -> str:
        raise NotImplementedError

    async def exchange_code(self, code: str, redirect_uri: str) -> ProviderTokens:
        raise NotImplementedError

    async def fetch_profile(self, tokens: ProviderTokens) -> ProviderProfile:
        raise NotImplementedError

    def _http(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self.transport)

    async def _get(
        self,
        url: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        step: str,
    ) -> httpx.Response:
        try:
            async with self._http() as client:
                response = await client.get(url, params=params, headers=headers)
        except httpx.HTTPError as exc:
            logger.error("[%s] %s request failed: %s", self.name, step, exc)
            raise ProviderError(f"{self.name} {step} failed, please retry") from exc
        if response.status_code >= 400:
            logger.error(
                "[%s] %s returned %s: %s",
                self.name,
                step,
                response.status_code,
                response.text[:200],
            )
            raise ProviderError(f"{self.name} {step} failed: {response.status_code}")
        return response

    def _fail(self, step: str, detail: str) -> ProviderError:
        logger.error("[%s] %s failed: %s", self.name, step, detail)
        return ProviderError(f"{self.name} {step} failed: {detail}")


__all__ = ["OAuthProvider", "ProviderProfile", "ProviderTokens"]
