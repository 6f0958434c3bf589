"""Issuing and verifying portal session tokens."""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any, Dict, Optional, Sequence

from starlette.requests import HTTPConnection

from ..core.time import Clock, unix_seconds, utcnow
from ..models import User
from .kv import RevocationStore
from .permissions import PermissionService
from .tokens import TokenCodec

logger = logging.getLogger(__name__)

TOKEN_TTL = timedelta(days=7)


class SessionManager:
    """Stateless bearer sessions with comparative-timestamp logout.

    A token is rejected when its ``iat`` (whole seconds) is earlier than the
    user's last logout mark, so tokens minted in the same second as a logout
    survive it.
    """

    def __init__(
        self,
        codec: TokenCodec,
        revocations: RevocationStore,
        permissions: PermissionService,
        *,
        issuer: str,
        audience: Sequence[str] = (),
        perm_version: int = 1,
        clock: Clock = utcnow,
    ) -> None:
        self.codec = codec
        self.revocations = revocations
        self.permissions = permissions
        self.issuer = issuer
        self.audience = list(audience)
        self.perm_version = perm_version
        self.clock = clock

    def issue(self, user: User) -> str:
        issued_at = unix_seconds(self.clock())
        payload: Dict[str, Any] = {
            "iss": self.issuer,
            "sub": user.id,
            "aud": self.audience,
            "iat": issued_at,
            "exp": issued_at + int(TOKEN_TTL.total_seconds()),
            "userId": user.id,
            "username": user.name,
            "email": user.email,
            "permissions": self.permissions.permissions_for(user),
            "permVersion": self.perm_version,
        }
        token = self.codec.encode(payload)
        logger.info("Issued session token for user %s", user.id)
        return token

    def verify(self, token: Optional[str]) -> Optional[Dict[str, Any]]:
        if not token:
            return None
        payload = self.codec.decode(token)
        if payload is None:
            return None

        now = unix_seconds(self.clock())
        exp = payload.get("exp")
        if not isinstance(exp, int) or isinstance(exp, bool) or exp <= now:
            logger.debug("Rejected token: expired or without exp")
            return None

        iat = payload.get("iat")
        if not isinstance(iat, int) or isinstance(iat, bool):
            logger.debug("Rejected token: missing iat")
            return None

        user_id = payload.get("sub") or payload.get("userId")
        if not isinstance(user_id, str) or not user_id:
            logger.debug("Rejected token: missing subject")
            return None

        last_logout = self.revocations.get_last_logout(user_id)
        if last_logout is not None and iat < unix_seconds(last_logout):
            logger.debug("Rejected token: issued before logout of user %s", user_id)
            return None
        return payload

    def logout(self, user_id: str) -> None:
        self.revocations.mark_logout(user_id, self.clock())


def extract_token(connection: HTTPConnection) -> Optional[str]:
    """Bearer header first, then the ``token`` query parameter."""

    header = connection.headers.get("authorization") or ""
    scheme, _, credentials = header.partition(" ")
    if scheme.lower() == "bearer" and credentials.strip():
        return credentials.strip()
    token = connection.query_params.get("token")
    return token.strip() if token and token.strip() else None


__all__ = ["SessionManager", "TOKEN_TTL", "extract_token"]
