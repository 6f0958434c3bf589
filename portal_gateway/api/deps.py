"""Request-scoped dependencies shared by the routers."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Dict, Optional

from fastapi import Depends, Request
from sqlmodel import Session

from ..core import (
    ADMIN_EMAILS,
    GOOGLE_CLIENT_ID,
    GOOGLE_CLIENT_SECRET,
    JWT_ALGORITHM,
    JWT_AUDIENCE,
    JWT_ISSUER,
    JWT_KEY_ID,
    JWT_RETIRED_JWKS,
    JWT_RSA_PRIVATE_KEY,
    JWT_SECRET,
    OAUTH_HTTP_TIMEOUT,
    PERM_VERSION,
    QQ_APP_ID,
    QQ_APP_KEY,
    Clock,
    get_session,
    utcnow,
)
from ..core.errors import Forbidden, NotAuthenticated
from ..models import User
from ..services.identity import IdentityResolver
from ..services.kv import ExchangeStore, KVStore, LinkIntentStore, RevocationStore
from ..services.oauth import OAuthProvider, build_providers
from ..services.permissions import PermissionEvaluator, PermissionService
from ..services.sessions import SessionManager, extract_token
from ..services.tokens import TokenCodec, build_codec

logger = logging.getLogger(__name__)


@lru_cache
def get_codec() -> TokenCodec:
    return build_codec(
        JWT_ALGORITHM,
        secret=JWT_SECRET,
        private_key_pem=JWT_RSA_PRIVATE_KEY,
        kid=JWT_KEY_ID,
        retired_jwks=JWT_RETIRED_JWKS,
    )


@lru_cache
def get_evaluator() -> PermissionEvaluator:
    return PermissionEvaluator(ADMIN_EMAILS)


@lru_cache
def get_providers() -> Dict[str, OAuthProvider]:
    return build_providers(
        google_client_id=GOOGLE_CLIENT_ID,
        google_client_secret=GOOGLE_CLIENT_SECRET,
        qq_app_id=QQ_APP_ID,
        qq_app_key=QQ_APP_KEY,
        timeout=OAUTH_HTTP_TIMEOUT,
    )


def get_clock() -> Clock:
    return utcnow


def get_kv(
    session: Session = Depends(get_session), clock: Clock = Depends(get_clock)
) -> KVStore:
    return KVStore(session, clock)


def get_revocations(kv: KVStore = Depends(get_kv)) -> RevocationStore:
    return RevocationStore(kv)


def get_exchange(kv: KVStore = Depends(get_kv)) -> ExchangeStore:
    return ExchangeStore(kv)


def get_link_intents(kv: KVStore = Depends(get_kv)) -> LinkIntentStore:
    return LinkIntentStore(kv)


def get_identity(
    session: Session = Depends(get_session), clock: Clock = Depends(get_clock)
) -> IdentityResolver:
    return IdentityResolver(session, clock)


def get_permissions(
    session: Session = Depends(get_session),
    evaluator: PermissionEvaluator = Depends(get_evaluator),
    clock: Clock = Depends(get_clock),
) -> PermissionService:
    return PermissionService(session, evaluator, clock)


def get_sessions(
    codec: TokenCodec = Depends(get_codec),
    revocations: RevocationStore = Depends(get_revocations),
    permissions: PermissionService = Depends(get_permissions),
    clock: Clock = Depends(get_clock),
) -> SessionManager:
    return SessionManager(
        codec,
        revocations,
        permissions,
        issuer=JWT_ISSUER,
        audience=JWT_AUDIENCE,
        perm_version=PERM_VERSION,
        clock=clock,
    )


@dataclass
class CurrentIdentity:
    user: User
    claims: Dict[str, Any]


def get_current_identity(
    request: Request,
    sessions: SessionManager = Depends(get_sessions),
    identity: IdentityResolver = Depends(get_identity),
) -> Optional[CurrentIdentity]:
    """The verified bearer identity of the request, or None."""

    claims = sessions.verify(extract_token(request))
    if claims is None:
        return None
    user = identity.get_user(claims.get("sub") or claims.get("userId"))
    if user is None:
        logger.debug("Token subject no longer exists")
        return None
    if user.banned:
        logger.info("Ignoring session of banned user %s", user.id)
        return None
    return CurrentIdentity(user=user, claims=claims)


def require_user(
    current: Optional[CurrentIdentity] = Depends(get_current_identity),
) -> CurrentIdentity:
    if current is None:
        raise NotAuthenticated()
    return current


def require_admin(
    current: CurrentIdentity = Depends(require_user),
    permissions: PermissionService = Depends(get_permissions),
) -> CurrentIdentity:
    if not permissions.is_admin(current.user):
        logger.warning("User %s denied admin access", current.user.id)
        raise Forbidden("Admin access required")
    return current


def user_payload(user: User, permissions: PermissionService) -> Dict[str, Any]:
    return {
        "id": user.id,
        "email": user.email,
        "name": user.name,
        "picture": user.picture,
        "isAdmin": permissions.is_admin(user),
        "mustChangePassword": user.must_change_password,
    }


__all__ = [
    "CurrentIdentity",
    "get_clock",
    "get_codec",
    "get_current_identity",
    "get_evaluator",
    "get_exchange",
    "get_identity",
    "get_kv",
    "get_link_intents",
    "get_permissions",
    "get_providers",
    "get_revocations",
    "get_sessions",
    "require_admin",
    "require_user",
    "user_payload",
]
