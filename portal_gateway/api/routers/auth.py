"""OAuth, password login, one-time exchange, SSO handoff and logout routes."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Request, Response
from fastapi.responses import JSONResponse, RedirectResponse

from ...core import (
    ALLOWED_REDIRECT_HOSTS,
    BASE_URL,
    COOKIE_DOMAIN,
    COOKIE_SAMESITE,
    COOKIE_SECURE,
    FRONTEND_URL,
)
from ...core.errors import (
    ConfigurationError,
    Forbidden,
    NotAuthenticated,
    NotFound,
    ValidationFailed,
)
from ...models import User
from ...services.identity import IdentityResolver
from ...services.kv import ExchangeStore, LinkIntentStore
from ...services.legacy_session import clear_legacy_session, set_legacy_session
from ...services.oauth import (
    STATE_COOKIE,
    STATE_MAX_AGE,
    OAuthProvider,
    OAuthState,
    is_allowed_redirect,
    new_state,
    parse_state,
    resolve_redirect,
    states_match,
    with_query,
)
from ...services.permissions import PermissionService
from ...services.sessions import SessionManager
from ..deps import (
    CurrentIdentity,
    get_current_identity,
    get_exchange,
    get_identity,
    get_link_intents,
    get_permissions,
    get_providers,
    get_sessions,
    require_user,
    user_payload,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["auth"])


def _provider(providers: Dict[str, OAuthProvider], name: str) -> OAuthProvider:
    provider = providers.get(name)
    if provider is None:
        raise NotFound(f"Unknown provider: {name}")
    if not provider.configured:
        logger.error("[%s] OAuth requested but client credentials are not configured", name)
        raise ConfigurationError(f"{name} sign-in is not configured")
    return provider


def _callback_uri(request: Request, provider: str) -> str:
    origin = BASE_URL or str(request.base_url).rstrip("/")
    return f"{origin}/api/auth/{provider}/callback"


def _safe_redirect(url: Optional[str]) -> str:
    return resolve_redirect(url, FRONTEND_URL, ALLOWED_REDIRECT_HOSTS)


def _set_state_cookie(response: Response, state: OAuthState) -> None:
    response.set_cookie(
        STATE_COOKIE,
        state.encode(),
        max_age=STATE_MAX_AGE,
        httponly=True,
        samesite=COOKIE_SAMESITE,
        secure=COOKIE_SECURE,
        path="/",
    )


def _authorization_url(
    provider: OAuthProvider, request: Request, state: OAuthState
) -> str:
    return provider.build_authorization_url(_callback_uri(request, provider.name), state.encode())


@router.get("/api/auth/sso")
def sso_handoff(
    target: Optional[str] = None,
    current: CurrentIdentity = Depends(require_user),
    sessions: SessionManager = Depends(get_sessions),
    exchange: ExchangeStore = Depends(get_exchange),
):
    """Hand the caller's session to another portal subdomain."""

    if not target or not is_allowed_redirect(target, ALLOWED_REDIRECT_HOSTS):
        raise ValidationFailed("SSO target is not allowed")
    key = exchange.issue(sessions.issue(current.user))
    logger.info("SSO handoff for user %s", current.user.id)
    return RedirectResponse(with_query(target, access_token=key), status_code=302)


@router.get("/api/auth/{provider_name}")
def oauth_start(
    provider_name: str,
    request: Request,
    redirect: Optional[str] = None,
    providers: Dict[str, OAuthProvider] = Depends(get_providers),
):
    provider = _provider(providers, provider_name)
    state = new_state(redirect=_safe_redirect(redirect))
    response = RedirectResponse(_authorization_url(provider, request, state), status_code=302)
    _set_state_cookie(response, state)
    return response


@router.get("/api/auth/{provider_name}/link")
def oauth_link_start(
    provider_name: str,
    request: Request,
    redirect: Optional[str] = None,
    current: CurrentIdentity = Depends(require_user),
    providers: Dict[str, OAuthProvider] = Depends(get_providers),
    intents: LinkIntentStore = Depends(get_link_intents),
):
    provider = _provider(providers, provider_name)
    state = new_state(redirect=_safe_redirect(redirect), link_user_id=current.user.id)
    intents.remember(state.nonce, current.user.id)
    response = JSONResponse({"url": _authorization_url(provider, request, state)})
    _set_state_cookie(response, state)
    logger.info("[%s] Link flow started by user %s", provider.name, current.user.id)
    return response


@router.get("/api/auth/{provider_name}/callback")
async def oauth_callback(
    provider_name: str,
    request: Request,
    code: Optional[str] = None,
    state: Optional[str] = None,
    error: Optional[str] = None,
    providers: Dict[str, OAuthProvider] = Depends(get_providers),
    identity: IdentityResolver = Depends(get_identity),
    sessions: SessionManager = Depends(get_sessions),
    exchange: ExchangeStore = Depends(get_exchange),
    intents: LinkIntentStore = Depends(get_link_intents),
):
    provider = _provider(providers, provider_name)

    if error:
        logger.warning("[%s] Provider returned error: %s", provider.name, error)
        raise ValidationFailed(f"{provider.name} sign-in was not completed: {error}")
    if not states_match(state, request.cookies.get(STATE_COOKIE)):
        logger.warning("[%s] State mismatch on callback", provider.name)
        raise ValidationFailed("Invalid OAuth state")
    parsed = parse_state(state)
    if parsed is None:
        raise ValidationFailed("Invalid OAuth state")
    if not code:
        raise ValidationFailed("Missing authorization code")

    tokens = await provider.exchange_code(code, _callback_uri(request, provider.name))
    profile = await provider.fetch_profile(tokens)

    extra: Dict[str, str] = {}
    if parsed.is_link:
        owner = intents.consume(parsed.nonce)
        if owner is None or owner != parsed.link_user_id:
            logger.warning("[%s] Link callback without a matching link request", provider.name)
            raise NotAuthenticated()
        identity.link(owner, profile, tokens)
        user = identity.get_user(owner)
        if user is None or user.banned:
            raise NotAuthenticated()
        extra["linked"] = provider.name
    else:
        resolution = identity.resolve(profile, tokens)
        user = resolution.user
        if user.banned:
            logger.warning("[%s] Banned user %s tried to sign in", provider.name, user.id)
            raise Forbidden("Account is banned")

    key = exchange.issue(sessions.issue(user))
    target = with_query(_safe_redirect(parsed.redirect), access_token=key, **extra)
    response = RedirectResponse(target, status_code=302)
    response.delete_cookie(STATE_COOKIE, path="/")
    set_legacy_session(response, user, secure=COOKIE_SECURE, domain=COOKIE_DOMAIN)
    return response


def _login_result(
    user: User, sessions: SessionManager, permissions: PermissionService
) -> Dict[str, Any]:
    return {
        "token": sessions.issue(user),
        "user": user_payload(user, permissions),
        "mustChangePassword": user.must_change_password,
    }


@router.post("/api/auth/login")
def password_login(
    response: Response,
    body: Dict[str, Any] = Body(...),
    identity: IdentityResolver = Depends(get_identity),
    sessions: SessionManager = Depends(get_sessions),
    permissions: PermissionService = Depends(get_permissions),
):
    email = body.get("email")
    password = body.get("password")
    if not isinstance(email, str) or not isinstance(password, str) or not email or not password:
        raise ValidationFailed("Email and password are required")

    user = identity.authenticate_password(email, password)
    if user is None:
        raise NotAuthenticated("Invalid email or password")
    if user.banned:
        logger.warning("Banned user %s tried to sign in", user.id)
        raise Forbidden("Account is banned")

    set_legacy_session(response, user, secure=COOKIE_SECURE, domain=COOKIE_DOMAIN)
    return _login_result(user, sessions, permissions)


@router.post("/api/auth/exchange")
def exchange_access_key(
    body: Dict[str, Any] = Body(...),
    exchange: ExchangeStore = Depends(get_exchange),
):
    """Redeem a one-time key from a redirect for the real token."""

    key = body.get("access_token")
    if not isinstance(key, str) or not key:
        raise ValidationFailed("access_token is required")
    token = exchange.redeem(key)
    if token is None:
        raise NotAuthenticated("Access key is invalid or expired")
    return {"token": token}


@router.api_route("/api/logout", methods=["GET", "POST"])
def logout(
    response: Response,
    current: Optional[CurrentIdentity] = Depends(get_current_identity),
    sessions: SessionManager = Depends(get_sessions),
):
    if current is not None:
        sessions.logout(current.user.id)
    clear_legacy_session(response, domain=COOKIE_DOMAIN)
    return {"ok": True}


__all__ = ["router"]
