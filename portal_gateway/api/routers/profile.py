"""Current-user identity, profile and linked-account endpoints."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Request

from ...core.errors import NotAuthenticated, ValidationFailed
from ...models import OAuthAccount, User
from ...services.identity import IdentityResolver
from ...services.legacy_session import read_legacy_session
from ...services.permissions import PermissionService
from ...services.sessions import SessionManager
from ..deps import (
    CurrentIdentity,
    get_current_identity,
    get_identity,
    get_permissions,
    get_sessions,
    require_user,
    user_payload,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["profile"])


def _iso(value) -> Optional[str]:
    return value.isoformat() if value else None


def _account_to_dict(account: OAuthAccount) -> Dict[str, Any]:
    return {
        "provider": account.provider,
        "email": account.email,
        "name": account.name,
        "picture": account.picture,
        "linkedMethod": account.linked_method,
        "linkedAt": _iso(account.linked_at),
    }


def _profile_to_dict(
    user: User, identity: IdentityResolver, permissions: PermissionService
) -> Dict[str, Any]:
    data = user_payload(user, permissions)
    data.update(
        {
            "hasPassword": bool(user.password_hash),
            "createdAt": _iso(user.created_at),
            "lastLoginAt": _iso(user.last_login_at),
            "accounts": [_account_to_dict(a) for a in identity.linkages(user.id)],
            "permissions": permissions.permissions_for(user),
        }
    )
    return data


@router.get("/api/me")
def me(
    request: Request,
    current: Optional[CurrentIdentity] = Depends(get_current_identity),
    identity: IdentityResolver = Depends(get_identity),
    permissions: PermissionService = Depends(get_permissions),
):
    """Who is calling. The legacy cookie is honoured here and nowhere else."""

    user = current.user if current else None
    if user is None:
        legacy = read_legacy_session(request)
        if legacy:
            candidate = identity.get_user(legacy["userId"])
            if candidate is not None and not candidate.banned:
                user = candidate
    if user is None:
        return {"authenticated": False, "user": None}
    return {"authenticated": True, "user": user_payload(user, permissions)}


@router.get("/api/profile")
def get_profile(
    current: CurrentIdentity = Depends(require_user),
    identity: IdentityResolver = Depends(get_identity),
    permissions: PermissionService = Depends(get_permissions),
):
    return _profile_to_dict(current.user, identity, permissions)


@router.put("/api/profile")
def update_profile(
    body: Dict[str, Any] = Body(...),
    current: CurrentIdentity = Depends(require_user),
    identity: IdentityResolver = Depends(get_identity),
    permissions: PermissionService = Depends(get_permissions),
):
    name = body.get("name")
    picture = body.get("picture")
    if name is not None and not isinstance(name, str):
        raise ValidationFailed("name must be a string")
    if picture is not None and not isinstance(picture, str):
        raise ValidationFailed("picture must be a string")
    user = identity.update_profile(current.user.id, name=name, picture=picture)
    return _profile_to_dict(user, identity, permissions)


@router.post("/api/profile/change-password")
def change_password(
    body: Dict[str, Any] = Body(...),
    current: CurrentIdentity = Depends(require_user),
    identity: IdentityResolver = Depends(get_identity),
    sessions: SessionManager = Depends(get_sessions),
):
    current_password = body.get("currentPassword")
    new_password = body.get("newPassword")
    if not isinstance(new_password, str) or not new_password:
        raise ValidationFailed("newPassword is required")
    if current_password is not None and not isinstance(current_password, str):
        raise ValidationFailed("currentPassword must be a string")

    user = identity.change_password(current.user.id, current_password, new_password)
    sessions.logout(user.id)
    return {"ok": True, "token": sessions.issue(user), "mustChangePassword": False}


@router.get("/api/profile/modules")
def my_modules(
    current: CurrentIdentity = Depends(require_user),
    permissions: PermissionService = Depends(get_permissions),
):
    return {"permissions": permissions.permissions_for(current.user)}


@router.get("/api/profile/accounts")
def my_accounts(
    current: CurrentIdentity = Depends(require_user),
    identity: IdentityResolver = Depends(get_identity),
):
    return {"accounts": [_account_to_dict(a) for a in identity.linkages(current.user.id)]}


@router.delete("/api/profile/accounts/{provider}")
def unlink_account(
    provider: str,
    current: CurrentIdentity = Depends(require_user),
    identity: IdentityResolver = Depends(get_identity),
):
    identity.unlink(current.user.id, provider)
    return {"ok": True}


@router.post("/api/profile/merge")
def merge_account(
    body: Dict[str, Any] = Body(...),
    current: CurrentIdentity = Depends(require_user),
    identity: IdentityResolver = Depends(get_identity),
    sessions: SessionManager = Depends(get_sessions),
    permissions: PermissionService = Depends(get_permissions),
):
    """Fold the account proven by ``sourceToken`` into the caller's account."""

    if body.get("confirm") is not True:
        raise ValidationFailed("Merging is irreversible and must be confirmed")
    source_token = body.get("sourceToken")
    if not isinstance(source_token, str) or not source_token:
        raise ValidationFailed("sourceToken is required")

    claims = sessions.verify(source_token)
    if claims is None:
        raise NotAuthenticated("Source account session is invalid")
    source_id = claims.get("sub")
    if source_id == current.user.id:
        raise ValidationFailed("Cannot merge an account into itself")

    user = identity.merge(source_id, current.user.id)
    return {"ok": True, "user": user_payload(user, permissions)}


__all__ = ["router"]
