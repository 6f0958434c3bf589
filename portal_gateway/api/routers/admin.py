"""Admin endpoints: invites, bans, session revocation and module grants."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends

from ...core.errors import NotFound, ValidationFailed
from ...models import ModulePermissionGrant, User
from ...services.identity import IdentityResolver
from ...services.kv import RevocationStore
from ...services.permissions import PermissionService
from ...services.sessions import SessionManager
from ..deps import (
    CurrentIdentity,
    get_identity,
    get_permissions,
    get_revocations,
    get_sessions,
    require_admin,
    user_payload,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin", tags=["admin"])


def _grant_to_dict(grant: ModulePermissionGrant) -> Dict[str, Any]:
    return {
        "userId": grant.user_id,
        "moduleId": grant.module_id,
        "grantedBy": grant.granted_by,
        "grantedAt": grant.granted_at.isoformat() if grant.granted_at else None,
    }


def _admin_user_to_dict(
    user: User,
    identity: IdentityResolver,
    permissions: PermissionService,
    revocations: RevocationStore,
) -> Dict[str, Any]:
    data = user_payload(user, permissions)
    last_logout = revocations.get_last_logout(user.id)
    data.update(
        {
            "banned": user.banned,
            "providers": [a.provider for a in identity.linkages(user.id)],
            "modules": permissions.granted_modules(user.id),
            "createdAt": user.created_at.isoformat() if user.created_at else None,
            "lastLoginAt": user.last_login_at.isoformat() if user.last_login_at else None,
            "sessionsRevokedAt": last_logout.isoformat() if last_logout else None,
        }
    )
    return data


def _body_str(body: Dict[str, Any], key: str) -> str:
    value = body.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ValidationFailed(f"{key} is required")
    return value.strip()


@router.get("/users")
def list_users(
    _: CurrentIdentity = Depends(require_admin),
    identity: IdentityResolver = Depends(get_identity),
    permissions: PermissionService = Depends(get_permissions),
    revocations: RevocationStore = Depends(get_revocations),
):
    return {
        "users": [
            _admin_user_to_dict(user, identity, permissions, revocations)
            for user in identity.list_users()
        ]
    }


@router.post("/users", status_code=201)
def invite_user(
    body: Dict[str, Any] = Body(...),
    admin: CurrentIdentity = Depends(require_admin),
    identity: IdentityResolver = Depends(get_identity),
    permissions: PermissionService = Depends(get_permissions),
):
    email = _body_str(body, "email")
    name = body.get("name") if isinstance(body.get("name"), str) else ""
    user, password = identity.invite(email, name)
    logger.info("Admin %s invited %s", admin.user.id, user.id)
    # Shown once; only the hash is stored.
    return {"user": user_payload(user, permissions), "password": password}


@router.post("/users/{user_id}/ban")
def ban_user(
    user_id: str,
    body: Dict[str, Any] = Body(...),
    admin: CurrentIdentity = Depends(require_admin),
    identity: IdentityResolver = Depends(get_identity),
    sessions: SessionManager = Depends(get_sessions),
):
    banned = body.get("banned")
    if not isinstance(banned, bool):
        raise ValidationFailed("banned must be true or false")
    if banned and user_id == admin.user.id:
        raise ValidationFailed("Admins cannot ban themselves")
    user = identity.set_banned(user_id, banned)
    if banned:
        sessions.logout(user.id)
    return {"ok": True, "banned": user.banned}


@router.post("/users/{user_id}/revoke-sessions")
def revoke_sessions(
    user_id: str,
    _: CurrentIdentity = Depends(require_admin),
    identity: IdentityResolver = Depends(get_identity),
    sessions: SessionManager = Depends(get_sessions),
):
    if identity.get_user(user_id) is None:
        raise NotFound("User not found")
    sessions.logout(user_id)
    return {"ok": True}


@router.delete("/users/{user_id}/revocation")
def clear_revocation(
    user_id: str,
    _: CurrentIdentity = Depends(require_admin),
    revocations: RevocationStore = Depends(get_revocations),
):
    revocations.clear(user_id)
    return {"ok": True}


@router.get("/user-modules")
def list_grants(
    userId: Optional[str] = None,
    _: CurrentIdentity = Depends(require_admin),
    permissions: PermissionService = Depends(get_permissions),
):
    return {"grants": [_grant_to_dict(g) for g in permissions.list_grants(userId)]}


@router.post("/user-modules", status_code=201)
def grant_module(
    body: Dict[str, Any] = Body(...),
    admin: CurrentIdentity = Depends(require_admin),
    permissions: PermissionService = Depends(get_permissions),
):
    grant = permissions.grant(
        _body_str(body, "userId"), _body_str(body, "moduleId"), granted_by=admin.user.id
    )
    return {"grant": _grant_to_dict(grant)}


@router.delete("/user-modules")
def revoke_module(
    userId: str,
    moduleId: str,
    _: CurrentIdentity = Depends(require_admin),
    permissions: PermissionService = Depends(get_permissions),
):
    if not permissions.revoke(userId, moduleId):
        raise NotFound("Grant not found")
    return {"ok": True}


__all__ = ["router"]
