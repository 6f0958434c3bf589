"""Portal module catalog and permission evaluation."""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional

from sqlmodel import Session, select

from ..core.errors import NotFound, ValidationFailed
from ..core.time import Clock, utcnow
from ..models import ModulePermissionGrant, User

logger = logging.getLogger(__name__)

# Every authenticated user.
UNIVERSAL_MODULES = ("profile", "mini-games")
# Only admins; explicit grants do not count.
ADMIN_MODULES = ("admin",)
# Explicit grant or admin.
GRANT_MODULES = ("favor", "gd", "discover")

MODULE_IDS = ("profile", "favor", "gd", "discover", "mini-games", "admin")


def is_valid_module(module_id: str) -> bool:
    return module_id in MODULE_IDS


def is_grantable_module(module_id: str) -> bool:
    return module_id in GRANT_MODULES


class PermissionEvaluator:
    """Pure evaluation over (email, granted modules, admin allowlist)."""

    def __init__(self, admin_emails: Iterable[str]) -> None:
        self._admin_emails = frozenset(
            email.strip().lower() for email in admin_emails if email and email.strip()
        )

    def is_admin(self, email: Optional[str]) -> bool:
        return (email or "").strip().lower() in self._admin_emails

    def evaluate(self, email: Optional[str], granted: Iterable[str]) -> Dict[str, bool]:
        admin = self.is_admin(email)
        grants = {module for module in granted if is_grantable_module(module)}

        permissions: Dict[str, bool] = {}
        for module in MODULE_IDS:
            if module in UNIVERSAL_MODULES:
                permissions[module] = True
            elif module in ADMIN_MODULES:
                permissions[module] = admin
            else:
                permissions[module] = admin or module in grants
        return permissions


class PermissionService:
    """Loads grants from the database and manages them."""

    def __init__(
        self, session: Session, evaluator: PermissionEvaluator, clock: Clock = utcnow
    ) -> None:
        self.session = session
        self.evaluator = evaluator
        self.clock = clock

    def granted_modules(self, user_id: str) -> List[str]:
        rows = self.session.exec(
            select(ModulePermissionGrant.module_id).where(
                ModulePermissionGrant.user_id == user_id
            )
        ).all()
        return list(rows)

    def list_grants(self, user_id: Optional[str] = None) -> List[ModulePermissionGrant]:
        query = select(ModulePermissionGrant).order_by(ModulePermissionGrant.granted_at)
        if user_id:
            query = query.where(ModulePermissionGrant.user_id == user_id)
        return list(self.session.exec(query).all())

    def permissions_for(self, user: User) -> Dict[str, bool]:
        return self.evaluator.evaluate(user.email, self.granted_modules(user.id))

    def is_admin(self, user: User) -> bool:
        return self.evaluator.is_admin(user.email)

    def grant(
        self, user_id: str, module_id: str, granted_by: Optional[str] = None
    ) -> ModulePermissionGrant:
        if not is_grantable_module(module_id):
            raise ValidationFailed(f"Module {module_id!r} cannot be granted")
        if self.session.get(User, user_id) is None:
            raise NotFound("User not found")

        existing = self.session.exec(
            select(ModulePermissionGrant).where(
                ModulePermissionGrant.user_id == user_id,
                ModulePermissionGrant.module_id == module_id,
            )
        ).first()
        if existing:
            return existing

        grant = ModulePermissionGrant(
            user_id=user_id,
            module_id=module_id,
            granted_by=granted_by,
            granted_at=self.clock(),
        )
        self.session.add(grant)
        self.session.commit()
        self.session.refresh(grant)
        logger.info("Granted module %s to user %s", module_id, user_id)
        return grant

    def revoke(self, user_id: str, module_id: str) -> bool:
        if not is_grantable_module(module_id):
            raise ValidationFailed(f"Module {module_id!r} cannot be granted")
        grant = self.session.exec(
            select(ModulePermissionGrant).where(
                ModulePermissionGrant.user_id == user_id,
                ModulePermissionGrant.module_id == module_id,
            )
        ).first()
        if not grant:
            return False
        self.session.delete(grant)
        self.session.commit()
        logger.info("Revoked module %s from user %s", module_id, user_id)
        return True


__all__ = [
    "ADMIN_MODULES",
    "GRANT_MODULES",
    "MODULE_IDS",
    "PermissionEvaluator",
    "PermissionService",
    "UNIVERSAL_MODULES",
    "is_grantable_module",
    "is_valid_module",
]
