"""Database model for explicit module grants."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import UniqueConstraint
from sqlmodel import Field as ORMField, SQLModel

from ..core.time import utcnow
from .user import new_id


class ModulePermissionGrant(SQLModel, table=True):
    """Grants one grant-gated portal module to one user."""

    __tablename__ = "user_module_permissions"
    __table_args__ = (
        UniqueConstraint("user_id", "module_id", name="uq_user_module"),
    )

    id: str = ORMField(default_factory=new_id, primary_key=True)
    user_id: str = ORMField(foreign_key="users.id", index=True)
    module_id: str = ORMField(index=True)
    granted_by: Optional[str] = None
    granted_at: datetime = ORMField(default_factory=utcnow)


__all__ = ["ModulePermissionGrant"]
