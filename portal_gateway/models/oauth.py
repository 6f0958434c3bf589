"""Database model for external identities linked to local users."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import UniqueConstraint
from sqlmodel import Field as ORMField, SQLModel

from ..core.time import utcnow
from .user import new_id

LINKED_AUTO = "auto"
LINKED_MANUAL = "manual"

PASSWORD_PROVIDER = "password"


class OAuthAccount(SQLModel, table=True):
    """One provider identity attached to one local user."""

    __tablename__ = "oauth_accounts"
    __table_args__ = (
        UniqueConstraint("provider", "provider_user_id", name="uq_oauth_provider_user"),
    )

    id: str = ORMField(default_factory=new_id, primary_key=True)
    user_id: str = ORMField(foreign_key="users.id", index=True)
    provider: str = ORMField(index=True)
    provider_user_id: str
    email: Optional[str] = ORMField(default=None, index=True)
    name: Optional[str] = None
    picture: Optional[str] = None
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    token_expires_at: Optional[datetime] = None
    linked_method: str = ORMField(default=LINKED_AUTO)
    linked_at: datetime = ORMField(default_factory=utcnow)
    created_at: datetime = ORMField(default_factory=utcnow)
    updated_at: datetime = ORMField(default_factory=utcnow)


__all__ = ["LINKED_AUTO", "LINKED_MANUAL", "OAuthAccount", "PASSWORD_PROVIDER"]
