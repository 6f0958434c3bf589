"""Database model for local portal accounts."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from sqlmodel import Field as ORMField, SQLModel

from ..core.time import utcnow


def new_id() -> str:
    return str(uuid.uuid4())


class User(SQLModel, table=True):
    """A local account; OAuth identities and the password login hang off it."""

    __tablename__ = "users"

    id: str = ORMField(default_factory=new_id, primary_key=True)
    email: str = ORMField(index=True, unique=True)
    name: str
    picture: Optional[str] = None
    password_hash: Optional[str] = None
    must_change_password: bool = False
    banned: bool = False
    last_login_at: Optional[datetime] = None
    created_at: datetime = ORMField(default_factory=utcnow)
    updated_at: datetime = ORMField(default_factory=utcnow)


__all__ = ["User", "new_id"]
