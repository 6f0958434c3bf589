"""Expiring key-value rows used as the session side channel."""

from __future__ import annotations

from datetime import datetime

from sqlmodel import Field as ORMField, SQLModel


class KVEntry(SQLModel, table=True):
    """A single key with a value and an absolute expiry."""

    __tablename__ = "kv_entries"

    key: str = ORMField(primary_key=True)
    value: str
    expires_at: datetime = ORMField(index=True)


__all__ = ["KVEntry"]
