"""Database configuration and session helpers."""

from __future__ import annotations

from pathlib import Path
from typing import Iterator

from sqlalchemy.engine import make_url
from sqlmodel import Session, SQLModel, create_engine

from .config import DATABASE_URL


def _build_engine(url: str):
    parsed = make_url(url)
    if parsed.get_backend_name() == "sqlite":
        if parsed.database and parsed.database != ":memory:":
            Path(parsed.database).parent.mkdir(parents=True, exist_ok=True)
        return create_engine(url, connect_args={"check_same_thread": False})
    return create_engine(url, pool_pre_ping=True)


engine = _build_engine(DATABASE_URL)


def init_db() -> None:
    """Create every registered table."""

    SQLModel.metadata.create_all(engine)


def get_session() -> Iterator[Session]:
    """FastAPI dependency that yields a database session."""

    with Session(engine) as session:
        yield session


__all__ = ["engine", "get_session", "init_db"]
