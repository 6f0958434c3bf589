"""Expiring key-value side channel and the two stores built on it."""

from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import delete
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session

from ..core.time import Clock, as_utc, utcnow
from ..models import KVEntry

logger = logging.getLogger(__name__)

LOGOUT_KEY_PREFIX = "user:logout:"
LOGOUT_TTL = timedelta(days=30)

ACCESS_TOKEN_KEY_PREFIX = "access_token:"
ACCESS_TOKEN_TTL = timedelta(seconds=30)
ACCESS_TOKEN_BYTES = 32

LINK_INTENT_KEY_PREFIX = "oauth_link:"
LINK_INTENT_TTL = timedelta(minutes=10)


class KVStore:
    """Single-key operations over the ``kv_entries`` table.

    Every mutation commits immediately; there are no multi-key transactions.
    """

    def __init__(self, session: Session, clock: Clock = utcnow) -> None:
        self.session = session
        self.clock = clock

    def put(self, key: str, value: str, ttl: timedelta) -> None:
        expires_at = self.clock() + ttl
        entry = self.session.get(KVEntry, key, populate_existing=True)
        if entry is None:
            self.session.add(KVEntry(key=key, value=value, expires_at=expires_at))
            try:
                self.session.commit()
                return
            except IntegrityError:
                # Another writer created the key first; last write wins.
                self.session.rollback()
                logger.info("Concurrent first write to %s, overwriting", key)
                entry = self.session.get(KVEntry, key, populate_existing=True)
            if entry is None:
                entry = KVEntry(key=key)
        entry.value = value
        entry.expires_at = expires_at
        self.session.add(entry)
        self.session.commit()

    def _live(self, key: str) -> Optional[KVEntry]:
        entry = self.session.get(KVEntry, key, populate_existing=True)
        if entry is None:
            return None
        if as_utc(entry.expires_at) <= self.clock():
            return None
        return entry

    def get(self, key: str) -> Optional[str]:
        entry = self._live(key)
        return entry.value if entry else None

    def delete(self, key: str) -> None:
        entry = self.session.get(KVEntry, key)
        if entry is not None:
            self.session.delete(entry)
            self.session.commit()

    def take(self, key: str) -> Optional[str]:
        """Read and delete ``key``; at most one concurrent caller gets the value."""

        entry = self._live(key)
        if entry is None:
            return None
        value = entry.value
        self.session.expunge(entry)
        # Compare-and-delete: only the caller whose delete hits the row wins.
        result = self.session.connection().execute(
            delete(KVEntry).where(KVEntry.key == key, KVEntry.value == value)
        )
        self.session.commit()
        if result.rowcount != 1:
            return None
        return value

    def purge_expired(self) -> int:
        result = self.session.connection().execute(
            delete(KVEntry).where(KVEntry.expires_at <= self.clock())
        )
        self.session.commit()
        return result.rowcount or 0


class RevocationStore:
    """Per-user "last logout" marks; tokens issued before the mark are dead."""

    def __init__(self, kv: KVStore) -> None:
        self.kv = kv

    @staticmethod
    def _key(user_id: str) -> str:
        return f"{LOGOUT_KEY_PREFIX}{user_id}"

    def mark_logout(self, user_id: str, when: datetime) -> None:
        self.kv.put(self._key(user_id), as_utc(when).isoformat(), LOGOUT_TTL)
        logger.info("Recorded logout for user %s", user_id)

    def get_last_logout(self, user_id: str) -> Optional[datetime]:
        raw = self.kv.get(self._key(user_id))
        if raw is None:
            return None
        try:
            return as_utc(datetime.fromisoformat(raw))
        except ValueError:
            logger.warning("Unreadable logout mark for user %s", user_id)
            return None

    def clear(self, user_id: str) -> None:
        self.kv.delete(self._key(user_id))
        logger.info("Cleared logout mark for user %s", user_id)


class ExchangeStore:
    """One-time opaque keys that stand in for a token across a URL hop."""

    def __init__(self, kv: KVStore) -> None:
        self.kv = kv

    def issue(self, token: str) -> str:
        key = secrets.token_urlsafe(ACCESS_TOKEN_BYTES)
        self.kv.put(f"{ACCESS_TOKEN_KEY_PREFIX}{key}", token, ACCESS_TOKEN_TTL)
        logger.info("Issued one-time access key, valid for %ss", int(ACCESS_TOKEN_TTL.total_seconds()))
        return key

    def redeem(self, key: str) -> Optional[str]:
        if not key:
            return None
        token = self.kv.take(f"{ACCESS_TOKEN_KEY_PREFIX}{key}")
        if token is None:
            logger.info("One-time access key unknown, expired or already used")
        return token


class LinkIntentStore:
    """Server-side record that a signed-in user started a link flow."""

    def __init__(self, kv: KVStore) -> None:
        self.kv = kv

    def remember(self, nonce: str, user_id: str) -> None:
        self.kv.put(f"{LINK_INTENT_KEY_PREFIX}{nonce}", user_id, LINK_INTENT_TTL)

    def consume(self, nonce: str) -> Optional[str]:
        if not nonce:
            return None
        return self.kv.take(f"{LINK_INTENT_KEY_PREFIX}{nonce}")


__all__ = [
    "ACCESS_TOKEN_TTL",
    "ExchangeStore",
    "KVStore",
    "LINK_INTENT_TTL",
    "LinkIntentStore",
    "LOGOUT_TTL",
    "RevocationStore",
]
