"""The unsigned ``portal_session`` cookie kept for older pages.

It carries no signature and is only ever trusted for the read-only
``GET /api/me``.
"""

from __future__ import annotations

import base64
import binascii
import json
import secrets
from typing import Any, Dict, Optional

from starlette.requests import HTTPConnection
from starlette.responses import Response

from ..models import User

LEGACY_COOKIE = "portal_session"
LEGACY_MAX_AGE = 7 * 24 * 60 * 60


def encode_legacy_session(user: User) -> str:
    blob = {
        "id": secrets.token_hex(16),
        "userId": user.id,
        "email": user.email,
        "name": user.name,
    }
    return base64.b64encode(json.dumps(blob).encode("utf-8")).decode("ascii")


def decode_legacy_session(raw: Optional[str]) -> Optional[Dict[str, Any]]:
    if not raw:
        return None
    try:
        data = json.loads(base64.b64decode(raw, validate=True))
    except (binascii.Error, ValueError):
        return None
    if not isinstance(data, dict) or not isinstance(data.get("userId"), str):
        return None
    return data


def read_legacy_session(connection: HTTPConnection) -> Optional[Dict[str, Any]]:
    return decode_legacy_session(connection.cookies.get(LEGACY_COOKIE))


def set_legacy_session(
    response: Response,
    user: User,
    *,
    secure: bool = False,
    domain: Optional[str] = None,
) -> None:
    response.set_cookie(
        LEGACY_COOKIE,
        encode_legacy_session(user),
        max_age=LEGACY_MAX_AGE,
        httponly=True,
        samesite="lax",
        secure=secure,
        domain=domain,
        path="/",
    )


def clear_legacy_session(response: Response, *, domain: Optional[str] = None) -> None:
    response.delete_cookie(LEGACY_COOKIE, path="/", domain=domain)


__all__ = [
    "LEGACY_COOKIE",
    "LEGACY_MAX_AGE",
    "clear_legacy_session",
    "decode_legacy_session",
    "read_legacy_session",
    "set_legacy_session",
]
