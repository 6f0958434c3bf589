"""System-level API endpoints."""

from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from ...core import Clock
from ...services.tokens import TokenCodec
from ..deps import get_clock, get_codec

router = APIRouter(tags=["system"])


@router.get("/health")
def health() -> Dict[str, bool]:
    """Simple readiness probe."""

    return {"ok": True}


@router.get("/api/ping")
def ping(clock: Clock = Depends(get_clock)) -> Dict[str, Any]:
    return {"ok": True, "time": clock().isoformat()}


@router.get("/.well-known/jwks.json")
def jwks(codec: TokenCodec = Depends(get_codec)) -> JSONResponse:
    """Public verification keys for dependent services."""

    return JSONResponse(codec.jwks(), headers={"Cache-Control": "public, max-age=3600"})


__all__ = ["router"]
