"""FastAPI application factory and configuration."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from . import models  # noqa: F401 - ensure models are registered with SQLModel
from .api import register_routes
from .api.deps import get_codec
from .core import ALLOWED_CORS_ORIGINS, JWT_ALGORITHM, LOG_LEVEL, init_db, setup_logging
from .core.errors import register_error_handlers

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    # Fail at start-up, not on the first request, if the signing key is bad.
    codec = get_codec()
    logger.info("Portal gateway started, signing with %s", codec.algorithm)
    yield


def create_app() -> FastAPI:
    setup_logging(LOG_LEVEL)
    app = FastAPI(title="Portal Gateway", version="0.1.0", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=ALLOWED_CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    register_error_handlers(app)
    register_routes(app)
    logger.debug("Application created, token algorithm %s", JWT_ALGORITHM)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("portal_gateway.app:app", host="127.0.0.1", port=3000, reload=True)
