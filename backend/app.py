"""FastAPI application factory."""

from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.errors import register_exception_handlers
from api.v1 import api_router
from core import configure_logging, settings
from services import RateLimitMiddleware, get_rate_limiter

API_PREFIX = "/api/v1"
HEALTH_PATH = f"{API_PREFIX}/health"


def create_app() -> FastAPI:
    configure_logging()

    app = FastAPI(title="Minigram API", version="0.1.0")
    app.add_middleware(
        RateLimitMiddleware,
        limiter_factory=get_rate_limiter,
        exempt_paths={HEALTH_PATH},
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Next-Offset"],
    )
    register_exception_handlers(app)
    app.include_router(api_router, prefix=API_PREFIX)
    return app
