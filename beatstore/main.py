import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from beatstore.core.async_tasks import drain_background_tasks
from beatstore.database import init_db
from beatstore.models import *  # noqa: F403

APP_VERSION = "0.3.0"
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # Startup: create tables
    await init_db()
    from beatstore.database import async_session
    from beatstore.services.verification_code_service import cleanup_expired_codes

    async with async_session() as db:
        try:
            await cleanup_expired_codes(db)
        except Exception:
            logger.exception("Expired verification code cleanup failed")

    yield

    # Shutdown: let pending notifications finish, then dispose connection pool
    await drain_background_tasks(timeout_seconds=2.0)
    from beatstore.database import dispose_engine

    await dispose_engine()


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        response: Response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        return response


def create_app() -> FastAPI:
    app = FastAPI(
        title="Beatstore",
        description="Purchase and payment lifecycle for a beat storefront",
        version=APP_VERSION,
        lifespan=lifespan,
    )

    # CORS configurable via CORS_ORIGINS env var
    from beatstore.config import settings

    allowed_origins = [o.strip() for o in settings.cors_origins.split(",") if o.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Security headers
    app.add_middleware(SecurityHeadersMiddleware)

    # Register REST routers
    from beatstore.api import API_PREFIX, API_ROUTERS

    for router in API_ROUTERS:
        app.include_router(router, prefix=API_PREFIX)

    @app.get("/")
    async def root() -> dict[str, str]:
        return {
            "name": "Beatstore",
            "version": APP_VERSION,
            "docs": "/docs",
            "health": f"{API_PREFIX}/health",
        }

    return app


app = create_app()
