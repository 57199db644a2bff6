"""
FastAPI application factory.

Assembles the app, registers all routers and error handlers, and wires
up lifecycle events.  Database schema is managed by Alembic, NOT
create_all.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from app.controllers.admin_controller import router as admin_router
from app.controllers.auth_controller import router as auth_router
from app.controllers.user_controller import router as user_router
from app.core.config import settings
from app.core.database import engine
from app.core.errors import register_exception_handlers

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    store_kind = "memory" if settings.USE_MEMORY_STORE else "sql"
    logger.info("%s starting (%s store, %s)", settings.APP_NAME, store_kind, settings.ENVIRONMENT)
    yield
    await engine.dispose()
    logger.info("Database engine disposed.")


def create_app() -> FastAPI:
    app = FastAPI(
        title=settings.APP_NAME,
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    register_exception_handlers(app)

    # ── Register routers ─────────────────────────────────────────────
    app.include_router(auth_router)
    app.include_router(user_router)
    app.include_router(admin_router)

    # ── Health check ─────────────────────────────────────────────────
    @app.get("/health", tags=["Health"])
    async def health():
        return {"status": "ok"}

    return app


app = create_app()
