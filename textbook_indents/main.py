"""Textbook indent service FastAPI application."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError

from textbook_indents.core.auth.router import router as auth_router
from textbook_indents.core.config import settings
from textbook_indents.core.database.session import engine
from textbook_indents.core.exceptions import AppException
from textbook_indents.core.exceptions.handlers import (
    app_exception_handler,
    http_exception_handler,
    sqlalchemy_db_error_handler,
    validation_exception_handler,
)
from textbook_indents.core.logging import configure_logging
from textbook_indents.modules.indents.router import router as indents_router
from textbook_indents.modules.textbooks.router import router as textbooks_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    # Startup
    configure_logging()
    logger.info("Starting textbook indent service (env=%s)", settings.app_env)
    yield
    # Shutdown
    await engine.dispose()


def create_app() -> FastAPI:
    """Create and configure FastAPI application."""
    app = FastAPI(
        title="Textbook Indents",
        description="Textbook stock reservation and indent lifecycle for school branches",
        version="0.1.0",
        debug=settings.debug,
        lifespan=lifespan,
    )

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Exception handlers
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(SQLAlchemyError, sqlalchemy_db_error_handler)

    # Health check endpoint (must be first for load balancer health checks)
    @app.get("/health")
    async def health_check():
        return {"status": "healthy"}

    # Routers
    app.include_router(auth_router, prefix="/api/v1")
    app.include_router(textbooks_router, prefix="/api/v1")
    app.include_router(indents_router, prefix="/api/v1")

    return app


app = create_app()
