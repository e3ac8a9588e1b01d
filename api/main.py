"""
FastAPI application initialization and configuration.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from core.config import Settings, get_settings
from core.middleware import (
    StructuredLoggingMiddleware,
    setup_error_handlers,
    setup_logging,
)
from database.engine import Database
from api.services import build_services
from api.routes import health
from api.routes.v1 import auth, disputes, jobs, referrals, wallets

logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Build the application.

    Args:
        settings: Explicit settings; loaded from the environment when omitted
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Own the storage handle for the lifetime of the app."""
        logger.info(f"Starting {settings.app_name} in {settings.app_env} environment")
        database = Database(
            settings.database_url,
            echo=settings.database_echo,
            pool_size=settings.database_pool_size,
            max_overflow=settings.database_max_overflow,
        )
        if settings.database_create_all:
            await database.create_all()
        app.state.services = build_services(database, settings)

        yield

        logger.info(f"Shutting down {settings.app_name}")
        await database.dispose()

    app = FastAPI(
        title=settings.app_name,
        description="Job referral marketplace with escrowed referral fees",
        version="0.1.0",
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    setup_error_handlers(app)

    # Middleware executes in reverse order of registration
    app.add_middleware(
        StructuredLoggingMiddleware,
        log_request_body=settings.log_request_body,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health.router, tags=["Health"])
    app.include_router(auth.router, tags=["Authentication"])
    app.include_router(
        jobs.router,
        prefix=f"{settings.api_v1_prefix}/jobs",
        tags=["Jobs"],
    )
    app.include_router(
        referrals.router,
        prefix=f"{settings.api_v1_prefix}/referrals",
        tags=["Referrals"],
    )
    app.include_router(
        disputes.router,
        prefix=f"{settings.api_v1_prefix}/disputes",
        tags=["Disputes"],
    )
    app.include_router(
        wallets.router,
        prefix=f"{settings.api_v1_prefix}/wallets",
        tags=["Wallets"],
    )

    return app


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    setup_logging(log_level=settings.log_level, json_logs=settings.json_logs)
    uvicorn.run(
        create_app(settings),
        host="0.0.0.0",
        port=8000,
        log_level=settings.log_level.lower(),
    )
