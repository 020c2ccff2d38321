"""FastAPI application wiring for the storefront identity service."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from psycopg_pool import ConnectionPool

from .api.routes import router as identity_router
from .config import Settings, get_settings
from .domain.service import IdentityService
from .notifications import EmailNotifier
from .repository import AccountRepository
from .security.passwords import PasswordHasher
from .security.tokens import TokenService

settings = get_settings()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


def build_service(pool: ConnectionPool, config: Settings) -> IdentityService:
    """Assemble the identity core with explicitly constructed collaborators."""
    return IdentityService(
        AccountRepository(pool),
        PasswordHasher.from_settings(config),
        TokenService.from_settings(config),
        EmailNotifier.from_settings(config),
        verification_ttl_seconds=config.verification_token_ttl_seconds,
        reset_ttl_seconds=config.reset_token_ttl_seconds,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialise shared resources (Postgres pool, services) for the app lifecycle."""
    pool = ConnectionPool(settings.database_url, open=False)
    pool.open()
    app.state.pool = pool
    app.state.identity_service = build_service(pool, settings)
    logger.info("%s %s started", settings.app_name, settings.version)
    try:
        yield
    finally:
        pool.close()
        logger.info("connection pool closed")


app = FastAPI(title=settings.app_name, version=settings.version, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.cors_origins),
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["*"],
    max_age=600,
)


@app.get("/healthz", tags=["health"])
def healthz() -> dict[str, str]:
    """Return a minimal readiness indicator used by orchestration systems."""
    return {"status": "ok"}


@app.get("/metrics")
def metrics() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


app.include_router(identity_router)


def run() -> None:
    """Serve the application with uvicorn using the configured host and port."""
    uvicorn.run(app, host=settings.http_host, port=settings.http_port, log_level=settings.log_level.lower())
