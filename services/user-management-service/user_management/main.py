"""FastAPI application wiring for the user management service."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from psycopg_pool import ConnectionPool

from .api.error_handling import register_exception_handlers
from .api.routes import router as v1_router
from .config import Settings, get_settings
from .domain.authentication import CredentialAuthenticator
from .domain.expiry import ExpirySweeper
from .domain.profiles import ProfileSelector
from .domain.provisioning import AccountProvisioner
from .domain.refresh_tokens import RefreshTokenManager
from .domain.sessions import SessionService
from .domain.store import TenantDirectory, UserStore
from .repository import PostgresTenantDirectory, PostgresUserStore
from .security.passwords import PasswordCredential

logger = logging.getLogger(__name__)

settings = get_settings()


def install_services(
    app: FastAPI,
    store: UserStore,
    directory: TenantDirectory,
    credential: PasswordCredential,
    settings: Settings,
) -> None:
    """Build the lifecycle components around ``store`` and attach them to ``app.state``."""
    refresh_tokens = RefreshTokenManager(store, settings)
    profiles = ProfileSelector(store)
    app.state.authenticator = CredentialAuthenticator(store, credential, settings)
    app.state.provisioner = AccountProvisioner(store, credential, settings)
    app.state.sessions = SessionService(refresh_tokens, profiles, settings)
    app.state.sweeper = ExpirySweeper(store, directory, settings)


async def run_expiry_sweeps(sweeper: ExpirySweeper, interval_seconds: int) -> None:
    """Background loop running the unverified-account sweep on a fixed interval."""
    try:
        while True:
            try:
                report = await asyncio.to_thread(sweeper.run)
                logger.info(
                    "unverified user sweep removed %d accounts (%d tenants failed)",
                    report.total_deleted,
                    len(report.failed),
                )
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("unverified user sweep crashed")
            await asyncio.sleep(interval_seconds)
    except asyncio.CancelledError:
        logger.info("unverified user sweep task cancelled")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialise shared resources (Postgres pool, services, sweep task) for the app lifecycle."""
    pool = ConnectionPool(settings.database_url, max_size=settings.db_max_pool_size, open=False)
    pool.open()
    app.state.pool = pool
    install_services(
        app,
        PostgresUserStore(pool, timeout_seconds=settings.db_timeout_seconds),
        PostgresTenantDirectory(pool, timeout_seconds=settings.db_timeout_seconds),
        PasswordCredential.from_settings(settings),
        settings,
    )
    sweep_task = asyncio.create_task(
        run_expiry_sweeps(app.state.sweeper, settings.cleanup_interval_seconds)
    )
    try:
        yield
    finally:
        sweep_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await sweep_task
        pool.close()


app = FastAPI(title=settings.app_name, version=settings.version, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173", "http://127.0.0.1:5173"],
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type"],
    max_age=600,
)
register_exception_handlers(app)


@app.get("/healthz", tags=["health"])
def healthz() -> dict[str, str]:
    """Return a minimal readiness indicator used by orchestration systems."""
    return {"status": "ok"}


@app.get("/metrics", include_in_schema=False)
def metrics() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


app.include_router(v1_router)


def run() -> None:
    """Console entry point: serve the app with uvicorn."""
    uvicorn.run(app, host=settings.http_host, port=settings.http_port)


if __name__ == "__main__":
    run()
