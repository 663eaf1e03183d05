import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager

from fastapi import APIRouter, FastAPI
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from authcore.config.logging_config import configure_logging
from authcore.config.settings import settings
from authcore.database.client import close_db, get_session_factory, init_db
from authcore.features.account.router import router as account_router
from authcore.features.auth.router import router as auth_router
from authcore.features.auth.sweeper import run_token_sweep
from authcore.shared.rate_limit import limiter, rate_limit_handler

configure_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI):
    """Handle startup and shutdown events."""
    # Startup
    await init_db()

    sweep_task: asyncio.Task | None = None
    if settings.token_sweep_enabled:
        sweep_task = asyncio.create_task(
            run_token_sweep(get_session_factory(), settings.token_sweep_interval_hours * 3600)
        )
        logger.info(f"Refresh token sweep scheduled every {settings.token_sweep_interval_hours}h")

    yield

    # Shutdown
    if sweep_task is not None:
        sweep_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await sweep_task
    await close_db()


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    lifespan=lifespan,
)

# Add rate limiting middleware
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_handler)
app.add_middleware(SlowAPIMiddleware)

# Router Registration
routers: list[APIRouter] = [
    auth_router,
    account_router,
]

for router in routers:
    app.include_router(router, prefix=settings.api_prefix)


@app.get("/")
async def root():
    return {"message": settings.app_name, "status": "running"}


@app.get("/health")
async def health():
    return {"status": "healthy"}
