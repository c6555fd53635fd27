"""FastAPI application entry point."""

import logging
import typing as t
from contextlib import asynccontextmanager

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from expiro.core.config import SETTINGS
from expiro.core.database import close_db, init_db
from expiro.core.globals import OPENAPI_TAGS
from expiro.routers import api_router
from expiro.services.expiry_checker import check_expiring_products_task

logging.basicConfig(
    level=logging.DEBUG if SETTINGS.debug else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
LOGGER: logging.Logger = logging.getLogger(__name__)

SCHEDULER: AsyncIOScheduler = AsyncIOScheduler()


@asynccontextmanager
async def lifespan(_: FastAPI) -> t.AsyncGenerator[None, None]:
    """Application lifespan events.

    args:
        _ (FastAPI): The FastAPI application instance.
    """
    LOGGER.info("Starting Expiro API...")
    await init_db()
    LOGGER.info("Database tables initialized")

    # Each invocation is idempotent per day, so a short interval only
    # resumes deferred batches and picks up products logged later that day.
    SCHEDULER.add_job(
        check_expiring_products_task,
        trigger=IntervalTrigger(minutes=SETTINGS.dispatch_interval_minutes),
        id="expiry_check",
        name="Check for expiring products",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    SCHEDULER.start()
    LOGGER.info(
        "Expiry checker scheduled to run every %d minutes",
        SETTINGS.dispatch_interval_minutes,
    )

    await check_expiring_products_task()

    yield

    LOGGER.info("Shutting down Expiro...")
    SCHEDULER.shutdown(wait=False)
    await close_db()
    LOGGER.info("Cleanup complete")


APPLICATION: FastAPI = FastAPI(
    title=SETTINGS.app_name,
    description="Expiro - Track product expiry dates and get email reminders",
    version=SETTINGS.app_version,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    openapi_tags=OPENAPI_TAGS,
)

APPLICATION.add_middleware(
    CORSMiddleware,
    allow_origins=SETTINGS.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

APPLICATION.include_router(api_router)


@APPLICATION.get("/health", tags=["Health"])
async def health_check() -> t.Dict[str, str]:
    """Health check endpoint for monitoring.

    Returns:
        t.Dict[str, str]: A dictionary indicating the health status.
    """
    return {"status": "healthy"}
