"""Main module for the balance monitoring service."""
import logging
import os
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from balance_monitor.container import Container, init_container
from balance_monitor.db import init_db
from balance_monitor.routers import (balance_router, monitoring_router,
                                     subscriptions_router, targets_router)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(fastapi_app: FastAPI):
    """Create tables, seed the default target and start monitoring; close resources on shutdown."""
    container: Container = fastapi_app.state.container
    settings = container.settings()

    init_db(container.engine())
    await container.registry().ensure_default_target(settings)

    notifier = container.notifier()
    await notifier.initialize()

    monitoring = container.monitoring()
    if fastapi_app.state.start_scheduler:
        monitoring.start()

    yield

    monitoring.shutdown()
    # Close network resources (httpx clients, telegram bot)
    for resource in (container.balance_provider(), container.audit(), notifier):
        try:
            await resource.close()
        except Exception as exc:  # pylint: disable=broad-except
            logger.warning("Error closing %s: %s", type(resource).__name__, exc)
    container.engine().dispose()


def create_app(container: Container | None = None, *, start_scheduler: bool = True) -> FastAPI:
    """Build the FastAPI app around a DI container (a fresh one from the environment by default)."""
    fastapi_app = FastAPI(
        title="Balance Monitor",
        description="Token balance monitoring with low-balance reminders",
        version="0.1.0",
        lifespan=lifespan,
    )
    fastapi_app.state.container = container or init_container()
    fastapi_app.state.start_scheduler = start_scheduler

    fastapi_app.include_router(balance_router)
    fastapi_app.include_router(subscriptions_router)
    fastapi_app.include_router(monitoring_router)
    fastapi_app.include_router(targets_router)

    @fastapi_app.get("/")
    def health():
        """Return health check status."""
        return {"status": "ok"}

    return fastapi_app


app = create_app()


def run():
    """Run the server (uvicorn). Use for `poetry run start`."""
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run("balance_monitor.main:app", host="127.0.0.1", port=8001)
