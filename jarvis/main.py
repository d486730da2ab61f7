from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from jarvis import config
from jarvis.api import food_delivery, health, integrations, rides, sync
from jarvis.db import engine
from jarvis.services.scheduler_service import scheduler_service

logging.basicConfig(
    level=config.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Jarvis Sync API")

# CORS setup
origins = [config.FRONTEND_ORIGIN]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ---------------------------------------------------------------------------
# Startup / shutdown hooks
# ---------------------------------------------------------------------------


@app.on_event("startup")
async def startup_event():
    """Start the queue poller when enabled; schema is managed by Alembic."""
    if config.QUEUE_POLLER_ENABLED:
        await scheduler_service.start()
    else:
        logger.info("Queue poller disabled; call /api/sync/process-queue or scripts/process_queue.py")


@app.on_event("shutdown")
async def shutdown_event():
    await scheduler_service.stop()
    await engine.dispose()


# Include API routers
app.include_router(health.router)
app.include_router(sync.router)
app.include_router(integrations.router)
app.include_router(food_delivery.router)
app.include_router(rides.router)
