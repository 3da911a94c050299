"""FastAPI application entrypoint."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from roomscan.api.routes import config, detections, health, room, speakers

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    """Load settings at startup and drop the session at shutdown."""

    from roomscan.api.services.state import get_settings, reset_session

    settings = get_settings()
    logger.info("roomscan API starting (model=%s)", settings.model_name)
    yield
    reset_session()


app = FastAPI(title="roomscan API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router)
app.include_router(config.router)
app.include_router(room.router)
app.include_router(detections.router)
app.include_router(speakers.router)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    uvicorn.run("roomscan.api.main:app", host="0.0.0.0", port=8000, reload=True)
