from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from tortoise.contrib.fastapi import register_tortoise

from .config import settings
from .routers import rooms as rooms_router
from .routers import websockets as ws_router
from .schemas import HealthResponse
from .state import broadcaster, supervisor

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    logger.info("Dungeon server up (tick rate %s/s)", settings.tick_rate)
    yield
    await supervisor.shutdown()
    await broadcaster.drain()
    logger.info("Dungeon server stopped")


# -----------------------------
# FastAPI app instance
# -----------------------------

app = FastAPI(title="Dungeon Co-op Backend", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register routers
app.include_router(rooms_router.router)
app.include_router(ws_router.router)


@app.get("/health", response_model=HealthResponse, response_model_by_alias=True)
async def health():
    return HealthResponse(status="ok", active_games=supervisor.active_count())


# -----------------------------
# Database (Tortoise ORM)
# -----------------------------

register_tortoise(
    app,
    db_url=settings.db_url,
    modules={"models": ["dungeon_backend.models"]},
    generate_schemas=True,
    add_exception_handlers=True,
)


def main() -> None:
    import uvicorn

    uvicorn.run("dungeon_backend.app:app", host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
