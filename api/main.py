import logging
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.database import DB_PATH, init_db
from api.routes import router

logger = logging.getLogger(__name__)


def cors_origins() -> list[str]:
    """Browser origins allowed to call the API, from comma-separated ``BENCH_CORS_ORIGINS``."""
    raw = os.environ.get("BENCH_CORS_ORIGINS", "")
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    await init_db()
    logger.info("Benchmark run store ready at %s", DB_PATH)
    yield


def create_app() -> FastAPI:
    load_dotenv()
    app = FastAPI(title="GGUF Bench", lifespan=lifespan)
    origins = cors_origins()
    if origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=origins,
            allow_methods=["GET", "POST"],
            allow_headers=["*"],
        )
    app.include_router(router)
    return app


app = create_app()
