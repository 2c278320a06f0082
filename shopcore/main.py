# shopcore/main.py
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from shopcore.api.errors import register_exception_handlers
from shopcore.api.routers import carts, health, orders, payments
from shopcore.data import models  # noqa: F401  registers every table in Base.metadata
from shopcore.data.database import Base, engine
from shopcore.data.seed import seed
from shopcore.utils.logging import get_logger
from shopcore.utils.settings import SEED_ON_STARTUP

logger = get_logger(__name__)


def init_db() -> None:
    logger.info(f"Creating tables: {list(Base.metadata.tables.keys())}")
    try:
        Base.metadata.create_all(bind=engine)
    except Exception:
        logger.exception("Failed to create tables")
        raise
    logger.info("Database tables ready")

    if SEED_ON_STARTUP:
        seed()


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    yield


def create_app(init: bool = True) -> FastAPI:
    app = FastAPI(
        title="Shop Core",
        version="1.0.0",
        lifespan=lifespan if init else None,
    )

    register_exception_handlers(app)

    app.include_router(health.router)
    app.include_router(carts.router)
    app.include_router(orders.router)
    app.include_router(payments.router)

    return app


app = create_app()

if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
