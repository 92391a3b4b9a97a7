# pawcart/main.py
from contextlib import asynccontextmanager

from fastapi import FastAPI
import uvicorn

from pawcart.data.database import Base, engine
from pawcart.api.routers import carts, health, loyalty, orders, payments
from pawcart.services.stock_reconciler import ReconcilerRegistry
from pawcart.utils.logging import get_logger

#import every model before create_all
from pawcart.data import models  # noqa: F401

logger = get_logger(__name__)


def init_db() -> None:
    logger.info(f"Initializing database, tables: {list(Base.metadata.tables.keys())}")
    try:
        Base.metadata.create_all(bind=engine)
    except Exception as e:
        logger.error(f"Failed to create tables: {e}")
        raise
    logger.info("Database tables ready")


@asynccontextmanager
async def lifespan(app: FastAPI):
    #process-wide state lives exactly as long as the app
    app.state.reconcilers = ReconcilerRegistry()
    try:
        yield
    finally:
        app.state.reconcilers.close()
        channel = getattr(app.state, "otp_channel", None)
        if channel is not None:
            await channel.redis.aclose()
        logger.info("Shut down: in-flight stock checks cancelled")


def create_app() -> FastAPI:
    init_db()

    app = FastAPI(
        title="Pawcart Checkout Service",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.include_router(health.router)
    app.include_router(carts.router)
    app.include_router(loyalty.router)
    app.include_router(orders.router)
    app.include_router(payments.router)

    return app


app = create_app()

if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
