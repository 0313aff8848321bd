from contextlib import asynccontextmanager

import sentry_sdk
import structlog
from fastapi import FastAPI

from hookrelay.config import settings
from hookrelay.database import init_models
from hookrelay.handlers import register_activity_handlers
from hookrelay.logger import setup_logging
from hookrelay.middleware import LoggingMiddleware
from hookrelay.routes import deliveries_router, webhooks_router
from hookrelay.services import delivery_store, handler_registry
from hookrelay.stores import StoreType

logger = structlog.get_logger(__name__)

if settings.sentry_dsn:
    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        traces_sample_rate=0.1,
        profiles_sample_rate=0.1,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()

    if delivery_store.store_type == StoreType.DATABASE and settings.create_tables:
        await init_models()

    if settings.activity_log_enabled and not handler_registry.frozen:
        register_activity_handlers(handler_registry)
    handler_registry.freeze()

    logger.info(
        "Webhook receiver started",
        delivery_store=delivery_store.store_type.value,
        retry_policy=settings.retry_policy.value,
    )
    yield


app = FastAPI(lifespan=lifespan)
app.add_middleware(LoggingMiddleware)


@app.get("/", tags=["health"])
async def read_root():
    return {"status": "ok"}


app.include_router(webhooks_router)
app.include_router(deliveries_router)
