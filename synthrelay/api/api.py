from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from synthrelay.api.logger.msgs import errors
from synthrelay.api.routes import controller, core, ice, signal
from synthrelay.api.store.queue_store import QueueStoreError
from synthrelay.core.bootstrap import relay_initializer


@asynccontextmanager
async def lifespan(api: FastAPI):
    """ API startup and shutdown handler """
    if not relay_initializer.is_loaded:
        relay_initializer.load_objects()

    try:
        if not await relay_initializer.queue_store.ping():
            raise QueueStoreError("ping failed")
        logger.info(f"Queue store reachable | Provider: {relay_initializer.config.STORE_PROVIDER}")
    except QueueStoreError as e:
        # Routes answer 503 until the store comes back
        logger.error(errors.ERROR_QUEUE_STORE_UNAVAILABLE("startup ping", e))

    try:
        yield
    finally:
        await relay_initializer.queue_store.close()
        logger.info("Queue store closed")


# Init the API
api = FastAPI(
    lifespan=lifespan
)

if not relay_initializer.is_loaded:
    relay_initializer.load_objects()

api.add_middleware(
    CORSMiddleware,
    allow_origins=relay_initializer.config.ALLOWED_ORIGINS,
    allow_credentials=True,  # The session cookie rides on every lock call
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

api.include_router(core.router)
api.include_router(signal.router)
api.include_router(controller.router)
api.include_router(ice.router)
