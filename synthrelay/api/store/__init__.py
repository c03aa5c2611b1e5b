from loguru import logger

from synthrelay.api.models.config_model import Config

from .memory_store import MemoryQueueStore
from .queue_store import QueueStore, QueueStoreError
from .redis_store import RedisQueueStore

__all__ = [
    "MemoryQueueStore",
    "QueueStore",
    "QueueStoreError",
    "RedisQueueStore",
    "create_queue_store",
]


def create_queue_store(config: Config) -> QueueStore:
    """
    Build the queue store backend named by `config.STORE_PROVIDER`.

    Args:
        config (Config): The relay config.

    Returns:
        QueueStore: The backend instance.
    """
    if config.STORE_PROVIDER == "redis":
        logger.info(f"Using redis queue store | URL: {config.REDIS_URL}")
        return RedisQueueStore(redis_url=config.REDIS_URL)

    if config.WORKERS > 1:
        logger.warning(
            f"Memory queue store is process-local but {config.WORKERS} workers are configured; the controller lock will not be shared between them"
        )
    logger.info("Using in-memory queue store")
    return MemoryQueueStore()
