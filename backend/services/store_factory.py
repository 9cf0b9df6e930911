import logging

from config import Settings
from services.store import EntityStore

logger = logging.getLogger(__name__)


def build_store(settings: Settings) -> EntityStore:
    """Compose the configured Entity Store adapter. Called once at startup."""
    backend = settings.store_backend
    if backend == "memory":
        from services.memory_store import MemoryStore
        store: EntityStore = MemoryStore()
    elif backend == "redis":
        from services.redis_store import RedisStore
        store = RedisStore.from_url(settings.redis_url, prefix=settings.redis_prefix)
    else:
        from services.firestore_service import FirestoreStore
        store = FirestoreStore(
            project=settings.google_cloud_project,
            emulator_host=settings.firestore_emulator_host,
        )
    logger.info(f"Entity store: {store.name}")
    return store
