"""
Dependency FastAPI condivise dai router.

Store, task runner, file storage e configurazione sono singleton di processo;
i test li sostituiscono con ``app.dependency_overrides``.
"""
from functools import lru_cache

from core.config import ProcessorConfig, get_config
from core.database import AsyncSessionLocal
from core.file_storage import FileStorage
from core.repository import SqlRecordStore
from core.tasks import BackgroundTaskRunner


def get_settings() -> ProcessorConfig:
    return get_config()


@lru_cache(maxsize=1)
def get_store() -> SqlRecordStore:
    """Record store SQLAlchemy sulla session factory globale."""
    return SqlRecordStore(AsyncSessionLocal)


@lru_cache(maxsize=1)
def get_task_runner() -> BackgroundTaskRunner:
    return BackgroundTaskRunner()


@lru_cache(maxsize=1)
def get_file_storage() -> FileStorage:
    return FileStorage()
